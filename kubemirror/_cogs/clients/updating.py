import copy
from typing import Any, Mapping, Optional, cast

from kubemirror._cogs.clients import api, auth
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references


async def update_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        body: Mapping[str, Any],
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        logger: typedefs.Logger,
) -> bodies.Body:
    """
    Replace a resource as a whole (HTTP PUT).

    The name & the namespace are taken from the body's metadata unless
    passed explicitly. If the body contains a resource version, the update
    is optimistic: it fails with `errors.APIConflictError` if the object
    was changed since that version.
    """
    payload: bodies.RawBody = cast(bodies.RawBody, copy.deepcopy(dict(body)))
    if resource.kind is not None:
        payload.setdefault('kind', resource.kind)
    payload.setdefault('apiVersion', resource.api_version)

    meta = payload.get('metadata', {})
    name = name if name is not None else meta.get('name')
    namespace = namespace if namespace is not None else cast(references.Namespace, meta.get('namespace'))
    if name is None:
        raise ValueError("The name is required to update an object.")

    updated_body: bodies.RawBody = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=payload,
        context=context,
        settings=settings,
        logger=logger,
    )
    return bodies.Body(updated_body)
