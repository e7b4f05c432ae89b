import copy
from typing import Any, Mapping, Optional, cast

from kubemirror._cogs.clients import api, auth
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references


async def create_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        body: Optional[Mapping[str, Any]] = None,
        logger: typedefs.Logger,
) -> bodies.Body:
    """
    Create a resource.

    The body is copied before being sent: the caller's object is never modified,
    even when the kind, the API version, the name, or the namespace are added.

    Raises `errors.APIAlreadyExistsError` if an object with that name exists.
    """
    payload: bodies.RawBody = cast(bodies.RawBody, copy.deepcopy(dict(body or {})))
    if resource.kind is not None:
        payload.setdefault('kind', resource.kind)
    payload.setdefault('apiVersion', resource.api_version)
    if namespace is not None:
        payload.setdefault('metadata', {}).setdefault('namespace', namespace)
    if name is not None:
        payload.setdefault('metadata', {}).setdefault('name', name)

    namespace = cast(references.Namespace, payload.get('metadata', {}).get('namespace'))
    created_body: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=namespace),
        payload=payload,
        context=context,
        settings=settings,
        logger=logger,
    )
    return bodies.Body(created_body)
