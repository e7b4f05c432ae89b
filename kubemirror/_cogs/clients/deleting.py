from typing import Any, Mapping, Optional

from kubemirror._cogs.clients import api, auth
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references


async def delete_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        options: Optional[Mapping[str, Any]] = None,
        logger: typedefs.Logger,
) -> bodies.Body:
    """
    Delete a resource by its name.

    The options are sent as the ``DeleteOptions`` body: e.g.,
    ``{'propagationPolicy': 'Foreground', 'gracePeriodSeconds': 0}``.

    Returns whatever the server returns: either the object itself (if it is
    only marked for deletion and waits for its finalizers), or the "Status".
    Raises `errors.APINotFoundError` if the object does not exist.
    """
    payload = {'kind': 'DeleteOptions', 'apiVersion': 'v1', **options} if options else None
    rsp: Mapping[str, Any] = await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload=payload,
        context=context,
        settings=settings,
        logger=logger,
    )
    return bodies.Body(rsp)
