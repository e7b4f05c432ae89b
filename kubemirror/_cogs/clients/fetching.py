import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from kubemirror._cogs.clients import api, auth, errors
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references


async def read_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        logger: typedefs.Logger,
) -> bodies.Body:
    """
    Read one object of a specific resource type by its name.

    Raises `errors.APINotFoundError` if the object does not exist.
    """
    raw_body: bodies.RawBody = await api.get(
        url=resource.get_url(namespace=namespace, name=name),
        context=context,
        settings=settings,
        logger=logger,
    )
    return bodies.Body(raw_body)


async def list_objs(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        labels: Optional[str] = None,
        fields: Optional[str] = None,
        limit: Optional[int] = None,
        continue_token: Optional[str] = None,
        logger: typedefs.Logger,
) -> bodies.EntityList:
    """
    List the objects of specific resource type: one page of them.

    The cluster-scoped call is used in two cases:

    * The resource itself is cluster-scoped, and namespacing makes not sense.
    * The namespace is not specified for the namespaced resource (all namespaces).

    Otherwise, the namespace-scoped call is used.

    If the limit is set, the server returns at most that many items and
    a continue token for the next page (if there is anything left to list).
    """
    params: Dict[str, str] = {}
    if labels:
        params['labelSelector'] = labels
    if fields:
        params['fieldSelector'] = fields
    if limit is not None:
        params['limit'] = str(limit)
    if continue_token is not None:
        params['continue'] = continue_token

    rsp = await api.get(
        url=resource.get_url(namespace=namespace),
        params=params,
        context=context,
        settings=settings,
        logger=logger,
    )
    return _parse_list(rsp)


async def list_all_objs(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        labels: Optional[str] = None,
        fields: Optional[str] = None,
        logger: typedefs.Logger,
) -> bodies.EntityList:
    """
    List all the objects of a specific resource type, page by page.

    The resource version of the result is the one of the first page: the next
    pages are served by the server from the same consistent snapshot.
    If the continue token expires between the pages ("410 Gone"), the listing
    fails as a whole: it makes no sense to glue the pages of different snapshots.
    """
    kind: Optional[str] = None
    resource_version: Optional[str] = None
    items: List[bodies.Body] = []
    continue_token: Optional[str] = None
    page = 0
    while True:
        page += 1
        try:
            entities = await list_objs(
                context=context,
                settings=settings,
                resource=resource,
                namespace=namespace,
                labels=labels,
                fields=fields,
                limit=settings.listing.page_size,
                continue_token=continue_token,
                logger=logger,
            )
        except errors.APIGoneError as e:
            raise errors.ListingError(f"The listing of {resource} expired at page #{page}.") from e

        kind = kind if kind is not None else entities.kind
        resource_version = resource_version if resource_version is not None else entities.resource_version
        items.extend(entities.items)
        continue_token = entities.continue_token
        if not continue_token:
            break

    return bodies.EntityList(kind=kind, resource_version=resource_version, items=items)


async def read_pod_log(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        namespace: references.Namespace,
        name: str,
        container: Optional[str] = None,
        previous: bool = False,
        timestamps: bool = False,
        since_time: Union[None, str, datetime.datetime] = None,
        tail_lines: Optional[int] = None,
        limit_bytes: Optional[int] = None,
        logger: typedefs.Logger,
) -> str:
    """
    Read the log of a pod's container as one text, without following it.
    """
    params: Dict[str, str] = {}
    if container is not None:
        params['container'] = container
    if previous:
        params['previous'] = 'true'
    if timestamps:
        params['timestamps'] = 'true'
    if since_time is not None:
        params['sinceTime'] = format_rfc3339(since_time)
    if tail_lines is not None:
        params['tailLines'] = str(tail_lines)
    if limit_bytes is not None:
        params['limitBytes'] = str(limit_bytes)

    resource = references.Resource('', 'v1', 'pods', kind='Pod', namespaced=True)
    return await api.get_text(
        url=resource.get_url(namespace=namespace, name=name, subresource='log'),
        params=params,
        context=context,
        settings=settings,
        logger=logger,
    )


def format_rfc3339(value: Union[str, datetime.datetime]) -> str:
    if isinstance(value, str):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.astimezone(datetime.timezone.utc).isoformat().replace('+00:00', 'Z')


def _parse_list(rsp: Mapping[str, Any]) -> bodies.EntityList:
    kind: Optional[str] = rsp.get('kind')
    meta: Mapping[str, Any] = rsp.get('metadata') or {}
    resource_version = meta.get('resourceVersion', rsp.get('resourceVersion'))
    continue_token = meta.get('continue') or None

    # The items of the list have no kind & apiVersion of their own; restore them from the list.
    items: List[bodies.Body] = []
    for item in rsp.get('items') or []:
        if kind is not None:
            item.setdefault('kind', kind[:-4] if kind[-4:] == 'List' else kind)
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(bodies.Body(item))

    return bodies.EntityList(
        kind=kind,
        resource_version=resource_version,
        items=items,
        continue_token=continue_token,
    )
