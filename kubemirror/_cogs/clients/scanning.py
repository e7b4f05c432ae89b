"""
The discovery of the resources served by the API.

The core group (``/api``) and the named groups (``/apis``) are listed first,
then all of their group-versions are read concurrently. The named groups
also report their preferred versions; the core group has only ``v1``.
"""
import asyncio
from typing import Any, Collection, Iterable, List, Mapping, NamedTuple, Optional, Set

from kubemirror._cogs.clients import api, auth, errors
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import references


class GroupVersion(NamedTuple):
    url: str
    group: str
    version: str
    preferred: bool


async def read_version(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
) -> Mapping[str, str]:
    """ Read the server's build information: major, minor, gitVersion, etc. """
    info: Mapping[str, str] = await api.get('/version', context=context, settings=settings, logger=logger)
    return info


async def check_version(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
        group: str,
        version: str,
) -> bool:
    """
    Check if the API serves the version of the group (``''`` for the core one).

    The core group lists its versions as strings, the named groups as objects
    with the ``version`` fields. The absent groups serve no versions at all.
    """
    url = f'/apis/{group}' if group else '/api'
    try:
        rsp = await api.get(url, context=context, settings=settings, logger=logger)
    except errors.APINotFoundError:
        return False
    served = rsp.get('versions') if isinstance(rsp, Mapping) else None
    return any(
        (info if isinstance(info, str) else info.get('version')) == version
        for info in served or []
    )


async def scan_resources(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
        groups: Optional[Collection[str]] = None,
) -> Collection[references.Resource]:
    """
    Discover all resources of all versions of the groups (or of all groups).

    The core group is named ``''``. The group-versions that vanish while
    being scanned are skipped.
    """
    kwargs = dict(context=context, settings=settings, logger=logger)
    listings = await asyncio.gather(
        _list_core_versions(groups=groups, **kwargs),
        _list_group_versions(groups=groups, **kwargs),
    )
    versions = [gv for listing in listings for gv in listing]
    scanned = await asyncio.gather(*[_scan_version(gv, **kwargs) for gv in versions])
    resources: Set[references.Resource] = set()
    for batch in scanned:
        resources.update(batch)
    return resources


async def _list_core_versions(
        *,
        groups: Optional[Collection[str]],
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
) -> List[GroupVersion]:
    if groups is not None and '' not in groups:
        return []
    rsp = await api.get('/api', context=context, settings=settings, logger=logger)
    return [GroupVersion(f'/api/{name}', '', name, True) for name in rsp['versions']]


async def _list_group_versions(
        *,
        groups: Optional[Collection[str]],
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
) -> List[GroupVersion]:
    if groups is not None and not set(groups) - {''}:
        return []
    rsp = await api.get('/apis', context=context, settings=settings, logger=logger)
    return [
        GroupVersion(
            url=f"/apis/{group['name']}/{version['version']}",
            group=group['name'],
            version=version['version'],
            preferred=version['version'] == group['preferredVersion']['version'],
        )
        for group in rsp['groups'] if groups is None or group['name'] in groups
        for version in group['versions']
    ]


async def _scan_version(
        gv: GroupVersion,
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        logger: typedefs.Logger,
) -> Collection[references.Resource]:
    try:
        rsp = await api.get(gv.url, context=context, settings=settings, logger=logger)
    except errors.APINotFoundError:
        return set()  # the group-version was deleted after it was listed.
    return set(parse_resources(rsp.get('resources', []), gv))


def parse_resources(
        infos: Iterable[Mapping[str, Any]],
        gv: GroupVersion,
) -> Iterable[references.Resource]:
    """
    Convert the API resource lists to our resources.

    The subresources come as separate entries named ``plural/subresource``
    and are attached to their main resources. Some servers (e.g. K3s) report
    empty singular names of the builtin resources: the lowercased kind is used.
    """
    infos = list(infos)
    subresources = [info['name'].split('/', 1) for info in infos if '/' in info['name']]
    for info in infos:
        if '/' in info['name']:
            continue
        yield references.Resource(
            group=gv.group,
            version=gv.version,
            plural=info['name'],
            kind=info['kind'],
            singular=info.get('singularName') or info['kind'].lower(),
            shortcuts=frozenset(info.get('shortNames') or []),
            categories=frozenset(info.get('categories') or []),
            subresources=frozenset(sub for main, sub in subresources if main == info['name']),
            verbs=frozenset(info.get('verbs') or []),
            namespaced=info['namespaced'],
            preferred=gv.preferred,
        )
