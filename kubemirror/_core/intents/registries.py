"""
A registry of the resources served by the cluster, and of their verbs.

The resources are discovered once from the cluster, and then looked up
by any of their names, as ``kubectl`` does it: by the plural (``pods``),
the singular (``pod``), the kind (``Pod``), a short name (``po``),
or a category (``all``, which usually matches many resources);
optionally qualified with the version and/or group (``deployments.v1.apps``,
``deployments.apps``), or split into the API version and the name
(``ResourceQuery('apps/v1', 'deployments')``).

For every found resource, the registry provides the verbs: the one-shot
and streaming API calls already bound to that resource and the connection::

    registry = ResourceRegistry(context=context)
    verbs = await registry.verbs('deployments.apps')
    body = await verbs.get(namespace='default', name='nginx')
"""
import asyncio
import dataclasses
import functools
import logging
import re
from typing import Any, Callable, Collection, Dict, FrozenSet, NamedTuple, Optional, Tuple, Union

from kubemirror._cogs.clients import auth, creating, deleting, errors, fetching, patching, \
                                     scanning, updating, watching
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r'^v[0-9]+((alpha|beta)[0-9]+)?$')


class ResourceNotFoundError(LookupError):
    """ No resources match the query in the cluster. """


class AmbiguousResourceError(LookupError):
    """ More than one resource match the query; it should be more specific. """


@dataclasses.dataclass(frozen=True, init=False, repr=False)
class ResourceQuery:
    """
    A resource specification that can match several resource kinds.

    The queries are not usable in the API calls: they are only matched
    against the actually discovered resources (:class:`references.Resource`).
    They are made either from the keywords, or from the positional strings
    as ``kubectl`` accepts them: ``"pods"``, ``"deployments.v1.apps"``,
    ``("apps/v1", "deployments")``, or ``("apps", "v1", "deployments")``.
    """
    group: Optional[str] = None
    version: Optional[str] = None
    name: Optional[str] = None

    def __init__(
            self,
            *args: str,
            group: Optional[str] = None,
            version: Optional[str] = None,
            name: Optional[str] = None,
    ) -> None:
        super().__init__()
        parsed = parse_query(*args) if args else (group, version, name)
        for field, value in zip(['group', 'version', 'name'], parsed):
            object.__setattr__(self, field, value)  # frozen
        if not self.name:
            raise TypeError("Unspecific resource with no name.")

    def __repr__(self) -> str:
        fields = dict(group=self.group, version=self.version, name=self.name)
        kwtext = ', '.join(f'{key}={val!r}' for key, val in fields.items() if val is not None)
        return f'{self.__class__.__name__}({kwtext})'

    def check(self, resource: references.Resource) -> bool:
        """ Check if the resource is one of those meant by the query. """
        names = {resource.kind, resource.plural, resource.singular} | resource.shortcuts | resource.categories
        versions = {resource.version} if self.version is not None else {None} if resource.preferred else set()
        return (
            self.group in (None, resource.group) and
            self.version in versions and
            self.name in names
        )

    def select(self, resources: Collection[references.Resource]) -> FrozenSet[references.Resource]:
        """
        Select the matching resources; the core ones win over the others.

        As in ``kubectl``, "pods" means the core "pods.v1", even if there are
        other "pods" in other groups (e.g. "pods.v1beta1.metrics.k8s.io").
        """
        matching = frozenset(resource for resource in resources if self.check(resource))
        core = frozenset(resource for resource in matching if resource.group == '')
        return core or matching


def parse_query(*args: str) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """ Split the positional query into the group, the version, and the name. """
    if len(args) == 3:
        return args[0], args[1], args[2]
    elif len(args) == 2:
        api, name = args
        if '/' in api:
            group, _, version = api.rpartition('/')
            return group, version, name
        elif VERSION_PATTERN.match(api):
            return '', api, name
        else:
            return api, None, name
    elif len(args) == 1:
        name, _, qualifier = args[0].partition('.')
        version, _, group = qualifier.partition('.')
        if VERSION_PATTERN.match(version):
            return group or None, version, name
        return qualifier or None, None, name
    else:
        raise TypeError(f"Too many arguments for a resource query: {args!r}")


class Verbs(NamedTuple):
    """
    The API calls bound to one specific resource and connection.

    The remaining arguments are those of the underlying calls: e.g.
    ``namespace=``, ``name=``, ``body=``, ``patch=``, ``labels=``.
    """
    resource: references.Resource
    get: Callable[..., Any]
    list: Callable[..., Any]
    watch: Callable[..., Any]
    create: Callable[..., Any]
    update: Callable[..., Any]
    patch: Callable[..., Any]
    delete: Callable[..., Any]


class ResourceRegistry:
    """
    All the resources of the cluster, discovered on the first need.

    The discovery happens only once per registry, even if many coroutines
    request the resources at the same time: the first one discovers,
    the others wait for it and use its results.
    """

    def __init__(
            self,
            *,
            context: auth.APIContext,
            settings: Optional[configuration.ClientSettings] = None,
            groups: Optional[Collection[str]] = None,
    ) -> None:
        super().__init__()
        self.context = context
        self.settings = settings if settings is not None else configuration.ClientSettings()
        self.groups = groups
        self._resources: FrozenSet[references.Resource] = frozenset()
        self._discovered = False
        self._lock = asyncio.Lock()

    @property
    def discovered(self) -> bool:
        return self._discovered

    @property
    def resources(self) -> FrozenSet[references.Resource]:
        return self._resources

    async def ensure_discovered(self) -> None:
        async with self._lock:
            if not self._discovered:
                resources = await scanning.scan_resources(
                    context=self.context,
                    settings=self.settings,
                    groups=self.groups,
                    logger=logger,
                )
                self._resources = frozenset(resources)
                self._discovered = True
                logger.debug(f"Discovered {len(self._resources)} resources.")

    async def lookup(self, query: Union[str, ResourceQuery]) -> references.Resource:
        """
        Find exactly one resource by any of its names, or fail.
        """
        await self.ensure_discovered()
        query = query if isinstance(query, ResourceQuery) else ResourceQuery(query)
        found = query.select(self._resources)
        if not found:
            raise ResourceNotFoundError(f"No resources match {query!r}.")
        if len(found) > 1:
            names = ', '.join(sorted(repr(resource) for resource in found))
            raise AmbiguousResourceError(f"Ambiguous resources match {query!r}: {names}")
        return next(iter(found))

    async def verbs(self, query: Union[str, ResourceQuery, references.Resource]) -> Verbs:
        resource = query if isinstance(query, references.Resource) else await self.lookup(query)
        return self.bind(resource)

    def bind(self, resource: references.Resource) -> Verbs:
        common = dict(context=self.context, settings=self.settings, resource=resource)
        return Verbs(
            resource=resource,
            get=functools.partial(fetching.read_obj, logger=logger, **common),
            list=functools.partial(fetching.list_objs, logger=logger, **common),
            watch=functools.partial(watching.watch_objs, **common),
            create=functools.partial(creating.create_obj, logger=logger, **common),
            update=functools.partial(updating.update_obj, logger=logger, **common),
            patch=functools.partial(patching.patch_obj, logger=logger, **common),
            delete=functools.partial(deleting.delete_obj, logger=logger, **common),
        )

    async def proxy_url(
            self,
            query: Union[str, ResourceQuery, references.Resource],
            *,
            name: str,
            port: Union[int, str],
            namespace: references.Namespace = None,
    ) -> str:
        """
        The absolute URL of the API server's proxy to a port of an object.

        The objects are usually pods, services, or nodes. The URL must be
        requested with the same credentials, e.g. with the context's session.
        """
        resource = query if isinstance(query, references.Resource) else await self.lookup(query)
        return resource.get_url(server=self.context.server, namespace=namespace,
                                name=f'{name}:{port}', subresource='proxy')

    async def list_everything(
            self,
            *,
            namespace: references.Namespace = None,
            labels: Optional[str] = None,
            fields: Optional[str] = None,
    ) -> Dict[references.Resource, bodies.EntityList]:
        """
        List the objects of all the listable resources, concurrently.

        With the namespace, only the namespaced resources are listed.
        The resources that fail with the API errors (e.g. forbidden for this
        account, or served by an unavailable aggregated API) are skipped.
        """
        await self.ensure_discovered()
        listable = [
            resource for resource in self._resources
            if 'list' in resource.verbs and (namespace is None or resource.namespaced)
        ]
        results = await asyncio.gather(*[
            self._list_or_skip(resource, namespace=namespace, labels=labels, fields=fields)
            for resource in listable
        ])
        return {resource: entities for resource, entities in zip(listable, results) if entities is not None}

    async def _list_or_skip(
            self,
            resource: references.Resource,
            **kwargs: Any,
    ) -> Optional[bodies.EntityList]:
        try:
            return await fetching.list_all_objs(
                context=self.context, settings=self.settings, resource=resource, logger=logger, **kwargs)
        except (errors.APIError, errors.ListingError) as e:
            logger.warning(f"Skipping {resource!r} from listing everything: {e!r}")
            return None
