import dataclasses
import urllib.parse
from typing import FrozenSet, Iterator, Mapping, NewType, Optional, Union

from kubemirror._cogs.structs import dicts

# A namespace that exists (or is assumed to), as opposed to arbitrary strings.
NamespaceName = NewType('NamespaceName', str)

# A namespace of the API calls: `None` means the cluster-wide calls.
Namespace = Optional[NamespaceName]


@dataclasses.dataclass(frozen=True, eq=False, repr=False)
class Resource:
    """
    A resource kind as served by the API, either built-in or custom.

    Only the group, the version, and the plural name identify the resource
    and are used in the URLs, hashing, and comparison. The other names
    are kept to look the resource up by them (e.g. ``po`` or ``Pod``).
    The core group is an empty string.

    The non-preferred versions are found only if the version is specified
    explicitly. The verbs are those served by the API, not those allowed.
    """
    group: str
    version: str
    plural: str
    kind: Optional[str] = None
    singular: Optional[str] = None
    shortcuts: FrozenSet[str] = frozenset()
    categories: FrozenSet[str] = frozenset()
    subresources: FrozenSet[str] = frozenset()
    namespaced: Optional[bool] = None
    preferred: bool = True
    verbs: FrozenSet[str] = frozenset()

    def __hash__(self) -> int:
        return hash(tuple(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return tuple(self) == tuple(other)

    def __repr__(self) -> str:
        plural, _, subresource = self.plural.partition('/')
        name = '.'.join(part for part in [plural, self.version, self.group] if part)
        return f'{name}/{subresource}' if subresource else name

    def __iter__(self) -> Iterator[str]:
        return iter((self.group, self.version, self.plural))

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_version_url(self, *, server: Optional[str] = None) -> str:
        """ The root of the resource's group-version: ``/api/v1`` or ``/apis/group/version``. """
        core = self.group == '' and self.version == 'v1'
        path = '/api/v1' if core else f'/apis/{self.api_version}'
        return path if server is None else server.rstrip('/') + path

    def get_url(
            self,
            *,
            server: Optional[str] = None,
            namespace: Namespace = None,
            name: Optional[str] = None,
            subresource: Optional[str] = None,
            params: Optional[Mapping[str, str]] = None,
            watch: bool = False,
    ) -> str:
        """
        Build the URL of the resource's collection, or of one of its objects.

        Without the namespace, the URL is cluster-wide (for namespaced resources,
        it lists or watches the objects of all namespaces). The watch-URLs have
        the ``watch`` segment after the group-version. The params are encoded
        to the query string.
        """
        if subresource is not None and name is None:
            raise ValueError("Subresources can be used only with specific resources by their name.")
        if subresource is not None and watch:
            raise ValueError("Subresources cannot be watched.")
        if self.namespaced is False and namespace is not None:
            raise ValueError("Specific namespaces are not supported for cluster-scoped resources.")
        if self.namespaced and namespace is None and name is not None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        segments = [self.get_version_url()]
        segments += ['watch'] if watch else []
        segments += ['namespaces', namespace] if namespace is not None else []
        segments += [self.plural]
        segments += [name] if name is not None else []
        segments += [subresource] if subresource is not None else []
        url = '/'.join(segments)
        if params:
            url += '?' + urllib.parse.urlencode(params, encoding='utf-8')
        return url if server is None else server.rstrip('/') + url


@dataclasses.dataclass(frozen=True)
class Selector:
    """
    A restriction of which objects of a resource are listed & watched.

    Both the label and the field selectors are either the raw strings
    in the API syntax (``"app=x,tier notin (db)"``), or the mappings
    of keys to values for the simple equality requirements.

    The namespace restricts the collection to one namespace; with ``None``,
    the whole cluster is listed & watched (for namespaced resources too).
    The name restricts it to one single object (mostly for watching).
    """
    namespace: Namespace = None
    name: Optional[str] = None
    labels: Union[None, str, Mapping[str, Optional[str]]] = None
    fields: Union[None, str, Mapping[str, Optional[str]]] = None

    @property
    def label_selector(self) -> Optional[str]:
        return dicts.build_selector(self.labels)

    @property
    def field_selector(self) -> Optional[str]:
        selector = dicts.build_selector(self.fields)

        # Listing has no per-name URLs, so the name goes to the field selector instead.
        if self.name is not None:
            name_selector = f'metadata.name={self.name}'
            selector = name_selector if selector is None else f'{name_selector},{selector}'
        return selector

    def __str__(self) -> str:
        where = f'in {self.namespace!r}' if self.namespace is not None else 'cluster-wide'
        terms = [term for term in [self.label_selector, self.field_selector] if term]
        return f"{where} ({'; '.join(terms)})" if terms else where
