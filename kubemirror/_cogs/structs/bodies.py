"""
The objects of the API, as received and as exposed to the consumers.

The raw objects are the JSON-decoded dicts: they are only passed around
inside of the clients. The bodies are the read-only views of them, as
stored in the stores, delivered in the watch-events, and returned from
the one-shot calls. Nothing modifies the bodies after they are made.

The raw types are declared only for the fields that the clients use;
the objects can have any other fields at runtime.
"""
from typing import Any, Iterator, Mapping, NamedTuple, Optional, Sequence

from typing_extensions import Literal, TypedDict

from kubemirror._cogs.structs import dicts, references

RawInputType = Literal['ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR']
RAW_INPUT_TYPES: Sequence[RawInputType] = ('ADDED', 'MODIFIED', 'DELETED', 'BOOKMARK', 'ERROR')


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Mapping[str, str]
    annotations: Mapping[str, str]
    resourceVersion: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta


class Meta(Mapping[str, Any]):
    """ A read-only view of the body's metadata, with shortcuts for the well-known fields. """

    def __init__(self, __src: "Body") -> None:
        super().__init__()
        self._src = __src

    def __repr__(self) -> str:
        return repr(self._data)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def _data(self) -> Mapping[str, Any]:
        data = self._src.get('metadata')
        return data if isinstance(data, Mapping) else {}

    @property
    def labels(self) -> Mapping[str, str]:
        return self._data.get('labels') or {}

    @property
    def annotations(self) -> Mapping[str, str]:
        return self._data.get('annotations') or {}

    @property
    def uid(self) -> Optional[str]:
        return self._data.get('uid')

    @property
    def name(self) -> Optional[str]:
        return self._data.get('name')

    @property
    def namespace(self) -> references.Namespace:
        return self._data.get('namespace')

    @property
    def resource_version(self) -> Optional[str]:
        return self._data.get('resourceVersion')


class Body(Mapping[str, Any]):
    """
    A read-only JSON object as received from the API.

    The top-level fields are accessed as in a dict (``body['spec']``), and
    the nested ones by their paths (``body.resolve('spec.template.metadata')``).
    The well-known metadata is exposed via ``body.meta`` (``body.meta.name``).
    """

    def __init__(self, __src: Mapping[str, Any]) -> None:
        super().__init__()
        self._src = __src
        self._meta = Meta(self)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self._src!r})'

    def __getitem__(self, key: str) -> Any:
        return self._src[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._src)

    def __len__(self) -> int:
        return len(self._src)

    @property
    def metadata(self) -> Meta:
        return self._meta

    @property
    def meta(self) -> Meta:
        return self._meta

    def resolve(self, field: dicts.FieldSpec, default: Any = None) -> Any:
        """ Get a nested field by its path, or the default if any part is absent. """
        return dicts.resolve(self._src, field, default)


class EntityList(NamedTuple):
    """ A result of one full or paginated listing. """
    kind: Optional[str]
    resource_version: Optional[str]
    items: Sequence[Body]
    continue_token: Optional[str] = None


class WatchEvent(NamedTuple):
    """
    A single event of the watch-stream, as decoded from one line.

    For the ``ERROR`` events, the object is a "Status" of the failure,
    not a resource. For the ``BOOKMARK`` events, only the resource version
    in the object's metadata is meaningful; all other fields are not.
    """
    type: RawInputType
    object: Body
    resource_version: Optional[str]

    @property
    def code(self) -> Optional[int]:
        """ The HTTP-like status code of an ``ERROR`` event (``None`` for others). """
        return self.object.get('code') if self.type == 'ERROR' else None
