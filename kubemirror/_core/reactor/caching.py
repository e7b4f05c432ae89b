"""
The local mirror of a remote collection: the objects and the resource version.

The store is written by one reflector (in its asyncio task) and can be read
by anyone, including other threads (e.g. a web server's sync handlers).
The store is guarded by a thread lock; the critical sections never await.

The readers always get immutable snapshots (tuples of read-only bodies),
so they can iterate over them at leisure while the store changes.
"""
import threading
from typing import Dict, Iterator, Optional, Tuple

from kubemirror._cogs.structs import bodies

# Namespaced objects are keyed by their namespace & name; cluster-scoped ones by their uid.
StoreKey = Tuple[Optional[str], str]


def make_key(body: bodies.Body) -> StoreKey:
    namespace = body.meta.namespace
    name = body.meta.name
    uid = body.meta.uid
    if namespace:
        if not name:
            raise ValueError(f"The object has no name: {body!r}")
        return namespace, name
    else:
        ident = uid or name
        if not ident:
            raise ValueError(f"The object has neither a uid nor a name: {body!r}")
        return None, ident


def is_newer(new: str, old: str) -> bool:
    """
    Check if one resource version is newer than another.

    The resource versions are opaque strings. Kubernetes happens to use
    the etcd's decimal revisions, so they are compared as numbers if possible.
    Otherwise, the most recently received version is assumed to be newer.
    """
    if new.isdigit() and old.isdigit():
        return int(new) > int(old)
    return new != old


class Store:
    """
    A thread-safe cache of one collection's objects plus its resource version.

    The resource version (the cursor) is the version from which the watching
    can be continued. It only moves forward while the events are applied,
    and is replaced wholesale with the objects when the collection is relisted.
    """

    def __init__(self) -> None:
        super().__init__()
        self._lock = threading.Lock()
        self._entries: Dict[StoreKey, bodies.Body] = {}
        self._resource_version: Optional[str] = None

    def __repr__(self) -> str:
        with self._lock:
            return f'<{self.__class__.__name__}: {len(self._entries)} objects @ {self._resource_version!r}>'

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __iter__(self) -> Iterator[bodies.Body]:
        return iter(self.list())

    @property
    def resource_version(self) -> Optional[str]:
        with self._lock:
            return self._resource_version

    def list(self) -> Tuple[bodies.Body, ...]:
        """ A consistent snapshot of all the objects at this moment. """
        with self._lock:
            return tuple(self._entries.values())

    def get(self, namespace: Optional[str], name: str) -> Optional[bodies.Body]:
        """
        Get an object by its namespace & name (or by its name if cluster-scoped).
        """
        with self._lock:
            if namespace:
                return self._entries.get((namespace, name))
            for (ns, _), body in self._entries.items():
                if ns is None and body.meta.name == name:
                    return body
            return None

    def replace_all(self, entities: bodies.EntityList) -> None:
        """
        Replace all the objects and the resource version at once (no merging).
        """
        entries = {make_key(body): body for body in entities.items}
        with self._lock:
            self._entries = entries
            self._resource_version = entities.resource_version

    def apply(self, event: bodies.WatchEvent) -> bool:
        """
        Apply one watch-event to the objects and the resource version.

        Returns ``False`` if the event cannot be applied and the collection
        must be relisted (i.e. for the ``ERROR`` events); ``True`` otherwise.
        """
        if event.type == 'ERROR':
            return False

        with self._lock:
            if event.type in ('ADDED', 'MODIFIED'):
                self._entries[make_key(event.object)] = event.object
            elif event.type == 'DELETED':
                self._delete(event.object)

            # All events advance the cursor, bookmarks included, but never rewind it.
            if event.resource_version is not None:
                if self._resource_version is None or is_newer(event.resource_version, self._resource_version):
                    self._resource_version = event.resource_version
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            self._resource_version = None

    def _delete(self, body: bodies.Body) -> None:
        key = make_key(body)
        if self._entries.pop(key, None) is None and key[0] is None and body.meta.name:
            # Cluster-scoped objects could be stored by name if they came without a uid.
            self._entries.pop((None, body.meta.name), None)
