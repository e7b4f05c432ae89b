"""
The main kubemirror module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the package's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from kubemirror._cogs.configs.configuration import (
    ClientSettings,
    NetworkingSettings,
    WatchingSettings,
    ListingSettings,
    ReflectingSettings,
)
from kubemirror._cogs.helpers.typedefs import (
    Logger,
)
from kubemirror._cogs.helpers.versions import (
    version as __version__,
)
from kubemirror._cogs.structs.bodies import (
    Body,
    Meta,
    EntityList,
    WatchEvent,
)
from kubemirror._cogs.structs.credentials import (
    ConnectionInfo,
    LoginError,
)
from kubemirror._cogs.structs.references import (
    Resource,
    Selector,
    Namespace,
    NamespaceName,
)
from kubemirror._cogs.clients.auth import (
    APIContext,
)
from kubemirror._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APIAlreadyExistsError,
    APIGoneError,
    WatchingError,
    DecodeError,
    WatchConnectionError,
    SnapshotExpiredError,
    WatchEventError,
    ListingError,
)
from kubemirror._cogs.clients.decoding import (
    EventDecoder,
)
from kubemirror._cogs.clients.watching import (
    WatchConnection,
    WatchStream,
    LogStream,
    watch_objs,
    watch_pod_log,
)
from kubemirror._cogs.clients.fetching import (
    read_obj,
    list_objs,
    list_all_objs,
    read_pod_log,
)
from kubemirror._cogs.clients.creating import (
    create_obj,
)
from kubemirror._cogs.clients.updating import (
    update_obj,
)
from kubemirror._cogs.clients.patching import (
    PatchStrategy,
    patch_obj,
)
from kubemirror._cogs.clients.deleting import (
    delete_obj,
)
from kubemirror._cogs.clients.scanning import (
    read_version,
    check_version,
    scan_resources,
)
from kubemirror._core.actions.loggers import (
    LogFormat,
    ResourceLogger,
    configure as configure_logging,
)
from kubemirror._core.intents.registries import (
    ResourceQuery,
    ResourceRegistry,
    ResourceNotFoundError,
    AmbiguousResourceError,
    Verbs,
)
from kubemirror._core.reactor.caching import (
    Store,
)
from kubemirror._core.reactor.reflecting import (
    Reflector,
    ReflectorPhase,
)
from kubemirror._core.reactor.running import (
    start_reflector,
    stop_reflector,
    current_snapshot,
    on_event,
    on_error,
)

__all__ = [
    'ClientSettings', 'NetworkingSettings', 'WatchingSettings',
    'ListingSettings', 'ReflectingSettings',
    'Logger', '__version__',
    'Body', 'Meta', 'EntityList', 'WatchEvent',
    'ConnectionInfo', 'LoginError',
    'Resource', 'Selector', 'Namespace', 'NamespaceName',
    'APIContext',
    'APIError', 'APIClientError', 'APIServerError',
    'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError',
    'APIConflictError', 'APIAlreadyExistsError', 'APIGoneError',
    'WatchingError', 'DecodeError', 'WatchConnectionError',
    'SnapshotExpiredError', 'WatchEventError', 'ListingError',
    'EventDecoder',
    'WatchConnection', 'WatchStream', 'LogStream',
    'watch_objs', 'watch_pod_log',
    'read_obj', 'list_objs', 'list_all_objs', 'read_pod_log',
    'create_obj', 'update_obj', 'patch_obj', 'PatchStrategy', 'delete_obj',
    'read_version', 'check_version', 'scan_resources',
    'LogFormat', 'ResourceLogger', 'configure_logging',
    'ResourceQuery', 'ResourceRegistry', 'ResourceNotFoundError',
    'AmbiguousResourceError', 'Verbs',
    'Store', 'Reflector', 'ReflectorPhase',
    'start_reflector', 'stop_reflector', 'current_snapshot', 'on_event', 'on_error',
]
