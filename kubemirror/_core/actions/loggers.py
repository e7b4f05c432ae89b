"""
Logging setup and the per-collection loggers of the reflectors.

Every reflector logs through its own logger adapter, which carries
the reference to the mirrored collection (the resource, the namespace,
the selectors). The formatters then either prefix the messages with it
(for humans), or put it into a separate field (for the JSON log parsers).
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, Mapping, Optional, TextIO

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import references

logger = logging.getLogger('kubemirror.reflectors')

# The field of the collection references in the JSON logs.
DEFAULT_JSON_REFKEY = 'collection'

# The upper levels of the severities, as understood by most log collectors.
SEVERITIES = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-24.24s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # not a format string, only a marker.


def make_prefix(ref: Mapping[str, Any]) -> str:
    resource = ref.get('resource', '')
    namespace = ref.get('namespace')
    return f"[{resource} in {namespace}]" if namespace else f"[{resource}]"


def get_severity(levelno: int) -> str:
    return next((name for level, name in SEVERITIES if levelno <= level), 'fatal')


class CollectionFormatter(logging.Formatter):
    """
    The base of our formatters: the reflectors' messages can be prefixed.

    The records are copied for prefixing, since the same record goes
    to all handlers, and they can have different formatters.
    """

    def __init__(self, *args: Any, prefixed: bool = False, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.prefixed = prefixed

    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, 'mirror_ref', None)
        if self.prefixed and ref is not None:
            record = copy.copy(record)
            record.msg = f"{make_prefix(ref)} {record.msg}"
        return super().format(record)


class CollectionTextFormatter(CollectionFormatter):
    pass


class CollectionJsonFormatter(CollectionFormatter, JsonFormatter):
    """
    JSON lines with the collection reference and the severity as the fields.

    The reference goes under its own key instead of the adapter's attribute.
    """

    def __init__(self, *args: Any, refkey: Optional[str] = None, **kwargs: Any) -> None:
        kwargs['reserved_attrs'] = set(kwargs.get('reserved_attrs', RESERVED_ATTRS)) | {'mirror_ref'}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, object],
            record: logging.LogRecord,
            message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        if hasattr(record, 'mirror_ref'):
            log_record[self.refkey] = getattr(record, 'mirror_ref')
        log_record.setdefault('severity', get_severity(record.levelno))


class ResourceLogger(typedefs.LoggerAdapter):
    """
    A logger of one reflector, with its collection attached to all records.

    The reference consists of plain strings only, to be dumped to JSON as is.
    """

    def __init__(
            self,
            *,
            resource: references.Resource,
            selector: Optional[references.Selector] = None,
    ) -> None:
        selector = selector if selector is not None else references.Selector()
        ref = dict(
            resource=repr(resource),
            namespace=selector.namespace,
            name=selector.name,
            labels=selector.label_selector,
            fields=selector.field_selector,
        )
        super().__init__(logger, dict(mirror_ref=ref))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # The stdlib adapters replace the call's extras; we merge them instead.
        kwargs["extra"] = dict(self.extra or {}, **kwargs.get('extra', {}))
        return msg, kwargs


# The CLI tests configure the logging many times, each time with a new stream
# of Click's runner: the handlers of the previous runs must be recognisable.
if TYPE_CHECKING:
    class OwnStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class OwnStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = None,
        log_refkey: Optional[str] = None,
) -> None:
    """
    Log to stderr in the requested format, replacing our previous handlers.

    The asyncio's own messages are only shown in the debug mode.
    """
    handler = OwnStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, OwnStreamHandler)] + [handler]
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: Optional[bool] = None,
        log_refkey: Optional[str] = None,
) -> CollectionFormatter:
    """ Make a formatter; the prefixes are in the text logs by default, not in JSON. """
    prefixed = log_prefix if log_prefix is not None else log_format is not LogFormat.JSON
    if log_format is LogFormat.JSON:
        return CollectionJsonFormatter(prefixed=prefixed, refkey=log_refkey)
    elif isinstance(log_format, LogFormat):
        return CollectionTextFormatter(log_format.value, prefixed=prefixed)
    elif isinstance(log_format, str):
        return CollectionTextFormatter(log_format, prefixed=prefixed)
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")
