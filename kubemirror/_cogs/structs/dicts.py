"""
Navigation in the raw API objects, and the selectors for the queries.
"""
import collections.abc
from typing import Any, List, Mapping, Optional, Tuple, Union

FieldPath = Tuple[str, ...]
FieldSpec = Union[None, str, FieldPath, List[str]]

_MISSING = object()


def parse_field(field: FieldSpec) -> FieldPath:
    """
    Convert a field to a path: ``"spec.replicas"`` or ``["spec", "replicas"]``.

    ``None`` is the root of an object: an empty path.
    """
    if field is None:
        return ()
    if isinstance(field, str):
        return tuple(field.split('.'))
    if isinstance(field, (list, tuple)):
        return tuple(field)
    raise ValueError(f"Field must be either a str, or a list/tuple. Got {field!r}")


def resolve(d: Optional[Mapping[Any, Any]], field: FieldSpec, default: Any = _MISSING) -> Any:
    """
    Get a nested field of an object by its path.

    With the default, it is returned when the path does not exist, including
    the paths through the non-mappings. Without the default, the absent keys
    raise ``KeyError`` and the non-mappings on the path raise ``TypeError``.
    The lists are not traversed.
    """
    value: Any = d
    for key in parse_field(field):
        if not isinstance(value, collections.abc.Mapping):
            if default is not _MISSING:
                return default
            raise TypeError(f"The structure is not a dict with field {key!r}: {value!r}")
        if key not in value:
            if default is not _MISSING:
                return default
            raise KeyError(key)
        value = value[key]
    return value


def build_selector(selector: Union[None, str, Mapping[str, Optional[str]]]) -> Optional[str]:
    """
    Render a label or field selector for the query parameters.

    The strings are used as is (``"app=x,tier!=db"``). The mappings become
    the equality requirements, or the existence ones for ``None`` values.
    The empty selectors are ``None``: they are not added to the query at all.
    """
    if selector is None or isinstance(selector, str):
        return selector or None
    if not isinstance(selector, collections.abc.Mapping):
        raise TypeError(f"Selectors must be either a str or a mapping. Got {selector!r}")
    return ','.join(key if val is None else f'{key}={val}' for key, val in selector.items()) or None
