"""
Value layer: reader, writer and comparator.

The reader canonicalises what it finds so the comparator can use plain
equality for every type:
- Binary      -> lowercase hex pairs joined by commas ("3c,00,1f")
- MultiString -> strings joined by a pipe ("A|B|C")
- otherwise   -> the value as read (DWord/QWord as signed ints)

The type a value is stored as is part of its state: a declaration is only
satisfied by a value of the declared type.

Reads never raise. A missing key, missing value or any read error yields
ABSENT, which is never compliant.
"""

import logging
import re
from typing import Any, List, Optional, Tuple, Union

from .exceptions import InvalidValueFormat, ReadFailure, WriteFailure
from .models import ValueType

logger = logging.getLogger(__name__)

MULTI_STRING_SEPARATOR = "|"
BINARY_SEPARATOR = ","

_HEX_BYTE = re.compile(r"^[0-9a-fA-F]{2}$")
_INT_BITS = {ValueType.DWORD: 32, ValueType.QWORD: 64}


class _Absent:
    """Marker for a key or value that does not exist (or could not be read)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "ABSENT"


ABSENT = _Absent()

CanonicalValue = Union[str, int]


# =============================================================================
# Canonical forms
# =============================================================================

def canonicalize(data: Any, value_type: Optional[ValueType]) -> CanonicalValue:
    """Render raw registry data in the comparable canonical form."""
    if value_type == ValueType.BINARY and isinstance(data, (bytes, bytearray)):
        return BINARY_SEPARATOR.join(f"{b:02x}" for b in data)
    if value_type == ValueType.MULTI_STRING and isinstance(data, (list, tuple)):
        return MULTI_STRING_SEPARATOR.join(str(item) for item in data)
    return data


def canonicalize_declared(value_type: ValueType, declared: Any) -> CanonicalValue:
    """
    Canonical form of a declared value, matching what the reader would
    produce after a successful write.

    Raises:
        InvalidValueFormat: declared value cannot represent this type
    """
    if value_type == ValueType.MULTI_STRING:
        return MULTI_STRING_SEPARATOR.join(parse_multi_string(declared))
    if value_type == ValueType.BINARY:
        return canonicalize(parse_binary(declared), ValueType.BINARY)
    if value_type in _INT_BITS:
        return parse_integer(declared, value_type)
    return _as_string(declared, value_type)


def display_current(value: Any) -> str:
    """Human-readable rendering of a read value for status messages."""
    if value is ABSENT:
        return "not set"
    return str(value)


# =============================================================================
# Coercion (declared value -> on-disk representation)
# =============================================================================

def parse_binary(declared: Any) -> bytes:
    """Parse "3c,00,ff" (or a list of byte ints) into bytes."""
    if isinstance(declared, (bytes, bytearray)):
        return bytes(declared)

    if isinstance(declared, (list, tuple)):
        tokens = list(declared)
    elif isinstance(declared, str):
        if not declared.strip():
            return b""
        tokens = [t.strip() for t in declared.split(BINARY_SEPARATOR)]
    else:
        raise InvalidValueFormat(ValueType.BINARY.value, declared,
                                 "expected comma-separated hex byte pairs")

    result = bytearray()
    for token in tokens:
        if isinstance(token, int) and not isinstance(token, bool):
            if not 0 <= token <= 0xFF:
                raise InvalidValueFormat(ValueType.BINARY.value, declared,
                                         f"byte out of range: {token}")
            result.append(token)
        elif isinstance(token, str) and _HEX_BYTE.match(token.strip()):
            result.append(int(token.strip(), 16))
        else:
            raise InvalidValueFormat(ValueType.BINARY.value, declared,
                                     f"not a two-digit hex byte: {token!r}")
    return bytes(result)


def parse_integer(declared: Any, value_type: ValueType) -> int:
    """Parse a DWord/QWord declaration as a signed integer of the right width."""
    bits = _INT_BITS[value_type]

    if isinstance(declared, bool):
        raise InvalidValueFormat(value_type.value, declared, "booleans are not integers")
    if isinstance(declared, int):
        number = declared
    elif isinstance(declared, str):
        text = declared.strip()
        try:
            if text.lower().lstrip("+-").startswith("0x"):
                number = int(text, 16)
            else:
                number = int(text, 10)
        except ValueError:
            raise InvalidValueFormat(value_type.value, declared, "not a number")
    else:
        raise InvalidValueFormat(value_type.value, declared, "not a number")

    low, high = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not low <= number <= high:
        raise InvalidValueFormat(value_type.value, declared,
                                 f"outside signed {bits}-bit range")
    return number


def parse_multi_string(declared: Any) -> List[str]:
    if isinstance(declared, (list, tuple)):
        return [str(item) for item in declared]
    if isinstance(declared, str):
        return declared.split(MULTI_STRING_SEPARATOR)
    raise InvalidValueFormat(ValueType.MULTI_STRING.value, declared,
                             "expected a pipe-delimited string or a list")


def _as_string(declared: Any, value_type: ValueType) -> str:
    if declared is None:
        raise InvalidValueFormat(value_type.value, declared, "no value declared")
    if isinstance(declared, (list, tuple, dict)):
        raise InvalidValueFormat(value_type.value, declared, "expected a scalar")
    return str(declared)


def coerce_value(value_type: ValueType, declared: Any) -> Any:
    """Convert a declared logical value into the data handed to the registry."""
    if value_type == ValueType.BINARY:
        return parse_binary(declared)
    if value_type in _INT_BITS:
        return parse_integer(declared, value_type)
    if value_type == ValueType.MULTI_STRING:
        return parse_multi_string(declared)
    # String / ExpandString: stored verbatim, %VAR% left unexpanded
    return _as_string(declared, value_type)


# =============================================================================
# Reader
# =============================================================================

def read_raw(registry, root: str, name: str) -> Tuple[Any, Optional[ValueType]]:
    """
    Read raw value data together with the type it is stored as.

    Raises:
        ReadFailure: key or value missing, or the read was rejected
    """
    try:
        if not registry.key_exists(root):
            raise ReadFailure(f"Key not found: {root}")
        return registry.query_value(root, name)
    except (OSError, ValueError) as e:
        raise ReadFailure(f"Cannot read {root}\\{name}: {e}") from e


def _log_downgrade(what: str, error: Exception):
    # Missing keys and values are routine; anything else (access denied,
    # bad path) is worth surfacing.
    cause = error.__cause__ if isinstance(error, ReadFailure) else error
    if cause is None or isinstance(cause, FileNotFoundError):
        logger.debug(f"{what} treated as absent: {error}")
    else:
        logger.warning(f"{what} treated as absent: {error}")


def read_stored(registry, root: str, name: str) -> Tuple[CanonicalValue, Optional[ValueType]]:
    """
    Read a value as it is actually stored.

    Returns:
        (canonical value, stored ValueType); (ABSENT, None) if the key or
        value does not exist or cannot be read. The stored type is None for
        types this engine does not manage.
    """
    try:
        data, stored_type = read_raw(registry, root, name)
    except ReadFailure as e:
        _log_downgrade(f"Read of {root}\\{name}", e)
        return ABSENT, None
    return canonicalize(data, stored_type), stored_type


def read_value(registry, root: str, name: str, value_type: ValueType) -> CanonicalValue:
    """
    Read a value and canonicalise it as ``value_type``.

    Returns ABSENT if the key or value does not exist or cannot be read.
    """
    try:
        data, _ = read_raw(registry, root, name)
    except ReadFailure as e:
        _log_downgrade(f"Read of {root}\\{name}", e)
        return ABSENT
    return canonicalize(data, value_type)


def key_present(registry, path: str) -> bool:
    """True if the key exists. Read errors count as absent."""
    try:
        return registry.key_exists(path)
    except (OSError, ValueError) as e:
        _log_downgrade(f"Existence check of {path}", e)
        return False


def value_present(registry, root: str, name: str) -> bool:
    """
    True if ``name`` is among the value names of ``root``.

    An existing key alone is not enough. Names match case-insensitively,
    as the registry does.
    """
    try:
        if not registry.key_exists(root):
            return False
        wanted = name.casefold()
        return any(n.casefold() == wanted for n in registry.value_names(root))
    except (OSError, ValueError) as e:
        _log_downgrade(f"Presence check of {root}\\{name}", e)
        return False


# =============================================================================
# Comparator
# =============================================================================

# Default for is_compliant when the caller did not read the stored type
UNCHECKED = object()


def is_compliant(
    current: CanonicalValue,
    declared: Any,
    value_type: ValueType,
    stored_type: Any = UNCHECKED,
) -> bool:
    """
    Exact comparison of a canonical read value with a declared value.

    When ``stored_type`` is passed it must equal ``value_type``: a value
    stored as String never satisfies a Binary, MultiString or ExpandString
    declaration, whatever its text, and an unmanaged type (None) never
    satisfies anything.
    """
    if current is ABSENT:
        return False
    if stored_type is not UNCHECKED and stored_type != value_type:
        return False
    try:
        expected = canonicalize_declared(value_type, declared)
    except InvalidValueFormat:
        return False
    if isinstance(current, bool) or type(current) is not type(expected):
        return False
    return current == expected


# =============================================================================
# Writer
# =============================================================================

def write_value(registry, root: str, name: str, value_type: ValueType, declared: Any):
    """
    Write a declared value, creating ``root`` (and parents) if needed.

    Raises:
        InvalidValueFormat: declared value cannot be coerced
        WriteFailure: the registry rejected the write
    """
    data = coerce_value(value_type, declared)
    try:
        registry.create_key(root)
        registry.set_value(root, name, value_type, data)
    except OSError as e:
        raise WriteFailure(root, name, e) from e


def delete_value(registry, root: str, name: str):
    try:
        registry.delete_value(root, name)
    except OSError as e:
        raise WriteFailure(root, name, e) from e


def delete_key(registry, path: str):
    try:
        registry.delete_tree(path)
    except OSError as e:
        raise WriteFailure(path, None, e) from e
