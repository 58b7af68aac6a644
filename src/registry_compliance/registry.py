"""
Native Windows registry adapter.

Wraps stdlib ``winreg`` behind a path-string API used by the value layer:
- key_exists / subkey_names / value_names
- query_value (data + ValueType)
- create_key / set_value
- delete_value / delete_tree

Paths look like ``HKLM\\SOFTWARE\\Vendor``; hive aliases and forward
slashes are normalised. Every method raises ``OSError`` (usually
``FileNotFoundError``) on failure; downgrading reads to "absent" is the
value layer's job, not this one.
"""

import logging
from typing import Any, List, Optional, Tuple

from .models import ValueType

try:
    import winreg
except ImportError:  # not on Windows
    winreg = None

logger = logging.getLogger(__name__)


HIVE_ALIASES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKU": "HKEY_USERS",
    "HKEY_USERS": "HKEY_USERS",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKEY_CLASSES_ROOT": "HKEY_CLASSES_ROOT",
}

MACHINE_HIVE = "HKEY_LOCAL_MACHINE"
USERS_HIVE = "HKEY_USERS"

_DWORD_BITS = 32
_QWORD_BITS = 64


# =============================================================================
# Path helpers
# =============================================================================

def normalize_path(path: str) -> str:
    """Normalise separators and expand the hive alias to its full name."""
    parts = [p for p in path.replace("/", "\\").split("\\") if p]
    if not parts:
        raise ValueError("empty registry path")
    hive = HIVE_ALIASES.get(parts[0].upper())
    if hive is None:
        raise ValueError(f"unknown registry hive in path: {path}")
    return "\\".join([hive] + parts[1:])


def split_path(path: str) -> Tuple[str, str]:
    """Split into (full hive name, subkey path)."""
    normalized = normalize_path(path)
    hive, _, subkey = normalized.partition("\\")
    return hive, subkey


def join_path(*parts: str) -> str:
    """Join path fragments with single backslashes."""
    pieces = []
    for part in parts:
        pieces.extend(p for p in part.replace("/", "\\").split("\\") if p)
    return "\\".join(pieces)


def to_signed(value: int, bits: int) -> int:
    """Reinterpret an unsigned registry integer as two's-complement signed."""
    if value >= 1 << (bits - 1):
        return value - (1 << bits)
    return value


def to_unsigned(value: int, bits: int) -> int:
    """Reinterpret a signed integer as the unsigned value the registry stores."""
    return value & ((1 << bits) - 1)


# =============================================================================
# winreg adapter
# =============================================================================

class WindowsRegistry:
    """
    Registry access through ``winreg``.

    Usage:
        registry = WindowsRegistry()
        if registry.key_exists("HKLM\\SOFTWARE\\Contoso"):
            data, value_type = registry.query_value("HKLM\\SOFTWARE\\Contoso", "Level")
    """

    def __init__(self, use_64bit_view: bool = True):
        """
        Initialize the adapter.

        Args:
            use_64bit_view: Address the 64-bit registry view even from a
                32-bit interpreter (what the management agent sees)
        """
        if winreg is None:
            raise RuntimeError("Windows registry APIs are unavailable on this platform")

        self._view = winreg.KEY_WOW64_64KEY if use_64bit_view else 0
        self._type_map = {
            winreg.REG_SZ: ValueType.STRING,
            winreg.REG_EXPAND_SZ: ValueType.EXPAND_STRING,
            winreg.REG_DWORD: ValueType.DWORD,
            winreg.REG_QWORD: ValueType.QWORD,
            winreg.REG_BINARY: ValueType.BINARY,
            winreg.REG_MULTI_SZ: ValueType.MULTI_STRING,
        }
        self._reg_types = {v: k for k, v in self._type_map.items()}

    def _open(self, path: str, access: Optional[int] = None):
        hive, subkey = split_path(path)
        mask = (winreg.KEY_READ if access is None else access) | self._view
        return winreg.OpenKey(getattr(winreg, hive), subkey, 0, mask)

    def key_exists(self, path: str) -> bool:
        try:
            with self._open(path):
                return True
        except FileNotFoundError:
            return False

    def subkey_names(self, path: str) -> List[str]:
        with self._open(path) as key:
            count, _, _ = winreg.QueryInfoKey(key)
            return [winreg.EnumKey(key, i) for i in range(count)]

    def value_names(self, path: str) -> List[str]:
        with self._open(path) as key:
            _, count, _ = winreg.QueryInfoKey(key)
            return [winreg.EnumValue(key, i)[0] for i in range(count)]

    def query_value(self, path: str, name: str) -> Tuple[Any, Optional[ValueType]]:
        """
        Read one value.

        Returns:
            (data, ValueType) where ValueType is None for types this engine
            does not manage (REG_NONE, REG_LINK, ...)

        Raises:
            FileNotFoundError: key or value missing
        """
        with self._open(path) as key:
            data, reg_type = winreg.QueryValueEx(key, name)

        value_type = self._type_map.get(reg_type)
        if value_type == ValueType.DWORD:
            data = to_signed(data, _DWORD_BITS)
        elif value_type == ValueType.QWORD:
            data = to_signed(data, _QWORD_BITS)
        elif value_type == ValueType.BINARY and data is None:
            data = b""
        elif value_type == ValueType.MULTI_STRING and data is None:
            data = []
        return data, value_type

    def create_key(self, path: str):
        """Create the key and any missing parents. No-op if present."""
        hive, subkey = split_path(path)
        handle = winreg.CreateKeyEx(getattr(winreg, hive), subkey, 0,
                                    winreg.KEY_WRITE | self._view)
        handle.Close()

    def set_value(self, path: str, name: str, value_type: ValueType, data: Any):
        if value_type == ValueType.DWORD:
            data = to_unsigned(data, _DWORD_BITS)
        elif value_type == ValueType.QWORD:
            data = to_unsigned(data, _QWORD_BITS)

        with self._open(path, winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, name, 0, self._reg_types[value_type], data)
        logger.debug(f"Set {path}\\{name} ({value_type.value})")

    def delete_value(self, path: str, name: str):
        with self._open(path, winreg.KEY_SET_VALUE) as key:
            winreg.DeleteValue(key, name)
        logger.debug(f"Deleted value {path}\\{name}")

    def delete_tree(self, path: str):
        """Delete a key and all of its descendants, depth-first."""
        for child in self.subkey_names(path):
            self.delete_tree(join_path(path, child))

        hive, subkey = split_path(path)
        winreg.DeleteKeyEx(getattr(winreg, hive), subkey, self._view, 0)
        logger.debug(f"Deleted key {path}")
