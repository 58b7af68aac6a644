"""
Shared fixtures: an in-memory registry that implements the adapter
surface of registry.WindowsRegistry.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from registry_compliance.models import ValueType
from registry_compliance.registry import normalize_path


class FakeRegistry:
    """
    In-memory registry keyed by case-insensitive paths.

    Failures can be injected per operation with ``fail()``, and
    ``on_set`` runs after every successful set_value (to simulate another
    agent overwriting a value between write and verify).
    """

    HIVES = ("HKEY_LOCAL_MACHINE", "HKEY_USERS", "HKEY_CURRENT_USER", "HKEY_CLASSES_ROOT")

    def __init__(self):
        # lower path -> (display path, {lower name: (name, data, type)})
        self.keys: Dict[str, Tuple[str, Dict[str, Tuple[str, Any, ValueType]]]] = {}
        self._failures: List[Tuple[str, Optional[str], Exception]] = []
        self.on_set: Optional[Callable[["FakeRegistry", str, str], None]] = None
        self.calls: List[Tuple[str, str]] = []
        for hive in self.HIVES:
            self.keys[hive.lower()] = (hive, {})

    # -- test helpers ---------------------------------------------------------

    def fail(self, operation: str, error: Exception, path_contains: Optional[str] = None):
        self._failures.append((operation, path_contains, error))

    def _check(self, operation: str, path: str):
        self.calls.append((operation, path))
        for op, fragment, error in self._failures:
            if op == operation and (fragment is None or fragment.lower() in path.lower()):
                raise error

    def put(self, path: str, name: str, data: Any, value_type: ValueType):
        """Seed a value without going through failure injection."""
        self._ensure(path)
        self.keys[normalize_path(path).lower()][1][name.lower()] = (name, data, value_type)

    def get(self, path: str, name: str) -> Any:
        entry = self.keys.get(normalize_path(path).lower())
        if entry is None or name.lower() not in entry[1]:
            return None
        return entry[1][name.lower()][1]

    def _ensure(self, path: str):
        normalized = normalize_path(path)
        parts = normalized.split("\\")
        for i in range(1, len(parts) + 1):
            partial = "\\".join(parts[:i])
            self.keys.setdefault(partial.lower(), (partial, {}))

    def _entry(self, path: str):
        entry = self.keys.get(normalize_path(path).lower())
        if entry is None:
            raise FileNotFoundError(2, "The system cannot find the file specified", path)
        return entry

    # -- adapter surface ------------------------------------------------------

    def key_exists(self, path: str) -> bool:
        self._check("key_exists", path)
        return normalize_path(path).lower() in self.keys

    def subkey_names(self, path: str) -> List[str]:
        self._check("subkey_names", path)
        display, _ = self._entry(path)
        prefix = display.lower() + "\\"
        return [d.split("\\")[-1] for k, (d, _) in self.keys.items()
                if k.startswith(prefix) and "\\" not in k[len(prefix):]]

    def value_names(self, path: str) -> List[str]:
        self._check("value_names", path)
        return [name for name, _, _ in self._entry(path)[1].values()]

    def query_value(self, path: str, name: str):
        self._check("query_value", path)
        values = self._entry(path)[1]
        if name.lower() not in values:
            raise FileNotFoundError(2, "The system cannot find the file specified", name)
        _, data, value_type = values[name.lower()]
        return data, value_type

    def create_key(self, path: str):
        self._check("create_key", path)
        self._ensure(path)

    def set_value(self, path: str, name: str, value_type: ValueType, data: Any):
        self._check("set_value", f"{path}\\{name}")
        self._entry(path)[1][name.lower()] = (name, data, value_type)
        if self.on_set is not None:
            self.on_set(self, path, name)

    def delete_value(self, path: str, name: str):
        self._check("delete_value", f"{path}\\{name}")
        values = self._entry(path)[1]
        if name.lower() not in values:
            raise FileNotFoundError(2, "The system cannot find the file specified", name)
        del values[name.lower()]

    def delete_tree(self, path: str):
        self._check("delete_tree", path)
        display, _ = self._entry(path)
        prefix = display.lower()
        for key in [k for k in self.keys if k == prefix or k.startswith(prefix + "\\")]:
            del self.keys[key]


@pytest.fixture
def registry():
    """Empty in-memory registry."""
    return FakeRegistry()
