"""Session access for the authorization logic.

The CAS client never holds a framework request object. It reads and writes
named slots through a ``SessionStore``, which the host integration backs
with whatever per-client storage it has (e.g. Flask's signed-cookie session).
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SessionStore(Protocol):
    """Per-client key/value storage that outlives a single request."""

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        ...

    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""
        ...

    def destroy(self) -> None:
        """Discard the whole session."""
        ...


class MemorySession:
    """Dict-backed SessionStore used by the CLI and in tests."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.destroyed = False

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def destroy(self) -> None:
        self.data.clear()
        self.destroyed = True

    def __contains__(self, key: object) -> bool:
        return key in self.data
