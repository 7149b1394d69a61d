"""File-backed surface library resolving identifiers to literal lines."""

from __future__ import annotations

from collections.abc import Mapping as ABCMapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Tuple

from cageboard_core.errors import ConfigurationError

__all__ = ["Surface", "SurfaceLibrary"]


@dataclass(frozen=True)
class Surface:
    function: str
    text: str
    binds: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def matches(self, identifier: str, context: Mapping[str, str]) -> bool:
        if self.function != identifier:
            return False
        return all(context.get(key) == value for key, value in self.binds.items())


class SurfaceLibrary:
    """Ordered surface entries plus per-identifier default lines.

    Lookups scan :attr:`entries` in order and return the first entry whose
    ``binds`` all equal the context; undeclared binds act as wildcards.
    """

    def __init__(self, entries: Iterable[Surface] = (), defaults: Mapping[str, str] | None = None) -> None:
        self.entries: Tuple[Surface, ...] = tuple(entries)
        self.defaults: Mapping[str, str] = MappingProxyType(dict(defaults or {}))

    def __len__(self) -> int:
        return len(self.entries)

    def __call__(self, identifier: str, context: Mapping[str, str]) -> str:
        return self.resolve(identifier, context)

    def resolve(self, identifier: str, context: Mapping[str, str]) -> str:
        for entry in self.entries:
            if entry.matches(identifier, context):
                return entry.text
        return self.defaults.get(identifier, "")

    def identifiers(self) -> Tuple[str, ...]:
        known = dict.fromkeys(entry.function for entry in self.entries)
        known.update(dict.fromkeys(self.defaults))
        return tuple(known)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SurfaceLibrary":
        if not isinstance(payload, ABCMapping):
            raise ConfigurationError("Surface document must be a mapping")
        entries = []
        for raw in payload.get("entries") or ():
            if not isinstance(raw, ABCMapping) or "function" not in raw or "text" not in raw:
                raise ConfigurationError(
                    "Surface entries need 'function' and 'text'", section="entries"
                )
            binds = raw.get("binds") or {}
            if not isinstance(binds, ABCMapping):
                raise ConfigurationError("Surface 'binds' must be a mapping", section="entries")
            entries.append(
                Surface(
                    function=str(raw["function"]),
                    text=str(raw["text"]),
                    binds=MappingProxyType({str(key): str(value) for key, value in binds.items()}),
                )
            )
        defaults = payload.get("defaults") or {}
        if not isinstance(defaults, ABCMapping):
            raise ConfigurationError("'defaults' must be a mapping", section="defaults")
        return cls(entries, {str(key): str(value) for key, value in defaults.items()})
