from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Kicad2ZenError(Exception):
    """Base class for errors that stop a single project's conversion."""


class InputMissing(Kicad2ZenError):
    """Neither a schematic nor a board model could be obtained."""


class MalformedDocument(Kicad2ZenError):
    """A recognized node lacks a field the builders require."""

    def __init__(self, source: str, path: str, detail: str):
        self.source = source
        self.path = path
        self.detail = detail
        super().__init__(f"{source}: {path}: {detail}")


class WarningKind(str, Enum):
    UNMAPPED_ENTITY = "unmapped-entity"
    DEGRADED_CONNECTIVITY = "degraded-connectivity"
    NO_COMPONENTS = "no-components"
    HIERARCHICAL_SHEET = "hierarchical-sheet"
    SETTINGS_UNAVAILABLE = "settings-unavailable"
    DUPLICATE_CROSS_REFERENCE = "duplicate-cross-reference"
    FLAG_CONFLICT = "flag-conflict"
    UNRESOLVED_NET = "unresolved-net"
    UNCORRELATED = "uncorrelated"


@dataclass(frozen=True)
class Diagnostic:
    kind: WarningKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"
