from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from kicad2zen.errors import Diagnostic


# --- Schematic side ---


@dataclass(frozen=True)
class LibraryPin:
    number: str
    name: str
    electrical_type: str = "passive"


@dataclass(frozen=True)
class LibrarySymbol:
    id: str
    name: str
    pins: tuple[LibraryPin, ...] = ()
    is_power: bool = False

    def pin(self, number: str) -> LibraryPin | None:
        for pin in self.pins:
            if pin.number == number:
                return pin
        return None


@dataclass(frozen=True)
class PinHint:
    """Role of an instance pin as declared by its library symbol."""
    name: str
    electrical_type: str

    @property
    def is_power(self) -> bool:
        return self.electrical_type in ("power_in", "power_out")


@dataclass(frozen=True)
class SchematicSymbol:
    uuid: str
    lib_id: str
    reference: str
    value: str
    footprint: str | None = None
    dnp: bool = False
    exclude_from_bom: bool = False
    exclude_from_board: bool = False
    pin_uses: dict[str, PinHint] = field(default_factory=dict)
    properties: tuple[tuple[str, str], ...] = ()
    is_power: bool = False
    unit: int = 1


@dataclass(frozen=True)
class Schematic:
    source: str
    lib_symbols: tuple[LibrarySymbol, ...]
    symbols: tuple[SchematicSymbol, ...]
    warnings: tuple[Diagnostic, ...] = ()


# --- Board side ---


@dataclass(frozen=True)
class Pad:
    number: str
    net_id: int | None = None


@dataclass(frozen=True)
class Footprint:
    name: str
    uuid: str | None = None
    reference: str | None = None
    value: str | None = None
    path: str | None = None
    at: tuple[float, ...] = ()
    attributes: frozenset[str] = frozenset()
    pads: tuple[Pad, ...] = ()
    properties: tuple[tuple[str, str], ...] = ()

    @property
    def cross_reference(self) -> str | None:
        """Schematic uuid this placement came from (last segment of its path)."""
        if not self.path:
            return None
        segment = self.path.rstrip("/").rsplit("/", 1)[-1]
        return segment or None


@dataclass(frozen=True)
class NetDeclaration:
    id: int
    name: str


@dataclass(frozen=True)
class LayerDeclaration:
    ordinal: int
    name: str
    kind: str
    user_name: str | None = None


@dataclass(frozen=True)
class Board:
    source: str
    footprints: tuple[Footprint, ...]
    nets: tuple[NetDeclaration, ...]
    layers: tuple[LayerDeclaration, ...] = ()
    warnings: tuple[Diagnostic, ...] = ()

    @property
    def copper_layer_count(self) -> int:
        return sum(1 for layer in self.layers if layer.name.endswith(".Cu"))


# --- Project settings ---


@dataclass(frozen=True)
class NetClass:
    name: str
    track_width: float | None = None
    clearance: float | None = None
    via_diameter: float | None = None
    via_drill: float | None = None
    diff_pair_width: float | None = None
    diff_pair_gap: float | None = None


@dataclass(frozen=True)
class NetClassPattern:
    net_class: str
    pattern: str


@dataclass(frozen=True)
class Settings:
    net_classes: tuple[NetClass, ...] = ()
    patterns: tuple[NetClassPattern, ...] = ()
    assignments: dict[str, str] = field(default_factory=dict)
    rules: dict[str, float] = field(default_factory=dict)
    warnings: tuple[Diagnostic, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.net_classes or self.patterns or self.assignments or self.rules)


# --- Reconciled project ---


class Origin(str, Enum):
    BOTH = "both"
    SCHEMATIC = "schematic"
    BOARD = "board"


@dataclass(frozen=True)
class ProjectNet:
    name: str  # sanitized identifier, unique in the project
    label: str  # original net text
    net_class: str | None = None


@dataclass(frozen=True)
class ReconciledComponent:
    reference: str
    footprint: str
    value: str
    origin: Origin
    unique_id: str | None = None
    lib_id: str | None = None
    properties: tuple[tuple[str, str], ...] = ()
    dnp: bool = False
    exclude_from_bom: bool = False
    pins: tuple[str, ...] = ()
    net_by_pin: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Project:
    name: str
    components: tuple[ReconciledComponent, ...]
    nets: tuple[ProjectNet, ...]
    layers: tuple[LayerDeclaration, ...] = ()
    settings: Settings = field(default_factory=Settings)
    warnings: tuple[Diagnostic, ...] = ()
    has_board: bool = False
    has_schematic: bool = False

    @property
    def copper_layer_count(self) -> int:
        return sum(1 for layer in self.layers if layer.name.endswith(".Cu"))


# --- Inference results ---


class NetKind(str, Enum):
    POWER = "power"
    GROUND = "ground"
    DIFFERENTIAL = "differential"
    GENERIC = "generic"


@dataclass(frozen=True)
class NetRecord:
    name: str
    label: str
    kind: NetKind = NetKind.GENERIC
    polarity: str | None = None  # "P" or "N" for differential members
    partner: str | None = None
    net_class: str | None = None


class ValueKind(str, Enum):
    RESISTANCE = "resistance"
    CAPACITANCE = "capacitance"
    INDUCTANCE = "inductance"


@dataclass(frozen=True)
class GenericModule:
    name: str
    module_path: str
    pin_map: tuple[tuple[str, str], ...]
    flags: tuple[tuple[str, str], ...] = ()
    value_kind: ValueKind | None = None


@dataclass(frozen=True)
class MatchedGeneric:
    module: GenericModule

    @property
    def module_path(self) -> str:
        return self.module.module_path

    @property
    def pin_renaming(self) -> dict[str, str]:
        return dict(self.module.pin_map)


@dataclass(frozen=True)
class RawFallback:
    library_id: str | None
    footprint: str


MappingResult = MatchedGeneric | RawFallback


@dataclass(frozen=True)
class Inference:
    """Per-component results, positionally aligned with Project.components."""
    mappings: tuple[MappingResult, ...]
    packages: tuple[str | None, ...]
    values: tuple[str, ...]
    nets: tuple[NetRecord, ...]
    warnings: tuple[Diagnostic, ...] = ()

    def net(self, name: str) -> NetRecord | None:
        for record in self.nets:
            if record.name == name:
                return record
        return None
