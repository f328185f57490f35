from __future__ import annotations

import fnmatch
import logging
import re
from collections import Counter

from kicad2zen.errors import Diagnostic, InputMissing, WarningKind
from kicad2zen.models import (
    Board,
    Footprint,
    Origin,
    Project,
    ProjectNet,
    ReconciledComponent,
    Schematic,
    SchematicSymbol,
    Settings,
)

logger = logging.getLogger(__name__)

STARLARK_KEYWORDS = frozenset({
    "and", "break", "continue", "def", "elif", "else", "for", "if", "in",
    "lambda", "load", "not", "or", "pass", "return", "while",
    "as", "assert", "async", "await", "class", "del", "except", "finally",
    "from", "global", "import", "is", "nonlocal", "raise", "try", "with",
    "yield", "True", "False", "None",
})

# Top-level names the generated program binds itself.
EMITTER_NAMES = frozenset({
    "Board", "Component", "Ground", "Module", "Net", "Power", "Symbol",
    "Bjt", "Capacitor", "Crystal", "Diode", "FerriteBead", "Inductor", "Led",
    "Mosfet", "Resistor", "TestPoint", "Thermistor",
})

_INVALID = re.compile(r"[^A-Za-z0-9_]")


def sanitize_net_name(label: str) -> str:
    """Turn a net label into a valid identifier.

    >>> sanitize_net_name("USB_D+")
    'USB_D_P'
    >>> sanitize_net_name("+3V3")
    '_3V3'
    """
    if not label:
        return "net"
    if label.endswith("+"):
        label = label[:-1] + "_P"
    elif label.endswith("-"):
        label = label[:-1] + "_N"
    name = _INVALID.sub("_", label)
    if name[0].isdigit():
        name = "_" + name
    if name in STARLARK_KEYWORDS or name in EMITTER_NAMES:
        name += "_"
    return name


class NetNamer:
    """Hands out project-unique identifiers in first-seen order."""

    def __init__(self):
        self._used: set[str] = set()
        self.names: dict[str, str] = {}

    def assign(self, label: str) -> str:
        if label in self.names:
            return self.names[label]
        base = sanitize_net_name(label)
        name, n = base, 2
        while name in self._used:
            name = f"{base}_{n}"
            n += 1
        self._used.add(name)
        self.names[label] = name
        return name


def net_class_for(label: str, settings: Settings) -> str | None:
    if label in settings.assignments:
        return settings.assignments[label]
    for pattern in settings.patterns:
        if fnmatch.fnmatchcase(label, pattern.pattern):
            return pattern.net_class
    return None


def _is_declared_net(label: str) -> bool:
    return bool(label) and not label.startswith("unconnected-")


def reconcile(
    name: str,
    schematic: Schematic | None,
    board: Board | None,
    settings: Settings | None = None,
) -> Project:
    """Merge schematic, board and settings into one component/net graph.

    Components come out in schematic order followed by board-only
    footprints. Connectivity is taken from the board only; without one it
    is synthesized from power symbols and recorded as degraded.
    """
    if schematic is None and board is None:
        raise InputMissing(f"{name}: neither a schematic nor a board could be read")
    settings = settings or Settings()

    warnings: list[Diagnostic] = []
    for model in (schematic, board):
        if model is not None:
            warnings.extend(model.warnings)
    warnings.extend(settings.warnings)

    def warn(kind: WarningKind, message: str) -> None:
        warning = Diagnostic(kind, message)
        logger.warning("%s", warning)
        warnings.append(warning)

    symbols = schematic.symbols if schematic is not None else ()
    groups = _group_units((s for s in symbols if not s.is_power), warn)
    namer = NetNamer()

    if board is not None:
        for declaration in board.nets:
            if _is_declared_net(declaration.name):
                namer.assign(declaration.name)
        labels_by_id = {n.id: n.name for n in board.nets if _is_declared_net(n.name)}
        components = _correlate(groups, board, labels_by_id, namer, warn, has_schematic=schematic is not None)
    else:
        for symbol in symbols:
            if symbol.is_power and _is_declared_net(symbol.value):
                namer.assign(symbol.value)
        components = [_schematic_only(units, namer.names) for units in groups]
        warn(
            WarningKind.DEGRADED_CONNECTIVITY,
            f"{name}: no board file; connectivity synthesized from power symbols only",
        )

    if not components:
        warn(WarningKind.NO_COMPONENTS, f"{name}: project has no components")

    nets = tuple(
        ProjectNet(name=net_name, label=label, net_class=net_class_for(label, settings))
        for label, net_name in namer.names.items()
    )
    logger.debug("%s: %d components, %d nets", name, len(components), len(nets))
    return Project(
        name=name,
        components=tuple(components),
        nets=nets,
        layers=board.layers if board is not None else (),
        settings=settings,
        warnings=tuple(warnings),
        has_board=board is not None,
        has_schematic=schematic is not None,
    )


def _group_units(symbols, warn) -> list[list[SchematicSymbol]]:
    """Keep the units of one multi-unit part together.

    Symbols are units of the same part only when they share reference and
    lib_id and carry different unit numbers. Any other symbol reusing a
    reference stays a separate component.
    """
    groups: list[list[SchematicSymbol]] = []
    by_reference: dict[str, list[int]] = {}
    for symbol in symbols:
        candidates = by_reference.setdefault(symbol.reference, [])
        for index in candidates:
            units = groups[index]
            if units[0].lib_id == symbol.lib_id and all(unit.unit != symbol.unit for unit in units):
                units.append(symbol)
                break
        else:
            if candidates:
                warn(
                    WarningKind.DUPLICATE_CROSS_REFERENCE,
                    f"reference {symbol.reference} is used by more than one symbol ({symbol.lib_id}, uuid {symbol.uuid})",
                )
            candidates.append(len(groups))
            groups.append([symbol])
    return groups


def _correlate(groups, board: Board, labels_by_id, namer: NetNamer, warn, has_schematic: bool):
    uuid_counts = Counter(unit.uuid for units in groups for unit in units)
    group_by_uuid = {
        unit.uuid: index
        for index, units in enumerate(groups)
        for unit in units
        if uuid_counts[unit.uuid] == 1
    }
    for uuid, count in uuid_counts.items():
        if count > 1:
            warn(WarningKind.DUPLICATE_CROSS_REFERENCE, f"symbol uuid {uuid} appears {count} times")

    link_counts = Counter(fp.cross_reference for fp in board.footprints if fp.cross_reference)
    for link, count in link_counts.items():
        if count > 1:
            warn(WarningKind.DUPLICATE_CROSS_REFERENCE, f"{count} footprints link to symbol {link}")

    placed: dict[int, Footprint] = {}
    unplaced: list[Footprint] = []
    for footprint in board.footprints:
        link = footprint.cross_reference
        index = group_by_uuid.get(link) if link and link_counts[link] == 1 else None
        if index is None or index in placed:
            if index is not None:
                warn(
                    WarningKind.DUPLICATE_CROSS_REFERENCE,
                    f"{groups[index][0].reference} is placed more than once; {footprint.reference or footprint.name} left uncorrelated",
                )
            elif has_schematic and link and link_counts[link] == 1:
                warn(WarningKind.UNCORRELATED, f"footprint {footprint.reference or footprint.name} links to unknown symbol {link}")
            unplaced.append(footprint)
            continue
        placed[index] = footprint

    components = []
    for index, units in enumerate(groups):
        footprint = placed.get(index)
        if footprint is None:
            if not any(unit.exclude_from_board for unit in units):
                warn(WarningKind.UNCORRELATED, f"{units[0].reference} has no footprint on the board")
            components.append(_schematic_only(units, {}))
        else:
            components.append(_correlated(units, footprint, labels_by_id, namer.names, warn))
    for number, footprint in enumerate(unplaced, start=1):
        components.append(_board_only(footprint, number, labels_by_id, namer.names))
    return components


def _pad_nets(footprint: Footprint, labels_by_id, names: dict[str, str]) -> tuple[tuple[str, ...], dict[str, str]]:
    pins: dict[str, None] = {}
    net_by_pin = {}
    for pad in footprint.pads:
        pins[pad.number] = None
        label = labels_by_id.get(pad.net_id)
        if label is not None and pad.number not in net_by_pin:
            net_by_pin[pad.number] = names[label]
    return tuple(pins), net_by_pin


def _correlated(units, footprint: Footprint, labels_by_id, names, warn) -> ReconciledComponent:
    first = units[0]
    pins, net_by_pin = _pad_nets(footprint, labels_by_id, names)

    dnp = "dnp" in footprint.attributes
    exclude_from_bom = "exclude_from_bom" in footprint.attributes
    schematic_dnp = any(unit.dnp for unit in units)
    schematic_bom = any(unit.exclude_from_bom for unit in units)
    if (dnp, exclude_from_bom) != (schematic_dnp, schematic_bom):
        warn(
            WarningKind.FLAG_CONFLICT,
            f"{first.reference}: schematic (dnp={schematic_dnp}, exclude_from_bom={schematic_bom}) "
            f"disagrees with board (dnp={dnp}, exclude_from_bom={exclude_from_bom}); using board",
        )

    return ReconciledComponent(
        reference=first.reference,
        footprint=footprint.name,
        value=first.value,
        origin=Origin.BOTH,
        unique_id=first.uuid,
        lib_id=first.lib_id,
        properties=first.properties,
        dnp=dnp,
        exclude_from_bom=exclude_from_bom,
        pins=pins,
        net_by_pin=net_by_pin,
    )


def _schematic_only(units, power_nets: dict[str, str]) -> ReconciledComponent:
    """A symbol without a placement.

    Its power pins join a power net of the same name when one exists; no
    other connection can be known.
    """
    first = units[0]
    pins: dict[str, None] = {}
    net_by_pin = {}
    for unit in units:
        for number, hint in unit.pin_uses.items():
            pins[number] = None
            if hint.is_power and hint.name in power_nets and number not in net_by_pin:
                net_by_pin[number] = power_nets[hint.name]
    return ReconciledComponent(
        reference=first.reference,
        footprint=first.footprint or "",
        value=first.value,
        origin=Origin.SCHEMATIC,
        unique_id=first.uuid,
        lib_id=first.lib_id,
        properties=first.properties,
        dnp=any(unit.dnp for unit in units),
        exclude_from_bom=any(unit.exclude_from_bom for unit in units),
        pins=tuple(pins),
        net_by_pin=net_by_pin,
    )


def _board_only(footprint: Footprint, number: int, labels_by_id, names) -> ReconciledComponent:
    pins, net_by_pin = _pad_nets(footprint, labels_by_id, names)
    return ReconciledComponent(
        reference=footprint.reference or f"FP{number}",
        footprint=footprint.name,
        value=footprint.value or footprint.name,
        origin=Origin.BOARD,
        unique_id=footprint.uuid,
        properties=footprint.properties,
        dnp="dnp" in footprint.attributes,
        exclude_from_bom="exclude_from_bom" in footprint.attributes,
        pins=pins,
        net_by_pin=net_by_pin,
    )
