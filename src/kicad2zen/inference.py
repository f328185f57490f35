"""Classification of components, footprints, values and nets.

Everything here is pure. The pattern tables are immutable ordered
sequences, first match wins, built once at import time and handed to
`infer` explicitly so independent conversions can share them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Sequence

from kicad2zen.errors import Diagnostic, WarningKind
from kicad2zen.models import (
    GenericModule,
    Inference,
    MappingResult,
    MatchedGeneric,
    NetKind,
    NetRecord,
    Project,
    ProjectNet,
    RawFallback,
    ReconciledComponent,
    ValueKind,
)

logger = logging.getLogger(__name__)

_TWO_PIN = (("1", "P1"), ("2", "P2"))
_DIODE_PINS = (("1", "K"), ("2", "A"))


def _generic(name: str, pin_map=_TWO_PIN, flags=(), value_kind: ValueKind | None = None) -> GenericModule:
    return GenericModule(
        name=name,
        module_path=f"@stdlib/generics/{name}.zen",
        pin_map=pin_map,
        flags=flags,
        value_kind=value_kind,
    )


RESISTOR = _generic("Resistor", value_kind=ValueKind.RESISTANCE)
CAPACITOR = _generic("Capacitor", value_kind=ValueKind.CAPACITANCE)
CAPACITOR_POLARIZED = _generic("Capacitor", flags=(("polarized", "True"),), value_kind=ValueKind.CAPACITANCE)
INDUCTOR = _generic("Inductor", value_kind=ValueKind.INDUCTANCE)
DIODE = _generic("Diode", pin_map=_DIODE_PINS)
DIODE_ZENER = _generic("Diode", pin_map=_DIODE_PINS, flags=(("diode_type", '"zener"'),))
DIODE_SCHOTTKY = _generic("Diode", pin_map=_DIODE_PINS, flags=(("diode_type", '"schottky"'),))
LED = _generic("Led", pin_map=_DIODE_PINS)
FERRITE_BEAD = _generic("FerriteBead")
CRYSTAL = _generic("Crystal")
CRYSTAL_GND24 = _generic("Crystal", pin_map=(("1", "P1"), ("3", "P2"), ("2", "GND"), ("4", "GND")))
THERMISTOR = _generic("Thermistor")
BJT_NPN = _generic("Bjt", pin_map=(("1", "B"), ("2", "C"), ("3", "E")), flags=(("polarity", '"NPN"'),))
BJT_PNP = _generic("Bjt", pin_map=(("1", "B"), ("2", "C"), ("3", "E")), flags=(("polarity", '"PNP"'),))
MOSFET_N = _generic("Mosfet", pin_map=(("1", "G"), ("2", "D"), ("3", "S")), flags=(("channel", '"N"'),))
MOSFET_P = _generic("Mosfet", pin_map=(("1", "G"), ("2", "D"), ("3", "S")), flags=(("channel", '"P"'),))
TEST_POINT = _generic("TestPoint", pin_map=(("1", "P1"),))


@dataclass(frozen=True)
class SymbolRule:
    """Maps a lib id (exact, or by prefix) to a generic module.

    When `pinout` is set, a lib id ending in a permutation of those letters
    (``Device:Q_NPN_EBC``) numbers its pins in that order.
    """
    pattern: str
    module: GenericModule
    prefix: bool = False
    pinout: str | None = None

    def matches(self, lib_id: str) -> bool:
        if self.prefix:
            return lib_id.startswith(self.pattern)
        return lib_id == self.pattern

    def resolve(self, lib_id: str) -> GenericModule:
        if self.pinout is None:
            return self.module
        suffix = lib_id.rsplit("_", 1)[-1]
        if len(suffix) != len(self.pinout) or sorted(suffix) != sorted(self.pinout):
            return self.module
        pin_map = tuple((str(i + 1), letter) for i, letter in enumerate(suffix))
        return GenericModule(
            name=self.module.name,
            module_path=self.module.module_path,
            pin_map=pin_map,
            flags=self.module.flags,
            value_kind=self.module.value_kind,
        )


@dataclass(frozen=True)
class PatternRule:
    pattern: re.Pattern
    module: GenericModule


@dataclass(frozen=True)
class NetRule:
    pattern: re.Pattern
    kind: NetKind


@dataclass(frozen=True)
class InferenceTables:
    symbols: tuple[SymbolRule, ...]
    footprints: tuple[PatternRule, ...]
    references: tuple[PatternRule, ...]
    packages: tuple[re.Pattern, ...]
    nets: tuple[NetRule, ...]
    differential: tuple[re.Pattern, ...]


SYMBOL_TABLE = (
    SymbolRule("Device:R", RESISTOR),
    SymbolRule("Device:R_Small", RESISTOR),
    SymbolRule("Device:R_US", RESISTOR),
    SymbolRule("Device:C", CAPACITOR),
    SymbolRule("Device:C_Small", CAPACITOR),
    SymbolRule("Device:C_Polarized", CAPACITOR_POLARIZED),
    SymbolRule("Device:C_Polarized_Small", CAPACITOR_POLARIZED),
    SymbolRule("Device:L", INDUCTOR),
    SymbolRule("Device:L_Small", INDUCTOR),
    SymbolRule("Device:D", DIODE),
    SymbolRule("Device:D_Small", DIODE),
    SymbolRule("Device:D_Zener", DIODE_ZENER),
    SymbolRule("Device:D_Zener_Small", DIODE_ZENER),
    SymbolRule("Device:D_Schottky", DIODE_SCHOTTKY),
    SymbolRule("Device:D_Schottky_Small", DIODE_SCHOTTKY),
    SymbolRule("Device:LED", LED),
    SymbolRule("Device:LED_Small", LED),
    SymbolRule("Device:Ferrite_Bead", FERRITE_BEAD),
    SymbolRule("Device:Ferrite_Bead_Small", FERRITE_BEAD),
    SymbolRule("Device:Crystal", CRYSTAL),
    SymbolRule("Device:Crystal_Small", CRYSTAL),
    SymbolRule("Device:Crystal_GND24", CRYSTAL_GND24),
    SymbolRule("Device:Thermistor", THERMISTOR, prefix=True),
    SymbolRule("Device:Q_NPN", BJT_NPN, prefix=True, pinout="BCE"),
    SymbolRule("Device:Q_PNP", BJT_PNP, prefix=True, pinout="BCE"),
    SymbolRule("Device:Q_NMOS", MOSFET_N, prefix=True, pinout="GDS"),
    SymbolRule("Device:Q_PMOS", MOSFET_P, prefix=True, pinout="GDS"),
    SymbolRule("Connector:TestPoint", TEST_POINT, prefix=True),
)

# Board-only components have no lib id; their footprint's local name and
# then their reference designator stand in for it.
FOOTPRINT_TABLE = (
    PatternRule(re.compile(r"^R_|resistor", re.IGNORECASE), RESISTOR),
    PatternRule(re.compile(r"^C_|capacitor", re.IGNORECASE), CAPACITOR),
    PatternRule(re.compile(r"^L_|inductor", re.IGNORECASE), INDUCTOR),
    PatternRule(re.compile(r"^LED_|led", re.IGNORECASE), LED),
    PatternRule(re.compile(r"^D_|diode", re.IGNORECASE), DIODE),
    PatternRule(re.compile(r"crystal", re.IGNORECASE), CRYSTAL),
)

REFERENCE_TABLE = (
    PatternRule(re.compile(r"^R\d"), RESISTOR),
    PatternRule(re.compile(r"^C\d"), CAPACITOR),
    PatternRule(re.compile(r"^L\d"), INDUCTOR),
    PatternRule(re.compile(r"^D\d"), DIODE),
    PatternRule(re.compile(r"^(Y|X)\d"), CRYSTAL),
    PatternRule(re.compile(r"^FB\d"), FERRITE_BEAD),
    PatternRule(re.compile(r"^TP\d"), TEST_POINT),
)

PACKAGE_PATTERNS = (
    re.compile(r"^[RCL]_(\d{4})_\d+Metric"),
    re.compile(r"^LED_(\d{4})_\d+Metric"),
    re.compile(r"^D_(\d{4})_\d+Metric"),
    re.compile(r"^Fuse_(\d{4})_\d+Metric"),
    re.compile(r"^Crystal_SMD_(\d{4})-\d+Pin"),
    re.compile(r"^D_(\d{4})$"),
    re.compile(r"^D_(SOD-\d+)"),
    re.compile(r"^(SOD-\d+)"),
    re.compile(r"^(SOT-\d+)"),
    re.compile(r"^(QFN-\d+|DFN-\d+)"),
    re.compile(r"^(SOIC-\d+)"),
    re.compile(r"^(TSSOP-\d+)"),
    re.compile(r"^(\d{4})$"),
)

# Ground is checked first: VSS/VEE would otherwise match the V* power rule.
NET_TABLE = (
    NetRule(re.compile(r"^GND", re.IGNORECASE), NetKind.GROUND),
    NetRule(re.compile(r"^V(SS|EE)", re.IGNORECASE), NetKind.GROUND),
    NetRule(re.compile(r"^[ADPS]GND", re.IGNORECASE), NetKind.GROUND),
    NetRule(re.compile(r"_GND$", re.IGNORECASE), NetKind.GROUND),
    NetRule(re.compile(r"^0V$", re.IGNORECASE), NetKind.GROUND),
    NetRule(re.compile(r"^V(CC|DD|BAT|IN|OUT|BUS)", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"^\+\d+V", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"^\d+V\d*", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"^PWR", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"_PWR$", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"^VREF", re.IGNORECASE), NetKind.POWER),
    NetRule(re.compile(r"^[AD]VDD", re.IGNORECASE), NetKind.POWER),
)

# <base><marker>; the sibling of a member swaps the marker's polarity.
DIFFERENTIAL_PATTERNS = (
    re.compile(r"^(?P<base>.+_)(?P<marker>DP|DN|POS|NEG)$", re.IGNORECASE),
    re.compile(r"^(?P<base>.+[_\-])(?P<marker>P|N)$", re.IGNORECASE),
    re.compile(r"^(?P<base>.+)(?P<marker>[+\-])$"),
)

_SWAP = {"P": "N", "N": "P", "+": "-", "-": "+", "DP": "DN", "DN": "DP", "POS": "NEG", "NEG": "POS"}
_POLARITY = {"P": "P", "+": "P", "DP": "P", "POS": "P", "N": "N", "-": "N", "DN": "N", "NEG": "N"}

DEFAULT_TABLES = InferenceTables(
    symbols=SYMBOL_TABLE,
    footprints=FOOTPRINT_TABLE,
    references=REFERENCE_TABLE,
    packages=PACKAGE_PATTERNS,
    nets=NET_TABLE,
    differential=DIFFERENTIAL_PATTERNS,
)


# --- Symbols ---


def classify_symbol(
    lib_id: str | None,
    footprint: str,
    tables: InferenceTables = DEFAULT_TABLES,
) -> MappingResult:
    if lib_id:
        for rule in tables.symbols:
            if rule.matches(lib_id):
                return MatchedGeneric(rule.resolve(lib_id))
    return RawFallback(library_id=lib_id, footprint=footprint)


def classify_footprint(
    footprint: str,
    reference: str,
    tables: InferenceTables = DEFAULT_TABLES,
) -> MappingResult:
    """Classification for a component known only from the board."""
    local = _local_name(footprint)
    for rule in tables.footprints:
        if rule.pattern.search(local):
            return MatchedGeneric(rule.module)
    for rule in tables.references:
        if rule.pattern.search(reference):
            return MatchedGeneric(rule.module)
    return RawFallback(library_id=None, footprint=footprint)


def classify_component(
    component: ReconciledComponent,
    tables: InferenceTables = DEFAULT_TABLES,
) -> MappingResult:
    """Classify a component, refusing matches its connections cannot be expressed in.

    A generic is only usable when every connected pin has a renamed pin and
    pins sharing a name share a net.
    """
    if component.lib_id is not None:
        result = classify_symbol(component.lib_id, component.footprint, tables)
    else:
        result = classify_footprint(component.footprint, component.reference, tables)
    if isinstance(result, RawFallback):
        return result

    renaming = result.pin_renaming
    bound: dict[str, str] = {}
    for pin, net in component.net_by_pin.items():
        name = renaming.get(pin)
        if name is None or bound.setdefault(name, net) != net:
            return RawFallback(library_id=component.lib_id, footprint=component.footprint)
    return result


# --- Footprints ---


def _local_name(footprint: str) -> str:
    return footprint.split(":")[-1]


def extract_package(footprint: str, tables: InferenceTables = DEFAULT_TABLES) -> str | None:
    """Package code from a footprint name (``Resistor_SMD:R_0402_1005Metric`` → ``0402``)."""
    name = _local_name(footprint)
    for pattern in tables.packages:
        match = pattern.match(name)
        if match:
            return match.group(1)
    return None


# --- Values ---

_MULTIPLIERS = {
    "p": "p", "n": "n", "u": "u", "µ": "u", "μ": "u", "m": "m",
    "k": "k", "K": "k", "M": "M", "G": "G", "R": "", "r": "",
}
_RESISTIVE_LETTERS = {"k", "K", "M", "G", "R", "r"}
_CAPACITIVE_LETTERS = {"p", "n", "u", "µ", "μ"}
_UNITS = {ValueKind.RESISTANCE: "ohm", ValueKind.CAPACITANCE: "F", ValueKind.INDUCTANCE: "H"}

_LETTERS = "pnuµμmkKMGRr"
_DECIMAL_SHORTHAND = re.compile(rf"^(\d+)([{_LETTERS}])(\d+)$")
_TRAILING_MULTIPLIER = re.compile(rf"^(\d+(?:\.\d+)?)([{_LETTERS}])$")
_EXPLICIT_UNIT = re.compile(r"^(\d+(?:\.\d+)?)([pnuµμmkKMG]?)((?i:ohms?|Ω|f|h))$")
_PLAIN_NUMBER = re.compile(r"^\d+(?:\.\d+)?$")
_DIGIT_RUN = re.compile(r"\d{3,}")


def _unit_for(letter: str, kind: ValueKind | None) -> str | None:
    if letter in ("R", "r"):
        return "ohm" if kind in (None, ValueKind.RESISTANCE) else None
    if kind is not None:
        return _UNITS[kind]
    if letter in _RESISTIVE_LETTERS:
        return "ohm"
    if letter in _CAPACITIVE_LETTERS:
        return "F"
    return None


def _matches_grammar(compact: str) -> bool:
    return any(
        pattern.match(compact)
        for pattern in (_DECIMAL_SHORTHAND, _TRAILING_MULTIPLIER, _EXPLICIT_UNIT, _PLAIN_NUMBER)
    )


def looks_like_part_number(value: str) -> bool:
    compact = re.sub(r"\s+", "", value)
    return (
        any(c.isupper() for c in compact)
        and _DIGIT_RUN.search(compact) is not None
        and not _matches_grammar(compact)
    )


def normalize_value(value: str, kind: ValueKind | None = None) -> str:
    """Rewrite a component value in Zener unit notation.

    ``4k7`` → ``4.7kohm``, ``10k`` → ``10kohm``, ``100n`` → ``100nF``; with a
    known kind a bare number gets that kind's unit. Part numbers and
    anything unrecognized come back unchanged.
    """
    compact = re.sub(r"\s+", "", value)

    match = _DECIMAL_SHORTHAND.match(compact)
    if match:
        whole, letter, fraction = match.groups()
        unit = _unit_for(letter, kind)
        if unit is None:
            return value
        return f"{whole}.{fraction}{_MULTIPLIERS[letter]}{unit}"

    match = _TRAILING_MULTIPLIER.match(compact)
    if match:
        number, letter = match.groups()
        unit = _unit_for(letter, kind)
        if unit is None:
            return value
        return f"{number}{_MULTIPLIERS[letter]}{unit}"

    match = _EXPLICIT_UNIT.match(compact)
    if match:
        number, prefix, unit = match.groups()
        lowered = unit.lower()
        if lowered.startswith("ohm") or unit == "Ω":
            unit = "ohm"
        else:
            unit = lowered.upper()
        return f"{number}{_MULTIPLIERS.get(prefix, '')}{unit}"

    if _PLAIN_NUMBER.match(compact) and kind is not None:
        return f"{compact}{_UNITS[kind]}"

    return value


# --- Nets ---


def _differential_sibling(label: str, tables: InferenceTables) -> tuple[str, str] | None:
    """(polarity, sibling label) when `label` ends in a polarity marker."""
    for pattern in tables.differential:
        match = pattern.match(label)
        if not match:
            continue
        marker = match.group("marker")
        swapped = _SWAP[marker.upper()]
        if marker.islower():
            swapped = swapped.lower()
        return _POLARITY[marker.upper()], match.group("base") + swapped
    return None


def classify_net(
    label: str,
    siblings: Iterable[str] = (),
    tables: InferenceTables = DEFAULT_TABLES,
) -> tuple[NetKind, str | None, str | None]:
    """Classify a net by its name: (kind, polarity, partner label).

    A differential member needs its opposite-polarity sibling among
    `siblings`; without one the net is GENERIC.
    """
    if not label or label.startswith("unconnected-"):
        return NetKind.GENERIC, None, None
    for rule in tables.nets:
        if rule.pattern.search(label):
            return rule.kind, None, None
    pair = _differential_sibling(label, tables)
    if pair is not None:
        polarity, sibling = pair
        if sibling in set(siblings):
            return NetKind.DIFFERENTIAL, polarity, sibling
    return NetKind.GENERIC, None, None


def classify_nets(nets: Sequence[ProjectNet], tables: InferenceTables = DEFAULT_TABLES) -> tuple[NetRecord, ...]:
    names_by_label = {net.label: net.name for net in nets}
    records = []
    for net in nets:
        kind, polarity, partner = classify_net(net.label, names_by_label, tables)
        records.append(NetRecord(
            name=net.name,
            label=net.label,
            kind=kind,
            polarity=polarity,
            partner=names_by_label.get(partner) if partner else None,
            net_class=net.net_class,
        ))
    return tuple(records)


# --- Project ---


def infer(project: Project, tables: InferenceTables = DEFAULT_TABLES) -> Inference:
    mappings = []
    packages = []
    values = []
    warnings = []
    for component in project.components:
        mapping = classify_component(component, tables)
        if isinstance(mapping, MatchedGeneric):
            value = normalize_value(component.value, mapping.module.value_kind)
        else:
            value = component.value
            what = mapping.library_id or f"footprint {mapping.footprint}"
            warning = Diagnostic(
                WarningKind.UNMAPPED_ENTITY,
                f"{component.reference}: no generic module for {what}; emitted as raw component",
            )
            logger.info("%s", warning)
            warnings.append(warning)
        mappings.append(mapping)
        packages.append(extract_package(component.footprint, tables))
        values.append(value)

    return Inference(
        mappings=tuple(mappings),
        packages=tuple(packages),
        values=tuple(values),
        nets=classify_nets(project.nets, tables),
        warnings=tuple(warnings),
    )
