from __future__ import annotations

import logging

from kicad2zen import sexpr
from kicad2zen.errors import Diagnostic, MalformedDocument, WarningKind
from kicad2zen.models import LibraryPin, LibrarySymbol, PinHint, Schematic, SchematicSymbol

logger = logging.getLogger(__name__)

_UNKNOWN_HINT = PinHint(name="", electrical_type="unspecified")


def build_schematic(tree: list, source: str = "<schematic>") -> Schematic:
    """Build library symbols and symbol instances from a ``kicad_sch`` tree.

    Instances come back in file order. A missing uuid, lib_id, Reference or
    Value raises MalformedDocument naming the offending node; hierarchical
    sheets are skipped with a warning.
    """
    if sexpr.tag(tree) != "kicad_sch":
        raise MalformedDocument(source, "/", "expected a kicad_sch root node")

    lib_node = sexpr.first(tree, "lib_symbols")
    lib_symbols = _extract_lib_symbols(lib_node) if lib_node is not None else []
    libs_by_id = {lib.id: lib for lib in lib_symbols}

    symbols = []
    for index, node in sexpr.iter_children(tree, "symbol"):
        symbols.append(_extract_symbol(node, f"kicad_sch/symbol[{index}]", libs_by_id, source))

    warnings = []
    for index, sheet in sexpr.iter_children(tree, "sheet"):
        props = dict(sexpr.properties(sheet))
        name = props.get("Sheetname") or props.get("Sheet name") or f"sheet[{index}]"
        warning = Diagnostic(
            WarningKind.HIERARCHICAL_SHEET,
            f"{source}: hierarchical sheet {name!r} ignored",
        )
        logger.warning("%s", warning)
        warnings.append(warning)

    logger.debug("%s: %d library symbols, %d instances", source, len(lib_symbols), len(symbols))
    return Schematic(
        source=source,
        lib_symbols=tuple(lib_symbols),
        symbols=tuple(symbols),
        warnings=tuple(warnings),
    )


def _extract_lib_symbols(lib_node: list) -> list[LibrarySymbol]:
    result = []
    for _, node in sexpr.iter_children(lib_node, "symbol"):
        lib_id = sexpr.arg(node)
        if lib_id is None or isinstance(lib_id, list):
            continue
        lib_id = sexpr.text(lib_id)
        pins: dict[str, LibraryPin] = {}
        _collect_pins(node, pins)
        result.append(LibrarySymbol(
            id=lib_id,
            name=lib_id.split(":", 1)[-1],
            pins=tuple(pins.values()),
            is_power=sexpr.first(node, "power") is not None,
        ))
    return result


def _collect_pins(node: list, pins: dict[str, LibraryPin]) -> None:
    """Gather pins from a library symbol and its nested unit symbols.

    The first definition of a pin number wins.
    """
    for _, child in sexpr.iter_children(node):
        child_tag = sexpr.tag(child)
        if child_tag == "symbol":
            _collect_pins(child, pins)
        elif child_tag == "pin":
            number = sexpr.value(child, "number")
            if not number or number in pins:
                continue
            electrical_type = sexpr.arg(child)
            name = sexpr.value(child, "name") or ""
            pins[number] = LibraryPin(
                number=number,
                name="" if name == "~" else name,
                electrical_type=sexpr.text(electrical_type) if electrical_type is not None else "passive",
            )


def _require(node: list, name: str, path: str, source: str) -> str:
    found = sexpr.value(node, name)
    if found is None:
        raise MalformedDocument(source, f"{path}/{name}", f"missing required field {name!r}")
    return found


def _extract_symbol(
    node: list,
    path: str,
    libs_by_id: dict[str, LibrarySymbol],
    source: str,
) -> SchematicSymbol:
    uuid = _require(node, "uuid", path, source)
    lib_id = _require(node, "lib_id", path, source)

    props = sexpr.properties(node)
    by_key = dict(props)
    for key in ("Reference", "Value"):
        if key not in by_key:
            raise MalformedDocument(source, f'{path}/property["{key}"]', f"missing required property {key!r}")

    lib = libs_by_id.get(sexpr.value(node, "lib_name") or lib_id) or libs_by_id.get(lib_id)

    pin_uses: dict[str, PinHint] = {}
    for _, pin in sexpr.iter_children(node, "pin"):
        number = sexpr.arg(pin)
        if number is None or isinstance(number, list):
            continue
        number = sexpr.text(number)
        lib_pin = lib.pin(number) if lib is not None else None
        if lib_pin is None:
            pin_uses[number] = _UNKNOWN_HINT
        else:
            pin_uses[number] = PinHint(name=lib_pin.name, electrical_type=lib_pin.electrical_type)

    unit = sexpr.value(node, "unit")
    footprint = by_key.get("Footprint") or None
    return SchematicSymbol(
        uuid=uuid,
        lib_id=lib_id,
        reference=by_key["Reference"],
        value=by_key["Value"],
        footprint=footprint,
        dnp=sexpr.flag(node, "dnp"),
        exclude_from_bom=not sexpr.flag(node, "in_bom", default=True),
        exclude_from_board=not sexpr.flag(node, "on_board", default=True),
        pin_uses=pin_uses,
        properties=tuple(props),
        is_power=(lib is not None and lib.is_power) or lib_id.startswith("power:"),
        unit=int(unit) if unit is not None and unit.isdigit() else 1,
    )
