"""Rendering a reconciled project as a Zener program.

Output is a pure function of (project, inference, mode): components in
project order, nets in first-seen order, module aliases in first-use order.
"""

from __future__ import annotations

import json
from enum import Enum

from kicad2zen.inference import looks_like_part_number
from kicad2zen.models import (
    Inference,
    MatchedGeneric,
    NetKind,
    NetRecord,
    Project,
    RawFallback,
    ReconciledComponent,
)

INDENT = "    "

_MODE_LINES = {
    "faithful": "faithful (preserves exact KiCad data)",
    "idiomatic": "idiomatic (uses stdlib generics)",
}
_NET_CONSTRUCTORS = {NetKind.POWER: "Power", NetKind.GROUND: "Ground"}

LED_COLORS = frozenset({
    "red", "green", "blue", "yellow", "orange", "amber", "white", "warm_white",
    "cold_white", "purple", "violet", "pink", "cyan", "uv", "ir",
})


class OutputMode(str, Enum):
    IDIOMATIC = "idiomatic"
    FAITHFUL = "faithful"


def quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def emit_zen(project: Project, inference: Inference, mode: OutputMode = OutputMode.IDIOMATIC) -> str:
    mode = OutputMode(mode)
    lines: list[str] = []
    lines.extend(_header(project, inference, mode))

    used = {record.kind for record in inference.nets}
    loads = []
    if project.has_board:
        loads.append('load("@stdlib/board_config.zen", "Board")')
    interfaces = [name for kind, name in _NET_CONSTRUCTORS.items() if kind in used]
    if interfaces:
        loads.append(f'load("@stdlib/interfaces.zen", {", ".join(quote(n) for n in interfaces)})')
    if loads:
        lines.extend(loads)
        lines.append("")

    if mode is OutputMode.IDIOMATIC:
        aliases = _module_aliases(inference)
        if aliases:
            lines.extend(f"{name} = Module({quote(path)})" for name, path in aliases)
            lines.append("")

    if inference.nets:
        lines.append("# Nets")
        lines.extend(_net_line(record) for record in inference.nets)
        lines.append("")

    if project.components:
        lines.append("# Components")
        for component, mapping, package, value in zip(
            project.components, inference.mappings, inference.packages, inference.values,
        ):
            if isinstance(mapping, RawFallback):
                lines.extend(_unmapped_marker(mapping))
                lines.extend(_raw_component(component))
            elif mode is OutputMode.FAITHFUL:
                lines.extend(_raw_component(component))
            else:
                lines.extend(_generic_component(component, mapping, package, value))
            lines.append("")

    if project.has_board:
        lines.extend(_board(project))

    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines) + "\n"


def _header(project: Project, inference: Inference, mode: OutputMode) -> list[str]:
    lines = [
        f"# Auto-generated from KiCad project: {project.name}",
        f"# Mode: {_MODE_LINES[mode.value]}",
    ]
    warnings = project.warnings + inference.warnings
    if warnings:
        lines.append("#")
        lines.append("# Warnings:")
        lines.extend(f"#   - {str(w).replace(chr(10), ' ')}" for w in warnings)
    lines.extend([
        "",
        "# ```pcb",
        "# [workspace]",
        '# pcb-version = "0.3"',
        "# ```",
        "",
    ])
    return lines


def _module_aliases(inference: Inference) -> list[tuple[str, str]]:
    aliases: dict[str, str] = {}
    for mapping in inference.mappings:
        if isinstance(mapping, MatchedGeneric):
            aliases.setdefault(mapping.module.name, mapping.module_path)
    return list(aliases.items())


def _net_line(record: NetRecord) -> str:
    constructor = _NET_CONSTRUCTORS.get(record.kind, "Net")
    line = f"{record.name} = {constructor}({quote(record.label)})"
    notes = []
    if record.kind is NetKind.DIFFERENTIAL:
        notes.append(f"differential pair {record.polarity}, partner {record.partner}")
    if record.net_class:
        notes.append(f"net class {record.net_class}")
    if notes:
        line += "  # " + "; ".join(notes)
    return line


def _unmapped_marker(mapping: RawFallback) -> list[str]:
    if mapping.library_id:
        return [f"# Unmapped symbol: {mapping.library_id}"]
    return [f"# Unmapped footprint: {mapping.footprint or '(none)'}"]


def _split_lib_id(lib_id: str) -> tuple[str, str]:
    if ":" in lib_id:
        library, name = lib_id.split(":", 1)
        return library, name
    return "", lib_id


def _connections(component: ReconciledComponent, renaming: dict[str, str] | None = None) -> list[tuple[str, str]]:
    """(pin, net) pairs in pin order; pins renamed to the same name appear once."""
    result: dict[str, str] = {}
    for pin in component.pins:
        net = component.net_by_pin.get(pin)
        if net is None:
            continue
        result.setdefault(renaming[pin] if renaming else pin, net)
    return list(result.items())


def _raw_component(component: ReconciledComponent) -> list[str]:
    lines = ["Component(", f"{INDENT}name = {quote(component.reference)},"]
    if component.lib_id:
        library, name = _split_lib_id(component.lib_id)
        lines.append(
            f"{INDENT}symbol = Symbol(library = {quote(f'@kicad-symbols/{library}.kicad_sym')}, name = {quote(name)}),"
        )
    if component.footprint:
        lines.append(f"{INDENT}footprint = {quote(component.footprint)},")

    connections = _connections(component)
    if connections:
        lines.append(f"{INDENT}pins = {{")
        lines.extend(f"{INDENT * 2}{quote(pin)}: {net}," for pin, net in connections)
        lines.append(f"{INDENT}}},")

    properties = list(component.properties)
    if component.value and not any(key == "Value" for key, _ in properties):
        properties.insert(0, ("Value", component.value))
    if properties:
        lines.append(f"{INDENT}properties = {{")
        lines.extend(f"{INDENT * 2}{quote(key)}: {quote(val)}," for key, val in properties)
        lines.append(f"{INDENT}}},")

    lines.extend(_flag_lines(component))
    lines.append(")")
    return lines


def _generic_component(
    component: ReconciledComponent,
    mapping: MatchedGeneric,
    package: str | None,
    value: str,
) -> list[str]:
    module = mapping.module
    lines = [f"{module.name}(", f"{INDENT}name = {quote(component.reference)},"]
    kept_value = None
    if component.value and looks_like_part_number(component.value):
        lines.append(f"{INDENT}mpn = {quote(component.value)},")
    elif component.value and module.value_kind is not None:
        lines.append(f"{INDENT}value = {quote(value)},")
    elif component.value:
        kept_value = component.value
    if module.name == "Led":
        # color is a required Led parameter
        color = kept_value.lower() if kept_value and kept_value.lower() in LED_COLORS else "red"
        lines.append(f"{INDENT}color = {quote(color)},")
        if kept_value and kept_value.lower() == color:
            kept_value = None
    if package:
        lines.append(f"{INDENT}package = {quote(package)},")
    lines.extend(f"{INDENT}{key} = {val}," for key, val in module.flags)
    if kept_value:
        lines.append(f"{INDENT}properties = {{{quote('Value')}: {quote(kept_value)}}},")
    lines.extend(_flag_lines(component))
    lines.extend(
        f"{INDENT}{pin} = {net}," for pin, net in _connections(component, mapping.pin_renaming)
    )
    lines.append(")")
    return lines


def _flag_lines(component: ReconciledComponent) -> list[str]:
    lines = []
    if component.dnp:
        lines.append(f"{INDENT}dnp = True,")
    if component.exclude_from_bom:
        lines.append(f"{INDENT}skip_bom = True,")
    return lines


def _board(project: Project) -> list[str]:
    return [
        "# Board configuration",
        "Board(",
        f"{INDENT}name = {quote(project.name)},",
        f"{INDENT}layers = {project.copper_layer_count or 4},",
        f"{INDENT}layout_path = {quote(f'layout/{project.name}')},",
        ")",
    ]
