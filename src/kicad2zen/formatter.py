from __future__ import annotations

from kicad2zen.models import Inference, MatchedGeneric, NetKind, Project


def format_summary(project: Project, inference: Inference) -> str:
    matched = sum(1 for m in inference.mappings if isinstance(m, MatchedGeneric))
    sources = [kind for kind, present in (("schematic", project.has_schematic), ("board", project.has_board)) if present]
    lines = [
        f"Project: {project.name} ({' + '.join(sources)})",
        f"Components: {len(project.components)} ({matched} generic, {len(project.components) - matched} raw)",
        f"Nets: {len(project.nets)}",
        "",
        "References: " + (", ".join(c.reference for c in project.components) or "(none)"),
        "",
    ]
    for kind in (NetKind.POWER, NetKind.GROUND, NetKind.DIFFERENTIAL):
        labels = [record.label for record in inference.nets if record.kind is kind]
        if labels:
            lines.append(f"{kind.value.capitalize()} nets: {', '.join(labels)}")
    warnings = project.warnings + inference.warnings
    if warnings:
        lines.append("")
        lines.append(f"Warnings: {len(warnings)}")
        lines.extend(f"  {w}" for w in warnings)
    return "\n".join(lines).rstrip("\n") + "\n"


def format_components(project: Project, inference: Inference) -> str:
    """One line per component: reference, mapping, package and value."""
    rows = []
    for component, mapping, package, value in zip(
        project.components, inference.mappings, inference.packages, inference.values,
    ):
        target = mapping.module.name if isinstance(mapping, MatchedGeneric) else "Component"
        rows.append((component.reference, target, package or "-", value, component.origin.value))
    if not rows:
        return "(no components)\n"

    headers = ("Ref", "Module", "Package", "Value", "Origin")
    widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]
    lines = ["  ".join(f"{h:<{w}}" for h, w in zip(headers, widths)).rstrip()]
    for row in rows:
        lines.append("  ".join(f"{cell:<{w}}" for cell, w in zip(row, widths)).rstrip())
    return "\n".join(lines) + "\n"
