from __future__ import annotations

import logging
from typing import Any

from kicad2zen.errors import Diagnostic, WarningKind
from kicad2zen.models import NetClass, NetClassPattern, Settings

logger = logging.getLogger(__name__)

_NET_CLASS_FIELDS = ("track_width", "clearance", "via_diameter", "via_drill", "diff_pair_width", "diff_pair_gap")


def build_settings(value: Any, source: str = "<settings>", problem: str | None = None) -> Settings:
    """Best-effort read of net classes and design rules from a ``.kicad_pro`` value.

    Never raises: an absent or unusable value yields empty settings plus a
    warning, and malformed entries are skipped one by one.
    """
    warnings: list[Diagnostic] = []

    def warn(message: str) -> None:
        warning = Diagnostic(WarningKind.SETTINGS_UNAVAILABLE, f"{source}: {message}")
        logger.warning("%s", warning)
        warnings.append(warning)

    if value is None:
        warn(problem or "no project settings; no constraints known")
        return Settings(warnings=tuple(warnings))
    if not isinstance(value, dict):
        warn("project settings are not a JSON object")
        return Settings(warnings=tuple(warnings))

    net_settings = value.get("net_settings")
    if not isinstance(net_settings, dict):
        net_settings = {}

    net_classes = []
    for index, entry in enumerate(_as_list(net_settings.get("classes"))):
        if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
            warn(f"net_settings.classes[{index}] has no name, skipped")
            continue
        net_classes.append(NetClass(
            name=entry["name"],
            **{key: _number(entry.get(key)) for key in _NET_CLASS_FIELDS},
        ))

    patterns = []
    for index, entry in enumerate(_as_list(net_settings.get("netclass_patterns"))):
        if not isinstance(entry, dict) or not isinstance(entry.get("netclass"), str) \
                or not isinstance(entry.get("pattern"), str):
            warn(f"net_settings.netclass_patterns[{index}] is malformed, skipped")
            continue
        patterns.append(NetClassPattern(net_class=entry["netclass"], pattern=entry["pattern"]))

    assignments = {}
    raw_assignments = net_settings.get("netclass_assignments")
    if isinstance(raw_assignments, dict):
        for net, net_class in raw_assignments.items():
            # KiCad 8 writes a list of classes per net; the first one is the effective class
            if isinstance(net_class, list):
                net_class = net_class[0] if net_class else None
            if isinstance(net_class, str):
                assignments[net] = net_class

    rules = {}
    design_settings = value.get("board", {}).get("design_settings", {}) if isinstance(value.get("board"), dict) else {}
    raw_rules = design_settings.get("rules") if isinstance(design_settings, dict) else None
    if isinstance(raw_rules, dict):
        for key, rule in raw_rules.items():
            number = _number(rule)
            if number is not None:
                rules[key] = number

    logger.debug("%s: %d net classes, %d patterns, %d rules", source, len(net_classes), len(patterns), len(rules))
    return Settings(
        net_classes=tuple(net_classes),
        patterns=tuple(patterns),
        assignments=assignments,
        rules=rules,
        warnings=tuple(warnings),
    )


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)
