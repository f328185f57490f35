"""Reading KiCad documents into generic trees.

KiCad's schematic and board files are S-expressions. They are parsed with
sexpdata into nested lists whose heads are ``sexpdata.Symbol`` tokens; the
builders only ever walk those lists through the helpers below.

Unquoted tokens that read as numbers come back as numbers, so their exact
spelling is lost: a legacy (KiCad 5) unquoted pad number ``01`` reads as
``"1"``. KiCad 6 and later quote pad numbers, uuids and names, which
round-trip unchanged.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

import sexpdata

from kicad2zen.errors import MalformedDocument

_YES = ("yes", "true")


def loads(text: str, source: str = "<string>") -> list:
    try:
        tree = sexpdata.loads(text, nil=None, true=None)
    except Exception as exc:
        raise MalformedDocument(source, "/", f"not a valid S-expression: {exc}") from exc
    if not isinstance(tree, list) or not tree:
        raise MalformedDocument(source, "/", "expected a top-level list")
    return tree


def read_tree(path: str | Path) -> list:
    path = Path(path)
    return loads(path.read_text(encoding="utf-8"), source=path.name)


def read_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def tag(node: Any) -> str | None:
    if isinstance(node, list) and node and isinstance(node[0], sexpdata.Symbol):
        return str(node[0])
    return None


def iter_children(node: list, name: str | None = None) -> Iterator[tuple[int, list]]:
    """Yield (position, child) for child lists, optionally only those tagged `name`.

    Position counts matching children only, so it can be used in node paths
    such as ``symbol[2]``.
    """
    count = 0
    for child in node[1:]:
        child_tag = tag(child)
        if child_tag is None:
            continue
        if name is not None and child_tag != name:
            continue
        yield count, child
        count += 1


def first(node: list, name: str) -> list | None:
    for _, child in iter_children(node, name):
        return child
    return None


def text(atom: Any) -> str:
    if isinstance(atom, bool):
        return "yes" if atom else "no"
    if isinstance(atom, float) and atom.is_integer():
        return str(int(atom))
    return str(atom)


def arg(node: list | None, index: int = 1) -> Any:
    if node is None or len(node) <= index:
        return None
    return node[index]


def value(node: list, name: str) -> str | None:
    """Text of the first argument of child `name`, e.g. ``(lib_id "Device:R")``."""
    child = first(node, name)
    atom = arg(child)
    if atom is None or isinstance(atom, list):
        return None
    return text(atom)


def flag(node: list, name: str, default: bool = False) -> bool:
    child = first(node, name)
    if child is None:
        return default
    atom = arg(child)
    if atom is None:
        # bare (dnp) form
        return True
    return text(atom).lower() in _YES


def properties(node: list) -> list[tuple[str, str]]:
    result = []
    for _, prop in iter_children(node, "property"):
        key, val = arg(prop, 1), arg(prop, 2)
        if key is None or isinstance(key, list):
            continue
        result.append((text(key), "" if val is None or isinstance(val, list) else text(val)))
    return result


def numbers(node: list | None) -> tuple[float, ...]:
    if node is None:
        return ()
    return tuple(float(a) for a in node[1:] if isinstance(a, (int, float)) and not isinstance(a, bool))
