from __future__ import annotations

import logging

from kicad2zen import sexpr
from kicad2zen.errors import Diagnostic, MalformedDocument, WarningKind
from kicad2zen.models import Board, Footprint, LayerDeclaration, NetDeclaration, Pad

logger = logging.getLogger(__name__)

_FOOTPRINT_TAGS = ("footprint", "module")


def build_board(tree: list, source: str = "<board>") -> Board:
    """Build footprints, net and layer declarations from a ``kicad_pcb`` tree.

    Net ids are kept as written; pads on net 0 (or without a net) are left
    unassigned.
    """
    if sexpr.tag(tree) != "kicad_pcb":
        raise MalformedDocument(source, "/", "expected a kicad_pcb root node")

    nets = _extract_nets(tree)
    ids_by_name = {net.name: net.id for net in nets}
    warnings: list[Diagnostic] = []

    footprints = []
    counters = dict.fromkeys(_FOOTPRINT_TAGS, 0)
    for node in tree[1:]:
        fp_tag = sexpr.tag(node)
        if fp_tag not in counters:
            continue
        path = f"kicad_pcb/{fp_tag}[{counters[fp_tag]}]"
        counters[fp_tag] += 1
        footprints.append(_extract_footprint(node, path, ids_by_name, source, warnings))

    layers_node = sexpr.first(tree, "layers")
    layers = _extract_layers(layers_node) if layers_node is not None else []

    logger.debug("%s: %d footprints, %d nets, %d layers", source, len(footprints), len(nets), len(layers))
    return Board(
        source=source,
        footprints=tuple(footprints),
        nets=tuple(nets),
        layers=tuple(layers),
        warnings=tuple(warnings),
    )


def _extract_nets(tree: list) -> list[NetDeclaration]:
    result = []
    for _, node in sexpr.iter_children(tree, "net"):
        net_id, name = sexpr.arg(node, 1), sexpr.arg(node, 2)
        if not isinstance(net_id, int) or isinstance(net_id, bool):
            continue
        result.append(NetDeclaration(id=net_id, name="" if name is None else sexpr.text(name)))
    return result


def _extract_layers(layers_node: list) -> list[LayerDeclaration]:
    result = []
    for entry in layers_node[1:]:
        if not isinstance(entry, list) or len(entry) < 3 or not isinstance(entry[0], int):
            continue
        user_name = sexpr.text(entry[3]) if len(entry) > 3 and not isinstance(entry[3], list) else None
        result.append(LayerDeclaration(
            ordinal=entry[0],
            name=sexpr.text(entry[1]),
            kind=sexpr.text(entry[2]),
            user_name=user_name,
        ))
    return result


def _footprint_text(node: list, kind: str) -> str | None:
    """Reference/value of a footprint, from a property or a legacy fp_text node."""
    for key, val in sexpr.properties(node):
        if key.lower() == kind:
            return val
    for _, fp_text in sexpr.iter_children(node, "fp_text"):
        if sexpr.text(sexpr.arg(fp_text, 1)) == kind and sexpr.arg(fp_text, 2) is not None:
            return sexpr.text(sexpr.arg(fp_text, 2))
    return None


def _extract_footprint(
    node: list,
    path: str,
    ids_by_name: dict[str, int],
    source: str,
    warnings: list[Diagnostic],
) -> Footprint:
    name = sexpr.arg(node)
    if name is None or isinstance(name, list) or not sexpr.text(name):
        raise MalformedDocument(source, f"{path}/name", "footprint has no library name")
    name = sexpr.text(name)

    attr = sexpr.first(node, "attr")
    attributes = frozenset(sexpr.text(a) for a in attr[1:] if not isinstance(a, list)) if attr else frozenset()

    reference = _footprint_text(node, "reference")
    pads = []
    for _, pad in sexpr.iter_children(node, "pad"):
        number = sexpr.arg(pad)
        if number is None or isinstance(number, list):
            continue
        pads.append(Pad(
            number=sexpr.text(number),
            net_id=_pad_net(pad, ids_by_name, reference or name, source, warnings),
        ))

    return Footprint(
        name=name,
        uuid=sexpr.value(node, "uuid") or sexpr.value(node, "tstamp"),
        reference=reference,
        value=_footprint_text(node, "value"),
        path=sexpr.value(node, "path"),
        at=sexpr.numbers(sexpr.first(node, "at")),
        attributes=attributes,
        pads=tuple(pads),
        properties=tuple(sexpr.properties(node)),
    )


def _pad_net(
    pad: list,
    ids_by_name: dict[str, int],
    owner: str,
    source: str,
    warnings: list[Diagnostic],
) -> int | None:
    net = sexpr.first(pad, "net")
    if net is None:
        return None
    first_arg = sexpr.arg(net, 1)
    if isinstance(first_arg, int) and not isinstance(first_arg, bool):
        return first_arg or None
    if first_arg is None or isinstance(first_arg, list):
        return None
    name = sexpr.text(first_arg)
    if not name:
        return None
    if name in ids_by_name:
        return ids_by_name[name] or None
    warning = Diagnostic(
        WarningKind.UNRESOLVED_NET,
        f"{source}: pad {sexpr.text(sexpr.arg(pad))} of {owner} names undeclared net {name!r}",
    )
    logger.warning("%s", warning)
    warnings.append(warning)
    return None
