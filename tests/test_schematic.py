import os

import pytest

from kicad2zen import sexpr
from kicad2zen.errors import MalformedDocument, WarningKind
from kicad2zen.schematic import build_schematic

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")
DEMO_SCH = os.path.join(FIXTURES, "demo", "demo.kicad_sch")

LIB = """
(lib_symbols
  (symbol "Device:R"
    (symbol "R_1_1"
      (pin passive line (at 0 3.81 270) (length 1.27) (name "~") (number "1"))
      (pin passive line (at 0 -3.81 90) (length 1.27) (name "~") (number "2"))))
  (symbol "power:GND" (power)
    (symbol "GND_1_1"
      (pin power_in line (at 0 0 270) (length 0) hide (name "GND") (number "1")))))
"""


def _sch(body: str, lib: str = LIB):
    return build_schematic(sexpr.loads(f"(kicad_sch (version 20231120) {lib} {body})"), "test.kicad_sch")


def _resistor(uuid="u-r1", reference="R1", value="10k", extra=""):
    return f"""
(symbol (lib_id "Device:R") (at 0 0 0) (unit 1) {extra}
  (uuid "{uuid}")
  (property "Reference" "{reference}" (at 0 0 0))
  (property "Value" "{value}" (at 0 0 0))
  (property "Footprint" "Resistor_SMD:R_0402_1005Metric" (at 0 0 0))
  (pin "1" (uuid "p1"))
  (pin "2" (uuid "p2")))
"""


@pytest.fixture
def demo_schematic():
    return build_schematic(sexpr.read_tree(DEMO_SCH), "demo.kicad_sch")


def test_instances_in_file_order(demo_schematic):
    refs = [s.reference for s in demo_schematic.symbols]
    assert refs == ["R1", "C1", "U1", "D1", "#PWR01", "#PWR02"]


def test_library_symbols(demo_schematic):
    ids = [lib.id for lib in demo_schematic.lib_symbols]
    assert ids == ["Device:C", "Device:LED", "Device:R", "Vendor:XYZ123", "power:GND", "power:VCC"]
    regulator = next(lib for lib in demo_schematic.lib_symbols if lib.id == "Vendor:XYZ123")
    assert [(p.number, p.name, p.electrical_type) for p in regulator.pins] == [
        ("1", "VIN", "power_in"),
        ("2", "GND", "power_in"),
        ("3", "OUT", "output"),
    ]


def test_tilde_pin_name_is_empty(demo_schematic):
    resistor = next(lib for lib in demo_schematic.lib_symbols if lib.id == "Device:R")
    assert resistor.pin("1").name == ""


def test_symbol_fields(demo_schematic):
    r1 = demo_schematic.symbols[0]
    assert r1.lib_id == "Device:R"
    assert r1.value == "10k"
    assert r1.footprint == "Resistor_SMD:R_0402_1005Metric"
    assert r1.uuid == "3f1a7c52-1111-4c52-9d0e-000000000001"
    assert set(r1.pin_uses) == {"1", "2"}
    assert not r1.dnp
    assert not r1.exclude_from_bom


def test_dnp_flag(demo_schematic):
    d1 = next(s for s in demo_schematic.symbols if s.reference == "D1")
    assert d1.dnp


def test_power_symbols_marked(demo_schematic):
    power = [s.value for s in demo_schematic.symbols if s.is_power]
    assert power == ["VCC", "GND"]


def test_pin_hints_from_library(demo_schematic):
    u1 = next(s for s in demo_schematic.symbols if s.reference == "U1")
    assert u1.pin_uses["1"].name == "VIN"
    assert u1.pin_uses["1"].is_power
    assert not u1.pin_uses["3"].is_power


def test_properties_kept_in_order(demo_schematic):
    keys = [key for key, _ in demo_schematic.symbols[0].properties]
    assert keys == ["Reference", "Value", "Footprint", "Datasheet"]


def test_in_bom_no_excludes_from_bom():
    sch = _sch(_resistor(extra="(in_bom no) (on_board no)"))
    assert sch.symbols[0].exclude_from_bom
    assert sch.symbols[0].exclude_from_board


def test_flags_default_when_absent():
    symbol = _sch(_resistor()).symbols[0]
    assert not symbol.dnp
    assert not symbol.exclude_from_bom
    assert not symbol.exclude_from_board


def test_bare_dnp_token():
    assert _sch(_resistor(extra="(dnp)")).symbols[0].dnp


def test_missing_uuid_names_node_path():
    body = _resistor(uuid="x").replace('(uuid "x")', "")
    with pytest.raises(MalformedDocument) as exc_info:
        _sch(_resistor(uuid="ok") + body)
    assert exc_info.value.path == "kicad_sch/symbol[1]/uuid"
    assert exc_info.value.source == "test.kicad_sch"


def test_missing_lib_id():
    body = _resistor().replace('(lib_id "Device:R")', "")
    with pytest.raises(MalformedDocument, match="lib_id"):
        _sch(body)


def test_missing_value_is_not_defaulted():
    body = _resistor().replace('(property "Value" "10k" (at 0 0 0))', "")
    with pytest.raises(MalformedDocument) as exc_info:
        _sch(body)
    assert exc_info.value.path == 'kicad_sch/symbol[0]/property["Value"]'


def test_wrong_root():
    with pytest.raises(MalformedDocument):
        build_schematic(sexpr.loads("(kicad_pcb (version 1))"))


def test_hierarchical_sheet_warns():
    sheet = '(sheet (at 0 0) (size 10 10) (uuid "s1") (property "Sheetname" "Power") (property "Sheetfile" "power.kicad_sch"))'
    sch = _sch(_resistor() + sheet)
    assert len(sch.symbols) == 1
    assert [w.kind for w in sch.warnings] == [WarningKind.HIERARCHICAL_SHEET]
    assert "Power" in sch.warnings[0].message


def test_unknown_pin_gets_unspecified_hint():
    body = _resistor().replace('(pin "2" (uuid "p2"))', '(pin "2" (uuid "p2")) (pin "7" (uuid "p7"))')
    symbol = _sch(body).symbols[0]
    assert symbol.pin_uses["7"].electrical_type == "unspecified"


def test_multi_unit_instances_kept_separately():
    sch = _sch(_resistor(uuid="a") + _resistor(uuid="b").replace("(unit 1)", "(unit 2)"))
    assert [(s.reference, s.unit) for s in sch.symbols] == [("R1", 1), ("R1", 2)]


def test_power_prefix_marks_power_without_library_flag():
    body = """
(symbol (lib_id "power:VCC") (at 0 0 0) (unit 1)
  (uuid "u-pwr")
  (property "Reference" "PWR1" (at 0 0 0))
  (property "Value" "VCC" (at 0 0 0)))
"""
    sch = _sch(_resistor() + body)
    assert [(s.reference, s.is_power) for s in sch.symbols] == [("R1", False), ("PWR1", True)]
