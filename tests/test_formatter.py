import os

from kicad2zen.formatter import format_components, format_summary
from kicad2zen.inference import infer
from kicad2zen.models import Board, NetDeclaration
from kicad2zen.project import load_project
from kicad2zen.reconcile import reconcile

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")
DEMO = os.path.join(FIXTURES, "demo")


def test_format_summary():
    project = load_project(DEMO)
    output = format_summary(project, infer(project))
    lines = output.splitlines()
    assert lines[0] == "Project: demo (schematic + board)"
    assert lines[1] == "Components: 5 (3 generic, 2 raw)"
    assert lines[2] == "Nets: 3"
    assert "References: R1, C1, U1, D1, H1" in lines
    assert "Power nets: VCC" in lines
    assert "Ground nets: GND" in lines
    assert "Warnings: 2" in lines


def test_format_summary_empty_board():
    project = reconcile("bare", None, Board(source="b", footprints=(), nets=(NetDeclaration(1, "GND"),)))
    output = format_summary(project, infer(project))
    assert "Project: bare (board)" in output
    assert "References: (none)" in output
    assert "no-components" in output
    assert output.endswith("\n")


def test_format_components():
    project = load_project(DEMO)
    lines = format_components(project, infer(project)).splitlines()
    assert lines[0].split() == ["Ref", "Module", "Package", "Value", "Origin"]
    assert lines[1].split() == ["R1", "Resistor", "0402", "10kohm", "both"]
    assert lines[3].split() == ["U1", "Component", "SOT-23", "XYZ123", "both"]
    assert lines[5].split() == ["H1", "Component", "-", "MountingHole", "board"]


def test_format_components_empty():
    project = reconcile("bare", None, Board(source="b", footprints=(), nets=()))
    assert format_components(project, infer(project)) == "(no components)\n"
