import os
import shutil

import pytest

from kicad2zen.emitter import OutputMode
from kicad2zen.errors import InputMissing, MalformedDocument, WarningKind
from kicad2zen.models import Origin
from kicad2zen.project import convert_many, convert_project, find_project_files, load_project

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")
DEMO = os.path.join(FIXTURES, "demo")


@pytest.fixture
def demo_copy(tmp_path):
    target = tmp_path / "demo"
    shutil.copytree(DEMO, target)
    return target


def test_find_project_files():
    files = find_project_files(DEMO)
    assert files.name == "demo"
    assert files.schematic.name == "demo.kicad_sch"
    assert files.board.name == "demo.kicad_pcb"
    assert files.settings.name == "demo.kicad_pro"


def test_project_name_follows_settings_file(tmp_path):
    (tmp_path / "blinky.kicad_pro").write_text("{}")
    (tmp_path / "power.kicad_sch").write_text("(kicad_sch)")
    (tmp_path / "blinky.kicad_sch").write_text("(kicad_sch)")
    files = find_project_files(tmp_path)
    assert files.name == "blinky"
    assert files.schematic.name == "blinky.kicad_sch"
    assert files.board is None


def test_load_demo_project():
    project = load_project(DEMO)
    assert project.name == "demo"
    assert [c.reference for c in project.components] == ["R1", "C1", "U1", "D1", "H1"]
    assert [c.origin for c in project.components][-1] is Origin.BOARD
    assert [n.label for n in project.nets] == ["VCC", "GND", "OUT"]
    assert project.nets[0].net_class == "Power"
    assert project.copper_layer_count == 2


def test_convert_demo_idiomatic():
    text = convert_project(DEMO)
    assert "# Mode: idiomatic (uses stdlib generics)" in text
    assert 'VCC = Power("VCC")  # net class Power' in text
    assert 'GND = Ground("GND")' in text
    assert "Resistor(\n" in text
    assert '    value = "10kohm",' in text
    assert '    value = "100nF",' in text
    assert "# Unmapped symbol: Vendor:XYZ123" in text
    assert "# Unmapped footprint: MountingHole:MountingHole_3.2mm_M3" in text
    assert "Led(\n" in text
    assert "    K = GND,\n    A = OUT,\n" in text
    assert "    dnp = True," in text
    assert "    layers = 2," in text


def test_convert_demo_faithful():
    text = convert_project(DEMO, OutputMode.FAITHFUL)
    assert "Module(" not in text
    assert text.count("Component(") == 5


def test_schematic_only_project(demo_copy):
    (demo_copy / "demo.kicad_pcb").unlink()
    project = load_project(demo_copy)
    assert [n.label for n in project.nets] == ["VCC", "GND"]
    assert WarningKind.DEGRADED_CONNECTIVITY in [w.kind for w in project.warnings]
    assert "Board(" not in convert_project(demo_copy)


def test_missing_settings_warns(demo_copy):
    (demo_copy / "demo.kicad_pro").unlink()
    project = load_project(demo_copy)
    assert project.settings.is_empty
    assert WarningKind.SETTINGS_UNAVAILABLE in [w.kind for w in project.warnings]


def test_unreadable_settings_warns(demo_copy):
    (demo_copy / "demo.kicad_pro").write_text("{not json")
    project = load_project(demo_copy)
    assert any("unreadable" in w.message for w in project.warnings)


def test_empty_directory(tmp_path):
    with pytest.raises(InputMissing):
        load_project(tmp_path)


def test_not_a_directory(tmp_path):
    with pytest.raises(InputMissing):
        load_project(tmp_path / "missing")


def test_syntax_error_names_file(demo_copy):
    (demo_copy / "demo.kicad_sch").write_text("(kicad_sch (symbol")
    with pytest.raises(MalformedDocument, match="demo.kicad_sch"):
        load_project(demo_copy)


def test_convert_many_isolates_failures(demo_copy, tmp_path):
    broken = tmp_path / "broken"
    broken.mkdir()
    (broken / "broken.kicad_pcb").write_text('(kicad_pcb (footprint (layer "F.Cu")))')
    results = convert_many([demo_copy, broken, tmp_path / "nowhere"], max_workers=2)
    assert [r.ok for r in results] == [True, False, False]
    assert results[0].name == "demo"
    assert results[0].text == convert_project(DEMO)
    assert isinstance(results[1].error, MalformedDocument)
    assert results[1].text is None
    assert isinstance(results[2].error, InputMissing)


def test_convert_many_empty():
    assert convert_many([]) == []
