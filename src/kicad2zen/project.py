from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from kicad2zen import sexpr
from kicad2zen.board import build_board
from kicad2zen.emitter import OutputMode, emit_zen
from kicad2zen.errors import InputMissing, Kicad2ZenError
from kicad2zen.inference import DEFAULT_TABLES, InferenceTables, infer
from kicad2zen.models import Project, Settings
from kicad2zen.reconcile import reconcile
from kicad2zen.schematic import build_schematic
from kicad2zen.settings import build_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectFiles:
    name: str
    schematic: Path | None = None
    board: Path | None = None
    settings: Path | None = None


@dataclass(frozen=True)
class ConversionResult:
    path: Path
    name: str
    text: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _pick(candidates: list[Path], name: str) -> Path | None:
    for path in candidates:
        if path.stem == name:
            return path
    return candidates[0] if candidates else None


def find_project_files(directory: str | Path) -> ProjectFiles:
    """Locate the schematic, board and settings files of a project directory.

    When a directory holds several files of one kind (hierarchical sheets,
    backups) the one named after the project wins.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise InputMissing(f"{directory}: not a directory")
    name = directory.resolve().name or "project"

    def files(suffix: str) -> list[Path]:
        return sorted(p for p in directory.iterdir() if p.suffix == suffix and p.is_file())

    settings = files(".kicad_pro")
    if settings:
        name = _pick(settings, name).stem
    return ProjectFiles(
        name=name,
        schematic=_pick(files(".kicad_sch"), name),
        board=_pick(files(".kicad_pcb"), name),
        settings=_pick(settings, name),
    )


def _load_settings(path: Path | None, name: str) -> Settings:
    if path is None:
        return build_settings(None, f"{name}.kicad_pro", problem="no .kicad_pro file; no constraints known")
    try:
        value = sexpr.read_json(path)
    except (OSError, ValueError) as exc:
        return build_settings(None, path.name, problem=f"unreadable: {exc}")
    return build_settings(value, path.name)


def load_project(directory: str | Path) -> Project:
    files = find_project_files(directory)
    if files.schematic is None and files.board is None:
        raise InputMissing(f"{directory}: no .kicad_sch or .kicad_pcb file found")

    schematic = board = None
    if files.schematic is not None:
        logger.info("Found schematic %s", files.schematic.name)
        schematic = build_schematic(sexpr.read_tree(files.schematic), files.schematic.name)
    if files.board is not None:
        logger.info("Found board %s", files.board.name)
        board = build_board(sexpr.read_tree(files.board), files.board.name)
    settings = _load_settings(files.settings, files.name)
    return reconcile(files.name, schematic, board, settings)


def convert_project(
    directory: str | Path,
    mode: OutputMode = OutputMode.IDIOMATIC,
    tables: InferenceTables = DEFAULT_TABLES,
) -> str:
    project = load_project(directory)
    return emit_zen(project, infer(project, tables), mode)


def _convert_one(path: Path, mode: OutputMode, tables: InferenceTables) -> ConversionResult:
    try:
        project = load_project(path)
        text = emit_zen(project, infer(project, tables), mode)
    except (Kicad2ZenError, OSError, UnicodeDecodeError) as exc:
        logger.debug("%s: conversion failed: %s", path, exc)
        return ConversionResult(path=path, name=path.resolve().name, error=exc)
    return ConversionResult(path=path, name=project.name, text=text)


def convert_many(
    paths: Iterable[str | Path],
    mode: OutputMode = OutputMode.IDIOMATIC,
    tables: InferenceTables = DEFAULT_TABLES,
    max_workers: int | None = None,
) -> list[ConversionResult]:
    """Convert independent projects concurrently, results in input order.

    A failing project yields a result carrying its error and does not affect
    the others.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        return []
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda p: _convert_one(p, mode, tables), paths))
