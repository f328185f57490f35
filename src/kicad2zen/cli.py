import argparse
import logging
import sys
from pathlib import Path

from kicad2zen.emitter import OutputMode
from kicad2zen.errors import Kicad2ZenError
from kicad2zen.formatter import format_components, format_summary
from kicad2zen.inference import infer
from kicad2zen.project import convert_many, load_project


EXAMPLES = """\
Examples:
  kicad2zen convert ./my-board                     write my-board-imported.zen
  kicad2zen convert ./my-board -o board.zen        choose the output file
  kicad2zen convert ./my-board --stdout            print instead of writing
  kicad2zen convert ./my-board --mode faithful     raw Component() for every part
  kicad2zen convert ./a ./b ./c -j 4               convert several projects at once
  kicad2zen inspect ./my-board                     what would be converted
"""


def main():
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    parser = argparse.ArgumentParser(
        prog="kicad2zen",
        description="Convert KiCad projects (.kicad_sch, .kicad_pcb, .kicad_pro) to Zener (.zen).",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command")

    convert_parser = subparsers.add_parser(
        "convert",
        parents=[common],
        help="Convert project directories to .zen files",
        description="Convert each KiCad project directory into one Zener program. "
        "Output defaults to <project>-imported.zen in the current directory.",
    )
    convert_parser.add_argument("projects", nargs="+", metavar="PROJECT_DIR", help="KiCad project directory")
    convert_parser.add_argument("-o", "--output", metavar="FILE", help="Output file (single project only)")
    convert_parser.add_argument("--stdout", action="store_true", help="Print the program instead of writing a file")
    convert_parser.add_argument(
        "--mode",
        choices=[m.value for m in OutputMode],
        default=OutputMode.IDIOMATIC.value,
        help="idiomatic maps parts to stdlib generics; faithful keeps raw KiCad data (default: idiomatic)",
    )
    convert_parser.add_argument("-j", "--jobs", type=int, default=None, metavar="N", help="Parallel conversions")

    inspect_parser = subparsers.add_parser(
        "inspect",
        parents=[common],
        help="Summarize what a project would convert to",
        description="Show components, nets and warnings of a project without writing anything.",
    )
    inspect_parser.add_argument("project", metavar="PROJECT_DIR", help="KiCad project directory")
    inspect_parser.add_argument(
        "--components", action="store_true", help="One line per component instead of the summary"
    )

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    if args.command == "inspect":
        try:
            project = load_project(args.project)
        except (Kicad2ZenError, OSError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(1)
        inference = infer(project)
        if args.components:
            print(format_components(project, inference), end="")
        else:
            print(format_summary(project, inference), end="")
        return

    if args.output and len(args.projects) > 1:
        parser.error("--output can only be used with a single project")
    if args.jobs is not None and args.jobs < 1:
        parser.error("--jobs must be at least 1")

    failed = False
    for result in convert_many(args.projects, OutputMode(args.mode), max_workers=args.jobs):
        if not result.ok:
            print(f"Error: {result.path}: {result.error}", file=sys.stderr)
            failed = True
            continue
        if args.stdout:
            print(result.text, end="")
            continue
        output = Path(args.output) if args.output else Path(f"{result.name}-imported.zen")
        try:
            output.write_text(result.text, encoding="utf-8")
        except OSError as exc:
            print(f"Error: failed to write {output}: {exc}", file=sys.stderr)
            failed = True
            continue
        print(f"Wrote {output}", file=sys.stderr)

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
