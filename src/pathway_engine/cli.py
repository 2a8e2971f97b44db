"""
Command line interface for the pathway engine.

Usage:
    python -m pathway_engine.cli names                      # every known module path
    python -m pathway_engine.cli list [--prefix medications] # top-level modules
    python -m pathway_engine.cli show <path>                 # remarks and states
    python -m pathway_engine.cli run <path> [<path> ...] [--population 100] [--end 31536000000]
    python -m pathway_engine.cli run --all --json

Global options (before the subcommand):
    --modules-dir DIR   where module files live (or PATHWAY_MODULES_DIR)
    --log-level LEVEL   logging level (or PATHWAY_LOG_LEVEL)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, List, Optional

from .config import load_config
from .kernel.engine import SimulationEngine
from .kernel.errors import ModuleLoadError


def cmd_names(engine: SimulationEngine, args: argparse.Namespace, out: Callable[[str], None]) -> int:
    for name in sorted(engine.module_names()):
        out(name)
    return 0


def cmd_list(engine: SimulationEngine, args: argparse.Namespace, out: Callable[[str], None]) -> int:
    prefix = args.prefix

    def path_filter(path: str) -> bool:
        return prefix is None or path.startswith(prefix)

    try:
        modules = engine.list_modules(path_filter)
    except ModuleLoadError as exc:
        out(f"✗ {exc}")
        return 1
    for module in modules:
        out(module.name)
    return 0


def cmd_show(engine: SimulationEngine, args: argparse.Namespace, out: Callable[[str], None]) -> int:
    try:
        module = engine.get_module(args.path)
    except ModuleLoadError as exc:
        out(f"✗ {exc}")
        return 1
    if module is None:
        out(f"✗ Module not found: {args.path}")
        return 1

    out(f"## {module.name}")
    out(f"submodule: {'yes' if module.submodule else 'no'}")
    if module.remarks:
        out("")
        for remark in module.remarks:
            out(f"  {remark}")
    out("")
    out("States:")
    for name in module.state_names():
        out(f"  - {name} ({type(module.get_state(name)).__name__})")
    return 0


def cmd_run(engine: SimulationEngine, args: argparse.Namespace, out: Callable[[str], None]) -> int:
    if not args.all and not args.paths:
        out("✗ Give at least one module path, or --all")
        return 1

    prefix = args.prefix
    result = engine.simulate(
        paths=None if args.all else args.paths,
        path_filter=(lambda path: path.startswith(prefix)) if prefix else None,
        population=args.population,
        start=args.start,
        end=args.end,
        step=args.step,
        workers=args.workers,
    )

    if args.json:
        out(json.dumps(result.to_dict(), indent=2))
    elif result.data:
        population = len(result.data["reports"])
        for name, count in result.data["completed"].items():
            out(f"{name}: {count}/{population} completed")
        out(f"deaths: {result.data['deaths']}")

    if not result.ok:
        if not args.json:
            out(f"✗ {result.error_message}")
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pathway-engine",
        description="Simulate clinical pathway modules over a population",
    )
    parser.add_argument("--modules-dir", help="Directory holding module files")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("names", help="Print every known module path")

    list_parser = subparsers.add_parser("list", help="Print top-level modules")
    list_parser.add_argument("--prefix", help="Only file modules whose path starts with this")

    show_parser = subparsers.add_parser("show", help="Describe one module")
    show_parser.add_argument("path", help="Module path, e.g. medications/otc_antihistamine")

    run_parser = subparsers.add_parser("run", help="Simulate a population")
    run_parser.add_argument("paths", nargs="*", help="Module paths to run")
    run_parser.add_argument("--all", action="store_true", help="Run every top-level module")
    run_parser.add_argument("--prefix", help="With --all, only file modules whose path starts with this")
    run_parser.add_argument("--population", type=int, default=1, help="Number of entities")
    run_parser.add_argument("--start", type=int, default=0, help="Start time in ms")
    run_parser.add_argument("--end", type=int, default=0, help="End time in ms")
    run_parser.add_argument("--step", type=int, default=None, help="Tick length in ms")
    run_parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    run_parser.add_argument("--json", action="store_true", help="Print the full result as JSON")

    return parser


COMMANDS = {
    "names": cmd_names,
    "list": cmd_list,
    "show": cmd_show,
    "run": cmd_run,
}


def main(argv: Optional[List[str]] = None, output_sink: Callable[[str], None] = print) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(modules_dir=args.modules_dir, log_level=args.log_level)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    engine = SimulationEngine(config)
    return COMMANDS[args.command](engine, args, output_sink)


if __name__ == "__main__":
    sys.exit(main())
