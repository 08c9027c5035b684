"""CLI entrypoint for keep-list analysis."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from linkerkeep.analysis import analyze, discover_entries, write_keep_list
from linkerkeep.config import AnalysisSettings, ApiSettings, InstantiationApi
from linkerkeep.program.facts import load_program
from linkerkeep.services.errors import (
    AnalysisFailedError,
    ConfigError,
    ProblemError,
    log_problem,
    problem,
)

LOG = logging.getLogger("linkerkeep.cli")

CommandHandler = Callable[[argparse.Namespace], int]


# ---------------------------------------------------------------------------
# Argument parsing / logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure logging based on -v/--verbose count.

    0 -> WARNING, 1 -> INFO, 2+ -> DEBUG.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _add_program_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "facts",
        type=Path,
        help="Program facts document (JSON, or YAML with a .yaml/.yml suffix)",
    )
    p.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Settings file (TOML or YAML); CLI flags take precedence",
    )
    p.add_argument(
        "--api",
        action="append",
        default=None,
        metavar="TYPE.METHOD",
        help="Dynamic-instantiation API to scan for (repeatable; default System.Activator.CreateInstance)",
    )


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linkerkeep",
        description="Generate linker keep-lists for dynamically instantiated types",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_analyze = subparsers.add_parser("analyze", help="Resolve call sites and emit the keep-list")
    _add_program_args(p_analyze)
    p_analyze.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the linker descriptor here instead of stdout",
    )
    p_analyze.add_argument("--max-depth", type=int, default=None, help="Inter-procedural depth bound")
    p_analyze.add_argument("--workers", type=int, default=None, help="Resolver threads")
    p_analyze.add_argument(
        "--collect-failures",
        action="store_true",
        default=None,
        help="Report every unresolvable call site instead of stopping at the first",
    )
    p_analyze.set_defaults(func=_cmd_analyze)

    p_sites = subparsers.add_parser("call-sites", help="List dynamic-instantiation call sites")
    _add_program_args(p_sites)
    p_sites.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    p_sites.set_defaults(func=_cmd_call_sites)

    return parser


def make_parser() -> argparse.ArgumentParser:
    """
    Public helper to construct the CLI parser (for tests/tools).

    Returns
    -------
    argparse.ArgumentParser
        Configured parser with all subcommands registered.
    """
    return _make_parser()


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def _settings_from_args(args: argparse.Namespace) -> AnalysisSettings:
    settings = AnalysisSettings.from_file(args.config) if args.config else AnalysisSettings()
    apis = None
    if args.api:
        try:
            parsed = [InstantiationApi.parse(value) for value in args.api]
        except ValueError as exc:
            raise ConfigError.from_message(str(exc)) from exc
        apis = [
            ApiSettings(declaring_type=api.declaring_type, method_name=api.method_name).model_dump()
            for api in parsed
        ]
    return settings.with_overrides(
        apis=apis,
        max_depth=getattr(args, "max_depth", None),
        workers=getattr(args, "workers", None),
        collect_failures=getattr(args, "collect_failures", None),
    )


def _cmd_analyze(args: argparse.Namespace) -> int:
    cfg = _settings_from_args(args).to_config()
    LOG.info(
        "cli.analyze facts=%s apis=%s max_depth=%d workers=%d collect_failures=%s",
        args.facts,
        ",".join(map(str, cfg.apis)),
        cfg.limits.max_depth,
        cfg.workers,
        cfg.collect_failures,
    )
    program = load_program(args.facts)
    try:
        result = analyze(program, cfg)
    except AnalysisFailedError as exc:
        for failure in exc.failures:
            log_problem(LOG, failure.problem_detail)
        raise
    if args.output is None:
        sys.stdout.write(result.render())
    else:
        write_keep_list(result, args.output)
    return 0


def _cmd_call_sites(args: argparse.Namespace) -> int:
    cfg = _settings_from_args(args).to_config()
    program = load_program(args.facts)
    entries = discover_entries(program, cfg)
    if args.json:
        payload = [
            {
                "id": entry.call_site.id,
                "location": str(entry.call_site.location),
                "api": str(entry.api),
                "method_id": entry.call_site.target.method_id,
                "shape": "generic" if entry.call_site.is_generic else "value",
            }
            for entry in entries
        ]
        print(json.dumps(payload, indent=2))
        return 0
    for entry in entries:
        shape = "generic" if entry.call_site.is_generic else "value"
        print(f"{entry.call_site.location}\t{entry.api}\t{shape}\t{entry.call_site.id}")
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    """
    CLI entrypoint for linkerkeep commands.

    Parameters
    ----------
    argv:
        Optional argument list (defaults to sys.argv).

    Returns
    -------
    int
        Exit code (0 on success).
    """
    parser = _make_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    _setup_logging(args.verbose)

    try:
        func: CommandHandler = args.func
        return int(func(args))
    except ProblemError as exc:
        log_problem(LOG, exc.problem_detail)
        return 1
    except Exception as exc:  # noqa: BLE001 pragma: no cover - error path
        pd = problem(
            code="cli.failure",
            title="CLI command failed",
            detail=str(exc),
            extras={"command": args.command},
        )
        log_problem(LOG, pd)
        return 1


if __name__ == "__main__":
    sys.exit(main())
