from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG, ConfigError, load_config
from .host import LiveHost
from .report import Report, manual_steps
from .runner import ProvisioningRunner
from .state import RunJournal
from .steps import RegistryError, Step, StepRegistry, build_steps
from .types import StepOutcome, StepResult


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"


_last_progress_len = 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Provision an Ubuntu 24 host for a Node.js application behind Nginx"
    )
    parser.add_argument(
        "config",
        nargs="?",
        default=DEFAULT_CONFIG,
        type=Path,
        help=f"Path to the provisioning TOML file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--state-file",
        type=Path,
        help="Where to record the last run report (default from config or /var/lib/vps-provisioner)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Evaluate checks without changing the host")
    parser.add_argument("--list-steps", action="store_true", help="Print the steps in run order and exit")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        settings = load_config(args.config)
        registry = build_steps(settings.provisioning)
        ordered = registry.ordered()
    except (ConfigError, RegistryError) as exc:
        print(colorize(f"Configuration invalid: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    if args.list_steps:
        for index, step in enumerate(ordered, start=1):
            print(format_step(index, step))
        return 0

    if not args.dry_run and os.geteuid() != 0:
        print(colorize("Please run as root (use sudo), or pass --dry-run", Ansi.RED), file=sys.stderr)
        return 1

    config = settings.provisioning
    logging.getLogger(__name__).info("Provisioning %s for %s", config.app_dir, config.app_name)
    runner = ProvisioningRunner(
        LiveHost(),
        dry_run=args.dry_run,
        manual_steps=manual_steps(config),
        progress_callback=print_progress,
    )
    report = runner.run(StepRegistry(ordered))
    _clear_progress()

    effective_level = logging.getLogger().getEffectiveLevel()
    for result in report.results:
        if should_display_result(result, effective_level):
            print(format_result(result))

    if not args.dry_run:
        journal = RunJournal(args.state_file or settings.state_file)
        try:
            journal.record(report, config_source=settings.source)
        except OSError as exc:
            logging.getLogger(__name__).warning("Could not write run journal %s: %s", journal.path, exc)

    print(render_report(report))
    return 0 if report.succeeded else 1


def format_step(index: int, step: Step) -> str:
    deps = f" (after {', '.join(step.depends_on)})" if step.depends_on else ""
    return f"{index:>2}. {step.name} - {step.description}{deps}"


def format_result(result: StepResult) -> str:
    colors = {
        StepOutcome.APPLIED: Ansi.GREEN,
        StepOutcome.SKIPPED: Ansi.BLUE,
        StepOutcome.PENDING: Ansi.YELLOW,
        StepOutcome.FAILED: Ansi.RED,
    }
    detail = result.error if result.failed and result.error else result.details
    line = f"{result.step} {result.outcome.value} - {detail}"
    return colorize(line, colors[result.outcome])


def should_display_result(result: StepResult, log_level: int) -> bool:
    if result.outcome is not StepOutcome.SKIPPED:
        return True
    return log_level <= logging.DEBUG


def render_report(report: Report) -> str:
    lines = [colorize(report.summary(), Ansi.GREEN if report.succeeded else Ansi.RED)]
    if report.failure is not None:
        lines.append(colorize(report.failure_message() or "", Ansi.RED))
    elif not report.dry_run:
        lines.append("")
        lines.append(colorize("NEXT STEPS:", Ansi.YELLOW))
        lines += [f"{number}. {item}" for number, item in enumerate(report.manual_steps, start=1)]
    return "\n".join(lines)


def print_progress(step: Step) -> None:
    global _last_progress_len
    line = f"{step.name} pending..."
    _clear_progress()
    _last_progress_len = len(line)
    print(colorize(line, Ansi.YELLOW), end="\r", flush=True)


def _clear_progress() -> None:
    global _last_progress_len
    if _last_progress_len:
        print(" " * _last_progress_len, end="\r", flush=True)
        _last_progress_len = 0


if __name__ == "__main__":
    raise SystemExit(main())
