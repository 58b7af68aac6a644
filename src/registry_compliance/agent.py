"""
Process entry point for scheduled compliance runs.

Status lines go to stdout for the management agent to capture; log records
go to stderr (and optionally a log file). The exit code is the run verdict:
0 when nothing is left to fix, 1 otherwise.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import RunConfig, load_config
from .identities import EvaluationContext, static_provider
from .models import ComplianceReport, EvaluationResult
from .policy import load_policy
from .registry import WindowsRegistry
from .runner import ComplianceRunner

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
LOG_DATEFMT = '%Y-%m-%dT%H:%M:%S%z'


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None):
    """Configure root logging; adds a file handler when log_file is set."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, level),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )


def print_result(result: EvaluationResult):
    print(result.message, flush=True)


def write_report(report: ComplianceReport, path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report.to_dict(), f, indent=2)
    logger.info(f"Wrote compliance report to {path}")


def run(config: RunConfig, registry=None) -> int:
    """
    Execute one compliance run.

    Args:
        config: Run configuration
        registry: Registry adapter (defaults to WindowsRegistry)

    Returns:
        Process exit code
    """
    try:
        policy = load_policy(config.policy_path)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load policy: {e}")
        print("[REGISTRYMGMT] FAILED", flush=True)
        return 1

    if registry is None:
        try:
            registry = WindowsRegistry()
        except RuntimeError as e:
            logger.error(str(e))
            print("[REGISTRYMGMT] FAILED", flush=True)
            return 1

    context = EvaluationContext.create(
        remediate=config.remediate,
        provider=static_provider(config.user_identities),
    )

    runner = ComplianceRunner(registry, policy, context, on_result=print_result)
    report = runner.run()

    for note in report.notes:
        print(note, flush=True)
    print(report.summary_line(), flush=True)
    print(report.status_line(), flush=True)

    if config.report_path is not None:
        try:
            write_report(report, config.report_path)
        except OSError as e:
            logger.error(f"Failed to write report to {config.report_path}: {e}")

    return report.exit_code()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Detect and remediate Windows registry configuration drift"
    )
    parser.add_argument("--config", type=Path,
                        help="Path to YAML run configuration (env vars still apply)")
    parser.add_argument("--policy", type=Path,
                        help="Path to YAML policy document")
    parser.add_argument("--remediate", action="store_true",
                        help="Correct drift instead of only reporting it")
    parser.add_argument("--user-identity", action="append", dest="user_identities",
                        metavar="SID", help="User identity to evaluate (repeatable)")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level")
    parser.add_argument("--log-file", type=Path, help="Also log to this file")
    parser.add_argument("--report", type=Path, dest="report_path",
                        help="Write a JSON report to this path")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the registry-compliance command."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        if args.policy:
            config.policy_path = args.policy
        if args.remediate:
            config.remediate = True
        if args.user_identities:
            config.user_identities = args.user_identities
        if args.log_level:
            config.log_level = args.log_level
        if args.log_file:
            config.log_file = args.log_file
        if args.report_path:
            config.report_path = args.report_path
    except (OSError, ValueError) as e:
        print(f"ERROR: Invalid config: {e}", file=sys.stderr)
        print("[REGISTRYMGMT] FAILED", flush=True)
        return 1

    setup_logging(config.log_level, config.log_file)
    logger.info(f"Registry compliance agent v{__version__}")

    return run(config)


if __name__ == "__main__":
    sys.exit(main())
