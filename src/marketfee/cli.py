"""marketfee CLI — command-line interface for the fee engine.

Usage:
    python -m marketfee.cli status
    python -m marketfee.cli structures
    python -m marketfee.cli calculate --value 1000 --tier basic --project-id P-001
    python -m marketfee.cli calculate --value 1000 --tier basic --project-id P-001 --apply
    python -m marketfee.cli check-invariants

The config directory is taken from --config, then MARKETFEE_CONFIG_DIR
(a .env file in the working directory is honoured), then config/.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from marketfee.models.fees import ProjectType, UserTier
from marketfee.persistence.event_log import EventLog
from marketfee.policy.resolver import PolicyResolver
from marketfee.service import FeeService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
CONFIG_ENV_VAR = "MARKETFEE_CONFIG_DIR"


def default_config_dir() -> Path:
    configured = os.environ.get(CONFIG_ENV_VAR)
    return Path(configured) if configured else DEFAULT_CONFIG


def _make_service(config_dir: Path, events_path: Optional[Path] = None) -> FeeService:
    """Create a FeeService, with a durable audit log when a path is given."""
    resolver = PolicyResolver.from_config_dir(config_dir)
    event_log = None
    if events_path is not None:
        events_path.parent.mkdir(parents=True, exist_ok=True)
        event_log = EventLog(storage_path=events_path)
    return FeeService(resolver, event_log=event_log)


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.events)
    print(json.dumps(service.status(), indent=2))
    return 0


def cmd_structures(args: argparse.Namespace) -> int:
    service = _make_service(args.config, args.events)
    print(json.dumps(service.fee_structures(), indent=2))
    return 0


def cmd_calculate(args: argparse.Namespace) -> int:
    """Calculate fees for a project, optionally applying them."""
    service = _make_service(args.config, args.events)
    result = service.calculate_fees(
        project_value=args.value,
        user_tier=UserTier(args.tier),
        project_type=ProjectType(args.project_type),
        currency=args.currency,
        user_id=args.user_id,
        project_id=args.project_id,
    )
    if not result.success:
        print(f"Failed: {'; '.join(result.errors)}", file=sys.stderr)
        return 1
    output = {"calculation": result.data}

    if args.apply:
        applied = service.apply_fees(args.project_id)
        if not applied.success:
            print(f"Failed: {'; '.join(applied.errors)}", file=sys.stderr)
            return 1
        output["transaction"] = applied.data

    print(json.dumps(output, indent=2, default=str))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run fee policy invariant checks."""
    tools_dir = Path(__file__).resolve().parents[2] / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marketfee",
        description="marketfee — freelance marketplace fee engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=default_config_dir(),
        help=f"Path to config directory (default: ${CONFIG_ENV_VAR} or config/)",
    )
    parser.add_argument(
        "--events",
        type=Path,
        default=None,
        help="Append audit events to this JSONL file (default: in-memory only)",
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show service status")
    sub.add_parser("structures", help="List configured fee structures")

    p_calc = sub.add_parser("calculate", help="Calculate fees for a project")
    p_calc.add_argument("--value", required=True, help="Project value (Decimal)")
    p_calc.add_argument(
        "--tier", required=True,
        choices=[t.value for t in UserTier],
        help="User tier",
    )
    p_calc.add_argument(
        "--project-type", default="fixed",
        choices=[p.value for p in ProjectType],
        help="Project type (default: fixed)",
    )
    p_calc.add_argument("--currency", default="USD", help="Currency code (default: USD)")
    p_calc.add_argument("--user-id", default="", help="User ID")
    p_calc.add_argument("--project-id", default="", help="Project ID")
    p_calc.add_argument(
        "--apply", action="store_true",
        help="Apply the calculated fees as a transaction",
    )

    sub.add_parser("check-invariants", help="Run fee policy invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "status": cmd_status,
        "structures": cmd_structures,
        "calculate": cmd_calculate,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
