#!/usr/bin/env python3
"""
dashboard_admin.py - Inspect and drive user dashboards from the command line.

Initializes, inspects and repairs dashboard documents, and applies section
operations for support and diagnostics.

Usage:
  python scripts/dashboard_admin.py init USER_ID
  python scripts/dashboard_admin.py show USER_ID [--peek]
  python scripts/dashboard_admin.py repair USER_ID
  python scripts/dashboard_admin.py summary USER_ID
  python scripts/dashboard_admin.py start USER_ID recon 1
  python scripts/dashboard_admin.py complete USER_ID recon 1 --data '{"companyName": "Acme"}'
  python scripts/dashboard_admin.py save USER_ID recon 2 --data '{"product": "CRM"}'
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from intakeflow.config import load_settings
from intakeflow.errors import WorkflowError
from intakeflow.workflow import DashboardService, find_drift

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect and drive user dashboards")
    parser.add_argument("--db", type=Path, default=None,
                        help="SQLite store path (default: INTAKEFLOW_DB_PATH or ~/.intakeflow/dashboards.db)")
    parser.add_argument("--policy", default=None,
                        choices=["permissive", "unlocked_only", "strict"],
                        help="Sequencing policy for start/complete")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create the dashboard from the template")
    p.add_argument("user_id")

    p = sub.add_parser("show", help="Print the dashboard document")
    p.add_argument("user_id")
    p.add_argument("--peek", action="store_true",
                   help="Print the stored document without running the repair pass")

    p = sub.add_parser("repair", help="Run the migration repair pass")
    p.add_argument("user_id")

    p = sub.add_parser("summary", help="Print a progress summary")
    p.add_argument("user_id")

    for name, help_text in (
        ("start", "Mark a section as in progress"),
        ("complete", "Mark a section as completed"),
        ("save", "Replace a section's data"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("user_id")
        p.add_argument("module_id")
        p.add_argument("section_id")
        if name != "start":
            p.add_argument("--data", type=json.loads, default=None, required=(name == "save"),
                           help="Section data as a JSON object")

    return parser.parse_args(argv)


async def run(service: DashboardService, args: argparse.Namespace):
    """Execute one command and return a JSON-serializable result."""
    if args.command == "init":
        return (await service.initialize_dashboard(args.user_id)).model_dump(by_alias=True)

    if args.command == "show":
        if args.peek:
            document = await service.peek_dashboard_state(args.user_id)
            if document is not None:
                drift = find_drift(document.modules)
                if drift:
                    logger.warning(f"Drift in modules {drift}; run 'repair' to heal")
        else:
            document = await service.get_dashboard_state(args.user_id)
        return document.dump() if document else None

    if args.command == "repair":
        return {"healed": await service.repair_dashboard(args.user_id)}

    if args.command == "summary":
        return await service.get_progress_summary(args.user_id)

    if args.command == "start":
        result = await service.start_section(args.user_id, args.module_id, args.section_id)
    elif args.command == "complete":
        result = await service.complete_section(
            args.user_id, args.module_id, args.section_id, args.data
        )
    else:
        result = await service.save_section_data(
            args.user_id, args.module_id, args.section_id, args.data
        )
    return result.model_dump(by_alias=True, mode="json")


def main(argv=None) -> int:
    args = parse_args(argv)
    settings = load_settings(db_path=args.db, sequence_policy=args.policy)

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    try:
        service = DashboardService.from_settings(settings)
        output = asyncio.run(run(service, args))
    except WorkflowError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if output is None:
        print(f"No dashboard for {args.user_id}", file=sys.stderr)
        return 1

    print(json.dumps(output, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
