"""CLI entry point for Clinic Pulse.

Runs the agents against the local database without the HTTP server,
which is handy for development and for scheduled jobs.  For the
dashboard, use the FastAPI server (``clinic_pulse/server.py``).

Usage:
    python -m clinic_pulse.main init-db
    python -m clinic_pulse.main score --date 2025-11-03 [--provider PROV001]
    python -m clinic_pulse.main briefing --date 2025-11-03 --provider PROV001
    python -m clinic_pulse.main waitlist --provider PROV001
    python -m clinic_pulse.main campaigns --date 2025-11-03 --provider PROV001
    python -m clinic_pulse.main --debug --model primary briefing ...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import date

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
    )

    if not debug:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("clinic_pulse").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Clinic Pulse CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--model", choices=("fast", "primary"), default="fast",
        help="Model tier used by the agents",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    score = sub.add_parser("score", help="Generate risk assessments for a day")
    score.add_argument("--date", type=date.fromisoformat, required=True)
    score.add_argument("--provider")

    briefing = sub.add_parser("briefing", help="Daily briefing for a provider")
    briefing.add_argument("--date", type=date.fromisoformat, required=True)
    briefing.add_argument("--provider", required=True)

    waitlist = sub.add_parser("waitlist", help="Prioritize a provider's waitlist")
    waitlist.add_argument("--provider", required=True)

    campaigns = sub.add_parser("campaigns", help="Outreach campaigns for a day")
    campaigns.add_argument("--date", type=date.fromisoformat, required=True)
    campaigns.add_argument("--provider", required=True)

    return parser


async def _run(args: argparse.Namespace, db) -> object:
    # Deferred until after load_dotenv(); config reads the environment on import
    from clinic_pulse import crud  # noqa: PLC0415
    from clinic_pulse.agents import analyze_waitlist, generate_bulk_campaigns  # noqa: PLC0415
    from clinic_pulse.briefing import generate_daily_summary  # noqa: PLC0415
    from clinic_pulse.config import DEFAULT_WEATHER_ZIP  # noqa: PLC0415
    from clinic_pulse.services.scoring import ScoringProgress, score_appointments  # noqa: PLC0415

    if args.command == "score":
        appointments = crud.get_appointments(db, day=args.date, provider_id=args.provider)
        progress = ScoringProgress(total=len(appointments))
        results = await score_appointments(db, appointments, tier=args.model, progress=progress)
        return {**progress.as_dict(), "results": results}

    if args.command == "briefing":
        return await generate_daily_summary(db, args.date, args.provider, tier=args.model)

    provider = crud.get_provider(db, args.provider)
    if provider is None:
        raise crud.NotFoundError(f"Provider {args.provider} not found")

    if args.command == "waitlist":
        entries = crud.get_waitlist(db, provider_id=args.provider)
        if not entries:
            return {"total_patients": 0, "priority_patients": []}
        return await analyze_waitlist(
            entries, provider["name"], provider["specialty"], tier=args.model,
        )

    weather = crud.get_weather(db, args.date, DEFAULT_WEATHER_ZIP)
    return await generate_bulk_campaigns(
        args.date,
        provider["name"],
        weather["condition"] if weather else None,
        weather["temperature_f"] if weather else None,
        tier=args.model,
    )


def main(argv: list[str] | None = None) -> int:
    """Parse arguments, run one command and print its result as JSON."""
    args = _build_parser().parse_args(argv)

    load_dotenv()
    _configure_logging(debug=args.debug)

    from clinic_pulse.database import SessionLocal, init_db  # noqa: PLC0415

    init_db()
    if args.command == "init-db":
        print("Database ready.")
        return 0

    db = SessionLocal()
    try:
        result = asyncio.run(_run(args, db))
    except LookupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception:
        logger.exception("Command %s failed", args.command)
        return 1
    finally:
        db.close()

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
