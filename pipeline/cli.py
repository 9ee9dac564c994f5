"""
Command line entry point for the daily weather ETL.

    python scripts/run_etl.py extract --policy best_effort
    python scripts/run_etl.py all --max-retries 3 --retry-delay 900
    python scripts/run_etl.py all --schedule

Exit codes: 0 on success or when every requested stage already ran today,
1 on any fatal error, exhausted retries or interrupt.
"""

import argparse
import asyncio
import logging
from typing import List, Optional, Sequence

from core.config import Settings, settings as default_settings
from core.exceptions import ETLException
from core.logging import setup_logging
from core.notifications import LogNotifier, Notifier
from pipeline.runner import STAGES, run_stages
from pipeline.scheduler import ETLScheduler
from schemas.reports import FailurePolicy

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="run_etl",
        description="Daily weather ETL: extract, load staging, transform, load warehouse",
    )
    parser.add_argument(
        "stage",
        choices=list(STAGES) + ["all"],
        help="Stage to run, or 'all' for the four stages in order",
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in FailurePolicy],
        default=None,
        help="Extract failure policy (default: EXTRACT_FAILURE_POLICY)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=None,
        help="Attempts per stage (default: MAX_RETRIES)",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=None,
        help="Seconds between attempts (default: RETRY_DELAY_SECONDS)",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Stay running and execute the full pipeline daily",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def selected_stages(stage: str) -> List[str]:
    return list(STAGES) if stage == "all" else [stage]


async def serve(scheduler: ETLScheduler) -> None:
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def main(
    argv: Optional[Sequence[str]] = None,
    config: Settings = default_settings,
    notifier: Optional[Notifier] = None
) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    notifier = notifier or LogNotifier()
    policy = FailurePolicy(args.policy) if args.policy else None

    if args.max_retries is not None and args.max_retries < 1:
        logger.error("--max-retries must be at least 1")
        return EXIT_FAILURE

    try:
        if args.schedule:
            scheduler = ETLScheduler(
                config=config,
                notifier=notifier,
                policy=policy,
                max_attempts=args.max_retries,
                retry_delay=args.retry_delay,
            )
            asyncio.run(serve(scheduler))
            return EXIT_OK

        results = asyncio.run(run_stages(
            selected_stages(args.stage),
            config=config,
            notifier=notifier,
            policy=policy,
            max_attempts=args.max_retries,
            retry_delay=args.retry_delay,
        ))

    except KeyboardInterrupt:
        logger.warning("Interrupted, aborting")
        return EXIT_FAILURE

    except ETLException as e:
        logger.error(f"ETL failed: {e.message}", extra={"error_context": e.to_dict()})
        return EXIT_FAILURE

    except Exception:
        logger.exception("Unexpected error in ETL pipeline")
        return EXIT_FAILURE

    for result in results:
        logger.info(f"{result.stage}: {result.status.value} ({result.execution_id or '-'})")
    return EXIT_OK
