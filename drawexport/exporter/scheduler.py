"""
Export Scheduler - Cron and On-Demand Execution

Manages scheduled and manual drawing export runs using APScheduler.

Features:
- Cron-based incremental exports (configurable via EXPORT_SCHEDULE_CRON)
- RUN_ONCE mode for a single immediate export
- Credentials validated before any network activity
- Graceful shutdown handling

Usage:
    # Run once and exit
    python -m drawexport --stack reardmener --run-once

    # Scheduled mode
    EXPORT_SCHEDULE_CRON="0 2 * * *" python -m drawexport --stack reardmener
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from drawexport.exporter.pipeline import ExportPipeline
from drawexport.exporter.poller import TranslationJobPoller
from drawexport.utils.api_client import SignedApiClient
from drawexport.utils.config import CredentialsError, load_credentials, resolve_export_dir, settings
from drawexport.utils.logging import setup_logging
from drawexport.utils.schemas import Credentials
from drawexport.utils.state import CursorStore, CursorStoreError

logger = logging.getLogger(__name__)


class ExportScheduler:
    """
    Scheduler for periodic or on-demand export runs.

    Handles:
    - Credential loading for the selected stack
    - APScheduler setup and management
    - RUN_ONCE immediate execution
    - Signal handling for graceful shutdown
    """

    def __init__(
        self,
        stack: str,
        export_dir: Path,
        credentials_file: str,
        run_once: bool = False,
    ) -> None:
        """
        Initialize scheduler.

        Args:
            stack: Credential profile name in the credentials file
            export_dir: Folder receiving PDFs and the export cursor
            credentials_file: Path to credentials JSON file
            run_once: If True, run one export and exit
        """
        self.stack = stack
        self.export_dir = export_dir
        self.credentials_file = credentials_file
        self.run_once = run_once
        self.credentials: Optional[Credentials] = None
        self.scheduler: AsyncIOScheduler | None = None
        self.shutdown_event = asyncio.Event()

        logger.info(
            "ExportScheduler initialized (stack=%s, export_dir=%s, run_once=%s, cron_schedule=%s)",
            stack, export_dir, run_once, settings.EXPORT_SCHEDULE_CRON,
        )

    def load_credentials(self) -> Credentials:
        """Load and cache credentials for the stack.

        Raises:
            CredentialsError: If the credentials cannot be loaded
        """
        if self.credentials is None:
            logger.info("Creating api client against stack=%s", self.stack)
            self.credentials = load_credentials(self.credentials_file, self.stack)
        return self.credentials

    def create_client(self) -> SignedApiClient:
        creds = self.load_credentials()
        return SignedApiClient(
            creds.url,
            creds.access_key,
            creds.secret_key,
            company_id=creds.company_id,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def create_pipeline(self, client: SignedApiClient) -> ExportPipeline:
        store = CursorStore(self.export_dir / settings.STATE_FILE_NAME)
        poller = TranslationJobPoller(
            client,
            self.export_dir,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            timeout=settings.TRANSLATION_TIMEOUT_SECONDS,
        )
        return ExportPipeline(client, store, poller)

    async def execute_export(self) -> None:
        """Run one incremental export of all unprocessed drawing revisions."""
        logger.info("Starting export execution")

        try:
            self.export_dir.mkdir(parents=True, exist_ok=True)

            async with self.create_client() as client:
                pipeline = self.create_pipeline(client)
                await pipeline.run()

            logger.info("Export execution completed successfully (summary=%s)", pipeline.summary)

        except Exception as e:
            logger.error("Export failed: %s", str(e), exc_info=True)
            raise

        finally:
            if self.run_once:
                logger.info("RUN_ONCE mode: signaling shutdown")
                self.shutdown_event.set()

    def setup_signal_handlers(self) -> None:
        """Setup handlers for graceful shutdown on SIGINT/SIGTERM."""

        def signal_handler(signum: int, frame: object) -> None:
            logger.info("Received signal %d, initiating graceful shutdown", signum)
            self.shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    async def start(self) -> None:
        """
        Start scheduler or execute once.

        Credentials are validated first so configuration errors surface
        before any network call or output directory is created.
        """
        self.load_credentials()

        if self.run_once:
            logger.info("Running in RUN_ONCE mode")
            await self.execute_export()
            return

        self.setup_signal_handlers()
        logger.info("Running in scheduled mode")

        self.scheduler = AsyncIOScheduler()

        # Runs never overlap: one pipeline per cursor file
        trigger = CronTrigger.from_crontab(settings.EXPORT_SCHEDULE_CRON)
        self.scheduler.add_job(
            self.execute_export,
            trigger=trigger,
            id="export_job",
            name="Incremental Drawing Export",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        logger.info("Scheduler started")

        job = self.scheduler.get_job("export_job")
        next_run = getattr(job, "next_run_time", None)
        logger.info(
            "Scheduled export job (schedule=%s, next_run=%s)",
            settings.EXPORT_SCHEDULE_CRON, next_run,
        )

        await self.shutdown_event.wait()

        logger.info("Shutting down scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=True)
        logger.info("Scheduler shutdown complete")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export released drawing revisions to PDF")
    parser.add_argument("--stack", default=settings.STACK, help="Credential profile in the credentials file")
    parser.add_argument("--export-dir", default=settings.EXPORT_DIR, help="Output folder (default ./pdfoutput/<stack>)")
    parser.add_argument("--credentials", default=settings.CREDENTIALS_FILE, help="Credentials JSON file")
    parser.add_argument(
        "--run-once",
        action="store_true",
        default=os.getenv("RUN_ONCE", "false").lower() in ("true", "1", "yes"),
        help="Export once and exit instead of running on the cron schedule",
    )
    return parser.parse_args(argv)


async def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point for the exporter."""
    args = parse_args(argv)

    setup_logging(
        level=settings.LOG_LEVEL,
        log_file=settings.LOG_FILE,
        max_bytes=settings.LOG_MAX_BYTES,
        backup_count=settings.LOG_BACKUP_COUNT,
    )

    scheduler = ExportScheduler(
        stack=args.stack,
        export_dir=resolve_export_dir(args.stack, args.export_dir),
        credentials_file=args.credentials,
        run_once=args.run_once,
    )

    try:
        await scheduler.start()
    except (CredentialsError, CursorStoreError) as e:
        logger.error("Configuration error: %s", str(e))
        sys.exit(1)
    except Exception as e:
        logger.error("Exporter failed: %s", str(e), exc_info=True)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
