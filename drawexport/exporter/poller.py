"""
Translation Job Poller - Drawing to PDF Translation State Machine

Drives one drawing revision through the asynchronous translation workflow:

    REQUESTED -> ACTIVE -> DONE      (artifact downloaded)
                        -> FAILED    (service reported another terminal state)
                        -> TIMED_OUT (still ACTIVE past the ceiling)
                        -> MALFORMED (DONE without an artifact id, raised)

A revision whose PDF already exists in the export folder is never resubmitted.
Clock and sleep are injectable so the timeout path can be tested without
waiting.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

from drawexport.utils.api_client import SignedApiClient
from drawexport.utils.schemas import Revision, TranslationJob

logger = logging.getLogger(__name__)


class TranslationProtocolError(Exception):
    """Raised when a translation response breaks the expected contract."""


class JobState(str, Enum):
    REQUESTED = "REQUESTED"
    ACTIVE = "ACTIVE"
    DONE = "DONE"
    FAILED = "FAILED"
    TIMED_OUT = "TIMED_OUT"
    MALFORMED = "MALFORMED"
    ALREADY_EXPORTED = "ALREADY_EXPORTED"


@dataclass(frozen=True)
class JobOutcome:
    """Terminal result of a translation job."""

    state: JobState
    path: Path
    message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.state in (JobState.FAILED, JobState.TIMED_OUT)


class TranslationJobPoller:
    """Submits a PDF translation for a drawing revision and waits for it."""

    def __init__(
        self,
        client: SignedApiClient,
        export_dir: str | Path,
        poll_interval: float = 5.0,
        timeout: float = 600.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize poller.

        Args:
            client: Signed API client
            export_dir: Folder receiving <partNumber>_<revision>.pdf files
            poll_interval: Seconds between status polls
            timeout: Seconds after submission before the job is abandoned
            sleep: Async sleep primitive
            clock: Monotonic clock in seconds
        """
        self.client = client
        self.export_dir = Path(export_dir)
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    def destination(self, revision: Revision) -> Path:
        return self.export_dir / revision.output_file_name

    async def export(self, revision: Revision) -> JobOutcome:
        """
        Export one drawing revision to PDF.

        Args:
            revision: Drawing revision whose parent document exists

        Returns:
            JobOutcome with state DONE, ALREADY_EXPORTED, FAILED or TIMED_OUT

        Raises:
            TranslationProtocolError: If the service reports DONE without an
                artifact, or accepts the request without a pollable href
            ApiError: If a submit, poll or download call fails
        """
        output = self.destination(revision)
        if output.exists():
            logger.info("%s has already been exported", output)
            return JobOutcome(JobState.ALREADY_EXPORTED, output)

        # REQUESTED
        response = await self.client.post(
            f"api/drawings/d/{revision.document_id}/v/{revision.version_id}"
            f"/e/{revision.element_id}/translations",
            {
                "formatName": "PDF",
                "storeInDocument": False,
                "showOverriddenDimensions": True,
                "destinationName": output.name,
            },
        )
        submitted = TranslationJob(**(response or {}))
        if not submitted.href:
            raise TranslationProtocolError(f"Translation request for {output.name} returned no href")

        logger.info("Created translation request for %s", output.name)
        started = self._clock()

        # ACTIVE
        job = TranslationJob(requestState=JobState.ACTIVE.value)
        while job.request_state == JobState.ACTIVE:
            await self._sleep(self.poll_interval)
            elapsed = self._clock() - started

            if elapsed > self.timeout:
                return JobOutcome(JobState.TIMED_OUT, output, f"Timed out after {elapsed:.0f} seconds")

            logger.debug("Waited for translation %s seconds=%.0f", output.name, elapsed)
            job = TranslationJob(**(await self.client.get(submitted.href) or {}))

        if job.request_state != JobState.DONE:
            message = f"Export never attained DONE state final state={job.request_state}"
            if job.failure_reason:
                message += f" reason={job.failure_reason}"
            return JobOutcome(JobState.FAILED, output, message)

        # DONE: the PDF is stored as external data against the document
        external_id = job.result_external_data_ids[0] if job.result_external_data_ids else None
        if not external_id:
            raise TranslationProtocolError(f"Bad translate done response for {output.name}")

        await self.client.download_to_file(
            f"api/documents/d/{revision.document_id}/externaldata/{external_id}", output
        )
        logger.info("Exported %s", output)
        return JobOutcome(JobState.DONE, output)
