"""
Batch Export Orchestrator - Resumable Drawing Export

Walks the company revision feed page by page from the persisted watermark,
exports every eligible drawing revision, and persists the cursor after each
page so an interrupted run resumes at the first unhandled page.

Per revision, in feed order:
1. Previously bad revision -> skipped permanently
2. Not a drawing -> skipped
3. Parent document missing or trashed -> marked bad
4. Otherwise handed to the translation job poller
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from drawexport.exporter.poller import JobState, TranslationJobPoller, TranslationProtocolError
from drawexport.utils import state
from drawexport.utils.api_client import ApiError, SignedApiClient
from drawexport.utils.schemas import DocumentInfo, ExportCursor, Revision, RevisionPage
from drawexport.utils.state import CursorStore

logger = logging.getLogger(__name__)

DOCUMENT_NOT_FOUND = "Failed to find document"


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ApiError) and exc.is_transient


def _describe(exc: BaseException) -> str:
    if isinstance(exc, TranslationProtocolError):
        return "Translation protocol violation"
    return f"Unexpected {type(exc).__name__}: {exc}"


@dataclass
class ExportSummary:
    """Counters for one export run."""

    pages: int = 0
    revisions: int = 0
    exported: int = 0
    already_exported: int = 0
    skipped: int = 0
    failed: int = 0


class ExportPipeline:
    """Exports all unprocessed drawing revisions of a company."""

    def __init__(
        self,
        client: SignedApiClient,
        store: CursorStore,
        poller: TranslationJobPoller,
    ) -> None:
        self.client = client
        self.store = store
        self.poller = poller
        self.summary = ExportSummary()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def fetch_page(self, uri: str) -> RevisionPage:
        """Fetch one page of the revision feed, retrying transient failures."""
        return RevisionPage(**(await self.client.get(uri) or {}))

    async def run(self, cursor: Optional[ExportCursor] = None) -> ExportCursor:
        """
        Export every revision created since the cursor watermark.

        Args:
            cursor: Starting cursor, loaded from the store when omitted

        Returns:
            Cursor after the last persisted batch

        Raises:
            TranslationProtocolError: If a translation breaks the response contract
            ApiError: If a feed page cannot be fetched
            OSError: If an artifact or the cursor cannot be written
        """
        if cursor is None:
            cursor = self.store.load()

        start_time = time.time()
        next_uri: Optional[str] = state.feed_uri(self.client.company_id, cursor)

        while next_uri:
            logger.info("Processed revisions count=%d", self.summary.revisions)
            page = await self.fetch_page(next_uri)

            if not page.items:
                logger.info("No more revisions exist since %s", cursor.date)
                break

            self.summary.pages += 1
            self.summary.revisions += len(page.items)

            cursor = await self.process_batch(page.items, cursor, page.next)
            next_uri = page.next

        logger.info(
            "Export complete: pages=%d, revisions=%d, exported=%d, already_exported=%d, "
            "skipped=%d, failed=%d, elapsed=%.3fs",
            self.summary.pages, self.summary.revisions, self.summary.exported,
            self.summary.already_exported, self.summary.skipped, self.summary.failed,
            time.time() - start_time,
        )
        return cursor

    async def process_batch(
        self,
        revisions: list[Revision],
        cursor: ExportCursor,
        next_uri: Optional[str],
    ) -> ExportCursor:
        """
        Process one page of revisions sequentially and persist the cursor.

        Every revision reached, whether exported, skipped or marked bad,
        advances the cursor. On any unhandled error the handled prefix of
        the page is persisted before the error is re-raised.

        Returns:
            Persisted cursor
        """
        last_rev: Optional[Revision] = None

        for rev in revisions:
            try:
                cursor = await self.process_revision(rev, cursor)
            except Exception as e:
                logger.error(
                    "%s, stopping export "
                    "(documentId=%s, versionId=%s, elementId=%s, partNumber=%s, revision=%s)",
                    _describe(e),
                    rev.document_id, rev.version_id, rev.element_id, rev.part_number, rev.revision,
                )
                self.store.save(None, last_rev, cursor)
                raise
            last_rev = rev

        return self.store.save(next_uri, last_rev, cursor)

    async def process_revision(self, rev: Revision, cursor: ExportCursor) -> ExportCursor:
        """Apply the skip rules to one revision and export it if eligible."""
        logger.debug(
            "Processing revision partnum=%s revision=%s elementType=%s",
            rev.part_number, rev.revision, rev.element_type,
        )

        if cursor.is_bad(rev.id):
            logger.warning(
                "Ignoring previously errored out export partnum=%s rev=%s documentId=%s",
                rev.part_number, rev.revision, rev.document_id,
            )
            self.summary.skipped += 1
            return cursor

        # The revisions feed can filter drawings server-side; checked here as well
        if not rev.is_drawing:
            logger.debug("Ignoring non drawing partnum=%s", rev.part_number)
            self.summary.skipped += 1
            return cursor

        document = await self._find_document(rev)
        if document is None or document.trash:
            self.summary.failed += 1
            return state.mark_bad(rev, cursor, DOCUMENT_NOT_FOUND)

        try:
            outcome = await self.poller.export(rev)
        except ApiError as e:
            self.summary.failed += 1
            return state.mark_bad(rev, cursor, f"Translation request failed: {e}")

        if outcome.failed:
            self.summary.failed += 1
            return state.mark_bad(rev, cursor, outcome.message or outcome.state.value)

        if outcome.state == JobState.ALREADY_EXPORTED:
            self.summary.already_exported += 1
        else:
            self.summary.exported += 1
        return cursor

    async def _find_document(self, rev: Revision) -> Optional[DocumentInfo]:
        try:
            response = await self.client.get(f"api/documents/{rev.document_id}")
        except ApiError as e:
            logger.error("Failed to find documentId=%s: %s", rev.document_id, e)
            return None
        if not response:
            logger.error("Failed to find documentId=%s: empty response", rev.document_id)
            return None
        return DocumentInfo(**response)
