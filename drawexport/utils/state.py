"""
Export Cursor Store - Resumable Pipeline State

Persists pipeline progress to lastexport.json so a restarted export resumes
exactly where the previous run stopped:

    {
      "date": "2024-03-01T10:00:00Z",     # feed watermark
      "offset": 0,                        # position among same-watermark revisions
      "partNumber": "D1",                 # last handled revision
      "revision": "A",
      "badrevisions": {"<revisionId>": {...}}
    }

Cursors are immutable; advance() and mark_bad() return new cursors and
save() is the only place state becomes durable.
"""

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import orjson
from pydantic import TypeAdapter, ValidationError

from drawexport.utils.schemas import BadRevisionRecord, ExportCursor, Revision

logger = logging.getLogger(__name__)

EPOCH_WATERMARK = "2000-01-01T00:00:00Z"

_datetime_adapter = TypeAdapter(datetime)


class CursorStoreError(Exception):
    """Raised when the persisted cursor cannot be read or parsed."""


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""
    parsed = _datetime_adapter.validate_python(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_iso8601(value: str) -> str:
    """Normalize a timestamp to UTC with millisecond precision, e.g. 2000-01-01T00:00:00.000Z."""
    parsed = parse_timestamp(value).astimezone(timezone.utc)
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.") + f"{parsed.microsecond // 1000:03d}Z"


def feed_uri(company_id: str, cursor: ExportCursor) -> str:
    """First revision feed URI for a cursor."""
    return f"api/revisions/companies/{company_id}?offset={cursor.offset}&after={to_iso8601(cursor.date)}"


def _not_older(candidate: str, current: str) -> bool:
    return parse_timestamp(candidate) >= parse_timestamp(current)


def advance(
    cursor: ExportCursor,
    next_uri: Optional[str],
    last_revision: Optional[Revision],
) -> ExportCursor:
    """
    Compute the cursor after a processed batch.

    The next page link's 'after'/'offset' parameters become the watermark and
    offset; then the last handled revision's createdAt, when present, becomes
    the watermark with offset 0. Candidate watermarks older than the current
    one are ignored.

    Args:
        cursor: Cursor before the batch
        next_uri: Feed pagination link of the processed page, if any
        last_revision: Last revision reached in the page, if any

    Returns:
        New cursor
    """
    update: dict = {}
    date = cursor.date

    if next_uri:
        params = parse_qs(urlsplit(next_uri).query)
        after = params.get("after", [None])[0] or date
        offset = int(params.get("offset", ["0"])[0] or 0)
        if _not_older(after, date):
            date = after
            update["date"] = after
            update["offset"] = offset
        else:
            logger.warning("Ignoring next page watermark older than cursor (after=%s, date=%s)", after, date)

    if last_revision is not None:
        update["part_number"] = last_revision.part_number
        update["revision"] = last_revision.revision
        if last_revision.created_at:
            if _not_older(last_revision.created_at, date):
                update["date"] = last_revision.created_at
                update["offset"] = 0
            else:
                logger.warning(
                    "Ignoring revision createdAt older than cursor (createdAt=%s, date=%s)",
                    last_revision.created_at, date,
                )

    return cursor.model_copy(update=update)


def mark_bad(revision: Revision, cursor: ExportCursor, reason: str) -> ExportCursor:
    """
    Record a revision as permanently failed.

    Held in memory only; durable after the next save().
    """
    record = BadRevisionRecord(
        document_id=revision.document_id,
        version_id=revision.version_id,
        element_id=revision.element_id,
        part_number=revision.part_number,
        revision=revision.revision,
        failure=reason,
    )
    logger.warning(
        "Encountered bad revision error=%s: %s",
        reason,
        record.model_dump(by_alias=True, exclude={"failure"}),
    )
    return cursor.model_copy(update={"badrevisions": {**cursor.badrevisions, revision.id: record}})


class CursorStore:
    """Loads and saves the export cursor file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> ExportCursor:
        """
        Read the persisted cursor.

        Returns the epoch cursor when no file exists. A legacy 'revCreatedDate'
        field is migrated into the watermark with offset 0.

        Raises:
            CursorStoreError: If the file cannot be read or is not a valid cursor
        """
        if not self.path.exists():
            logger.info("No export cursor at %s, starting from %s", self.path, EPOCH_WATERMARK)
            return ExportCursor(date=EPOCH_WATERMARK)

        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            raise CursorStoreError(f"Failed to read export cursor {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise CursorStoreError(f"Export cursor {self.path} is not a JSON object")

        legacy_date = data.pop("revCreatedDate", None)
        if legacy_date:
            data["date"] = legacy_date
            data["offset"] = 0
        data.setdefault("date", EPOCH_WATERMARK)

        try:
            cursor = ExportCursor(**data)
        except ValidationError as e:
            raise CursorStoreError(f"Invalid export cursor {self.path}: {e}") from e

        logger.info(
            "Loaded export cursor (date=%s, offset=%d, bad_revisions=%d)",
            cursor.date, cursor.offset, len(cursor.badrevisions),
        )
        return cursor

    def save(
        self,
        next_uri: Optional[str],
        last_revision: Optional[Revision],
        cursor: ExportCursor,
    ) -> ExportCursor:
        """Advance the cursor for a processed batch and write it before returning."""
        updated = advance(cursor, next_uri, last_revision)
        self.write(updated)
        return updated

    def write(self, cursor: ExportCursor) -> None:
        """Write the cursor as pretty-printed JSON, replacing the file atomically."""
        payload = orjson.dumps(
            cursor.model_dump(mode="json", by_alias=True, exclude_none=True),
            option=orjson.OPT_INDENT_2,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=self.path.name, suffix=".tmp", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Saved export cursor (date=%s, offset=%d)", cursor.date, cursor.offset)
