"""
pytest configuration and shared fixtures

Usage:
    async def test_something(fake_client, fake_clock, export_dir):
        fake_client.add("GET", "api/documents/d1", {"trash": False})
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from drawexport.exporter.pipeline import ExportPipeline
from drawexport.exporter.poller import TranslationJobPoller
from drawexport.utils.api_client import ApiError
from drawexport.utils.state import CursorStore

COMPANY_ID = "c1"
BASE_URL = "https://cad.example.com/"
EPOCH_FEED = f"api/revisions/companies/{COMPANY_ID}?offset=0&after=2000-01-01T00:00:00.000Z"
PDF_BYTES = b"%PDF-1.4 fake drawing"


# ============================================================================
# Fakes
# ============================================================================

class FakeApiClient:
    """In-memory stand-in for SignedApiClient.

    Responses are queued per (method, path); the last queued response keeps
    being returned once the queue is drained. Exceptions are raised.
    Unregistered paths fail with a 404 ApiError.
    """

    def __init__(self, company_id: str = COMPANY_ID) -> None:
        self.company_id = company_id
        self.responses: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[dict[str, Any]] = []

    def add(self, method: str, path: str, *responses: Any) -> None:
        self.responses.setdefault((method, path), []).extend(responses)

    def called(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def _respond(self, method: str, path: str) -> Any:
        self.calls.append((method, path))
        queue = self.responses.get((method, path))
        if not queue:
            raise ApiError(path, 404, "Not Found")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    async def get(self, path: str) -> Any:
        return self._respond("GET", path)

    async def post(self, path: str, body: dict[str, Any]) -> Any:
        self.bodies.append(body)
        return self._respond("POST", path)

    async def delete(self, path: str) -> Any:
        return self._respond("DELETE", path)

    async def download_to_file(self, path: str, destination: str | Path) -> Path:
        self._respond("DOWNLOAD", path)
        destination = Path(destination)
        destination.write_bytes(PDF_BYTES)
        return destination

    async def __aenter__(self) -> "FakeApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None


class FakeClock:
    """Monotonic clock advanced only by the paired sleep."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


# ============================================================================
# Helpers
# ============================================================================

def make_revision(
    rev_id: str = "r1",
    part_number: str = "D1",
    revision: str = "A",
    element_type: int = 2,
    document_id: str = "d1",
    created_at: str | None = "2024-01-01T00:00:00Z",
) -> dict[str, Any]:
    """Revision as returned by the revision feed."""
    item = {
        "id": rev_id,
        "documentId": document_id,
        "versionId": f"v-{rev_id}",
        "elementId": f"e-{rev_id}",
        "elementType": element_type,
        "partNumber": part_number,
        "revision": revision,
    }
    if created_at:
        item["createdAt"] = created_at
    return item


def translation_path(rev: dict[str, Any]) -> str:
    return f"api/drawings/d/{rev['documentId']}/v/{rev['versionId']}/e/{rev['elementId']}/translations"


def add_successful_translation(client: FakeApiClient, rev: dict[str, Any], external_id: str = "x1") -> None:
    """Register document lookup, submission, one ACTIVE poll, DONE and download."""
    href = f"{BASE_URL}api/translations/t-{rev['id']}"
    client.add("GET", f"api/documents/{rev['documentId']}", {"id": rev["documentId"], "trash": False})
    client.add("POST", translation_path(rev), {"id": f"t-{rev['id']}", "href": href, "requestState": "ACTIVE"})
    client.add(
        "GET", href,
        {"requestState": "ACTIVE"},
        {"requestState": "DONE", "resultExternalDataIds": [external_id]},
    )
    client.add("DOWNLOAD", f"api/documents/d/{rev['documentId']}/externaldata/{external_id}", None)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fake_client() -> FakeApiClient:
    return FakeApiClient()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def export_dir(tmp_path: Path) -> Path:
    path = tmp_path / "pdfoutput" / "teststack"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def store(export_dir: Path) -> CursorStore:
    return CursorStore(export_dir / "lastexport.json")


@pytest.fixture
def poller(fake_client: FakeApiClient, fake_clock: FakeClock, export_dir: Path) -> TranslationJobPoller:
    return TranslationJobPoller(
        fake_client,
        export_dir,
        poll_interval=5,
        timeout=600,
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )


@pytest.fixture
def pipeline(fake_client: FakeApiClient, store: CursorStore, poller: TranslationJobPoller) -> ExportPipeline:
    return ExportPipeline(fake_client, store, poller)
