"""
Signed API Client - HMAC Authenticated HTTP Calls

Async HTTP client for the document service using API key authentication.
Every request is signed with a fresh nonce and date:

    signature = base64(HMAC-SHA256(secret_key, lower(
        method \\n nonce \\n date \\n content_type \\n path \\n query \\n )))
    Authorization: On <access_key>:HmacSHA256:<signature>

Usage:
    async with SignedApiClient(base_url, access_key, secret_key) as client:
        doc = await client.get("api/documents/123")
        await client.download_to_file("api/documents/d/123/externaldata/456", "out.pdf")
"""

import base64
import hashlib
import hmac
import logging
import os
import secrets
import string
from email.utils import formatdate
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import orjson

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"
ACCEPT = "application/vnd.onshape.v1+json,application/json"
NONCE_LENGTH = 25
NONCE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits


class ApiError(Exception):
    """Raised for any non-200 response or transport failure.

    Attributes:
        path: Requested path or URI
        status_code: HTTP status, or None when no response was received
        error: Error detail (reason phrase or transport error message)
        body: Response body, if any
    """

    def __init__(
        self,
        path: str,
        status_code: Optional[int],
        error: str,
        body: Any = None,
    ) -> None:
        self.path = path
        self.status_code = status_code
        self.error = error
        self.body = body
        super().__init__(f"{path} failed (status={status_code or 'UNKNOWN_STATUS_CODE'}, error={error})")

    @property
    def is_transient(self) -> bool:
        """True for failures worth retrying: no response, throttling, 5xx."""
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500

    def to_dict(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code or "UNKNOWN_STATUS_CODE",
            "error": self.error or "NO_ERROR",
            "errorBody": self.body or "NO_BODY",
        }


def generate_nonce(length: int = NONCE_LENGTH) -> str:
    """Random alphanumeric nonce for the On-Nonce header."""
    return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(length))


def http_date() -> str:
    """Current time as an RFC 1123 HTTP-date, e.g. 'Sun, 18 Oct 2026 09:30:00 GMT'."""
    return formatdate(usegmt=True)


def canonicalize_url(url: str) -> tuple[str, str, str]:
    """
    Re-serialize the query string of a URL.

    The query is parsed and form-encoded again, then re-appended, so the query
    that is signed and the query that is sent are byte-identical.

    Returns:
        Tuple of (url, path, query)
    """
    parts = urlsplit(url)
    query = urlencode(parse_qsl(parts.query, keep_blank_values=True))
    path = parts.path or "/"
    return urlunsplit((parts.scheme, parts.netloc, path, query, "")), path, query


def build_signature(
    secret_key: str,
    method: str,
    nonce: str,
    date: str,
    content_type: str,
    path: str,
    query: str,
) -> str:
    """Compute the base64 HMAC-SHA256 request signature."""
    hmac_string = "\n".join([method, nonce, date, content_type, path, query, ""]).lower()
    digest = hmac.new(secret_key.encode("utf-8"), hmac_string.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


class SignedApiClient:
    """HMAC-signed client exposing get, post, delete and download_to_file."""

    def __init__(
        self,
        base_url: str,
        access_key: str,
        secret_key: str,
        company_id: str = "",
        timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Service base URL, relative paths are joined onto it
            access_key: API access key
            secret_key: API secret key used for signing
            company_id: Company whose revisions are exported
            timeout: Per-call transport timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            ValueError: If base_url, access_key or secret_key is empty
        """
        if not base_url:
            raise ValueError("base_url cannot be empty")
        if not access_key:
            raise ValueError("access_key cannot be empty")
        if not secret_key:
            raise ValueError("secret_key cannot be empty")

        self.base_url = base_url
        self.access_key = access_key
        self.secret_key = secret_key
        self.company_id = company_id
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self) -> "SignedApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    def full_url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    def signed_request(
        self, method: str, path: str, content_type: str = DEFAULT_CONTENT_TYPE
    ) -> tuple[str, dict[str, str]]:
        """
        Build the canonical URL and signed headers for a request.

        Args:
            method: HTTP method
            path: Relative API path or absolute URI
            content_type: Content type included in the signature

        Returns:
            Tuple of (url, headers)
        """
        url, url_path, query = canonicalize_url(self.full_url(path))
        nonce = generate_nonce()
        date = http_date()
        signature = build_signature(self.secret_key, method, nonce, date, content_type, url_path, query)

        headers = {
            "Content-Type": content_type,
            "On-Nonce": nonce,
            "Date": date,
            "Authorization": f"On {self.access_key}:HmacSHA256:{signature}",
            "Accept": ACCEPT,
        }
        return url, headers

    async def get(self, path: str) -> Any:
        return await self._call(path, "GET")

    async def post(self, path: str, body: dict[str, Any]) -> Any:
        return await self._call(path, "POST", body)

    async def delete(self, path: str) -> Any:
        return await self._call(path, "DELETE")

    async def _call(self, path: str, method: str, body: Optional[dict[str, Any]] = None) -> Any:
        url, headers = self.signed_request(method, path)
        logger.debug("Calling %s %s", method, url)

        content = orjson.dumps(body) if body is not None else None
        try:
            response = await self._client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as e:
            err = ApiError(path, None, str(e) or type(e).__name__)
            logger.error("%s failed: %s", path, err.to_dict())
            raise err from e

        if response.status_code != 200:
            err = ApiError(path, response.status_code, response.reason_phrase, _decode_body(response.content))
            logger.error("%s failed: %s", path, err.to_dict())
            raise err

        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            err = ApiError(path, response.status_code, f"Invalid JSON response: {e}", response.text)
            logger.error("%s failed: %s", path, err.to_dict())
            raise err from e

    async def download_to_file(self, path: str, destination: str | Path) -> Path:
        """
        Download a binary resource to a local file.

        The body is streamed to '<destination>.part' and renamed onto the
        destination only once fully written, so an existing destination file
        is always a complete download.

        Args:
            path: Relative API path or absolute URI
            destination: Local file path to write

        Returns:
            The destination path

        Raises:
            ApiError: On non-200 status or transport failure
        """
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")
        url, headers = self.signed_request("GET", path)
        logger.debug("Downloading %s to %s", url, destination)

        try:
            await self._stream_to_file(path, url, headers, partial)
        except Exception:
            partial.unlink(missing_ok=True)
            raise

        os.replace(partial, destination)
        return destination

    async def _stream_to_file(self, path: str, url: str, headers: dict[str, str], target: Path) -> None:
        try:
            async with self._client.stream("GET", url, headers=headers) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    err = ApiError(path, response.status_code, response.reason_phrase, _decode_body(body))
                    logger.error("Download %s failed: %s", path, err.to_dict())
                    raise err

                with open(target, "wb") as fh:
                    async for chunk in response.aiter_bytes():
                        fh.write(chunk)
                    fh.flush()
                    os.fsync(fh.fileno())
        except httpx.HTTPError as e:
            err = ApiError(path, None, str(e) or type(e).__name__)
            logger.error("Download %s failed: %s", path, err.to_dict())
            raise err from e


def _decode_body(content: bytes) -> Any:
    if not content:
        return None
    try:
        return orjson.loads(content)
    except orjson.JSONDecodeError:
        return content.decode("utf-8", errors="replace")
