"""HTTP client for the remote model catalog."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .constants import DEFAULT_API_TIMEOUT_SECONDS, USER_AGENT
from .errors import CatalogUnavailable
from .models import ModelRecord, parse_model_records

logger = logging.getLogger(__name__)

MAX_ERROR_BODY_CHARS = 500


class CatalogFetcher:
    """Fetches the model list from an OpenAI-style ``/models`` endpoint.

    A single attempt is made per call. Entries are validated one at a time,
    so a malformed entry is logged and skipped instead of failing the fetch.
    """

    def __init__(self, timeout: float = DEFAULT_API_TIMEOUT_SECONDS, headers: Optional[Dict[str, str]] = None):
        self.timeout = timeout
        self.headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if headers:
            self.headers.update(headers)

    def _request_headers(self, api_key: str) -> Dict[str, str]:
        headers = dict(self.headers)
        headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def fetch(self, api_key: str, catalog_url: str) -> List[ModelRecord]:
        """Fetch and validate the catalog.

        Returns an empty list when no API key is configured. Raises
        CatalogUnavailable when the request gets no answer, an error answer,
        or an answer that is not a catalog.
        """
        if not api_key:
            logger.warning("No API key configured; returning an empty model list")
            return []

        logger.debug("Fetching models from %s", catalog_url)
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    catalog_url,
                    headers=self._request_headers(api_key),
                    timeout=self.timeout,
                )
        except httpx.TimeoutException as e:
            raise CatalogUnavailable(
                f"No response received from {catalog_url}: request timed out after {self.timeout}s",
                kind="no_response",
            ) from e
        # UnsupportedProtocol is a RequestError but no request was ever sent
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise CatalogUnavailable(f"Request setup error: invalid catalog URL {catalog_url!r}: {e}", kind="malformed") from e
        except httpx.RequestError as e:
            raise CatalogUnavailable(
                f"No response received from {catalog_url}: {e}",
                kind="no_response",
            ) from e

        return self._parse_response(response, catalog_url)

    def _parse_response(self, response: Any, catalog_url: str) -> List[ModelRecord]:
        status = response.status_code
        if not 200 <= status < 300:
            body = _safe_text(response)
            raise CatalogUnavailable(
                f"API error {status} from {catalog_url}: {body}",
                kind="error_response",
                status_code=status,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise CatalogUnavailable(
                f"Catalog response from {catalog_url} is not valid JSON: {e}",
                kind="malformed",
                status_code=status,
            ) from e

        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            raise CatalogUnavailable(
                f"Catalog response from {catalog_url} has no 'data' list",
                kind="malformed",
                status_code=status,
            )

        records, errors = parse_model_records(data["data"])
        for error in errors:
            logger.warning("Skipping invalid catalog model (%s)", error)
        logger.debug("Fetched %d models (%d skipped)", len(records), len(errors))
        return records


def _safe_text(response: Any) -> str:
    try:
        text = response.text
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return "<unreadable body>"
    text = str(text)
    if len(text) > MAX_ERROR_BODY_CHARS:
        text = text[:MAX_ERROR_BODY_CHARS] + "..."
    return text
