"""
Remote batch processor integration.

Each batch of CSV lines is posted to a size-limited remote function (a
Supabase edge function in production) that validates and inserts the rows and
answers with per-batch counters. The import engine only depends on the
``BatchProcessor`` call signature, so tests and other transports can supply
any async callable with the same shape.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from app.core.config import settings
from app.domain.imports.errors import BatchTransportError

logger = logging.getLogger(__name__)

# Counters every processor response is expected to carry; anything else numeric
# in the body is treated as a domain-specific counter (user_not_found, ...).
BASE_COUNTERS = ("inserted", "skipped")


@dataclass
class BatchResult:
    inserted: int = 0
    skipped: int = 0
    counters: Dict[str, int] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def counter_totals(self) -> Dict[str, int]:
        totals = {"inserted": self.inserted, "skipped": self.skipped}
        for name, value in self.counters.items():
            totals[name] = totals.get(name, 0) + value
        return totals


# (target_id, batch_payload) -> BatchResult; raises BatchTransportError on transport failure.
BatchProcessor = Callable[[str, str], Awaitable[BatchResult]]


def _as_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_batch_response(payload: Any) -> BatchResult:
    """
    Convert a processor JSON body into a ``BatchResult``.

    Missing counters default to zero. ``errors`` may be absent, null, a list of
    strings, or a single string.
    """
    if not isinstance(payload, dict):
        raise BatchTransportError(f"Unexpected response body: {type(payload).__name__}")

    result = BatchResult(
        inserted=_as_count(payload.get("inserted")) or 0,
        skipped=_as_count(payload.get("skipped")) or 0,
    )

    for key, value in payload.items():
        if key in BASE_COUNTERS:
            continue
        count = _as_count(value)
        if count is not None:
            result.counters[key] = count

    errors = payload.get("errors")
    if isinstance(errors, str):
        result.errors = [errors]
    elif isinstance(errors, list):
        result.errors = [str(error) for error in errors if error is not None]

    return result


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {response.status_code}"


def create_http_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the shared HTTP client for processor calls.

    The timeout is applied to every batch call; there is no retry.
    """
    key = settings.processor_api_key if api_key is None else api_key
    headers = {"Content-Type": "application/json"}
    if key:
        headers["Authorization"] = f"Bearer {key}"
        headers["apikey"] = key

    return httpx.AsyncClient(
        base_url=(base_url or settings.processor_base_url).rstrip("/"),
        headers=headers,
        timeout=settings.processor_timeout_seconds if timeout is None else timeout,
        transport=transport,
    )


class HttpBatchProcessor:
    """Posts batches to ``{base_url}/{function_name}`` and parses the counters."""

    def __init__(self, client: httpx.AsyncClient, function_name: str):
        if not function_name:
            raise ValueError("function_name is required")
        self.client = client
        self.function_name = function_name

    async def __call__(self, target_id: str, batch_payload: str) -> BatchResult:
        try:
            response = await self.client.post(
                f"/{self.function_name}",
                json={"tenant_id": target_id, "csv_data": batch_payload},
            )
        except httpx.TimeoutException as e:
            raise BatchTransportError(f"Request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise BatchTransportError(str(e) or type(e).__name__) from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(
                "Processor '%s' returned %s: %s", self.function_name, response.status_code, message
            )
            raise BatchTransportError(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise BatchTransportError(f"Invalid JSON response: {e}") from e

        return parse_batch_response(payload)

    def __repr__(self) -> str:
        return f"HttpBatchProcessor(function_name={self.function_name!r})"
