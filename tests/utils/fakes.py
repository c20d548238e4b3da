"""
Scripted stand-ins for the remote batch processor.
"""
import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, Union

from app.domain.imports.errors import BatchTransportError
from app.integrations.batch_processor import BatchResult

Outcome = Union[BatchResult, Exception]


class FakeProcessor:
    """
    Scripted stand-in for the remote batch processor.

    Args:
        outcomes: Result or exception per batch number (1-indexed); batches not
            listed succeed with ``inserted`` equal to the number of data lines.
        on_call: Optional async hook awaited while a batch is "in flight",
            receiving the 1-indexed batch number.
    """

    def __init__(
        self,
        outcomes: Optional[Dict[int, Outcome]] = None,
        on_call: Optional[Callable[[int], Awaitable[None]]] = None,
    ):
        self.outcomes = outcomes if outcomes is not None else {}
        self.on_call = on_call
        self.calls: List[Tuple[str, str]] = []

    @property
    def payloads(self) -> List[str]:
        return [payload for _, payload in self.calls]

    async def __call__(self, target_id: str, batch_payload: str) -> BatchResult:
        self.calls.append((target_id, batch_payload))
        batch_number = len(self.calls)
        if self.on_call is not None:
            await self.on_call(batch_number)
        else:
            await asyncio.sleep(0)

        outcome = self.outcomes.get(batch_number)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is not None:
            return outcome
        lines = [line for line in batch_payload.split("\n") if line and not line.startswith("email")]
        return BatchResult(inserted=len(lines))


def make_lines(count: int, header: Optional[str] = "email,points") -> str:
    rows = [f"user{i}@example.com,{i}" for i in range(count)]
    if header:
        rows.insert(0, header)
    return "\n".join(rows)


def transport_error(message: str = "Edge Function returned a non-2xx status code") -> BatchTransportError:
    return BatchTransportError(message, status_code=500)
