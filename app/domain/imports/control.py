"""
Pause / resume / stop signals for a single import run.

The scheduler polls these flags between batches; nothing here interrupts a
batch call that is already in flight. All writers and the scheduler share one
asyncio event loop, so reads and writes never interleave mid-statement. Code
running on another thread must go through ``loop.call_soon_threadsafe``.
"""


class ControlChannel:
    """Mutable ``paused`` / ``stopped`` flag pair owned by one importer."""

    def __init__(self):
        self._paused = False
        self._stopped = False

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def stopped(self) -> bool:
        return self._stopped

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def stop(self) -> None:
        # A stop also releases a pause so the wait loop can exit promptly.
        self._stopped = True
        self._paused = False

    def reset(self) -> None:
        self._paused = False
        self._stopped = False

    def __repr__(self) -> str:
        return f"ControlChannel(paused={self._paused}, stopped={self._stopped})"
