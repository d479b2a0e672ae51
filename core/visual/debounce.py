# core/visual/debounce.py
"""Debounced regeneration of pipeline YAML from editor snapshots."""

import asyncio
import inspect
from typing import Any, Callable, Optional

import structlog

from core.config import get_settings
from core.generator.engine import PipelineGenerator
from core.visual.nodes import PipelineNode

logger = structlog.get_logger(__name__)


class DebouncedGenerator:
    """Regenerate YAML at most once per quiet period.

    The editor calls :meth:`submit` on every content change; generation runs
    only after ``delay`` seconds without a new submission, using the latest
    snapshot. ``on_generated`` receives the YAML text and may be a plain
    function or a coroutine function. Identical output is not re-emitted.
    """

    def __init__(
        self,
        on_generated: Callable[[str], Any],
        delay: Optional[float] = None,
        generator: Optional[PipelineGenerator] = None,
    ):
        self.on_generated = on_generated
        self.delay = get_settings().debounce_seconds if delay is None else delay
        self.generator = generator or PipelineGenerator()

        self._pending: Optional[PipelineNode] = None
        self._has_pending = False
        self._handle: Optional[asyncio.TimerHandle] = None
        self._last_output: Optional[str] = None
        self._tasks: set = set()
        self.generations = 0

    @property
    def last_output(self) -> Optional[str]:
        return self._last_output

    def submit(self, root: Optional[PipelineNode]) -> None:
        """Record a new snapshot and restart the quiet-period timer."""
        loop = asyncio.get_running_loop()
        self._pending = root
        self._has_pending = True

        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._generate())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("generation_failed", error=str(error), exc_info=error)

    async def _generate(self) -> Optional[str]:
        if not self._has_pending:
            return None
        root, self._pending, self._has_pending = self._pending, None, False

        text = self.generator.generate(root)
        self.generations += 1
        if text == self._last_output:
            logger.debug("generation_unchanged")
            return text

        self._last_output = text
        logger.debug("generation_emitted", size=len(text))
        result = self.on_generated(text)
        if inspect.isawaitable(result):
            await result
        return text

    async def flush(self) -> Optional[str]:
        """Generate immediately from the pending snapshot, if any."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._tasks:
            # Failures are logged by _on_done
            await asyncio.gather(*self._tasks, return_exceptions=True)
        return await self._generate()

    def close(self) -> None:
        """Drop the pending snapshot without generating."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._pending = None
        self._has_pending = False
