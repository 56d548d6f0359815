"""Buffer capture service.

Periodically reads a terminal's contents (pane plus scrollback) and
optionally mirrors them into a file. This is an alternative to piping the
process output through ``script``/``tee``: the terminal keeps running
untouched and the file is refreshed from tmux's own buffer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles
from pydantic import BaseModel, Field

from agent_mux.constants import DEFAULT_CAPTURE_INTERVAL
from agent_mux.models.terminal import Capability
from agent_mux.providers.base import BaseTerminal

logger = logging.getLogger(__name__)


class BufferCaptureResult(BaseModel):
    """Outcome of one capture."""

    content: str
    output_path: Optional[str] = Field(None, description="File written, if any")
    line_count: int
    size_bytes: int


def _new_suffix(previous: str, current: str) -> str:
    """Text appended since the previous capture, or everything when the buffer diverged."""
    if previous and current.startswith(previous):
        return current[len(previous):]
    return current


async def _write_file(path: str, content: str, append: bool) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(path, "a" if append else "w", encoding="utf-8") as fh:
        await fh.write(content)


def _result(content: str, output_path: Optional[str]) -> BufferCaptureResult:
    return BufferCaptureResult(
        content=content,
        output_path=output_path,
        line_count=len(content.split("\n")),
        size_bytes=len(content.encode("utf-8")),
    )


class BufferCapture:
    """Captures one terminal's buffer on demand or on a timer."""

    def __init__(
        self,
        terminal: BaseTerminal,
        capture_interval: float = DEFAULT_CAPTURE_INTERVAL,
        include_history: bool = True,
        output_path: Optional[str] = None,
        append: bool = False,
    ):
        if not terminal.supports(Capability.BUFFER_READING):
            raise ValueError(f"Terminal {terminal.name} does not support buffer reading")
        self.terminal = terminal
        self.capture_interval = capture_interval
        self.include_history = include_history
        self.output_path = output_path
        self.append = append
        self._last_content = ""
        self._task: Optional[asyncio.Task] = None

    @property
    def last_captured_content(self) -> str:
        return self._last_content

    async def capture_once(self) -> BufferCaptureResult:
        """Read the buffer and write it to ``output_path`` when configured."""
        content = await self.terminal.get_buffer(include_history=self.include_history)

        if self.output_path:
            if self.append:
                new_content = _new_suffix(self._last_content, content)
                if new_content:
                    await _write_file(self.output_path, new_content, append=True)
            else:
                await _write_file(self.output_path, content, append=False)

        self._last_content = content
        return _result(content, self.output_path)

    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start periodic capture. Requires a running event loop."""
        if self.is_running():
            return
        self._task = asyncio.get_running_loop().create_task(self._capture_loop())

    async def _capture_loop(self) -> None:
        while True:
            try:
                await self.capture_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error during periodic buffer capture of {self.terminal.name}: {e}")
            await asyncio.sleep(self.capture_interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def dispose(self) -> None:
        self.stop()
        self._last_content = ""


async def capture_terminal_buffer(
    terminal: BaseTerminal,
    include_history: bool = True,
    output_path: Optional[str] = None,
    append: bool = False,
) -> BufferCaptureResult:
    """Capture a terminal once.

    Raises:
        ValueError: the terminal does not advertise buffer reading
    """
    capture = BufferCapture(terminal, include_history=include_history, output_path=output_path, append=append)
    return await capture.capture_once()
