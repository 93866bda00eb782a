"""
Process Runner - spawn external trading/ML commands and stream their output.

Each invocation:
- spawns without blocking the caller beyond the spawn itself
- logs every stdout line (INFO) and stderr line (WARNING) in arrival order
- resolves its handle exactly once, after all output has been logged

No timeout and no cancellation: a hung child stays pending until something
outside the runner terminates it.
"""

import asyncio
import inspect
import logging
import shlex
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

from core.errors import SpawnFailed
from core.logging_utils import get_logger

logger = get_logger(__name__)

# StreamReader buffer limit; longer stdout lines reach the log in consecutive chunks
LINE_LIMIT = 1024 * 1024


@dataclass(frozen=True)
class InvocationRecord:
    command: str
    args: tuple[str, ...]
    started_at: datetime

    @property
    def display(self) -> str:
        return shlex.join([self.command, *self.args])


@dataclass(frozen=True)
class ProcessResult:
    """Terminal notification for one invocation."""
    record: InvocationRecord
    exit_code: Optional[int]
    signal: Optional[int]
    output: tuple[str, ...]
    finished_at: datetime

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


ExitCallback = Callable[[ProcessResult], Union[None, Awaitable[None]]]


class ProcessHandle:
    """Live reference to a spawned command."""

    def __init__(self, record: InvocationRecord, process: asyncio.subprocess.Process):
        self.record = record
        self.process = process
        self._result: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    def done(self) -> bool:
        return self._result.done()

    def result(self) -> ProcessResult:
        """Terminal result; raises InvalidStateError while still running."""
        return self._result.result()

    async def wait(self) -> ProcessResult:
        return await asyncio.shield(self._result)

    def _resolve(self, result: ProcessResult) -> None:
        if not self._result.done():
            self._result.set_result(result)

    def _fail(self, exc: BaseException) -> None:
        if not self._result.done():
            self._result.set_exception(exc)

    def _cancel(self) -> None:
        if not self._result.done():
            self._result.cancel()

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"<ProcessHandle pid={self.pid} {state} {self.record.display!r}>"


class ProcessRunner:
    """Spawns commands and reports their output and termination."""

    def __init__(self, cwd: Optional[Path] = None, env: Optional[dict] = None):
        self.cwd = cwd
        self.env = env
        self._active: set[ProcessHandle] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> list[ProcessHandle]:
        return list(self._active)

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        on_exit: Optional[ExitCallback] = None,
    ) -> ProcessHandle:
        """Spawn ``command`` with ``args``. Raises SpawnFailed if it cannot start."""
        record = InvocationRecord(
            command=command,
            args=tuple(str(a) for a in args),
            started_at=datetime.now(timezone.utc),
        )
        logger.info("[PROC] $ %s", record.display)

        if not command:
            logger.error("[PROC] Failed to start: empty command")
            raise SpawnFailed("Empty command")

        try:
            process = await asyncio.create_subprocess_exec(
                record.command,
                *record.args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=str(self.cwd) if self.cwd else None,
                env=self.env,
                limit=LINE_LIMIT,
            )
        except OSError as e:
            logger.error("[PROC] Failed to start %s: %s", record.command, e)
            raise SpawnFailed(f"Failed to start {record.command}: {e}") from e

        handle = ProcessHandle(record, process)
        self._active.add(handle)
        task = asyncio.create_task(self._supervise(handle, on_exit), name=f"proc-{process.pid}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("[PROC] Started pid %s", process.pid)
        return handle

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        level: int,
        prefix: str,
        collected: Optional[list[str]] = None,
    ) -> None:
        if stream is None:
            return
        # Chunks of a line longer than LINE_LIMIT, logged as they arrive
        pending: list[bytes] = []
        while True:
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.LimitOverrunError as e:
                # Separator not within the limit; the bytes stay buffered
                chunk = await stream.readexactly(e.consumed)
                pending.append(chunk)
                logger.log(level, "%s: %s", prefix, chunk.decode("utf-8", errors="replace"))
                continue
            except asyncio.IncompleteReadError as e:
                # EOF: whatever is left is a final line without a newline
                raw = e.partial
                if not raw and not pending:
                    break

            tail = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if pending:
                if tail:
                    logger.log(level, "%s: %s", prefix, tail)
                line = b"".join([*pending, raw]).decode("utf-8", errors="replace").rstrip("\r\n")
                pending.clear()
            else:
                line = tail
                logger.log(level, "%s: %s", prefix, line)
            if collected is not None:
                collected.append(line)
            if not raw.endswith(b"\n"):
                break

    async def _supervise(self, handle: ProcessHandle, on_exit: Optional[ExitCallback]) -> None:
        process = handle.process
        stdout_lines: list[str] = []
        try:
            await asyncio.gather(
                self._pump(process.stdout, logging.INFO, "OUTPUT", stdout_lines),
                self._pump(process.stderr, logging.WARNING, "STDERR"),
            )
            returncode = await process.wait()
        except asyncio.CancelledError:
            handle._cancel()
            self._active.discard(handle)
            raise
        except Exception as e:
            logger.error("[PROC] Lost track of %s: %s", handle.record.display, e)
            handle._fail(e)
            self._active.discard(handle)
            return

        if returncode is not None and returncode < 0:
            exit_code, signum = None, -returncode
        else:
            exit_code, signum = returncode, None

        result = ProcessResult(
            record=handle.record,
            exit_code=exit_code,
            signal=signum,
            output=tuple(stdout_lines),
            finished_at=datetime.now(timezone.utc),
        )
        self._active.discard(handle)

        if signum is not None:
            logger.warning("[PROC] %s killed by signal %d", handle.record.display, signum)
        elif exit_code == 0:
            logger.info("[PROC] %s finished (exit 0)", handle.record.display)
        else:
            logger.warning("[PROC] %s finished (exit %s)", handle.record.display, exit_code)

        handle._resolve(result)

        if on_exit is not None:
            try:
                outcome = on_exit(result)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error("[PROC] Exit callback failed for %s: %s", handle.record.display, e)

    async def shutdown(self) -> None:
        """Stop supervising. Children are left running; the runner never kills them."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
