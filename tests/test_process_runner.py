"""Tests for external process execution."""

import asyncio
import signal
import sys

import pytest

from core.errors import SpawnFailed
from execution.process_runner import LINE_LIMIT, ProcessRunner


def script(code: str) -> list[str]:
    return ["-c", code]


@pytest.mark.asyncio
async def test_exit_code_and_output_delivered_before_notification(sink):
    runner = ProcessRunner()
    notified = []

    def on_exit(result):
        # All stdout lines were logged before this fires
        messages = sink.messages()
        notified.append(("OUTPUT: first line" in messages, "OUTPUT: second line" in messages))

    handle = await runner.run(
        sys.executable,
        script("print('first line'); print('second line'); import sys; sys.exit(1)"),
        on_exit=on_exit,
    )
    result = await handle.wait()

    assert result.exit_code == 1
    assert result.signal is None
    assert result.ok is False
    assert result.output == ("first line", "second line")
    assert handle.done()

    await asyncio.sleep(0)
    assert notified == [(True, True)]

    messages = sink.messages()
    first = messages.index("OUTPUT: first line")
    second = messages.index("OUTPUT: second line")
    finished = next(i for i, m in enumerate(messages) if "finished (exit 1)" in m)
    assert first < second < finished


@pytest.mark.asyncio
async def test_successful_command(sink):
    runner = ProcessRunner()
    handle = await runner.run(sys.executable, script("print('ok')"))
    result = await handle.wait()

    assert result.exit_code == 0
    assert result.ok
    assert result.record.command == sys.executable
    assert result.record.args == ("-c", "print('ok')")
    assert runner.active == []


@pytest.mark.asyncio
async def test_stderr_is_logged_as_warning(sink):
    runner = ProcessRunner()
    handle = await runner.run(sys.executable, script("import sys; sys.stderr.write('bad thing\\n')"))
    result = await handle.wait()

    assert result.output == ()
    warnings = [e for e in sink.entries() if e.level == "WARNING"]
    assert any(e.message == "STDERR: bad thing" for e in warnings)


@pytest.mark.asyncio
async def test_missing_executable_raises_spawn_failed(sink):
    runner = ProcessRunner()
    with pytest.raises(SpawnFailed):
        await runner.run("bitvision-definitely-not-a-real-command", [])
    assert any("Failed to start" in m for m in sink.messages())
    assert runner.active == []


@pytest.mark.asyncio
async def test_empty_command_raises_spawn_failed():
    with pytest.raises(SpawnFailed):
        await ProcessRunner().run("", [])


@pytest.mark.asyncio
async def test_signal_termination_reported(sink):
    runner = ProcessRunner()
    handle = await runner.run(
        sys.executable,
        script("import os, signal; os.kill(os.getpid(), signal.SIGTERM)"),
    )
    result = await handle.wait()

    assert result.exit_code is None
    assert result.signal == signal.SIGTERM
    assert any("killed by signal" in m for m in sink.messages())


@pytest.mark.asyncio
async def test_run_returns_before_process_exits():
    runner = ProcessRunner()
    handle = await runner.run(sys.executable, script("import time; time.sleep(0.5)"))

    assert not handle.done()
    assert handle in runner.active

    result = await handle.wait()
    assert result.exit_code == 0


@pytest.mark.asyncio
async def test_async_exit_callback_awaited_once():
    runner = ProcessRunner()
    calls = []

    async def on_exit(result):
        calls.append(result.exit_code)

    handle = await runner.run(sys.executable, script("pass"), on_exit=on_exit)
    await handle.wait()
    for _ in range(5):
        await asyncio.sleep(0.01)

    assert calls == [0]


@pytest.mark.asyncio
async def test_line_longer_than_limit_is_delivered_whole(sink):
    size = 2 * LINE_LIMIT
    runner = ProcessRunner()
    handle = await runner.run(
        sys.executable,
        script(f"import sys; sys.stdout.write('A' * {size} + '\\n' + 'tail\\n')"),
    )
    result = await handle.wait()

    assert result.exit_code == 0
    assert result.output == ("A" * size, "tail")

    chunks = [m[len("OUTPUT: "):] for m in sink.messages() if m.startswith("OUTPUT: A")]
    assert len(chunks) > 1
    assert sum(len(c) for c in chunks) == size
    assert set("".join(chunks)) == {"A"}
    assert "OUTPUT: tail" in sink.messages()


@pytest.mark.asyncio
async def test_final_line_without_newline_is_delivered(sink):
    handle = await ProcessRunner().run(sys.executable, script("import sys; sys.stdout.write('one\\nlast')"))
    result = await handle.wait()

    assert result.output == ("one", "last")
    assert "OUTPUT: last" in sink.messages()
