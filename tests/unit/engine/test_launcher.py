import asyncio
import sys

import pytest

from scenariokit.engine.launcher import LogSink, ProcessExited, ProcessLauncher, format_exit_code, run_probe
from scenariokit.errors import ErrorCode, ProcessError


# 1. Log sink
def test_log_sink_keeps_a_bounded_tail():
    sink = LogSink(max_lines=3)
    for i in range(5):
        sink.append_line(f"line {i}")
    assert sink.tail() == ["line 2", "line 3", "line 4"]
    assert sink.tail(2) == ["line 3", "line 4"]
    assert sink.tail(0) == []


def test_log_sink_mirrors_to_file_and_subscribers(tmp_path):
    seen = []
    sink = LogSink(file_path=tmp_path / "logs" / "runs.log")
    sink.subscribe(seen.append)
    sink.subscribe(lambda line: 1 / 0)  # a failing subscriber must not break appends

    sink.append_line("first")
    sink.append_line("second")

    assert (tmp_path / "logs" / "runs.log").read_text() == "first\nsecond\n"
    assert seen == ["first", "second"]


def test_format_exit_code():
    assert format_exit_code(0) == "0"
    assert format_exit_code(None) == "unknown"


# 2. Spawning
@pytest.mark.asyncio
async def test_spawn_pumps_output_and_writes_exit_line(tmp_path):
    sink = LogSink()
    launcher = ProcessLauncher(sink)

    process = await launcher.spawn(sys.executable, ["-c", "print('one'); print('two')"], str(tmp_path), "run")
    exit_code = await process.wait()

    lines = sink.tail()
    assert exit_code == 0
    assert lines[0].startswith("[run] ")
    assert lines[1:] == ["one", "two", "[run-exit] code=0"]
    assert process.events.get_nowait() == ProcessExited(0)


@pytest.mark.asyncio
async def test_spawn_reports_non_zero_exit(tmp_path):
    sink = LogSink()
    process = await ProcessLauncher(sink).spawn(
        sys.executable, ["-c", "import sys; sys.stderr.write('bad\\n'); sys.exit(3)"], str(tmp_path), "run"
    )
    assert await process.wait() == 3
    # stderr is merged into the same stream
    assert sink.tail()[-2:] == ["bad", "[run-exit] code=3"]


@pytest.mark.asyncio
async def test_spawn_pumps_lines_longer_than_the_stream_limit(tmp_path):
    sink = LogSink()
    process = await ProcessLauncher(sink).spawn(
        sys.executable, ["-c", "print('x' * 200000); print('after')"], str(tmp_path), "run"
    )

    assert await asyncio.wait_for(process.wait(), timeout=30) == 0
    assert sink.tail()[1:] == ["x" * 200000, "after", "[run-exit] code=0"]
    assert process.events.get_nowait() == ProcessExited(0)


@pytest.mark.asyncio
async def test_spawn_keeps_unterminated_last_line(tmp_path):
    sink = LogSink()
    process = await ProcessLauncher(sink).spawn(
        sys.executable, ["-c", "import sys; sys.stdout.write('a\\r\\n\\nb')"], str(tmp_path), "run"
    )
    await process.wait()
    assert sink.tail()[1:] == ["a", "", "b", "[run-exit] code=0"]


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="exec format errors are POSIX-only")
async def test_spawn_maps_exec_format_error(tmp_path):
    garbage = tmp_path / "not-an-interpreter"
    garbage.write_bytes(b"\x00\x01\x02 not a program")
    garbage.chmod(0o755)

    with pytest.raises(ProcessError) as exc_info:
        await ProcessLauncher(LogSink()).spawn(str(garbage), ["-s", "alpha"], str(tmp_path), "run")

    assert exc_info.value.code == ErrorCode.PROC_SPAWN_FAILED


@pytest.mark.asyncio
async def test_spawn_failure_writes_no_exit_line(tmp_path):
    sink = LogSink()
    with pytest.raises(ProcessError) as exc_info:
        await ProcessLauncher(sink).spawn(str(tmp_path / "missing-binary"), ["x"], str(tmp_path), "run-screen")

    assert exc_info.value.code == ErrorCode.PROC_SPAWN_FAILED
    lines = sink.tail()
    assert any(line.startswith("[run-screen-error]") for line in lines)
    assert not any("-exit]" in line for line in lines)


@pytest.mark.asyncio
@pytest.mark.skipif(sys.platform == "win32", reason="signal exit codes are POSIX-only")
async def test_killed_child_has_unknown_exit_code(tmp_path):
    sink = LogSink()
    process = await ProcessLauncher(sink).spawn(
        sys.executable, ["-c", "import time; time.sleep(30)"], str(tmp_path), "run-debug"
    )
    process.kill()
    assert await process.wait() is None
    assert process.exited is True
    assert sink.tail()[-1] == "[run-debug-exit] code=unknown"
    # Killing an exited child is a no-op.
    process.kill()


# 3. Probes
@pytest.mark.asyncio
async def test_run_probe_feeds_stdin_and_captures_output(tmp_path):
    code, output = await run_probe(
        sys.executable,
        ["-c", "import sys; print(sys.stdin.read().strip().upper())"],
        cwd=str(tmp_path),
        stdin_data=b"secret\n",
    )
    assert code == 0
    assert output.strip() == "SECRET"


@pytest.mark.asyncio
async def test_run_probe_missing_command(tmp_path):
    code, _ = await run_probe(str(tmp_path / "no-such-tool"), ["-n", "true"])
    assert code is None
