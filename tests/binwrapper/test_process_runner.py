"""
Tests for the process runner. These run real POSIX executables.
"""

import io
import sys
import threading
import time

import pytest

from binwrapper.binwrapper_exceptions import (
    DeadlineExceeded,
    ProcessExitError,
    ProcessKilled,
    SpawnFailed,
)
from binwrapper.process_runner import (
    ProcessRunner,
    ProcessState,
    RunConfiguration,
    normalize_env,
    normalize_timeout,
)

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires POSIX tools")


@pytest.fixture
def runner():
    return ProcessRunner()


def wait_for_pid(runner, timeout=5.0):
    deadline = time.monotonic() + timeout
    while runner.pid is None:
        if time.monotonic() > deadline:
            raise AssertionError("process did not start")
        time.sleep(0.01)


class TestRun:
    """Tests for ProcessRunner.run."""

    def test_preset_and_extra_args(self, runner):
        runner.run("echo", RunConfiguration(args=("-n",)), "hello")

        assert runner.stdout == b"hello"
        assert runner.stderr == b""
        assert runner.returncode == 0
        assert runner.state == ProcessState.COMPLETED

    def test_stdout_and_stderr(self, runner):
        runner.run("sh", RunConfiguration(args=("-c", "echo out && echo err >&2")))

        assert runner.stdout == b"out\n"
        assert runner.stderr == b"err\n"
        assert runner.combined_output() == b"out\nerr\n"

    def test_combined_output_is_idempotent(self, runner):
        runner.run("sh", RunConfiguration(args=("-c", "echo out && echo err >&2")))

        first = runner.combined_output()
        second = runner.combined_output()

        assert first == second
        assert runner.stdout == b"out\n"

    def test_output_of_previous_run_is_replaced(self, runner):
        runner.run("echo", RunConfiguration(), "first")
        runner.run("sh", RunConfiguration(args=("-c", "echo second >&2")))

        assert runner.stdout == b""
        assert runner.stderr == b"second\n"

    def test_large_output_on_both_streams(self, runner):
        """Test that filling both pipes does not deadlock."""
        size = 1024 * 1024
        script = f"head -c {size} /dev/zero >&2; head -c {size} /dev/zero"

        runner.run("sh", RunConfiguration(args=("-c", script), timeout=30))

        assert len(runner.stdout) == size
        assert len(runner.stderr) == size

    def test_nonexistent_binary(self, runner):
        with pytest.raises(SpawnFailed) as exc_info:
            runner.run("nonexistent-binary-abc123xyz", RunConfiguration())

        assert exc_info.value.path == "nonexistent-binary-abc123xyz"
        assert runner.state == ProcessState.START_FAILED

    def test_non_zero_exit_keeps_output(self, runner):
        with pytest.raises(ProcessExitError) as exc_info:
            runner.run("sh", RunConfiguration(args=("-c", "echo output && exit 3")))

        assert exc_info.value.returncode == 3
        assert exc_info.value.stdout == b"output\n"
        assert runner.stdout == b"output\n"
        assert runner.state == ProcessState.COMPLETED


class TestStreams:
    """Tests for stdin and stdout wiring."""

    def test_stdin_stream(self, runner):
        runner.run("cat", RunConfiguration(stdin=io.BytesIO(b"input data")))
        assert runner.stdout == b"input data"

    def test_stdin_bytes_and_str(self, runner):
        runner.run("cat", RunConfiguration(stdin=b"raw bytes"))
        assert runner.stdout == b"raw bytes"

        runner.run("cat", RunConfiguration(stdin="text"))
        assert runner.stdout == b"text"

    def test_stdin_file(self, runner, tmp_path):
        """Test that a real file is handed to the child directly."""
        input_file = tmp_path / "input.txt"
        input_file.write_bytes(b"from a file")

        with open(input_file, "rb") as f:
            runner.run("cat", RunConfiguration(stdin=f))

        assert runner.stdout == b"from a file"

    def test_stdin_not_read_by_child(self, runner):
        """Test that a child ignoring a large input does not break the run."""
        runner.run("true", RunConfiguration(stdin=b"x" * (4 * 1024 * 1024)))
        assert runner.returncode == 0

    def test_no_stdin_reads_nothing(self, runner):
        runner.run("cat", RunConfiguration())
        assert runner.stdout == b""

    def test_stdout_to_binary_sink(self, runner):
        sink = io.BytesIO()
        runner.run("echo", RunConfiguration(stdout=sink), "hello")

        assert sink.getvalue() == b"hello\n"
        assert runner.stdout == b""

    def test_stdout_to_text_sink(self, runner):
        sink = io.StringIO()
        runner.run("echo", RunConfiguration(stdout=sink), "hello")
        assert sink.getvalue() == "hello\n"

    def test_stdout_to_file(self, runner, tmp_path):
        output_file = tmp_path / "out.txt"
        with open(output_file, "wb") as f:
            runner.run("echo", RunConfiguration(stdout=f), "hello")

        assert output_file.read_bytes() == b"hello\n"

    def test_stderr_is_captured_with_sink(self, runner):
        sink = io.BytesIO()
        runner.run(
            "sh", RunConfiguration(args=("-c", "echo out && echo err >&2"), stdout=sink)
        )

        assert sink.getvalue() == b"out\n"
        assert runner.stderr == b"err\n"


class TestEnvironment:
    """Tests for environment handling."""

    def test_env_mapping(self, runner):
        env = normalize_env({"MY_TEST_VAR": "test_value"})
        runner.run("sh", RunConfiguration(args=("-c", "echo $MY_TEST_VAR"), env=env))
        assert runner.stdout == b"test_value\n"

    def test_env_list(self, runner):
        env = normalize_env(["MY_TEST_VAR=a=b"])
        runner.run("sh", RunConfiguration(args=("-c", "echo $MY_TEST_VAR"), env=env))
        assert runner.stdout == b"a=b\n"

    def test_env_replaces_host_environment(self, runner, monkeypatch):
        monkeypatch.setenv("BINWRAPPER_HOST_VAR", "host")
        env = normalize_env({"OTHER": "1"})
        runner.run("sh", RunConfiguration(args=("-c", "echo \"[$BINWRAPPER_HOST_VAR]\""), env=env))
        assert runner.stdout == b"[]\n"

    def test_host_environment_is_inherited(self, runner, monkeypatch):
        monkeypatch.setenv("BINWRAPPER_HOST_VAR", "host")
        runner.run("sh", RunConfiguration(args=("-c", "echo $BINWRAPPER_HOST_VAR")))
        assert runner.stdout == b"host\n"

    def test_malformed_env_entry(self):
        with pytest.raises(ValueError):
            normalize_env(["NO_EQUALS_SIGN"])


class TestTimeoutAndKill:
    """Tests for timeouts and kill()."""

    def test_timeout_expires(self, runner):
        start = time.monotonic()
        with pytest.raises(DeadlineExceeded) as exc_info:
            runner.run("sleep", RunConfiguration(timeout=0.2), "10")

        assert time.monotonic() - start < 5
        assert exc_info.value.timeout == 0.2
        assert isinstance(exc_info.value, TimeoutError)
        assert runner.state == ProcessState.TIMED_OUT

    def test_timeout_longer_than_runtime(self, runner):
        with pytest.raises(ProcessExitError) as exc_info:
            runner.run("sh", RunConfiguration(args=("-c", "exit 2"), timeout=30))

        assert not isinstance(exc_info.value, DeadlineExceeded)
        assert exc_info.value.returncode == 2

    def test_timeout_keeps_partial_output(self, runner):
        with pytest.raises(DeadlineExceeded):
            runner.run("sh", RunConfiguration(args=("-c", "echo started; exec sleep 10"), timeout=0.5))

        assert runner.stdout == b"started\n"

    def test_timeout_kills_descendants(self, runner):
        """Test that a child started by the process cannot outlive the timeout."""
        start = time.monotonic()
        with pytest.raises(DeadlineExceeded):
            runner.run("sh", RunConfiguration(args=("-c", "sleep 5; echo done"), timeout=0.5))

        assert time.monotonic() - start < 3
        assert runner.stdout == b""

    def test_kill_before_run(self, runner):
        runner.kill()
        assert runner.state == ProcessState.IDLE

    def test_kill_running_process(self, runner):
        errors = []

        def target():
            try:
                runner.run("sleep", RunConfiguration(), "10")
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        thread.start()
        wait_for_pid(runner)

        runner.kill()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert len(errors) == 1
        assert isinstance(errors[0], ProcessKilled)
        assert runner.state == ProcessState.KILLED

    def test_kill_stops_descendants(self, runner):
        errors = []

        def target():
            try:
                runner.run("sh", RunConfiguration(args=("-c", "sleep 10; echo done")))
            except Exception as e:
                errors.append(e)

        thread = threading.Thread(target=target)
        start = time.monotonic()
        thread.start()
        wait_for_pid(runner)

        runner.kill()
        thread.join(timeout=5)

        assert not thread.is_alive()
        assert time.monotonic() - start < 5
        assert isinstance(errors[0], ProcessKilled)
        assert runner.stdout == b""

    def test_kill_after_run_is_noop(self, runner):
        runner.run("true", RunConfiguration())
        runner.kill()
        assert runner.state == ProcessState.COMPLETED

    def test_run_after_kill_starts_normally(self, runner):
        runner.kill()
        runner.run("echo", RunConfiguration(), "ok")
        assert runner.stdout == b"ok\n"


class TestReset:
    def test_reset_clears_output(self, runner):
        runner.run("echo", RunConfiguration(), "first")
        runner.reset()

        assert runner.stdout == b""
        assert runner.stderr == b""
        assert runner.returncode is None
        assert runner.state == ProcessState.IDLE


class TestNormalizeTimeout:
    def test_timedelta(self):
        import datetime

        assert normalize_timeout(datetime.timedelta(milliseconds=50)) == 0.05

    def test_none(self):
        assert normalize_timeout(None) is None

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            normalize_timeout(0)
