"""
Runs a wrapped binary as a child process and captures its output.

The standard output and error streams are drained by two threads while the
calling thread waits, so a child writing a lot to both streams never blocks
on a full pipe. The live process is guarded by a lock so kill() can be
called from any thread.

The child runs in its own session; a timeout or kill() signals the whole
process group, so descendants holding the pipes open are stopped too.
"""

import codecs
import dataclasses
import datetime
import io
import logging
import os
import signal
import subprocess
import threading
import time
import types
from typing import IO, Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from binwrapper.binwrapper_exceptions import (
    DeadlineExceeded,
    ProcessExitError,
    ProcessKilled,
    SpawnFailed,
    StreamReadFailed,
)
from binwrapper.binwrapper_logger import BinWrapperLogger

READ_CHUNK_SIZE = 64 * 1024

# Seconds to wait for output pipes to close after the process group was killed
KILL_GRACE_PERIOD = 2.0

StdinSource = Union[bytes, str, IO[Any]]
EnvSpec = Union[Mapping[str, str], Iterable[str]]
TimeoutSpec = Union[float, int, datetime.timedelta]


class ProcessState:
    """Enumeration of process runner states."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"
    START_FAILED = "start_failed"


def normalize_env(env: Optional[EnvSpec]) -> Optional[Mapping[str, str]]:
    """
    Accepts a NAME->value mapping or "NAME=value" strings. None inherits the
    host environment.
    """
    if env is None:
        return None
    if isinstance(env, Mapping):
        items = {str(name): str(value) for name, value in env.items()}
    else:
        items = {}
        for entry in env:
            name, sep, value = entry.partition("=")
            if not sep or not name:
                raise ValueError(f"Environment entry must look like NAME=value: {entry!r}")
            items[name] = value
    return types.MappingProxyType(items)


def normalize_timeout(timeout: Optional[TimeoutSpec]) -> Optional[float]:
    if timeout is None:
        return None
    if isinstance(timeout, datetime.timedelta):
        timeout = timeout.total_seconds()
    timeout = float(timeout)
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")
    return timeout


@dataclasses.dataclass(frozen=True)
class RunConfiguration:
    """
    Everything needed to run the binary once, apart from its path.

    stdout set to a writable stream sends the output there instead of
    capturing it.
    """

    args: Tuple[str, ...] = ()
    env: Optional[Mapping[str, str]] = None
    stdin: Optional[StdinSource] = None
    stdout: Optional[IO[Any]] = None
    timeout: Optional[float] = None
    debug: bool = False


def _kill_process_group(process: subprocess.Popen) -> None:
    """
    Kills the process and everything it started in its session, so no
    descendant keeps the output pipes open.
    """
    if os.name == "posix":
        try:
            os.killpg(process.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    process.kill()


def _usable_fileno(stream: Any) -> Optional[int]:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


class ProcessRunner:
    """
    Owns the live process of a wrapped binary and the output of its last run.

    One run at a time per instance; kill() may be called from other threads.
    """

    def __init__(self, logger: Optional[BinWrapperLogger] = None):
        self.logger = logger or BinWrapperLogger()
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._killed = False
        self.state = ProcessState.IDLE
        self.returncode: Optional[int] = None
        self._stdout = b""
        self._stderr = b""

    @property
    def stdout(self) -> bytes:
        """Standard output of the last run. Empty when it went to a sink."""
        return self._stdout

    @property
    def stderr(self) -> bytes:
        return self._stderr

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._process.pid if self._process is not None else None

    def combined_output(self) -> bytes:
        """Standard output followed by standard error, as a new bytes object."""
        return self._stdout + self._stderr

    def run(self, path: str, config: RunConfiguration, *extra_args: str) -> None:
        """
        Run the binary and wait for it to finish.

        Args:
            path: Executable to run
            config: Arguments, environment, streams and timeout
            extra_args: Arguments appended after config.args

        Raises:
            SpawnFailed: If the process could not be started
            StreamReadFailed: If reading an output stream failed
            DeadlineExceeded: If the timeout expired first
            ProcessExitError: If the process exited unsuccessfully
        """
        argv = [path, *config.args, *extra_args]
        self._stdout = b""
        self._stderr = b""
        self.returncode = None
        self.state = ProcessState.STARTING

        self.logger.log(
            f"BinWrapper.run: {' '.join(argv)}",
            logging.INFO if config.debug else logging.DEBUG,
        )

        stdin_arg, stdin_feed = self._stdin_wiring(config.stdin)
        stdout_arg, stdout_sink = self._stdout_wiring(config.stdout)

        with self._lock:
            self._killed = False
            try:
                process = subprocess.Popen(
                    argv,
                    stdin=stdin_arg,
                    stdout=stdout_arg,
                    stderr=subprocess.PIPE,
                    env=dict(config.env) if config.env is not None else None,
                    start_new_session=True,
                )
            except (OSError, ValueError) as exc:
                self.state = ProcessState.START_FAILED
                self.logger.log(f"Failed to start {path}", logging.ERROR, str(exc))
                raise SpawnFailed(path, str(exc)) from exc
            self._process = process
            self.state = ProcessState.RUNNING

        try:
            self._supervise(process, config, stdin_feed, stdout_sink)
        finally:
            with self._lock:
                self._process = None

    def _supervise(
        self,
        process: subprocess.Popen,
        config: RunConfiguration,
        stdin_feed: Optional[Any],
        stdout_sink: Optional[IO[Any]],
    ) -> None:
        results: Dict[str, bytes] = {}
        errors: Dict[str, Exception] = {}

        threads: List[threading.Thread] = []
        if process.stdout is not None:
            threads.append(
                threading.Thread(
                    target=self._drain,
                    args=("stdout", process.stdout, stdout_sink, results, errors),
                    daemon=True,
                )
            )
        threads.append(
            threading.Thread(
                target=self._drain,
                args=("stderr", process.stderr, None, results, errors),
                daemon=True,
            )
        )
        feeder = None
        if stdin_feed is not None and process.stdin is not None:
            feeder = threading.Thread(
                target=self._feed, args=(process.stdin, stdin_feed), daemon=True
            )
            feeder.start()
        for thread in threads:
            thread.start()

        deadline = None if config.timeout is None else time.monotonic() + config.timeout
        timed_out = False
        for thread in threads:
            thread.join(self._remaining(deadline))
        if any(thread.is_alive() for thread in threads):
            timed_out = True
        else:
            try:
                process.wait(timeout=self._remaining(deadline))
            except subprocess.TimeoutExpired:
                timed_out = True

        if timed_out:
            self.logger.log(
                f"Process {process.pid} exceeded its timeout of {config.timeout}s, killing it",
                logging.WARNING,
            )
            _kill_process_group(process)
            for thread in threads:
                thread.join(KILL_GRACE_PERIOD)
            if any(thread.is_alive() for thread in threads):
                self.logger.log(
                    f"Output of process {process.pid} is still open after it was killed, giving up on it",
                    logging.WARNING,
                )

        self.returncode = process.wait()
        if feeder is not None:
            feeder.join()

        self._stdout = results.get("stdout", b"")
        self._stderr = results.get("stderr", b"")

        with self._lock:
            killed = self._killed

        if timed_out:
            self.state = ProcessState.TIMED_OUT
        elif killed:
            self.state = ProcessState.KILLED
        else:
            self.state = ProcessState.COMPLETED

        for name in ("stdout", "stderr"):
            if name in errors:
                raise StreamReadFailed(name, str(errors[name])) from errors[name]
        if timed_out:
            raise DeadlineExceeded(config.timeout)
        if self.returncode != 0:
            if killed:
                raise ProcessKilled(self.returncode, self._stdout, self._stderr)
            raise ProcessExitError(self.returncode, self._stdout, self._stderr)

    @staticmethod
    def _remaining(deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    @staticmethod
    def _stdin_wiring(stdin: Optional[StdinSource]) -> Tuple[Any, Optional[Any]]:
        if stdin is None:
            return subprocess.DEVNULL, None
        if isinstance(stdin, str):
            return subprocess.PIPE, stdin.encode()
        if isinstance(stdin, (bytes, bytearray, memoryview)):
            return subprocess.PIPE, bytes(stdin)
        if _usable_fileno(stdin) is not None:
            return stdin, None
        return subprocess.PIPE, stdin

    @staticmethod
    def _stdout_wiring(stdout: Optional[IO[Any]]) -> Tuple[Any, Optional[IO[Any]]]:
        if stdout is None:
            return subprocess.PIPE, None
        if _usable_fileno(stdout) is not None:
            # Whatever is buffered has to land before the child's output
            if hasattr(stdout, "flush"):
                stdout.flush()
            return stdout, None
        return subprocess.PIPE, stdout

    def _feed(self, pipe: IO[bytes], source: Any) -> None:
        try:
            if isinstance(source, bytes):
                pipe.write(source)
            else:
                while True:
                    chunk = source.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    pipe.write(chunk.encode() if isinstance(chunk, str) else chunk)
        except BrokenPipeError:
            # The child exited without reading all of its input
            pass
        except OSError as exc:
            self.logger.log("Failed to write standard input", logging.WARNING, str(exc))
        finally:
            try:
                pipe.close()
            except OSError:
                pass

    def _drain(
        self,
        name: str,
        pipe: IO[bytes],
        sink: Optional[IO[Any]],
        results: Dict[str, bytes],
        errors: Dict[str, Exception],
    ) -> None:
        chunks: List[bytes] = []
        decoder = None
        if isinstance(sink, io.TextIOBase):
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

        discard = False
        try:
            while True:
                try:
                    chunk = pipe.read1(READ_CHUNK_SIZE)
                except (OSError, ValueError) as exc:
                    errors[name] = exc
                    break
                if not chunk:
                    break
                if sink is None:
                    chunks.append(chunk)
                elif not discard:
                    try:
                        sink.write(decoder.decode(chunk) if decoder else chunk)
                    except (OSError, ValueError, TypeError) as exc:
                        # Keep reading so the child never blocks on a full pipe
                        errors[name] = exc
                        discard = True
            if decoder is not None and not discard:
                tail = decoder.decode(b"", final=True)
                if tail:
                    sink.write(tail)
        finally:
            pipe.close()
            results[name] = b"".join(chunks)

    def kill(self) -> None:
        """
        Kill the running process. Does nothing when no process is running.
        """
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                return
            self._killed = True
            self.logger.log(f"Killing process {process.pid}", logging.INFO)
            _kill_process_group(process)

    def reset(self) -> None:
        """
        Forget the output of the last run and return to the idle state.
        """
        with self._lock:
            self._process = None
            self._killed = False
        self._stdout = b""
        self._stderr = b""
        self.returncode = None
        self.state = ProcessState.IDLE
