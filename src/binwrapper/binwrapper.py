"""
This file contains the main interface of binwrapper: a fluent wrapper that
makes a command line tool available on disk and runs it.

Usage:
```
bin = (
    BinWrapper()
    .src(Source(url="https://example.com/tool-linux.tar.gz", os="linux"))
    .src(Source(url="https://example.com/tool-darwin.tar.gz", os="darwin"))
    .dest("vendor")
    .exec_path("tool")
    .strip(1)
)
bin.run("--version")
print(bin.stdout())
```
"""

import dataclasses
from typing import IO, Any, Optional, Tuple

from binwrapper.binwrapper_config import ToolConfig
from binwrapper.binwrapper_logger import BinWrapperLogger
from binwrapper.process_runner import (
    ProcessRunner,
    ProcessState,
    RunConfiguration,
    normalize_env,
    normalize_timeout,
)
from binwrapper.process_runner.runner import EnvSpec, StdinSource, TimeoutSpec
from binwrapper.source_acquirer import Acquirer, AcquisitionTarget
from binwrapper.source_models import Source


@dataclasses.dataclass(frozen=True)
class WrapperConfig:
    """
    Snapshot of a BinWrapper's configuration. Never mutated; setters on the
    wrapper swap in a new snapshot.
    """

    sources: Tuple[Source, ...] = ()
    target: AcquisitionTarget = AcquisitionTarget()
    run: RunConfiguration = RunConfiguration()


class BinWrapper:
    """
    Makes a command line tool usable as a dependency: resolves the binary for
    the platform, downloads it when missing and runs it.
    """

    def __init__(
        self,
        logger: Optional[BinWrapperLogger] = None,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
    ):
        """
        Args:
            logger: Logger shared by acquisition and execution
            os_name: Platform OS used to pick sources; defaults to the running OS
            arch: Platform architecture; defaults to the running architecture
        """
        self.logger = logger or BinWrapperLogger()
        self.acquirer = Acquirer(self.logger, os_name=os_name, arch=arch)
        self.runner = ProcessRunner(self.logger)
        self._config = WrapperConfig()

    @classmethod
    def from_tool_config(cls, tool: ToolConfig, logger: Optional[BinWrapperLogger] = None) -> "BinWrapper":
        """
        Build a wrapper from a binwrapper.toml tool entry.
        """
        wrapper = cls(logger)
        wrapper._config = WrapperConfig(
            sources=tuple(tool.sources),
            target=AcquisitionTarget(
                dest=tool.dest,
                exec_name=tool.exec_name,
                auto_exe=tool.auto_exe,
                strip=tool.strip,
            ),
            run=RunConfiguration(
                args=tuple(tool.args),
                env=normalize_env(tool.env),
                timeout=normalize_timeout(tool.timeout),
                debug=tool.debug,
            ),
        )
        return wrapper

    @property
    def config(self) -> WrapperConfig:
        return self._config

    def _update_target(self, **changes: Any) -> "BinWrapper":
        self._config = dataclasses.replace(
            self._config, target=dataclasses.replace(self._config.target, **changes)
        )
        return self

    def _update_run(self, **changes: Any) -> "BinWrapper":
        self._config = dataclasses.replace(
            self._config, run=dataclasses.replace(self._config.run, **changes)
        )
        return self

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def src(self, source: Source) -> "BinWrapper":
        """Adds a source to download."""
        self._config = dataclasses.replace(self._config, sources=self._config.sources + (source,))
        return self

    def dest(self, dest: str) -> "BinWrapper":
        """Directory the files are downloaded to."""
        return self._update_target(dest=dest)

    def exec_path(self, exec_path: str) -> "BinWrapper":
        """Which file to use as the binary, relative to dest."""
        return self._update_target(exec_name=exec_path)

    def auto_exe(self) -> "BinWrapper":
        """Adds the .exe extension to the executable path on Windows."""
        return self._update_target(auto_exe=True)

    def skip_download(self) -> "BinWrapper":
        """Drops all sources so the binary is never downloaded."""
        self._config = dataclasses.replace(self._config, sources=())
        return self

    def strip(self, levels: int) -> "BinWrapper":
        """Strips a number of wrapper directories after extraction."""
        if levels < 0:
            raise ValueError(f"Strip levels must not be negative, got {levels}")
        return self._update_target(strip=levels)

    def arg(self, name: str, *values: str) -> "BinWrapper":
        """Adds a command line argument to run the binary with."""
        return self._update_run(args=self._config.run.args + (name, *values))

    def debug(self) -> "BinWrapper":
        """
        Logs the command line at INFO level before each run, through the
        "binwrapper" logger. The host application has to enable INFO for
        that logger (e.g. logging.basicConfig(level=logging.INFO)) to see it.
        """
        return self._update_run(debug=True)

    def stdin(self, source: StdinSource) -> "BinWrapper":
        return self._update_run(stdin=source)

    def set_stdout(self, writer: IO[Any]) -> "BinWrapper":
        """Sends standard output to writer instead of capturing it."""
        return self._update_run(stdout=writer)

    def env(self, env: Optional[EnvSpec]) -> "BinWrapper":
        """
        Environment of the process, as a mapping or "NAME=value" strings.
        None inherits the environment of the host process.
        """
        return self._update_run(env=normalize_env(env))

    def timeout(self, timeout: Optional[TimeoutSpec]) -> "BinWrapper":
        """Seconds (or a timedelta) after which the process is killed."""
        return self._update_run(timeout=normalize_timeout(timeout))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def args(self) -> Tuple[str, ...]:
        """Arguments added with arg()."""
        return self._config.run.args

    def path(self) -> str:
        """
        Full path to the binary, honouring the exec_path of the source that
        matches the platform. With sources and no dest the binary is
        downloaded into, and run from, the current directory.
        """
        config = self._config
        if not config.sources:
            return config.target.path_for(self.acquirer.os_name)
        source = self.acquirer.select(config.sources)
        return config.target.acquired_path_for(self.acquirer.os_name, source)

    def stdout(self) -> bytes:
        """The binary's standard output after run() was called."""
        return self.runner.stdout

    def stderr(self) -> bytes:
        """The binary's standard error after run() was called."""
        return self.runner.stderr

    def combined_output(self) -> bytes:
        return self.runner.combined_output()

    @property
    def state(self) -> str:
        return self.runner.state

    @property
    def returncode(self) -> Optional[int]:
        return self.runner.returncode

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def run(self, *args: str) -> None:
        """
        Runs the binary, downloading it first when sources are configured
        and it is missing. args are appended to the ones set with arg().

        Raises:
            AcquisitionError: If the binary could not be made available
            ExecutionError: If running it failed
        """
        config = self._config

        if config.sources:
            path = self.acquirer.ensure_available(config.target, config.sources)
        else:
            path = config.target.path_for(self.acquirer.os_name)

        self.runner.run(path, config.run, *args)

    def kill(self) -> None:
        """Kills the running process; does nothing when none is running."""
        self.runner.kill()

    def reset(self) -> "BinWrapper":
        """
        Removes arguments, environment and stream settings, and forgets the
        output of the last run. Location and timeout settings are kept.
        """
        run = self._config.run
        self._config = dataclasses.replace(
            self._config, run=RunConfiguration(timeout=run.timeout, debug=run.debug)
        )
        self.runner.reset()
        return self

    def __repr__(self) -> str:
        return f"<BinWrapper path={self.path()!r} state={self.state!r}>"


__all__ = ["BinWrapper", "WrapperConfig", "ProcessState"]
