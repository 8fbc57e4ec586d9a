"""
binwrapper makes command line tools usable as dependencies: it picks the
artifact for the running platform, downloads and unpacks it when missing, and
runs it with captured output, a timeout and kill support.
"""

from binwrapper.binwrapper import BinWrapper, WrapperConfig
from binwrapper.binwrapper_config import BinWrapperConfig, ToolConfig
from binwrapper.binwrapper_exceptions import (
    AcquisitionError,
    BinWrapperException,
    ConfigError,
    DeadlineExceeded,
    DownloadFailed,
    ExecutionError,
    ExtractionFailed,
    PlatformUnsupported,
    ProcessExitError,
    ProcessKilled,
    SpawnFailed,
    StreamReadFailed,
    StripFailed,
    UnrecognizedArchive,
)
from binwrapper.binwrapper_logger import BinWrapperLogger
from binwrapper.process_runner import ProcessRunner, ProcessState, RunConfiguration
from binwrapper.source_acquirer import Acquirer, AcquisitionTarget
from binwrapper.source_models import Source, SourceSet, select_source

__all__ = [
    "Acquirer",
    "AcquisitionError",
    "AcquisitionTarget",
    "BinWrapper",
    "BinWrapperConfig",
    "BinWrapperException",
    "BinWrapperLogger",
    "ConfigError",
    "DeadlineExceeded",
    "DownloadFailed",
    "ExecutionError",
    "ExtractionFailed",
    "PlatformUnsupported",
    "ProcessExitError",
    "ProcessKilled",
    "ProcessRunner",
    "ProcessState",
    "RunConfiguration",
    "Source",
    "SourceSet",
    "SpawnFailed",
    "StreamReadFailed",
    "StripFailed",
    "ToolConfig",
    "UnrecognizedArchive",
    "WrapperConfig",
    "select_source",
]
