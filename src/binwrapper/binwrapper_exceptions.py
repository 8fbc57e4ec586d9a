"""
This file contains various exceptions used by binwrapper.

Every failure surfaced to callers is a BinWrapperException subclass so that
acquisition and execution problems can be told apart with ``except`` clauses.
"""

from typing import Optional


class BinWrapperException(Exception):
    """
    Base exception for binwrapper
    """

    def __init__(self, message: str):
        super().__init__(message)


class ConfigError(BinWrapperException):
    """Raised when a binwrapper.toml file is invalid or missing."""


# ============================================================================
# Acquisition
# ============================================================================


class AcquisitionError(BinWrapperException):
    """Raised when the executable could not be made available on disk."""


class PlatformUnsupported(AcquisitionError):
    """No configured source matches the running platform."""

    def __init__(self, os_name: str, arch: str):
        super().__init__(
            f"No binary found matching your system ({os_name}/{arch}). "
            "It's probably not supported."
        )
        self.os_name = os_name
        self.arch = arch


class DownloadFailed(AcquisitionError):
    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"Failed to download {url}: {message}")
        self.url = url
        self.status_code = status_code


class ExtractionFailed(AcquisitionError):
    def __init__(self, archive: str, message: str):
        super().__init__(f"Failed to extract {archive}: {message}")
        self.archive = archive


class UnrecognizedArchive(AcquisitionError):
    """The downloaded file is not in an archive format we can unpack."""

    def __init__(self, archive: str):
        super().__init__(
            f"{archive} is not an archive or has an unsupported archive format"
        )
        self.archive = archive


class StripFailed(AcquisitionError):
    def __init__(self, directory: str, message: str):
        super().__init__(f"Failed to strip {directory}: {message}")
        self.directory = directory


# ============================================================================
# Execution
# ============================================================================


class ExecutionError(BinWrapperException):
    """Raised when running the executable did not succeed."""


class SpawnFailed(ExecutionError):
    def __init__(self, path: str, message: str):
        super().__init__(f"Failed to start {path}: {message}")
        self.path = path


class StreamReadFailed(ExecutionError):
    def __init__(self, stream: str, message: str):
        super().__init__(f"Failed to read {stream}: {message}")
        self.stream = stream


class DeadlineExceeded(ExecutionError, TimeoutError):
    def __init__(self, timeout: float):
        super().__init__(f"context deadline exceeded after {timeout}s")
        self.timeout = timeout


class ProcessExitError(ExecutionError):
    """
    The process ran but exited unsuccessfully. Captured output stays
    available on the error as well as on the wrapper.
    """

    def __init__(
        self,
        returncode: int,
        stdout: bytes = b"",
        stderr: bytes = b"",
        message: Optional[str] = None,
    ):
        super().__init__(message or f"exit status {returncode}")
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ProcessKilled(ProcessExitError):
    def __init__(self, returncode: int, stdout: bytes = b"", stderr: bytes = b""):
        super().__init__(
            returncode, stdout, stderr, message=f"signal: killed (exit status {returncode})"
        )
