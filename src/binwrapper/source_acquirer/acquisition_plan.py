"""
Acquisition targets and plans.

Captures where a binary should end up and tracks one download of it.
"""

import dataclasses
import os
from typing import Optional

from binwrapper.binwrapper_utils import WINDOWS
from binwrapper.source_models import Source


class AcquisitionStatus:
    """Enumeration of acquisition statuses."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


def with_exe_suffix(exec_name: str, auto_exe: bool, os_name: str) -> str:
    """
    Appends .exe to the executable name on Windows when auto_exe is enabled.
    """
    if auto_exe and os_name == WINDOWS and exec_name:
        if os.path.splitext(exec_name)[1].lower() != ".exe":
            return exec_name + ".exe"
    return exec_name


def join_exec_path(dest: str, exec_name: str) -> str:
    """
    Joins the destination directory and the executable name.

    "." keeps an explicit "./name" so the current directory is used instead
    of a PATH lookup. An empty dest yields the bare name, which is looked up
    on PATH when the process is launched.
    """
    if dest == ".":
        return dest + os.sep + exec_name
    return os.path.join(dest, exec_name)


@dataclasses.dataclass(frozen=True)
class AcquisitionTarget:
    """
    Where the binary lives once it has been acquired.
    """

    dest: str = ""
    exec_name: str = ""
    auto_exe: bool = False
    strip: int = 0

    def exec_name_for(self, os_name: str, source: Optional[Source] = None) -> str:
        """
        The effective executable name, honouring a source's exec_path override.
        """
        name = source.exec_path if source is not None and source.exec_path else self.exec_name
        return with_exe_suffix(name, self.auto_exe, os_name)

    def path_for(self, os_name: str, source: Optional[Source] = None) -> str:
        return join_exec_path(self.dest, self.exec_name_for(os_name, source))

    @property
    def download_dest(self) -> str:
        """The directory downloads go to; the current directory when dest is unset."""
        return self.dest or "."

    def acquired_path_for(self, os_name: str, source: Optional[Source] = None) -> str:
        """
        Path of the binary when it is downloaded. Unlike path_for, an empty dest
        points at the current directory rather than a PATH lookup.
        """
        return join_exec_path(self.download_dest, self.exec_name_for(os_name, source))


class AcquisitionPlan:
    """
    A plan to download a specific source.

    Captures all information needed to download and extract the source.
    """

    def __init__(
        self,
        target: AcquisitionTarget,
        source: Source,
        destination_path: str,
        archive_path: str,
        status: str = AcquisitionStatus.PENDING,
    ):
        """
        Initialize an acquisition plan.

        Args:
            target: The target the source is acquired for
            source: The selected source
            destination_path: Directory the archive is unpacked into
            archive_path: Where the downloaded file is written
            status: Current acquisition status
        """
        self.target = target
        self.source = source
        self.url = source.url
        self.destination_path = destination_path
        self.archive_path = archive_path
        self.status = status
        self.error_message: Optional[str] = None

    def mark_failed(self, error: Exception) -> None:
        self.status = AcquisitionStatus.FAILED
        self.error_message = str(error)

    def __repr__(self) -> str:
        return (
            f"AcquisitionPlan(url={self.url}, "
            f"status={self.status}, destination={self.destination_path})"
        )
