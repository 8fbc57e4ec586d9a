"""
Source acquirer implementation.

Handles downloading, extracting and flattening the archive of a wrapped binary.
"""

import logging
import os
import shutil
import uuid
from typing import List, Optional, Sequence

from binwrapper.binwrapper_exceptions import (
    AcquisitionError,
    PlatformUnsupported,
    StripFailed,
    UnrecognizedArchive,
)
from binwrapper.binwrapper_logger import BinWrapperLogger
from binwrapper.binwrapper_utils import FileUtils, PlatformUtils
from binwrapper.source_acquirer.acquisition_plan import (
    AcquisitionPlan,
    AcquisitionStatus,
    AcquisitionTarget,
)
from binwrapper.source_models import Source, select_source

_STRIP_TEMP_PREFIX = ".binwrapper-strip-"


class Acquirer:
    """
    Makes a wrapped binary available on disk.

    Selects the source matching the platform, downloads it, unpacks it and
    strips wrapper directories. Nothing is done when the binary already exists.
    """

    def __init__(
        self,
        logger: Optional[BinWrapperLogger] = None,
        os_name: Optional[str] = None,
        arch: Optional[str] = None,
        download_timeout: Optional[float] = None,
    ):
        """
        Initialize the acquirer.

        Args:
            logger: Logger for progress and error messages
            os_name: Platform OS to select sources for; defaults to the running OS
            arch: Platform architecture; defaults to the running architecture
            download_timeout: Connect/read timeout in seconds for the download
        """
        self.logger = logger or BinWrapperLogger()
        self.os_name = os_name or PlatformUtils.get_os_name()
        self.arch = arch or PlatformUtils.get_arch()
        self.download_timeout = download_timeout

    def select(self, sources: Sequence[Source]) -> Optional[Source]:
        return select_source(sources, self.os_name, self.arch)

    def ensure_available(self, target: AcquisitionTarget, sources: Sequence[Source]) -> str:
        """
        Make sure the binary of the target exists, downloading it if needed.

        Args:
            target: Destination directory, executable name and strip levels
            sources: Candidate sources in declaration order

        Returns:
            The effective path of the executable

        Raises:
            AcquisitionError: If the binary could not be acquired
            OSError: If the existing path could not be inspected
        """
        source = self.select(sources)
        path = target.acquired_path_for(self.os_name, source)

        try:
            os.stat(path)
            return path
        except FileNotFoundError:
            pass

        if source is None:
            self.logger.log(
                f"No source for {self.os_name}/{self.arch} among {len(sources)} sources",
                logging.ERROR,
            )
            raise PlatformUnsupported(self.os_name, self.arch)

        self.logger.log(f"{path} not found. Downloading...", logging.INFO)
        plan = self.create_plan(target, source)
        self.execute_plan(plan)
        return path

    def create_plan(self, target: AcquisitionTarget, source: Source) -> AcquisitionPlan:
        destination = target.download_dest
        archive_path = os.path.join(destination, FileUtils.file_name_from_url(source.url))
        return AcquisitionPlan(
            target=target,
            source=source,
            destination_path=destination,
            archive_path=archive_path,
        )

    def execute_plan(self, plan: AcquisitionPlan) -> None:
        """
        Download, extract and strip according to the plan.

        Raises:
            AcquisitionError: If any step fails; the plan is marked failed
        """
        plan.status = AcquisitionStatus.IN_PROGRESS
        try:
            os.makedirs(plan.destination_path, mode=0o755, exist_ok=True)
            FileUtils.download_file(
                self.logger, plan.url, plan.archive_path, timeout=self.download_timeout
            )
            self.logger.log(
                f"{plan.archive_path} downloaded. Trying to extract...", logging.INFO
            )

            existing_entries = set(os.listdir(plan.destination_path))
            if self._extract(plan) and plan.target.strip > 0:
                self.strip_directory(
                    plan.destination_path, plan.target.strip, existing_entries
                )

            path = plan.target.acquired_path_for(self.os_name, plan.source)
            if os.path.isfile(path):
                FileUtils.make_executable(path)
        except (AcquisitionError, OSError) as exc:
            plan.mark_failed(exc)
            self.logger.log(f"Failed to acquire {plan.url}", logging.ERROR, str(exc))
            raise

        plan.status = AcquisitionStatus.COMPLETED
        self.logger.log(
            f"Successfully acquired {plan.url} into {plan.destination_path}", logging.INFO
        )

    def _extract(self, plan: AcquisitionPlan) -> bool:
        """
        Unpack the downloaded file. Returns False when it was kept as a bare binary.
        """
        if not FileUtils.is_archive(plan.archive_path):
            if plan.target.strip > 0:
                self._remove_archive(plan.archive_path)
                raise UnrecognizedArchive(plan.archive_path)

            self.logger.log(
                f"{plan.archive_path} is not an archive or has an unsupported archive format",
                logging.WARNING,
            )
            return False

        try:
            FileUtils.extract_archive(self.logger, plan.archive_path, plan.destination_path)
        finally:
            self._remove_archive(plan.archive_path)
        return True

    def _remove_archive(self, archive_path: str) -> None:
        try:
            os.remove(archive_path)
        except OSError as exc:
            self.logger.log(f"Could not remove {archive_path}", logging.WARNING, str(exc))

    def strip_directory(
        self, dest: str, levels: int, existing_entries: Optional[set] = None
    ) -> None:
        """
        Flatten `levels` nested wrapper directories into dest.

        Every level must hold exactly one subdirectory. At the top level only
        directories that were not present before extraction are considered,
        unless there are none. Moves already made are not rolled back.

        Args:
            dest: The directory the archive was extracted into
            levels: Number of wrapper directories to remove
            existing_entries: Entries of dest before extraction

        Raises:
            StripFailed: If the layout is ambiguous or a move fails
        """
        wrapper = self._single_subdirectory(dest, existing_entries or set())

        # The wrapper is renamed first so an entry sharing its name can move up
        staging = os.path.join(dest, _STRIP_TEMP_PREFIX + uuid.uuid4().hex)
        try:
            os.rename(wrapper, staging)
        except OSError as exc:
            raise StripFailed(wrapper, str(exc)) from exc

        innermost = staging
        for _ in range(1, levels):
            innermost = self._single_subdirectory(innermost)

        self.logger.log(f"Stripping {levels} levels from {dest}", logging.INFO)
        try:
            entries = sorted(os.listdir(innermost))
        except OSError as exc:
            raise StripFailed(innermost, str(exc)) from exc

        for entry in entries:
            try:
                os.rename(os.path.join(innermost, entry), os.path.join(dest, entry))
            except OSError as exc:
                raise StripFailed(innermost, f"cannot move {entry}: {exc}") from exc

        shutil.rmtree(staging, ignore_errors=True)
        if os.path.exists(staging):
            self.logger.log(f"Could not remove {staging}", logging.WARNING)

    @staticmethod
    def _single_subdirectory(directory: str, ignore: Optional[set] = None) -> str:
        try:
            subdirectories = sorted(
                entry.name for entry in os.scandir(directory) if entry.is_dir()
            )
        except OSError as exc:
            raise StripFailed(directory, str(exc)) from exc

        if ignore:
            fresh: List[str] = [name for name in subdirectories if name not in ignore]
            subdirectories = fresh or subdirectories

        if len(subdirectories) != 1:
            raise StripFailed(
                directory,
                f"expected exactly one subdirectory, found {len(subdirectories)}"
                + (f": {', '.join(subdirectories)}" if subdirectories else ""),
            )
        return os.path.join(directory, subdirectories[0])
