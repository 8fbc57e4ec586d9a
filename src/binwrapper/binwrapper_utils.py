"""
This file contains various utility functions like I/O operations, handling paths, etc.
"""

import logging
import os
import platform
import shutil
import stat
from typing import Optional
from urllib.parse import urlparse

import requests

from binwrapper.binwrapper_exceptions import (
    DownloadFailed,
    ExtractionFailed,
    UnrecognizedArchive,
)
from binwrapper.binwrapper_logger import BinWrapperLogger

# platform.system().lower() -> conventional OS identifier
_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
    "openbsd": "openbsd",
    "netbsd": "netbsd",
    "sunos": "solaris",
    "aix": "aix",
}

# platform.machine().lower() -> conventional architecture identifier
_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "ppc64le": "ppc64le",
    "ppc64": "ppc64",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

WINDOWS = "windows"

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class PlatformUtils:
    """
    This class provides utilities for platform detection and identification.
    """

    @staticmethod
    def get_os_name() -> str:
        """
        Returns the OS identifier of the running system (linux, darwin, windows, ...)
        """
        system = platform.system().lower()
        if system.startswith(("cygwin", "msys", "mingw")):
            return WINDOWS
        return _OS_ALIASES.get(system, system)

    @staticmethod
    def get_arch() -> str:
        """
        Returns the architecture identifier of the running system (amd64, 386, arm64, ...)
        """
        machine = platform.machine().lower()
        return _ARCH_ALIASES.get(machine, machine)


class FileUtils:
    """
    Utility functions for file operations.
    """

    @staticmethod
    def file_name_from_url(url: str) -> str:
        """
        Derives the local file name from the last segment of the URL's path.
        """
        name = urlparse(url).path.rstrip("/").split("/")[-1]
        if not name:
            raise DownloadFailed(url, "cannot derive a file name from the URL path")
        return name

    @staticmethod
    def download_file(
        logger: BinWrapperLogger, url: str, target_path: str, timeout: Optional[float] = None
    ) -> None:
        """
        Downloads the file from the given URL to the given target path. The body is
        streamed to disk and the file is created executable by its owner.
        """
        logger.log(f"Downloading file from {url} to {target_path}", logging.INFO)
        try:
            response = requests.get(url, stream=True, allow_redirects=True, timeout=timeout)
        except requests.RequestException as exc:
            logger.log(f"Error downloading file from {url}", logging.ERROR, str(exc))
            raise DownloadFailed(url, str(exc)) from exc

        with response:
            if not 200 <= response.status_code < 400:
                logger.log(
                    f"Error downloading file from {url}: status {response.status_code}",
                    logging.ERROR,
                )
                raise DownloadFailed(
                    url, f"unexpected status {response.status_code}", response.status_code
                )

            fd = os.open(target_path, os.O_RDWR | os.O_CREAT | os.O_TRUNC, 0o755)
            try:
                with os.fdopen(fd, "wb") as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            f.write(chunk)
            except requests.RequestException as exc:
                logger.log(f"Error reading response body from {url}", logging.ERROR, str(exc))
                raise DownloadFailed(url, str(exc)) from exc

    @staticmethod
    def is_archive(path: str) -> bool:
        """
        Checks whether shutil knows an unpack format for the given file name.
        """
        lowered = path.lower()
        for _name, extensions, _description in shutil.get_unpack_formats():
            if any(lowered.endswith(ext) for ext in extensions):
                return True
        return False

    @staticmethod
    def extract_archive(logger: BinWrapperLogger, archive_path: str, target_path: str) -> None:
        """
        Unpacks the archive into target_path, detecting the format from the file name.
        """
        if not FileUtils.is_archive(archive_path):
            raise UnrecognizedArchive(archive_path)

        logger.log(f"Extracting {archive_path} to {target_path}", logging.INFO)
        try:
            shutil.unpack_archive(archive_path, target_path)
        except (shutil.ReadError, ValueError, OSError, EOFError) as exc:
            logger.log(f"Error extracting {archive_path}", logging.ERROR, str(exc))
            raise ExtractionFailed(archive_path, str(exc)) from exc

    @staticmethod
    def make_executable(path: str) -> None:
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
