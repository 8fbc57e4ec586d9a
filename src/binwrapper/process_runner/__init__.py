"""
Process execution for wrapped binaries.
"""

from .runner import (
    ProcessRunner,
    ProcessState,
    RunConfiguration,
    normalize_env,
    normalize_timeout,
)

__all__ = [
    "ProcessRunner",
    "ProcessState",
    "RunConfiguration",
    "normalize_env",
    "normalize_timeout",
]
