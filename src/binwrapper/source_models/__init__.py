"""
Source models for wrapped binaries.

This package provides Pydantic data models describing where a binary can be
downloaded from for each platform, and the selection of the best fit.
"""

from .sources import (
    Source,
    SourceSet,
    select_source,
)

__all__ = [
    "Source",
    "SourceSet",
    "select_source",
]
