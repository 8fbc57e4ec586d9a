"""
Source acquirer for wrapped binaries.

This package handles:
1. Selecting the source for the running platform
2. Downloading it
3. Extracting archives
4. Stripping wrapper directories
"""

from .acquirer import Acquirer
from .acquisition_plan import (
    AcquisitionPlan,
    AcquisitionStatus,
    AcquisitionTarget,
)

__all__ = ["Acquirer", "AcquisitionPlan", "AcquisitionStatus", "AcquisitionTarget"]
