"""Core module - models, constants and errors."""

from .constants import BPS, SECONDS_PER_YEAR, WAD
from .errors import (
    AllocationError,
    ExternalCallError,
    MissingDataError,
    PreconditionError,
    RebalanceError,
    ReentrancyError,
    SimulationInvariantError,
    ValidationError,
)

__all__ = [
    "BPS",
    "SECONDS_PER_YEAR",
    "WAD",
    "AllocationError",
    "ExternalCallError",
    "MissingDataError",
    "PreconditionError",
    "RebalanceError",
    "ReentrancyError",
    "SimulationInvariantError",
    "ValidationError",
]
