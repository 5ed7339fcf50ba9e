"""Error taxonomy for the allocation, simulation and backtesting engine."""

from typing import Optional


class AllocationError(Exception):
    """Base class for all engine errors."""


class ValidationError(AllocationError, ValueError):
    """Bad input rejected before any state mutation."""


class PreconditionError(AllocationError):
    """Operation called in a state that does not permit it."""


class ReentrancyError(PreconditionError):
    """A guarded entry point was invoked while another one was in flight."""


class ExternalCallError(AllocationError):
    """An external collaborator (strategy, token, oracle) failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class RebalanceError(ExternalCallError):
    """A rebalance or harvest was aborted and rolled back."""


class MissingDataError(AllocationError, LookupError):
    """No historical data at or before the requested timestamp."""


class SimulationInvariantError(AllocationError):
    """A simulation step violated a numeric invariant."""
