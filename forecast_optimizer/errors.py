"""
Exception hierarchy for the optimization engine.

Only DataError, ProviderError and PersistenceError are raised. An AI proposal
that fails validation is an ordinary outcome (see ai_refinement.RefinementDecision),
never an exception.
"""


class OptimizationError(Exception):
    """Base class for engine errors"""


class DataError(OptimizationError):
    """Malformed or unusable observation data"""


class ProviderError(OptimizationError):
    """The AI advisor could not be reached or returned an unusable response"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(OptimizationError):
    """A queue or cache store write failed"""
