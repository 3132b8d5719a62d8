"""
Custom exception hierarchy for the pH speciation solver.

Provides specific exception types for better error handling and debugging.
All exceptions inherit from SpeciationError for easy catching of solver errors.
"""
from typing import Any, Dict, Optional


class SpeciationError(Exception):
    """Base exception for all pH speciation errors.

    All custom exceptions in this module inherit from this class,
    allowing callers to catch any solver-specific error with a single handler.

    Attributes:
        message: Human-readable error description
        details: Optional dictionary with additional context
        hint: Optional suggestion for resolution
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None
    ):
        self.message = message
        self.details = details or {}
        self.hint = hint
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        parts = [self.message]
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"[{details_str}]")
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for error responses."""
        result = {
            "error": self.__class__.__name__,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.hint:
            result["hint"] = self.hint
        return result


# =============================================================================
# Input-Related Exceptions
# =============================================================================

class InvalidSpeciesError(SpeciationError):
    """Species definition is structurally incomplete or physically invalid.

    Raised at construction time, before any residual is evaluated.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        species: Optional[str] = None,
        hint: Optional[str] = None
    ):
        details = {}
        if species:
            details["species"] = species
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message=message, details=details, hint=hint)


class ConfigurationError(SpeciationError):
    """The species set or solver settings cannot form a valid balance."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        hint: Optional[str] = None
    ):
        super().__init__(message=message, details=details, hint=hint)


# =============================================================================
# Solver-Related Exceptions
# =============================================================================

class SolverError(SpeciationError):
    """Base exception for pH solver failures."""
    pass


class NonFiniteComputationError(SolverError):
    """A fraction vector or balance residual evaluated to NaN or infinity.

    This typically indicates overflow in the hydronium power terms at
    extreme pH, or pathological acidity constants.
    """

    def __init__(
        self,
        ph: Optional[float] = None,
        value: Optional[float] = None,
        stage: Optional[str] = None,
        hint: str = "Check acidity constants or narrow the pH search window"
    ):
        details = {}
        if stage:
            details["stage"] = stage
        if ph is not None:
            details["ph"] = ph
        if value is not None:
            details["value"] = str(value)
        super().__init__(
            message="Balance residual is not finite",
            details=details,
            hint=hint
        )


class ConvergenceError(SolverError):
    """pH refinement exhausted its iteration budget above tolerance.

    This is an expected failure mode: the system may not be well conditioned
    for the chosen method or initial guess.
    """

    def __init__(
        self,
        max_iterations: int,
        tolerance: float,
        last_ph: Optional[float] = None,
        last_residual: Optional[float] = None,
        method: Optional[str] = None,
        hint: str = "Enable the coarse scan, change the initial guess, loosen the tolerance or allow more iterations"
    ):
        details = {
            "max_iterations": max_iterations,
            "tolerance": tolerance,
        }
        if method:
            details["method"] = method
        if last_ph is not None:
            details["last_ph"] = last_ph
        if last_residual is not None:
            details["last_residual"] = last_residual
        super().__init__(
            message="Failed to converge to the desired tolerance",
            details=details,
            hint=hint
        )


class SolverCancelledError(SolverError):
    """Solve was cancelled or exceeded its deadline."""

    def __init__(
        self,
        iteration: int,
        reason: str = "cancelled",
        timeout_seconds: Optional[float] = None,
        hint: Optional[str] = None
    ):
        details = {"iteration": iteration, "reason": reason}
        if timeout_seconds is not None:
            details["timeout_seconds"] = timeout_seconds
        super().__init__(
            message=f"pH solve stopped before convergence ({reason})",
            details=details,
            hint=hint
        )
