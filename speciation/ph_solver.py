"""
pH Solver

Finds the pH at which the balance residual vanishes, in two phases:

1. Optional coarse scan: evaluate the residual on an evenly spaced grid over
   the pH window and start from the best grid point. The residual is not
   convex near the window edges (the [H+] and [OH-] terms diverge), so an
   arbitrary start can wander into a non-physical minimum.
2. Refinement until |residual| <= tolerance or the iteration budget runs out:
   - gradient_descent: forward-difference gradient of |residual| with a fixed
     learning rate
   - newton: Newton-Raphson on the signed residual with a finite-difference
     slope, falling back to bisection inside the sign-change bracket

An exhausted budget raises ConvergenceError; no best-effort pH is returned.
"""

from dataclasses import dataclass, field
from threading import Event
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import logging
import math
import time

import numpy as np

from .balance import BalanceFunction
from .core_config import CONFIG
from .exceptions import (
    ConvergenceError,
    NonFiniteComputationError,
    SolverCancelledError,
)
from .schemas import SolverMethod, SolverOptions
from .species import Species

logger = logging.getLogger(__name__)


@dataclass
class PHSolution:
    """Result of a converged solve."""
    ph: float
    residual: float
    iterations: int
    initial_guess: float  # pH refinement started from (after the scan)
    scan_used: bool
    method: SolverMethod
    kw: float
    tolerance: float
    species: List[Species] = field(default_factory=list, repr=False)

    def alphas(self) -> List[Tuple[Species, np.ndarray]]:
        """Each species paired with its fraction vector at the solved pH."""
        return [(s, s.alpha(self.ph)) for s in self.species]


class _StopCheck:
    """Cancellation and deadline probe, evaluated once per iteration."""

    def __init__(self, cancel_event: Optional[Event], timeout_seconds: Optional[float]):
        self.cancel_event = cancel_event
        self.timeout_seconds = timeout_seconds
        self.deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def __call__(self, iteration: int):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise SolverCancelledError(iteration=iteration, reason="cancelled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise SolverCancelledError(
                iteration=iteration,
                reason="deadline exceeded",
                timeout_seconds=self.timeout_seconds,
                hint="Increase timeout_seconds or enable the coarse scan"
            )


def coarse_scan(
    balance: BalanceFunction,
    scan_points: int = CONFIG.DEFAULT_SCAN_POINTS,
    ph_min: float = CONFIG.PH_SCAN_MIN,
    ph_max: float = CONFIG.PH_SCAN_MAX
) -> Tuple[float, float]:
    """
    Locate the grid point with the smallest finite residual.

    Ties resolve to the lowest pH.

    Returns:
        Tuple of (best_ph, residual_at_best_ph)

    Raises:
        NonFiniteComputationError: If no grid point has a finite residual
    """
    grid = np.linspace(ph_min, ph_max, scan_points)
    residuals = balance.evaluate_grid(grid)
    finite = np.isfinite(residuals)

    if not finite.any():
        raise NonFiniteComputationError(stage="coarse_scan")
    if not finite.all():
        logger.debug(f"Coarse scan skipped {int((~finite).sum())} non-finite grid points")

    best = int(np.argmin(np.where(finite, residuals, np.inf)))
    logger.debug(f"Coarse scan best pH {grid[best]:.4f} (residual {residuals[best]:.3e})")
    return float(grid[best]), float(residuals[best])


def _gradient_descent(
    balance: BalanceFunction,
    guess: float,
    options: SolverOptions,
    stop: _StopCheck
) -> Tuple[float, float, int]:
    eps = options.effective_epsilon
    ph = guess
    diff = balance(ph)
    iteration = 0

    while diff > options.tolerance and iteration < options.max_iterations:
        stop(iteration)
        gradient = (balance(ph + eps) - diff) / eps
        ph -= options.learning_rate * gradient
        diff = balance(ph)
        iteration += 1

        if iteration % CONFIG.PROGRESS_LOG_INTERVAL == 0:
            logger.debug(f"Iteration {iteration}: pH {ph:.5f}, residual {diff:.3e}, gradient {gradient:.3e}")

    return ph, diff, iteration


def _bracket(balance: BalanceFunction, lo: float, hi: float) -> Optional[Tuple[float, float, float, float]]:
    """Signed residual at both window edges, or None if they share a sign."""
    try:
        f_lo, f_hi = balance.signed(lo), balance.signed(hi)
    except NonFiniteComputationError as e:
        logger.debug(f"No bracket, window edge not finite: {e}")
        return None
    if f_lo * f_hi >= 0:
        return None
    return lo, f_lo, hi, f_hi


def _newton(
    balance: BalanceFunction,
    guess: float,
    options: SolverOptions,
    stop: _StopCheck
) -> Tuple[float, float, int]:
    eps = options.effective_epsilon
    bracket = _bracket(balance, options.scan_min, options.scan_max)
    if bracket is not None:
        lo, f_lo, hi, _ = bracket
        ph = min(max(guess, lo), hi)
    else:
        ph = guess

    f = balance.signed(ph)
    iteration = 0

    while abs(f) > options.tolerance and iteration < options.max_iterations:
        stop(iteration)

        if bracket is not None:
            if (f < 0) == (f_lo < 0):
                lo, f_lo = ph, f
            else:
                hi = ph

        slope = (balance.signed(ph + eps) - f) / eps
        candidate = ph - f / slope if slope != 0 and math.isfinite(slope) else None

        if bracket is not None:
            if candidate is None or not lo < candidate < hi:
                candidate = 0.5 * (lo + hi)
        elif candidate is None:
            logger.warning(f"Flat residual at pH {ph:.5f} with no sign-change bracket")
            raise ConvergenceError(
                max_iterations=options.max_iterations,
                tolerance=options.tolerance,
                last_ph=ph,
                last_residual=abs(f),
                method=SolverMethod.NEWTON.value,
                hint="Enable the coarse scan or use gradient_descent"
            )

        ph = candidate
        f = balance.signed(ph)
        iteration += 1

        if iteration % CONFIG.PROGRESS_LOG_INTERVAL == 0:
            logger.debug(f"Iteration {iteration}: pH {ph:.5f}, residual {abs(f):.3e}")

    return ph, abs(f), iteration


_REFINERS: Dict[SolverMethod, Callable[..., Tuple[float, float, int]]] = {
    SolverMethod.GRADIENT_DESCENT: _gradient_descent,
    SolverMethod.NEWTON: _newton,
}


def solve_ph(
    species: Union[Sequence[Species], BalanceFunction],
    kw: Optional[float] = None,
    options: Optional[SolverOptions] = None,
    cancel_event: Optional[Event] = None
) -> PHSolution:
    """
    Solve the equilibrium pH of a species set.

    Args:
        species: Species weighted for one balance mode, or a prepared BalanceFunction
        kw: Ion product of water; None or 0 uses CONFIG.DEFAULT_KW.
            Ignored when a BalanceFunction is passed.
        options: Solver settings (defaults from CONFIG)
        cancel_event: Set from another thread to abandon the solve

    Returns:
        PHSolution with residual <= options.tolerance

    Raises:
        ConfigurationError: Empty or mixed-mode species set, invalid Kw
        NonFiniteComputationError: Residual evaluated to NaN/Inf
        ConvergenceError: Iteration budget exhausted above tolerance
        SolverCancelledError: cancel_event set or timeout_seconds elapsed
    """
    options = options or SolverOptions()
    if isinstance(species, BalanceFunction):
        balance = species
    else:
        balance = BalanceFunction(species, CONFIG.resolve_kw(kw))

    method = SolverMethod(options.method)
    stop = _StopCheck(cancel_event, options.timeout_seconds)
    stop(0)

    guess = options.initial_guess
    if options.use_coarse_scan:
        guess, _ = coarse_scan(balance, options.scan_points, options.scan_min, options.scan_max)

    logger.debug(f"Refining from pH {guess:.4f} with {method.value} ({balance!r})")
    ph, residual, iterations = _REFINERS[method](balance, guess, options, stop)

    if residual > options.tolerance:
        logger.warning(
            f"pH solve did not converge after {iterations} iterations "
            f"(pH {ph:.5f}, residual {residual:.3e} > {options.tolerance:.1e})"
        )
        raise ConvergenceError(
            max_iterations=options.max_iterations,
            tolerance=options.tolerance,
            last_ph=ph,
            last_residual=residual,
            method=method.value
        )

    logger.info(f"Solved pH {ph:.5f} in {iterations} iterations (residual {residual:.3e})")
    return PHSolution(
        ph=float(ph),
        residual=float(residual),
        iterations=iterations,
        initial_guess=float(guess),
        scan_used=options.use_coarse_scan,
        method=method,
        kw=balance.kw,
        tolerance=options.tolerance,
        species=list(balance.species),
    )
