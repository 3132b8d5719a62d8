"""
pH Calculation Tool

Translates a PHCalculationInput into Species, runs the solver and returns a
tagged PHCalculationResult. Solver and input errors never escape as
exceptions from here: they come back as status="error" with no pH.
"""

from concurrent.futures import ThreadPoolExecutor
from threading import Event
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import time

from pydantic import ValidationError

from .core_config import CONFIG
from .exceptions import SpeciationError
from .ph_solver import PHSolution, solve_ph
from .schemas import PHCalculationInput, PHCalculationResult, SpeciesSpeciation

logger = logging.getLogger(__name__)


def speciation_digest(solution: PHSolution) -> List[SpeciesSpeciation]:
    """Per-species constants, weights and alpha at the solved pH."""
    digest = []
    for species, alpha in solution.alphas():
        data = species.describe()
        digest.append(SpeciesSpeciation(alpha=alpha.tolist(), **data))
    return digest


def _error_result(error: SpeciationError, input_data: Optional[PHCalculationInput] = None) -> PHCalculationResult:
    return PHCalculationResult(
        status="error",
        mode=input_data.mode if input_data else None,
        kw=input_data.resolved_kw if input_data else None,
        tolerance=input_data.solver.tolerance if input_data else None,
        error=error.to_dict(),
    )


def calculate_ph(
    calculation_input: PHCalculationInput,
    cancel_event: Optional[Event] = None
) -> PHCalculationResult:
    """
    Solve the equilibrium pH for a validated calculation input.

    Args:
        calculation_input: Species definitions, Kw and solver options
        cancel_event: Set from another thread to abandon the solve

    Returns:
        PHCalculationResult; status "success" with ph and per-species alpha,
        or status "error" with the error payload and no ph
    """
    start_time = time.time()
    try:
        species = calculation_input.build_species()
        solution = solve_ph(
            species,
            kw=calculation_input.resolved_kw,
            options=calculation_input.solver,
            cancel_event=cancel_event,
        )
    except SpeciationError as e:
        logger.warning(f"pH calculation failed: {e}")
        return _error_result(e, calculation_input)

    elapsed = time.time() - start_time
    logger.info(f"pH calculation completed in {elapsed:.3f} seconds")

    return PHCalculationResult(
        status="success",
        mode=calculation_input.mode,
        ph=solution.ph,
        residual=solution.residual,
        iterations=solution.iterations,
        initial_guess=solution.initial_guess,
        scan_used=solution.scan_used,
        method=solution.method,
        kw=solution.kw,
        tolerance=solution.tolerance,
        species=speciation_digest(solution),
    )


def calculate_ph_from_dict(
    raw_input: Union[Dict[str, Any], PHCalculationInput],
    cancel_event: Optional[Event] = None
) -> PHCalculationResult:
    """Validate a raw dict and calculate; schema errors become error results."""
    if isinstance(raw_input, PHCalculationInput):
        return calculate_ph(raw_input, cancel_event)

    if not isinstance(raw_input, dict):
        logger.warning(f"Invalid pH calculation input: expected an object, got {type(raw_input).__name__}")
        return PHCalculationResult(
            status="error",
            error={
                "error": "ValidationError",
                "message": "Invalid calculation input",
                "details": {"input": f"Expected a JSON object, got {type(raw_input).__name__}"},
                "hint": "Pass one calculation input object with mode, species, kw and solver fields",
            },
        )

    try:
        calculation_input = PHCalculationInput(**raw_input)
    except ValidationError as e:
        logger.warning(f"Invalid pH calculation input: {e.error_count()} validation error(s)")
        return PHCalculationResult(
            status="error",
            error={
                "error": "ValidationError",
                "message": "Invalid calculation input",
                "details": {
                    ".".join(str(part) for part in err["loc"]): err["msg"]
                    for err in e.errors()
                },
                "hint": "Each species needs ka or pka, a concentration, and charge (charge mode) or max_protons (proton mode)",
            },
        )
    return calculate_ph(calculation_input, cancel_event)


def solve_batch(
    inputs: Sequence[Union[Dict[str, Any], PHCalculationInput]],
    max_workers: Optional[int] = None,
    cancel_event: Optional[Event] = None
) -> List[PHCalculationResult]:
    """
    Run independent calculations concurrently.

    Results are returned in input order; one failed calculation does not
    affect the others.
    """
    if not inputs:
        return []

    workers = max_workers or CONFIG.get_batch_workers()
    logger.info(f"Solving {len(inputs)} systems with {workers} workers")

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ph-batch") as executor:
        futures = [
            executor.submit(calculate_ph_from_dict, item, cancel_event)
            for item in inputs
        ]
        return [future.result() for future in futures]
