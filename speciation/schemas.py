"""
Schema Definitions for pH Speciation Calculations

Provides Pydantic v2 models for the solver options, the data-entry side
(species definitions plus global constants) and the tagged calculation
result handed to reporting.
"""

from enum import Enum
from typing import Any, Dict, List, Literal, Optional
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

from .core_config import CONFIG
from .species import BalanceMode, Species

logger = logging.getLogger(__name__)


class ResponseFormat(str, Enum):
    """
    Output format for tool responses.

    JSON: Machine-readable structured data (default)
    MARKDOWN: Human-readable formatted text for display
    """
    JSON = "json"
    MARKDOWN = "markdown"


class SolverMethod(str, Enum):
    """Refinement method applied after the optional coarse scan."""
    GRADIENT_DESCENT = "gradient_descent"
    NEWTON = "newton"


# ============= Input Schemas =============

class SolverOptions(BaseModel):
    """pH solver settings. Defaults come from CONFIG."""
    initial_guess: float = Field(default=CONFIG.DEFAULT_INITIAL_GUESS, description="Starting pH")
    use_coarse_scan: bool = Field(
        default=False,
        description="Scan the pH window first and start from the best grid point (overrides initial_guess)"
    )
    scan_points: int = Field(default=CONFIG.DEFAULT_SCAN_POINTS, ge=2, description="Coarse scan grid size")
    scan_min: float = Field(default=CONFIG.PH_SCAN_MIN, description="Lower end of the pH window")
    scan_max: float = Field(default=CONFIG.PH_SCAN_MAX, description="Upper end of the pH window")
    tolerance: float = Field(default=CONFIG.DEFAULT_TOLERANCE, gt=0, description="Accepted absolute residual")
    max_iterations: int = Field(default=CONFIG.DEFAULT_MAX_ITERATIONS, ge=1, description="Refinement iteration budget")
    learning_rate: float = Field(default=CONFIG.DEFAULT_LEARNING_RATE, gt=0, description="Gradient descent step scale")
    diff_epsilon: Optional[float] = Field(
        default=None, gt=0,
        description="Finite-difference step; defaults to the tolerance"
    )
    method: SolverMethod = Field(default=SolverMethod.GRADIENT_DESCENT, description="Refinement method")
    timeout_seconds: Optional[float] = Field(default=None, gt=0, description="Wall-clock deadline for one solve")

    @model_validator(mode='after')
    def check_window(self):
        if self.scan_max <= self.scan_min:
            raise ValueError(
                f"scan_max ({self.scan_max}) must be greater than scan_min ({self.scan_min})"
            )
        return self

    @property
    def effective_epsilon(self) -> float:
        """Finite-difference step actually used by the refinement."""
        return self.diff_epsilon if self.diff_epsilon is not None else self.tolerance


class SpeciesInput(BaseModel):
    """One acid or base as entered by the user."""
    name: Optional[str] = Field(default=None, description="Display label, e.g. 'acetic acid'")
    ka: Optional[List[float]] = Field(default=None, description="Ka values, any order")
    pka: Optional[List[float]] = Field(default=None, description="pKa values, any order (ignored when ka is given)")
    charge: Optional[int] = Field(default=None, description="Charge of the fully protonated form (charge balance)")
    max_protons: Optional[int] = Field(default=None, description="Dissociable protons of the fully protonated form (proton balance)")
    reference_protons: int = Field(default=0, description="Protons on the reference form (proton balance)")
    concentration: float = Field(..., description="Total concentration in mol/L")

    @field_validator('ka', 'pka', mode='before')
    @classmethod
    def wrap_scalar(cls, v):
        """Accept a bare number for a single constant."""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return [v]
        return v

    def to_species(self, mode: BalanceMode) -> Species:
        """Build the immutable Species for the given balance mode."""
        if BalanceMode(mode) is BalanceMode.PROTON:
            return Species.from_protons(
                ka=self.ka,
                pka=self.pka,
                max_protons=self.max_protons,
                reference_protons=self.reference_protons,
                concentration=self.concentration,
                name=self.name,
            )
        return Species.from_charge(
            ka=self.ka,
            pka=self.pka,
            charge=self.charge,
            concentration=self.concentration,
            name=self.name,
        )


class PHCalculationInput(BaseModel):
    """Complete pH calculation input"""
    mode: BalanceMode = Field(default=BalanceMode.CHARGE, description="Balance equation: 'charge' or 'proton'")
    species: List[SpeciesInput] = Field(..., min_length=1, description="Acids and bases in solution")
    kw: Optional[float] = Field(default=None, ge=0, description="Ion product of water; 0 or omitted uses the default")
    solver: SolverOptions = Field(default_factory=SolverOptions, description="Solver settings")
    response_format: ResponseFormat = Field(
        default=ResponseFormat.JSON,
        description="Output format: 'json' for machine-readable or 'markdown' for human-readable"
    )

    @property
    def resolved_kw(self) -> float:
        return CONFIG.resolve_kw(self.kw)

    def build_species(self) -> List[Species]:
        return [entry.to_species(self.mode) for entry in self.species]


# ============= Output Schemas =============

class SpeciesSpeciation(BaseModel):
    """One species' digest at the solved pH."""
    name: str
    mode: BalanceMode
    ka: List[float]
    pka: List[float]
    concentration_molar: float
    charge: Optional[int] = None
    max_protons: Optional[int] = None
    reference_protons: Optional[int] = None
    state_weights: List[int] = Field(description="Charge or proton count per state, most protonated first")
    alpha: List[float] = Field(description="Fraction of each state at the solved pH")


class PHCalculationResult(BaseModel):
    """Tagged outcome of a pH calculation.

    On success ph is set and error is None; on error ph is None and error
    carries the exception's to_dict() payload.
    """
    status: Literal["success", "error"]
    mode: Optional[BalanceMode] = None
    ph: Optional[float] = None
    residual: Optional[float] = None
    iterations: Optional[int] = None
    initial_guess: Optional[float] = None
    scan_used: Optional[bool] = None
    method: Optional[SolverMethod] = None
    kw: Optional[float] = None
    tolerance: Optional[float] = None
    species: List[SpeciesSpeciation] = Field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
