"""
Balance Residual

Charge balance and proton balance share one residual:

    x(pH) = [H+] - Kw/[H+] + Σ_s C_s · Σ_i w_s,i · alpha_s,i(pH)

where w are the species' state weights (net charge or net proton count).
The residual is |x|; zero at the equilibrium pH.
"""

from typing import Iterable, List, Sequence, Union
import logging
import math

import numpy as np

from .core_config import CONFIG
from .exceptions import ConfigurationError, NonFiniteComputationError
from .species import BalanceMode, Species

logger = logging.getLogger(__name__)


def signed_balance(ph: float, species: Iterable[Species], kw: float = CONFIG.DEFAULT_KW) -> float:
    """
    Signed deviation from balance at a single pH.

    Raises:
        NonFiniteComputationError: If any term is NaN or infinite
    """
    # numpy scalars so overflow and division by zero give inf instead of raising
    with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
        h3o = np.power(10.0, -np.float64(ph))
        x = h3o - np.float64(kw) / h3o
        for s in species:
            x += s.balance_contribution(ph)
    x = float(x)
    if not math.isfinite(x):
        raise NonFiniteComputationError(ph=float(ph), value=x, stage="residual")
    return x


def balance_residual(ph: float, species: Iterable[Species], kw: float = CONFIG.DEFAULT_KW) -> float:
    """Absolute deviation from balance at a single pH."""
    return abs(signed_balance(ph, species, kw))


class BalanceFunction:
    """
    Residual closure over one species set and Kw.

    Calling the instance returns the absolute residual at a pH. The species
    must all be weighted for the same balance mode.
    """

    def __init__(self, species: Sequence[Species], kw: float = CONFIG.DEFAULT_KW):
        species = list(species)
        if not species:
            raise ConfigurationError(
                "At least one species is required",
                hint="Add an acid or base to the solution"
            )
        modes = {s.mode for s in species}
        if len(modes) > 1:
            raise ConfigurationError(
                "Species mix charge-balance and proton-balance weights",
                details={"modes": sorted(m.value for m in modes)},
                hint="Build every species for the same balance equation"
            )
        if not math.isfinite(kw) or kw <= 0:
            raise ConfigurationError(
                "Kw must be finite and positive",
                details={"kw": kw}
            )
        self.species: List[Species] = species
        self.kw = float(kw)
        self.mode: BalanceMode = modes.pop()

    def signed(self, ph: float) -> float:
        return signed_balance(ph, self.species, self.kw)

    def __call__(self, ph: float) -> float:
        return abs(self.signed(ph))

    def evaluate_grid(self, ph_values: Union[Sequence[float], np.ndarray]) -> np.ndarray:
        """
        Absolute residual over an array of pH values in one vectorised pass.

        Non-finite entries are returned as-is; callers filter them.
        """
        ph_values = np.asarray(ph_values, dtype=float)
        with np.errstate(over='ignore', divide='ignore', invalid='ignore'):
            h3o = 10.0 ** (-ph_values)
            x = h3o - self.kw / h3o
            for s in self.species:
                x = x + s.balance_contribution(ph_values)
            return np.abs(x)

    def __repr__(self) -> str:
        return f"BalanceFunction(mode={self.mode.value}, species={len(self.species)}, kw={self.kw:.3e})"
