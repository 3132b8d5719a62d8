"""
Acid/Base Species Model

Represents one polyprotic acid or base by its ordered acidity constants and
the integer weight carried by each protonation state. The weight is the net
ionic charge (charge balance) or the net proton count relative to a reference
state (proton balance); the fraction calculation is the same for both.

Distribution fraction of state i for an acid with M = N + 1 states:

    alpha_i = [H+]^(M-1-i) · Π(Ka_0..Ka_i) / Σ_j [H+]^(M-1-j) · Π(Ka_0..Ka_j)

with Ka_0 = 1 so that the fully protonated state carries [H+]^N alone.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence, Union
import logging
import math

import numpy as np

from .exceptions import InvalidSpeciesError

logger = logging.getLogger(__name__)

ConstantsInput = Union[None, float, Sequence[float], np.ndarray]


class BalanceMode(str, Enum):
    """
    Balance equation a species is weighted for.

    CHARGE: weights are net ionic charge per state
    PROTON: weights are net proton count relative to a reference state
    """
    CHARGE = "charge"
    PROTON = "proton"


def charge_weights(charge: int, n_constants: int) -> np.ndarray:
    """Net charge of each state, fully protonated first."""
    return charge - np.arange(n_constants + 1)


def proton_weights(max_protons: int, reference_protons: int, n_constants: int) -> np.ndarray:
    """Net proton count of each state relative to the reference state."""
    return max_protons - np.arange(n_constants + 1) - reference_protons


def _as_float_array(values: ConstantsInput) -> np.ndarray:
    if values is None:
        return np.array([], dtype=float)
    if isinstance(values, (int, float)):
        return np.array([values], dtype=float)
    return np.array(list(values), dtype=float).ravel()


def normalize_constants(
    ka: ConstantsInput = None,
    pka: ConstantsInput = None,
    name: Optional[str] = None
) -> np.ndarray:
    """
    Convert Ka or pKa input into Ka values sorted strongest acid first.

    Ka wins when both are supplied. Input order is not trusted.

    Raises:
        InvalidSpeciesError: If neither is supplied, or a value is not a
            finite positive Ka / finite pKa
    """
    ka_values = _as_float_array(ka)
    pka_values = _as_float_array(pka)

    if ka_values.size == 0 and pka_values.size == 0:
        raise InvalidSpeciesError(
            "You must define either Ka or pKa values",
            species=name,
            hint="Provide at least one Ka or pKa value"
        )

    if ka_values.size:
        bad = ka_values[~np.isfinite(ka_values) | (ka_values <= 0)]
        if bad.size:
            raise InvalidSpeciesError(
                "Ka values must be finite and positive",
                field="ka", value=bad.tolist(), species=name
            )
        return np.sort(ka_values)[::-1]

    bad = pka_values[~np.isfinite(pka_values)]
    if bad.size:
        raise InvalidSpeciesError(
            "pKa values must be finite",
            field="pka", value=bad.tolist(), species=name
        )
    return 10.0 ** (-np.sort(pka_values))


@dataclass(frozen=True, eq=False)
class Species:
    """
    One acid or base in solution.

    Instances are immutable once built and safe to share between threads.
    Use from_charge() or from_protons() rather than the raw constructor.

    Attributes:
        acidity_constants: Ka values, descending
        state_weights: Integer weight per protonation state (len(Ka) + 1)
        concentration: Total analytical concentration (mol/L)
        mode: Balance the weights were derived for
        name: Optional display label
        charge: Charge of the fully protonated form (charge mode)
        max_protons: Dissociable protons on the fully protonated form (proton mode)
        reference_protons: Protons on the proton-balance reference state
    """
    acidity_constants: np.ndarray
    state_weights: np.ndarray
    concentration: float
    mode: BalanceMode = BalanceMode.CHARGE
    name: Optional[str] = None
    charge: Optional[int] = None
    max_protons: Optional[int] = None
    reference_protons: int = 0
    extended_constants: np.ndarray = field(init=False, repr=False)
    _constant_products: np.ndarray = field(init=False, repr=False)
    _h3o_powers: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        ka = np.array(self.acidity_constants, dtype=float)
        weights = np.array(self.state_weights, dtype=np.int64)

        if ka.size == 0:
            raise InvalidSpeciesError(
                "A species needs at least one acidity constant",
                species=self.name
            )
        if np.any(np.diff(ka) > 0):
            ka = np.sort(ka)[::-1]
        if weights.size != ka.size + 1:
            raise InvalidSpeciesError(
                f"Expected {ka.size + 1} state weights, got {weights.size}",
                field="state_weights", value=weights.tolist(), species=self.name
            )
        if not math.isfinite(self.concentration) or self.concentration < 0:
            raise InvalidSpeciesError(
                "Concentration must be finite and non-negative",
                field="concentration", value=self.concentration, species=self.name
            )

        extended = np.append(1.0, ka)
        with np.errstate(over='ignore'):
            products = np.cumprod(extended)
        powers = np.arange(extended.size)[::-1]
        for array in (ka, weights, extended, products, powers):
            array.setflags(write=False)

        object.__setattr__(self, 'acidity_constants', ka)
        object.__setattr__(self, 'state_weights', weights)
        object.__setattr__(self, 'concentration', float(self.concentration))
        object.__setattr__(self, 'mode', BalanceMode(self.mode))
        object.__setattr__(self, 'extended_constants', extended)
        object.__setattr__(self, '_constant_products', products)
        object.__setattr__(self, '_h3o_powers', powers)

    @classmethod
    def from_charge(
        cls,
        ka: ConstantsInput = None,
        pka: ConstantsInput = None,
        charge: Optional[int] = None,
        concentration: float = 0.0,
        name: Optional[str] = None
    ) -> "Species":
        """Build a species for the charge balance equation.

        Args:
            ka: Ka value(s), any order
            pka: pKa value(s), any order; ignored when ka is given
            charge: Charge of the fully protonated form
            concentration: Total concentration (mol/L)
            name: Display label
        """
        if charge is None:
            raise InvalidSpeciesError(
                "The charge of the fully protonated form must be defined",
                field="charge", species=name
            )
        constants = normalize_constants(ka, pka, name)
        return cls(
            acidity_constants=constants,
            state_weights=charge_weights(int(charge), constants.size),
            concentration=concentration,
            mode=BalanceMode.CHARGE,
            name=name,
            charge=int(charge),
        )

    @classmethod
    def from_protons(
        cls,
        ka: ConstantsInput = None,
        pka: ConstantsInput = None,
        max_protons: Optional[int] = None,
        reference_protons: int = 0,
        concentration: float = 0.0,
        name: Optional[str] = None
    ) -> "Species":
        """Build a species for the proton balance equation.

        Args:
            ka: Ka value(s), any order
            pka: pKa value(s), any order; ignored when ka is given
            max_protons: Dissociable protons on the fully protonated form
            reference_protons: Protons on the reference (zero level) form
            concentration: Total concentration (mol/L)
            name: Display label
        """
        if not max_protons or max_protons < 0:
            raise InvalidSpeciesError(
                "The maximum proton count for this species must be defined",
                field="max_protons", value=max_protons, species=name,
                hint="Use the number of dissociable protons of the fully protonated form"
            )
        if reference_protons is None or reference_protons < 0:
            raise InvalidSpeciesError(
                "Reference proton count cannot be negative",
                field="reference_protons", value=reference_protons, species=name
            )
        constants = normalize_constants(ka, pka, name)
        return cls(
            acidity_constants=constants,
            state_weights=proton_weights(int(max_protons), int(reference_protons), constants.size),
            concentration=concentration,
            mode=BalanceMode.PROTON,
            name=name,
            max_protons=int(max_protons),
            reference_protons=int(reference_protons),
        )

    @property
    def pka(self) -> np.ndarray:
        """pKa values, ascending."""
        return -np.log10(self.acidity_constants)

    @property
    def n_states(self) -> int:
        return self.extended_constants.size

    @property
    def label(self) -> str:
        return self.name or f"{self.mode.value} species pKa={np.round(self.pka, 2).tolist()}"

    def alpha(self, ph: Union[float, Iterable[float], np.ndarray]) -> np.ndarray:
        """Return the fraction of each protonation state at a given pH.

        Args:
            ph: A pH value or an array of pH values

        Returns:
            Fractions ordered from most to least protonated. A 1-D array for
            a scalar pH; for an array of pH values a 2-D array with one row
            per pH. Overflow or a zero denominator yields NaN/Inf entries,
            which are returned as-is for the caller to reject.
        """
        ph = np.asarray(ph, dtype=float)
        with np.errstate(over='ignore', under='ignore', divide='ignore', invalid='ignore'):
            h3o = np.expand_dims(10.0 ** (-ph), axis=-1)
            h3o_pow = h3o ** self._h3o_powers
            h3o_ka = h3o_pow * self._constant_products
            den = h3o_ka.sum(axis=-1, keepdims=True)
            return h3o_ka / den

    def mean_weight(self, ph: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Average state weight per molecule at the given pH."""
        with np.errstate(invalid='ignore', over='ignore'):
            return self.alpha(ph) @ self.state_weights

    def balance_contribution(self, ph: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Concentration-weighted contribution to the balance residual."""
        with np.errstate(invalid='ignore', over='ignore'):
            return self.concentration * self.mean_weight(ph)

    def describe(self) -> dict:
        """Plain-data summary used by reports."""
        data = {
            "name": self.label,
            "mode": self.mode.value,
            "ka": self.acidity_constants.tolist(),
            "pka": self.pka.tolist(),
            "concentration_molar": self.concentration,
            "state_weights": self.state_weights.tolist(),
        }
        if self.mode is BalanceMode.CHARGE:
            data["charge"] = self.charge
        else:
            data["max_protons"] = self.max_protons
            data["reference_protons"] = self.reference_protons
        return data
