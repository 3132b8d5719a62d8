"""
Shared pytest fixtures for the pH speciation test suite.

Provides:
- Test markers registration
- Common species and solution fixtures
- Parametrized test data for monoprotic and polyprotic acids
"""
import pytest
from typing import Any, Dict, List

from speciation.species import Species


# =============================================================================
# Pytest Markers Registration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "unit: marks unit tests (fast, no external deps)")
    config.addinivalue_line("markers", "solver: marks pH solver tests")
    config.addinivalue_line("markers", "plotting: marks tests that need matplotlib")


# =============================================================================
# Species Fixtures
# =============================================================================

@pytest.fixture
def acetic_acid() -> Species:
    """0.1 M acetic acid, neutral fully protonated form (weights [0, -1])."""
    return Species.from_charge(ka=[1.8e-5], charge=0, concentration=0.1, name="acetic acid")


@pytest.fixture
def phosphoric_acid() -> Species:
    """0.01 M phosphoric acid, pKa 1.97 / 6.82 / 12.5."""
    return Species.from_charge(pka=[1.97, 6.82, 12.5], charge=0, concentration=0.01, name="phosphoric acid")


@pytest.fixture
def ammonium() -> Species:
    """0.03 M ammonium (NH4+ / NH3), pKa 9.25."""
    return Species.from_charge(pka=[9.25], charge=1, concentration=0.03, name="ammonium")


@pytest.fixture
def ammonium_phosphate(phosphoric_acid, ammonium) -> List[Species]:
    """(NH4)3PO4: three ammonium per phosphate, mildly basic."""
    return [phosphoric_acid, ammonium]


# =============================================================================
# Calculation Input Fixtures
# =============================================================================

@pytest.fixture
def acetic_acid_input() -> Dict[str, Any]:
    """Calculation input for 0.1 M acetic acid with Kw = 1e-14."""
    return {
        "mode": "charge",
        "species": [
            {"name": "acetic acid", "ka": [1.8e-5], "charge": 0, "concentration": 0.1}
        ],
        "kw": 1.0e-14,
        "solver": {"use_coarse_scan": True}
    }


@pytest.fixture
def ammonium_phosphate_input() -> Dict[str, Any]:
    """Calculation input for phosphoric acid + ammonium, default Kw."""
    return {
        "mode": "charge",
        "species": [
            {"name": "phosphoric acid", "pka": [1.97, 6.82, 12.5], "charge": 0, "concentration": 0.01},
            {"name": "ammonium", "pka": [9.25], "charge": 1, "concentration": 0.03}
        ],
        "kw": 0,
        "solver": {"use_coarse_scan": True}
    }


# =============================================================================
# Parametrized Test Data
# =============================================================================

POLYPROTIC_ACIDS = [
    pytest.param({"pka": [4.76], "charge": 0}, id="acetic"),
    pytest.param({"pka": [9.25], "charge": 1}, id="ammonium"),
    pytest.param({"pka": [6.35, 10.33], "charge": 0}, id="carbonic"),
    pytest.param({"pka": [1.97, 6.82, 12.5], "charge": 0}, id="phosphoric"),
    pytest.param({"pka": [3.13, 4.76, 6.40], "charge": 0}, id="citric"),
    pytest.param({"ka": [1e-2, 1e-5, 1e-8, 1e-11], "charge": 2}, id="tetraprotic"),
]


@pytest.fixture(params=POLYPROTIC_ACIDS)
def any_species(request) -> Species:
    """Parametrized species fixture covering 1 to 4 dissociable protons."""
    return Species.from_charge(concentration=0.01, **request.param)
