"""
Core Configuration Module for pH Speciation MCP Server

Centralizes all configuration constants to prevent duplication and divergence.
Physical constants, solver defaults, and service limits are defined here.
"""

from dataclasses import dataclass
from pathlib import Path
import os
from typing import Optional
import logging

logger = logging.getLogger(__name__)


def get_project_root() -> Path:
    """Get project root with environment variable support."""
    if 'PH_SPECIATION_ROOT' in os.environ:
        root = Path(os.environ['PH_SPECIATION_ROOT'])
        if root.exists():
            return root

    return Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class CoreConfig:
    """
    Centralized configuration for the pH speciation solver.

    Using frozen=True ensures these values cannot be modified at runtime.
    Every value here is a default; callers override per solve through
    SolverOptions.
    """

    # Water autoionization
    DEFAULT_KW: float = 1.01e-14  # Ion product of water at 25°C

    # pH search window for the coarse scan and bracketing
    PH_SCAN_MIN: float = 0.0
    PH_SCAN_MAX: float = 14.0

    # Solver defaults
    DEFAULT_INITIAL_GUESS: float = 7.0
    DEFAULT_SCAN_POINTS: int = 1500
    DEFAULT_TOLERANCE: float = 1e-5  # Absolute balance residual (mol/L)
    DEFAULT_MAX_ITERATIONS: int = 10000
    DEFAULT_LEARNING_RATE: float = 0.001  # Gradient descent step scale
    PROGRESS_LOG_INTERVAL: int = 1000  # Iterations between debug progress logs

    # Service limits
    DEFAULT_BATCH_WORKERS: int = 4
    MAX_REQUEST_SIZE: int = 1024 * 1024  # 1MB max request size
    CALCULATION_TIMEOUT_S: float = 30.0

    def resolve_kw(self, kw: Optional[float]) -> float:
        """
        Map the Kw input sentinel to a usable value.

        None or 0 means "use the default"; anything else is returned as given.
        """
        if kw is None or kw == 0:
            return self.DEFAULT_KW
        return float(kw)

    def get_batch_workers(self) -> int:
        """Get batch worker count from environment or use default."""
        env_value = os.getenv('PH_SPECIATION_BATCH_WORKERS')
        if env_value:
            try:
                workers = int(env_value)
            except ValueError:
                logger.warning(
                    f"Ignoring non-integer PH_SPECIATION_BATCH_WORKERS={env_value!r}"
                )
                return self.DEFAULT_BATCH_WORKERS
            if workers > 0:
                return workers
            logger.warning(f"Ignoring non-positive PH_SPECIATION_BATCH_WORKERS={workers}")
        return self.DEFAULT_BATCH_WORKERS


# Create singleton instance
CONFIG = CoreConfig()


def validate_config():
    """
    Validate configuration values are reasonable.
    Called on module import to catch configuration errors early.
    """
    assert CONFIG.DEFAULT_KW > 0, "Kw must be positive"
    assert CONFIG.PH_SCAN_MAX > CONFIG.PH_SCAN_MIN, "pH scan window must be non-empty"
    assert CONFIG.DEFAULT_SCAN_POINTS >= 2, "Coarse scan needs at least two points"
    assert CONFIG.DEFAULT_TOLERANCE > 0, "Tolerance must be positive"
    assert CONFIG.DEFAULT_MAX_ITERATIONS >= 1, "Iteration budget must be at least 1"
    assert CONFIG.DEFAULT_LEARNING_RATE > 0, "Learning rate must be positive"
    assert CONFIG.DEFAULT_BATCH_WORKERS >= 1, "Batch workers must be at least 1"


# Run validation on import
validate_config()
