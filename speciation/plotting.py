"""
Speciation Diagram Plotting

Draws the distribution diagram (alpha of every protonation state versus pH)
for each species, marking the solved pH when one is given.
Separated from the solver to avoid heavy imports unless needed.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np

from .core_config import CONFIG, get_project_root
from .species import Species

logger = logging.getLogger(__name__)


def speciation_curves(
    species: Species,
    ph_min: float = CONFIG.PH_SCAN_MIN,
    ph_max: float = CONFIG.PH_SCAN_MAX,
    points: int = 500
):
    """Return (ph_grid, alpha) with one alpha row per grid pH."""
    grid = np.linspace(ph_min, ph_max, points)
    return grid, species.alpha(grid)


def plot_speciation(
    species: Sequence[Species],
    output_path: Optional[Union[str, Path]] = None,
    solved_ph: Optional[float] = None,
    ph_min: float = CONFIG.PH_SCAN_MIN,
    ph_max: float = CONFIG.PH_SCAN_MAX,
    points: int = 500
) -> Path:
    """
    Save a PNG distribution diagram, one panel per species.

    Args:
        species: Species to plot
        output_path: Target PNG path (default: results/speciation.png under the project root)
        solved_ph: Equilibrium pH to mark with a vertical line
        ph_min: Lower pH bound of the diagram
        ph_max: Upper pH bound of the diagram
        points: Grid resolution

    Returns:
        Path of the written PNG
    """
    # Lazy import matplotlib only when a plot is requested
    import matplotlib
    matplotlib.use('Agg')  # Non-interactive backend
    import matplotlib.pyplot as plt

    if output_path is None:
        output_path = get_project_root() / "results" / "speciation.png"
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    n = max(len(species), 1)
    fig, axes = plt.subplots(n, 1, figsize=(8, 3.5 * n), squeeze=False)

    try:
        for ax, s in zip(axes[:, 0], species):
            grid, alpha = speciation_curves(s, ph_min, ph_max, points)
            weight_label = "charge" if s.mode.value == "charge" else "net H+"
            for state, weight in enumerate(s.state_weights):
                ax.plot(grid, alpha[:, state], linewidth=2, label=f"state {state} ({weight_label} {int(weight):+d})")
            if solved_ph is not None:
                ax.axvline(solved_ph, color='k', linestyle='--', linewidth=1, label=f"pH {solved_ph:.2f}")
            ax.set_title(s.label)
            ax.set_xlabel('pH')
            ax.set_ylabel('Fraction (alpha)')
            ax.set_xlim(ph_min, ph_max)
            ax.set_ylim(-0.02, 1.02)
            ax.grid(True, alpha=0.3)
            ax.legend(loc='center right', fontsize=8)

        fig.tight_layout()
        fig.savefig(output_path, dpi=120)
    finally:
        plt.close(fig)

    logger.info(f"Speciation diagram written to {output_path}")
    return output_path
