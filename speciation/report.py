"""
Report Formatting

Turns a PHCalculationResult into Markdown for display, or into plain JSON
data for machine consumers.
"""

from typing import Any, Dict, List, Union
import json

from .schemas import PHCalculationResult, ResponseFormat, SpeciesSpeciation
from .species import BalanceMode


def _format_number(value: float) -> str:
    """Format numbers nicely."""
    if value == 0:
        return "0"
    if abs(value) < 0.01 or abs(value) > 10000:
        return f"{value:.3e}"
    return f"{value:.3f}"


def format_species_markdown(index: int, species: SpeciesSpeciation, ph: float) -> str:
    """
    Format one species digest as a markdown section with an alpha table.

    Args:
        index: 1-based position in the species list
        species: Species digest at the solved pH
        ph: Solved pH the alpha values belong to

    Returns:
        Markdown section string
    """
    weight_label = "Charge" if species.mode == BalanceMode.CHARGE else "Net Protons"
    lines = [
        f"### {index}. {species.name}",
        "",
        f"- **pKa**: {', '.join(f'{p:.2f}' for p in species.pka)}",
        f"- **Ka**: {', '.join(f'{k:.2e}' for k in species.ka)}",
    ]
    if species.mode == BalanceMode.CHARGE:
        lines.append(f"- **Charge**: {species.charge}")
    else:
        lines.append(f"- **Max Protons**: {species.max_protons}")
        lines.append(f"- **Reference Protons**: {species.reference_protons}")
    lines.extend([
        f"- **Concentration**: {species.concentration_molar:.2e} mol/L",
        "",
        f"Alpha values at equilibrium pH = {ph:.5f}:",
        "",
        f"| State | {weight_label} | Alpha |",
        "|-------|--------|-------|",
    ])
    for state, (weight, alpha) in enumerate(zip(species.state_weights, species.alpha)):
        lines.append(f"| {state} | {weight:+d} | {alpha:.5f} |")
    return "\n".join(lines)


def format_result_markdown(result: PHCalculationResult, title: str = "pH Calculation Results") -> str:
    """
    Convert a calculation result to markdown.

    A failed calculation shows the error and never a pH.
    """
    lines = [f"# {title}", ""]

    if not result.ok:
        error = result.error or {}
        lines.append("## Error")
        lines.append("")
        lines.append(f"- **Type**: {error.get('error', 'Unknown')}")
        lines.append(f"- **Message**: {error.get('message', '')}")
        for key, value in (error.get("details") or {}).items():
            formatted_key = str(key).replace("_", " ").title()
            lines.append(f"- **{formatted_key}**: {value}")
        if error.get("hint"):
            lines.append(f"- **Hint**: {error['hint']}")
        return "\n".join(lines)

    mode = result.mode.value if result.mode else "charge"
    lines.extend([
        f"- **pH**: {result.ph:.5f}",
        f"- **Balance**: {mode}",
        f"- **Residual**: {_format_number(result.residual)}",
        f"- **Tolerance**: {_format_number(result.tolerance)}",
        f"- **Iterations**: {result.iterations}",
        f"- **Method**: {result.method.value if result.method else ''}",
        f"- **Coarse Scan**: {'yes' if result.scan_used else 'no'}",
        f"- **Kw**: {result.kw:.2e}",
        "",
        "## Species",
        "",
    ])
    for i, species in enumerate(result.species, start=1):
        lines.append(format_species_markdown(i, species, result.ph))
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def render_result(
    result: PHCalculationResult,
    response_format: Union[ResponseFormat, str] = ResponseFormat.JSON
) -> Union[Dict[str, Any], str]:
    """Render a result as a JSON-compatible dict or a markdown string."""
    if ResponseFormat(response_format) is ResponseFormat.MARKDOWN:
        return format_result_markdown(result)
    return result.model_dump(mode="json", exclude_none=True)


def render_batch(results: List[PHCalculationResult]) -> str:
    """Serialize several results as an indented JSON array."""
    return json.dumps(
        [result.model_dump(mode="json", exclude_none=True) for result in results],
        indent=2
    )
