#!/usr/bin/env python
"""
Console front end for pH calculations.

Two ways in:
- interactive prompts (number of components, Ka or pKa, charge or proton
  counts, concentration, Kw, report)
- a JSON input file holding one PHCalculationInput object, or a list of
  them for a concurrent batch
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .core_config import CONFIG
from .exceptions import InvalidSpeciesError
from .ph_calculation import calculate_ph, calculate_ph_from_dict, solve_batch
from .report import format_result_markdown, render_batch, render_result
from .schemas import (
    PHCalculationInput,
    PHCalculationResult,
    ResponseFormat,
    SolverMethod,
    SolverOptions,
    SpeciesInput,
)
from .species import BalanceMode

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 40

InputFn = Callable[[str], str]
OutputFn = Callable[[str], None]


def _ask_int(prompt: str, input_fn: InputFn, output: OutputFn, minimum: Optional[int] = None) -> int:
    while True:
        raw = input_fn(prompt).strip()
        try:
            value = int(raw)
        except ValueError:
            output(f"'{raw}' is not an integer. Please try again.")
            continue
        if minimum is not None and value < minimum:
            output(f"Please enter a value of at least {minimum}.")
            continue
        return value


def _ask_float(prompt: str, input_fn: InputFn, output: OutputFn) -> float:
    while True:
        raw = input_fn(prompt).strip()
        try:
            return float(raw)
        except ValueError:
            output(f"'{raw}' is not a number. Please try again.")


def _ask_floats(prompt: str, count: int, input_fn: InputFn, output: OutputFn) -> List[float]:
    while True:
        raw = input_fn(prompt).replace(",", " ").split()
        try:
            values = [float(v) for v in raw]
        except ValueError:
            output("Values must be numbers. Please try again.")
            continue
        if len(values) != count:
            output(f"Expected {count} values, got {len(values)}. Please try again.")
            continue
        return values


def collect_species(
    mode: BalanceMode,
    input_fn: InputFn = input,
    output: OutputFn = print
) -> Tuple[List[SpeciesInput], float]:
    """
    Prompt for every component and Kw.

    Each component is validated as soon as it is entered; an invalid one is
    reported and asked for again.

    Returns:
        Tuple of (species inputs, Kw with the 0 sentinel resolved)
    """
    num_components = _ask_int("Please enter the number of components: ", input_fn, output, minimum=1)
    output(f"Confirmed, the number of components is {num_components}.")
    output(SEPARATOR)
    output("Now please enter the information for each component.")

    entries: List[SpeciesInput] = []
    while len(entries) < num_components:
        choice = _ask_int("Using Ka or pKa values? (1 for Ka, 2 for pKa): ", input_fn, output)
        if choice not in (1, 2):
            output("Invalid choice. Please try again.")
            continue

        label = "Ka" if choice == 1 else "pKa"
        count = _ask_int(f"Please enter the number of {label} values: ", input_fn, output, minimum=1)
        constants = _ask_floats(f"Please enter the {label} values: ", count, input_fn, output)

        fields: Dict[str, Any] = {"ka" if choice == 1 else "pka": constants}
        if mode is BalanceMode.CHARGE:
            fields["charge"] = _ask_int("Please enter the charge of the acid: ", input_fn, output)
        else:
            fields["max_protons"] = _ask_int("Please enter the maximum proton count of the acid: ", input_fn, output)
            fields["reference_protons"] = _ask_int("Please enter the reference proton count: ", input_fn, output, minimum=0)
        fields["concentration"] = _ask_float("Please enter the concentration of the acid: ", input_fn, output)
        fields["name"] = f"component {len(entries) + 1}"

        entry = SpeciesInput(**fields)
        try:
            entry.to_species(mode)
        except InvalidSpeciesError as e:
            output(f"Invalid component: {e}")
            continue
        entries.append(entry)

    output(SEPARATOR)
    kw = _ask_float(
        f"Please enter the value of Kw: (input 0 for default value {CONFIG.DEFAULT_KW:.2e}): ",
        input_fn, output
    )
    if kw == 0:
        output(f"Using default value of Kw: {CONFIG.DEFAULT_KW:.2e}")
    else:
        output(f"The value of Kw is: {kw:.2e}")
    output(SEPARATOR)
    return entries, CONFIG.resolve_kw(kw)


def run_interactive(
    mode: BalanceMode,
    solver: SolverOptions,
    input_fn: InputFn = input,
    output: OutputFn = print,
    report: Optional[bool] = None
) -> Tuple[PHCalculationResult, PHCalculationInput]:
    """Interactive session: prompts, solve, optional report.

    report=None asks whether to print the report; True/False skips the question.

    Returns:
        Tuple of (result, the calculation input assembled from the prompts)
    """
    title = "Charge Balance Equation (CBE)" if mode is BalanceMode.CHARGE else "Proton Balance Equation (PBE)"
    output(f"Calculation of pH with {title}")
    output(SEPARATOR)

    entries, kw = collect_species(mode, input_fn, output)
    if solver.use_coarse_scan:
        output("All parameters are set. Estimating the initial pH...")
    else:
        output("All parameters are set. Calculating the pH...")

    calculation_input = PHCalculationInput(mode=mode, species=entries, kw=kw, solver=solver)
    result = calculate_ph(calculation_input)
    output(SEPARATOR)
    if not result.ok:
        output(format_result_markdown(result))
        return result, calculation_input

    output(f"The pH is: {result.ph:.5f}")
    output(SEPARATOR)
    if report is None:
        report = bool(_ask_int("Do you want a calculation report? (1 for yes, 0 for no): ", input_fn, output))
    if report:
        output(format_result_markdown(result))
    return result, calculation_input


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ph-calc",
        description="Equilibrium pH of weak acid/base mixtures by charge or proton balance"
    )
    parser.add_argument("--input", "-i", help="JSON file with a calculation input (or a list of them)")
    parser.add_argument("--mode", choices=[m.value for m in BalanceMode], help="Balance equation")
    parser.add_argument("--guess", type=float, help="Initial pH guess (disables the coarse scan)")
    parser.add_argument("--no-scan", action="store_true", help="Skip the coarse scan")
    parser.add_argument("--scan-points", type=int, help="Coarse scan grid size")
    parser.add_argument("--tolerance", type=float, help="Accepted absolute residual")
    parser.add_argument("--max-iterations", type=int, help="Refinement iteration budget")
    parser.add_argument("--method", choices=[m.value for m in SolverMethod], help="Refinement method")
    parser.add_argument(
        "--format", dest="output_format", choices=[f.value for f in ResponseFormat],
        default=ResponseFormat.MARKDOWN.value, help="Output format for file input"
    )
    parser.add_argument(
        "--report", action=argparse.BooleanOptionalAction, default=None,
        help="Print (or skip) the interactive report without asking"
    )
    parser.add_argument("--plot", help="Write a speciation diagram PNG to this path")
    parser.add_argument("--workers", type=int, help="Worker threads for batch input")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-v info, -vv debug)")
    return parser


def _solver_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.guess is not None:
        overrides["initial_guess"] = args.guess
        overrides["use_coarse_scan"] = False
    if args.no_scan:
        overrides["use_coarse_scan"] = False
    if args.scan_points is not None:
        overrides["scan_points"] = args.scan_points
    if args.tolerance is not None:
        overrides["tolerance"] = args.tolerance
    if args.max_iterations is not None:
        overrides["max_iterations"] = args.max_iterations
    if args.method is not None:
        overrides["method"] = args.method
    return overrides


def _apply_overrides(raw: Any, args: argparse.Namespace) -> Any:
    if not isinstance(raw, dict):
        # Left as-is; validation reports it as an error result
        return raw
    raw = dict(raw)
    solver = {"use_coarse_scan": True}
    solver.update(raw.get("solver") or {})
    solver.update(_solver_overrides(args))
    raw["solver"] = solver
    if args.mode is not None:
        raw["mode"] = args.mode
    return raw


def _plot(result: PHCalculationResult, raw: Dict[str, Any], path: str):
    from .plotting import plot_speciation

    calculation_input = PHCalculationInput(**raw)
    plot_speciation(calculation_input.build_species(), output_path=path, solved_ph=result.ph)


def run_file(args: argparse.Namespace, output: OutputFn = print) -> int:
    """Solve the calculation(s) in a JSON file; return the exit status."""
    with open(Path(args.input), 'r') as f:
        payload = json.load(f)

    if isinstance(payload, list):
        raw_inputs = [_apply_overrides(item, args) for item in payload]
        results = solve_batch(raw_inputs, max_workers=args.workers)
        output(render_batch(results))
        return 0 if all(r.ok for r in results) else 1

    raw = _apply_overrides(payload, args)
    result = calculate_ph_from_dict(raw)
    rendered = render_result(result, args.output_format)
    output(rendered if isinstance(rendered, str) else json.dumps(rendered, indent=2))

    if result.ok and args.plot:
        _plot(result, raw, args.plot)
    return 0 if result.ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)]
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.input:
        return run_file(args)

    mode = BalanceMode(args.mode or BalanceMode.CHARGE.value)
    solver_fields: Dict[str, Any] = {"use_coarse_scan": True}
    solver_fields.update(_solver_overrides(args))
    solver = SolverOptions(**solver_fields)

    try:
        result, calculation_input = run_interactive(mode, solver, report=args.report)
    except (EOFError, KeyboardInterrupt):
        print("\nInput closed, exiting.", file=sys.stderr)
        return 1

    if result.ok and args.plot:
        from .plotting import plot_speciation
        plot_speciation(calculation_input.build_species(), output_path=args.plot, solved_ph=result.ph)
    print("Thank you for using the program. Goodbye!")
    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
