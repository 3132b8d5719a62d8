"""
Tests for the two-phase pH solver (coarse scan + refinement).

Reference values:
- 0.1 M acetic acid (Ka 1.8e-5, Kw 1e-14): pH 2.8753
- 0.01 M NH4Cl (pKa 9.25, Kw 1e-14): pH 5.6246
- 0.01 M H3PO4 + 0.03 M NH4+ ((NH4)3PO4): pH close to 8.95
"""
from threading import Event

import pytest

from speciation.balance import BalanceFunction
from speciation.exceptions import (
    ConvergenceError,
    NonFiniteComputationError,
    SolverCancelledError,
)
from speciation.ph_solver import PHSolution, coarse_scan, solve_ph
from speciation.schemas import SolverMethod, SolverOptions
from speciation.species import Species


def _ammonium_chloride(builder: str):
    """NH4Cl as weak NH4+ plus fully dissociated HCl, built for either balance."""
    if builder == "charge":
        return [
            Species.from_charge(pka=[9.25], charge=1, concentration=0.01, name="ammonium"),
            Species.from_charge(pka=[-8.0], charge=0, concentration=0.01, name="hydrochloric acid"),
        ]
    # Reference levels: NH4+ and Cl-
    return [
        Species.from_protons(pka=[9.25], max_protons=1, reference_protons=1, concentration=0.01, name="ammonium"),
        Species.from_protons(pka=[-8.0], max_protons=1, reference_protons=0, concentration=0.01, name="hydrochloric acid"),
    ]


@pytest.mark.solver
class TestSolvePH:
    """Test suite for end-to-end solves."""

    def test_acetic_acid(self, acetic_acid):
        """0.1 M acetic acid solves near pH 2.875 from the coarse scan."""
        solution = solve_ph([acetic_acid], kw=1e-14, options=SolverOptions(use_coarse_scan=True))

        assert isinstance(solution, PHSolution)
        assert solution.ph == pytest.approx(2.875, abs=0.01)
        assert solution.residual <= 1e-5
        assert solution.scan_used is True
        assert solution.method is SolverMethod.GRADIENT_DESCENT
        assert solution.kw == 1e-14

    def test_ammonium_phosphate(self, ammonium_phosphate):
        """Three ammonium per phosphate gives a mildly basic solution."""
        solution = solve_ph(ammonium_phosphate, kw=0, options=SolverOptions(use_coarse_scan=True))

        assert 8.8 < solution.ph < 9.1
        assert solution.residual <= 1e-5
        assert solution.kw == pytest.approx(1.01e-14)

    def test_scan_and_good_guess_agree(self, ammonium_phosphate):
        """A scan from a poor guess and a Newton solve from pH 7 reach the same root."""
        scanned = solve_ph(
            ammonium_phosphate,
            options=SolverOptions(initial_guess=0.0, use_coarse_scan=True)
        )
        guessed = solve_ph(
            ammonium_phosphate,
            options=SolverOptions(initial_guess=7.0, method=SolverMethod.NEWTON, tolerance=1e-7)
        )

        assert guessed.scan_used is False
        assert guessed.initial_guess == 7.0
        assert abs(scanned.ph - guessed.ph) < 1e-3

    def test_newton_acetic_acid(self, acetic_acid):
        """Newton refinement without a scan converges tightly."""
        solution = solve_ph(
            [acetic_acid], kw=1e-14,
            options=SolverOptions(method=SolverMethod.NEWTON, tolerance=1e-10, diff_epsilon=1e-6)
        )

        assert solution.ph == pytest.approx(2.8753, abs=1e-3)
        assert solution.residual <= 1e-10
        assert solution.iterations < 100

    @pytest.mark.parametrize("method", [SolverMethod.GRADIENT_DESCENT, SolverMethod.NEWTON])
    def test_iteration_budget_exhausted(self, acetic_acid, method):
        """One iteration at a 1e-12 tolerance is not enough and no pH is returned."""
        options = SolverOptions(use_coarse_scan=True, max_iterations=1, tolerance=1e-12, method=method)

        with pytest.raises(ConvergenceError) as exc_info:
            solve_ph([acetic_acid], kw=1e-14, options=options)

        details = exc_info.value.details
        assert details["max_iterations"] == 1
        assert details["tolerance"] == 1e-12
        assert details["method"] == method.value
        assert "last_ph" in details

    def test_convergence_failure_logged(self, acetic_acid, caplog):
        """An exhausted budget is logged as a warning before raising."""
        options = SolverOptions(use_coarse_scan=True, max_iterations=1, tolerance=1e-12)

        with pytest.raises(ConvergenceError):
            solve_ph([acetic_acid], kw=1e-14, options=options)

        assert "did not converge" in caplog.text

    def test_proton_balance_matches_charge_balance(self):
        """Both balances of NH4Cl describe the same equilibrium."""
        options = SolverOptions(use_coarse_scan=True, method=SolverMethod.NEWTON, tolerance=1e-10, diff_epsilon=1e-6)

        by_charge = solve_ph(_ammonium_chloride("charge"), kw=1e-14, options=options)
        by_proton = solve_ph(_ammonium_chloride("proton"), kw=1e-14, options=options)

        assert by_charge.ph == pytest.approx(5.6246, abs=1e-3)
        assert by_proton.ph == pytest.approx(by_charge.ph, abs=1e-4)

    def test_balance_function_input(self, acetic_acid):
        """A prepared BalanceFunction is used as-is, including its Kw."""
        balance = BalanceFunction([acetic_acid], kw=1e-14)

        solution = solve_ph(balance, kw=5.0, options=SolverOptions(use_coarse_scan=True))

        assert solution.kw == 1e-14
        assert solution.species == [acetic_acid]

    def test_alphas_at_solution(self, acetic_acid):
        """The solution pairs each species with its fractions at the solved pH."""
        solution = solve_ph([acetic_acid], kw=1e-14, options=SolverOptions(use_coarse_scan=True))

        [(species, alpha)] = solution.alphas()
        assert species is acetic_acid
        assert alpha.sum() == pytest.approx(1.0)
        # Charge balance: [H+] is (almost exactly) the acetate concentration
        assert 10 ** -solution.ph == pytest.approx(0.1 * alpha[1], rel=0.02)


@pytest.mark.solver
class TestCancellation:
    """Test suite for cooperative cancellation and deadlines."""

    def test_cancel_event_set(self, acetic_acid):
        """A pre-set cancel event stops the solve before any work."""
        cancel = Event()
        cancel.set()

        with pytest.raises(SolverCancelledError) as exc_info:
            solve_ph([acetic_acid], options=SolverOptions(use_coarse_scan=True), cancel_event=cancel)

        assert exc_info.value.details["reason"] == "cancelled"
        assert exc_info.value.details["iteration"] == 0

    def test_deadline_exceeded(self, acetic_acid):
        """A slow descent from pH 7 runs past a microsecond deadline."""
        options = SolverOptions(initial_guess=7.0, timeout_seconds=1e-6)

        with pytest.raises(SolverCancelledError) as exc_info:
            solve_ph([acetic_acid], kw=1e-14, options=options)

        assert exc_info.value.details["reason"] == "deadline exceeded"
        assert exc_info.value.details["timeout_seconds"] == 1e-6


@pytest.mark.unit
class TestCoarseScan:
    """Test suite for the grid scan."""

    def test_best_grid_point(self, acetic_acid):
        """On an integer grid the closest point to pH 2.875 is pH 3."""
        balance = BalanceFunction([acetic_acid], kw=1e-14)

        best_ph, residual = coarse_scan(balance, scan_points=15)

        assert best_ph == 3.0
        assert residual == pytest.approx(balance(3.0))

    def test_custom_window(self, ammonium_phosphate):
        """The scan stays within the requested window."""
        balance = BalanceFunction(ammonium_phosphate)

        best_ph, _ = coarse_scan(balance, scan_points=101, ph_min=8.0, ph_max=10.0)

        assert 8.8 <= best_ph <= 9.1

    def test_all_non_finite_raises(self):
        """A scan with no finite residual anywhere fails loudly."""
        species = Species.from_charge(ka=[1e200, 1e200], charge=0, concentration=0.1)
        balance = BalanceFunction([species])

        with pytest.raises(NonFiniteComputationError) as exc_info:
            coarse_scan(balance, scan_points=50)

        assert exc_info.value.details["stage"] == "coarse_scan"


@pytest.mark.unit
class TestSolverOptions:
    """Test suite for solver settings."""

    def test_defaults(self):
        """Defaults are a plain descent from pH 7."""
        options = SolverOptions()

        assert options.initial_guess == 7.0
        assert options.use_coarse_scan is False
        assert options.tolerance == 1e-5
        assert options.max_iterations == 10000
        assert options.method is SolverMethod.GRADIENT_DESCENT

    def test_epsilon_follows_tolerance(self):
        """Without an explicit step the finite difference uses the tolerance."""
        assert SolverOptions(tolerance=1e-6).effective_epsilon == 1e-6
        assert SolverOptions(tolerance=1e-6, diff_epsilon=1e-8).effective_epsilon == 1e-8

    def test_empty_window_rejected(self):
        """scan_max must lie above scan_min."""
        with pytest.raises(ValueError):
            SolverOptions(scan_min=10.0, scan_max=2.0)

    @pytest.mark.parametrize("field,value", [
        ("tolerance", 0.0),
        ("max_iterations", 0),
        ("scan_points", 1),
        ("learning_rate", -0.1),
    ])
    def test_out_of_range_rejected(self, field, value):
        """Non-positive tolerances and budgets are rejected."""
        with pytest.raises(ValueError):
            SolverOptions(**{field: value})
