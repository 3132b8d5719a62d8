"""
MCP Server Tests

Calls the tool coroutines directly to cover what the server adds on top of
the calculation layer:
1. JSON string decoding and the request size limit
2. Markdown and JSON response formats
3. Non-object input
4. Timeouts that set the solve's cancel event
"""
import asyncio
import dataclasses
import importlib
import json
import threading

import pytest

pytestmark = pytest.mark.unit


@pytest.fixture(scope="module")
def server(tmp_path_factory):
    """Import server.py with its log file redirected to a temp directory."""
    log_path = tmp_path_factory.mktemp("logs") / "server.log"
    patcher = pytest.MonkeyPatch()
    patcher.setenv("PH_SPECIATION_LOG", str(log_path))
    module = importlib.import_module("server")
    yield module
    patcher.undo()


def call_tool(tool, *args):
    """Run a tool coroutine whether or not the decorator wrapped it."""
    fn = getattr(tool, "fn", tool)
    return asyncio.run(fn(*args))


class TestCalculatePHTool:
    """Test suite for the single-calculation tool."""

    def test_dict_input(self, server, acetic_acid_input):
        """A dict input returns the JSON result."""
        result = call_tool(server.calculate_ph, acetic_acid_input)

        assert result["status"] == "success"
        assert result["ph"] == pytest.approx(2.875, abs=0.01)

    def test_json_string_input(self, server, acetic_acid_input):
        """A JSON string is decoded before validation."""
        result = call_tool(server.calculate_ph, json.dumps(acetic_acid_input))

        assert result["status"] == "success"

    def test_markdown_response(self, server, acetic_acid_input):
        """response_format=markdown returns the report text."""
        acetic_acid_input["response_format"] = "markdown"

        result = call_tool(server.calculate_ph, acetic_acid_input)

        assert isinstance(result, str)
        assert "# pH Calculation Results" in result
        assert "- **pH**: 2.87" in result

    def test_invalid_json(self, server):
        """Malformed JSON is an input error, not an exception."""
        result = call_tool(server.calculate_ph, "{not json")

        assert result["status"] == "error"
        assert result["error"] == "Invalid input"

    def test_oversize_request(self, server, acetic_acid_input, monkeypatch):
        """Requests above the size limit are rejected before solving."""
        monkeypatch.setattr(server, "CONFIG", dataclasses.replace(server.CONFIG, MAX_REQUEST_SIZE=10))

        result = call_tool(server.calculate_ph, acetic_acid_input)

        assert result["status"] == "error"
        assert "exceeds maximum" in result["details"]

    @pytest.mark.parametrize("raw", ["[1, 2]", "5", [1, 2]])
    def test_non_object_input(self, server, raw):
        """Decoded input that is not an object comes back as an error result."""
        result = call_tool(server.calculate_ph, raw)

        assert result["status"] == "error"
        assert result["error"]["error"] == "ValidationError"
        assert "ph" not in result

    def test_solver_failure_has_no_ph(self, server, acetic_acid_input):
        """Solver errors come back tagged, without a pH."""
        acetic_acid_input["solver"] = {"initial_guess": -400.0}

        result = call_tool(server.calculate_ph, acetic_acid_input)

        assert result["status"] == "error"
        assert result["error"]["error"] == "NonFiniteComputationError"
        assert "ph" not in result

    def test_timeout_sets_cancel_event(self, server, acetic_acid_input, monkeypatch):
        """On timeout the tool returns an error and signals the running solve to stop."""
        seen = []
        finished = threading.Event()

        def blocking_calculation(raw, cancel_event):
            seen.append(cancel_event.wait(5))
            finished.set()

        monkeypatch.setattr(server, "calculate_ph_from_dict", blocking_calculation)
        monkeypatch.setattr(server, "CONFIG", dataclasses.replace(server.CONFIG, CALCULATION_TIMEOUT_S=0.05))

        result = call_tool(server.calculate_ph, acetic_acid_input)

        assert result["status"] == "error"
        assert result["error"] == "Calculation timeout"
        assert finished.wait(5)
        assert seen == [True]


class TestCalculatePHBatchTool:
    """Test suite for the batch tool."""

    def test_results_in_order(self, server, acetic_acid_input, ammonium_phosphate_input):
        """Each input gets its own result, in order."""
        results = call_tool(server.calculate_ph_batch, [acetic_acid_input, ammonium_phosphate_input])

        assert [r["status"] for r in results] == ["success", "success"]
        assert 8.8 < results[1]["ph"] < 9.1

    def test_single_object_wrapped(self, server, acetic_acid_input):
        """A lone object is treated as a batch of one."""
        results = call_tool(server.calculate_ph_batch, json.dumps(acetic_acid_input))

        assert len(results) == 1
        assert results[0]["status"] == "success"

    def test_non_object_item_isolated(self, server, acetic_acid_input):
        """A malformed item fails alone."""
        results = call_tool(server.calculate_ph_batch, [acetic_acid_input, "oops"])

        assert [r["status"] for r in results] == ["success", "error"]

    def test_timeout_sets_cancel_event(self, server, acetic_acid_input, monkeypatch):
        """A batch past the deadline returns an error and cancels the running solves."""
        seen = []
        finished = threading.Event()

        def blocking_batch(raw, cancel_event=None):
            seen.append(cancel_event.wait(5))
            finished.set()
            return []

        monkeypatch.setattr(server, "solve_batch", blocking_batch)
        monkeypatch.setattr(server, "CONFIG", dataclasses.replace(server.CONFIG, CALCULATION_TIMEOUT_S=0.05))

        results = call_tool(server.calculate_ph_batch, [acetic_acid_input])

        assert results[0]["status"] == "error"
        assert results[0]["error"] == "Calculation timeout"
        assert finished.wait(5)
        assert seen == [True]
