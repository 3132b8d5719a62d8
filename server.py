#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
pH Speciation MCP Server

An STDIO MCP server for equilibrium pH calculations of weak acid/base
mixtures. Solves the charge balance or proton balance equation and reports
each species' protonation-state distribution at the solved pH.
"""

import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables before any other imports
load_dotenv()


def _resolve_project_root() -> Path:
    """Resolve the project root using environment override when valid."""
    env_root = os.environ.get("PH_SPECIATION_ROOT")
    if env_root:
        candidate = Path(env_root)
        if candidate.exists():
            return candidate
    return Path(__file__).resolve().parent


PROJECT_ROOT = _resolve_project_root()
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import asyncio
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from threading import Event
from typing import Any, Dict, List, Union

from fastmcp import FastMCP

from speciation.core_config import CONFIG
from speciation.ph_calculation import calculate_ph_from_dict, solve_batch
from speciation.report import render_result
from speciation.schemas import PHCalculationResult

# Configure logging for MCP - CRITICAL for protocol integrity
# Use a file handler for detailed logs and a stderr handler for warnings/errors only
file_handler = logging.FileHandler(os.environ.get('PH_SPECIATION_LOG', 'ph_speciation_mcp.log'))
file_handler.setLevel(logging.INFO)

stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setLevel(logging.WARNING)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[file_handler, stderr_handler]
)
logger = logging.getLogger(__name__)

# Dedicated executor so long solves do not starve the default pool
CALCULATION_EXECUTOR = ThreadPoolExecutor(
    max_workers=CONFIG.get_batch_workers(),
    thread_name_prefix="ph-solve"
)

mcp = FastMCP("pH Speciation Server")


def _parse_input(raw: Union[str, Dict[str, Any], List[Any]]) -> Union[Dict[str, Any], List[Any]]:
    """Accept JSON strings or already-decoded objects; enforce the size limit."""
    if isinstance(raw, str):
        raw = json.loads(raw)
    input_size = len(json.dumps(raw))
    if input_size > CONFIG.MAX_REQUEST_SIZE:
        raise ValueError(
            f"Request size {input_size} bytes exceeds maximum {CONFIG.MAX_REQUEST_SIZE} bytes"
        )
    return raw


@mcp.tool(
    description="""Calculate the equilibrium pH of a weak acid/base mixture.

    Solves the charge balance (mode "charge") or proton balance (mode "proton")
    equation and returns the pH plus every species' fraction in each
    protonation state at that pH.

    Input parameter: calculation_input (object)

    Example:
    {
      "mode": "charge",
      "species": [
        {"name": "phosphoric acid", "pka": [1.97, 6.82, 12.5], "charge": 0, "concentration": 0.01},
        {"name": "ammonium", "pka": [9.25], "charge": 1, "concentration": 0.03}
      ],
      "kw": 0,
      "solver": {"use_coarse_scan": true, "tolerance": 1e-5}
    }

    Species fields:
    - ka or pka: list of constants (either one)
    - charge: charge of the fully protonated form (charge mode)
    - max_protons, reference_protons: proton counts (proton mode)
    - concentration: total concentration in mol/L

    Optional fields:
    - kw: ion product of water (0 or omitted = 1.01e-14)
    - solver: initial_guess, use_coarse_scan, scan_points, tolerance,
      max_iterations, learning_rate, diff_epsilon, method
      ("gradient_descent" or "newton"), timeout_seconds
    - response_format: "json" (default) or "markdown"
    """
)
async def calculate_ph(calculation_input: Union[str, Dict[str, Any]]) -> Union[Dict[str, Any], str]:
    """Solve one system in the calculation executor with a timeout."""
    start_time = time.time()
    logger.info("calculate_ph started")

    try:
        raw = _parse_input(calculation_input)
    except (json.JSONDecodeError, ValueError) as e:
        return {
            "status": "error",
            "error": "Invalid input",
            "details": str(e),
            "hint": "Input must be a JSON object no larger than 1MB"
        }

    response_format = raw.get("response_format", "json") if isinstance(raw, dict) else "json"
    cancel_event = Event()
    loop = asyncio.get_running_loop()
    try:
        result: PHCalculationResult = await asyncio.wait_for(
            loop.run_in_executor(CALCULATION_EXECUTOR, calculate_ph_from_dict, raw, cancel_event),
            timeout=CONFIG.CALCULATION_TIMEOUT_S
        )
    except asyncio.TimeoutError:
        cancel_event.set()
        logger.error(f"calculate_ph timed out after {CONFIG.CALCULATION_TIMEOUT_S} seconds")
        return {
            "status": "error",
            "error": "Calculation timeout",
            "details": f"The calculation exceeded {CONFIG.CALCULATION_TIMEOUT_S} seconds",
            "hint": "Enable the coarse scan or use the newton method"
        }

    logger.info(f"calculate_ph completed in {time.time() - start_time:.2f} seconds")
    return render_result(result, response_format)


@mcp.tool(
    description="""Calculate the equilibrium pH of several independent systems concurrently.

    Input parameter: calculation_inputs (list of calculate_ph inputs).
    Returns one result per input, in order. A failing system returns
    status "error" without affecting the others.
    """
)
async def calculate_ph_batch(calculation_inputs: Union[str, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Solve several systems on the batch thread pool."""
    try:
        raw = _parse_input(calculation_inputs)
    except (json.JSONDecodeError, ValueError) as e:
        return [{"status": "error", "error": "Invalid input", "details": str(e)}]
    if not isinstance(raw, list):
        raw = [raw]

    cancel_event = Event()
    loop = asyncio.get_running_loop()
    try:
        results = await asyncio.wait_for(
            loop.run_in_executor(
                CALCULATION_EXECUTOR, partial(solve_batch, raw, cancel_event=cancel_event)
            ),
            timeout=CONFIG.CALCULATION_TIMEOUT_S
        )
    except asyncio.TimeoutError:
        cancel_event.set()
        logger.error(f"calculate_ph_batch timed out after {CONFIG.CALCULATION_TIMEOUT_S} seconds")
        return [{
            "status": "error",
            "error": "Calculation timeout",
            "details": f"The batch exceeded {CONFIG.CALCULATION_TIMEOUT_S} seconds",
            "hint": "Split the batch or enable the coarse scan"
        }]
    return [render_result(r) for r in results]


def main():
    """Run the MCP server."""
    logger.info("Starting pH Speciation MCP Server...")
    logger.info("Available tools:")
    logger.info("  - calculate_ph: equilibrium pH by charge or proton balance")
    logger.info("  - calculate_ph_batch: concurrent pH calculations")
    logger.info(f"Calculation timeout: {CONFIG.CALCULATION_TIMEOUT_S} seconds")
    mcp.run()


if __name__ == "__main__":
    main()
