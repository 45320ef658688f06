#!/usr/bin/env python3
"""
Escrow conformance runner.

Every vector is replayed on the in-process reference implementation and on
each remote endpoint. Each run output (call results and final state digest) is
checked against the vector's recorded ``expected`` block. Vectors without one
are checked against the reference run instead.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import click
import yaml
from aiohttp import web

from ..errors import SpecError
from .client import ConformanceClient, LocalClient
from .comparator import ResultComparator
from .config import REFERENCE_CLIENT, HarnessConfig, parse_endpoints
from .reporter import ConformanceReport, ReportGenerator, SuiteResult, VectorResult
from .server import create_app

logger = logging.getLogger(__name__)

EXPECTED = "expected"
VECTOR_SUFFIXES = (".yaml", ".yml")

Client = Union[LocalClient, ConformanceClient]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ConformanceHarness:
    """Drives one reference client and any number of remote clients."""

    def __init__(self, config: HarnessConfig):
        self.config = config
        self.clients: Dict[str, Client] = {REFERENCE_CLIENT: LocalClient(REFERENCE_CLIENT)}
        self.comparator = ResultComparator(reference_client=EXPECTED)
        self.reporter = ReportGenerator(config.result_dir)

    async def setup(self) -> None:
        for name, client_config in self.config.get_enabled_clients().items():
            client = ConformanceClient(client_config)
            await client.connect()
            self.clients[name] = client
            logger.info(f"Connected to {name} at {client_config.endpoint}")

    async def teardown(self) -> None:
        await asyncio.gather(*(client.close() for client in self.clients.values()))

    async def _execute(self, name: str, client: Client, vector: Dict[str, Any]) -> Dict[str, Any]:
        if not await client.reset_state():
            raise RuntimeError(f"{name}: reset failed")
        if await client.load_state(vector.get("pre_state", {})) is None:
            raise RuntimeError(f"{name}: pre_state rejected")
        results = [await client.execute_call(call) for call in vector.get("calls", [])]
        return {"results": results, "state_digest": await client.get_state_digest()}

    async def run_vector(self, vector: Dict[str, Any], suite_name: str = "") -> VectorResult:
        name = vector.get("name", "unnamed")
        start = time.perf_counter()
        try:
            outputs = {
                client_name: await self._execute(client_name, client, vector)
                for client_name, client in self.clients.items()
            }
        except (SpecError, RuntimeError, KeyError, TypeError, ValueError) as e:
            logger.exception(f"Vector {name} could not be executed")
            return VectorResult(name, suite_name, False, _elapsed_ms(start), error=str(e))

        expected = vector.get(EXPECTED) or outputs[REFERENCE_CLIENT]
        comparison = self.comparator.compare_results({EXPECTED: expected, **outputs}, name)
        return VectorResult(
            vector_name=name,
            suite_name=suite_name,
            passed=comparison.success,
            execution_time_ms=_elapsed_ms(start),
            comparison=comparison,
        )

    async def run_suite(self, suite_path: str) -> SuiteResult:
        suite_name = Path(suite_path).stem
        start = time.perf_counter()
        suite = yaml.safe_load(Path(suite_path).read_text()) or {}
        vectors = suite.get("test_vectors", [])
        runnable = [v for v in vectors if v.get("runnable", True)]
        logger.info(f"Suite {suite_name}: {len(runnable)} of {len(vectors)} vectors runnable")

        results: List[VectorResult] = []
        for vector in runnable:
            result = await self.run_vector(vector, suite_name)
            results.append(result)
            logger.info(f"  [{'PASS' if result.passed else 'FAIL'}] {result.vector_name}")
            if not result.passed and self.config.stop_on_first_failure:
                break

        return SuiteResult.from_results(
            suite_name, results, len(vectors) - len(results), _elapsed_ms(start)
        )

    async def run_all(self, vector_paths: List[str]) -> ConformanceReport:
        start = time.perf_counter()
        suites: List[SuiteResult] = []
        for path in vector_paths:
            suite = await self.run_suite(path)
            suites.append(suite)
            if suite.failed_tests and self.config.stop_on_first_failure:
                break
        return self.reporter.generate_report(
            suite_results=suites,
            clients=list(self.clients),
            reference_client=self.comparator.reference_client,
            execution_time_ms=_elapsed_ms(start),
        )


def find_vector_files(vector_dir: str) -> List[str]:
    """YAML vector files under ``vector_dir``, sorted."""
    root = Path(vector_dir)
    return sorted(
        str(p) for p in root.rglob("*") if p.is_file() and p.suffix in VECTOR_SUFFIXES
    )


async def run_harness(config: HarnessConfig, vector_files: List[str]) -> ConformanceReport:
    harness = ConformanceHarness(config)
    try:
        await harness.setup()
        report = await harness.run_all(vector_files)
    finally:
        await harness.teardown()
    harness.reporter.write_json_report(report)
    harness.reporter.write_summary(report)
    return report


@click.group()
@click.option("--verbose", is_flag=True, help="Debug logging")
def main(verbose: bool) -> None:
    """Escrow conformance tools."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@main.command()
@click.option("--vectors", default=None, help="Vector directory or a single YAML file [env: VECTOR_DIR]")
@click.option("--endpoint", "endpoints", multiple=True, help="Remote implementation as name=url (repeatable)")
@click.option("--result-dir", default=None, help="Where reports are written [env: RESULT_DIR]")
@click.option("--stop-on-failure", is_flag=True, help="Stop at the first failing vector")
def run(
    vectors: Optional[str],
    endpoints: Tuple[str, ...],
    result_dir: Optional[str],
    stop_on_failure: bool,
) -> None:
    """Replay vectors and report divergences."""
    config = HarnessConfig.from_env()
    try:
        config.clients.update(parse_endpoints(list(endpoints), config.request_timeout))
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--endpoint") from e
    config.result_dir = result_dir or config.result_dir
    config.stop_on_first_failure = stop_on_failure or config.stop_on_first_failure
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    source = Path(vectors or config.vector_dir)
    vector_files = [str(source)] if source.is_file() else find_vector_files(str(source))
    if not vector_files:
        logger.error(f"No vector files under {source}")
        sys.exit(1)

    report = asyncio.run(run_harness(config, vector_files))
    ReportGenerator(config.result_dir).print_summary(report)
    sys.exit(0 if report.total_failed == 0 else 1)


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8090, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Serve the reference implementation over HTTP."""
    logger.info(f"Reference implementation listening on {host}:{port}")
    web.run_app(create_app(), host=host, port=port, print=None)


if __name__ == "__main__":
    main()
