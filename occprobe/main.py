"""
occprobe - Main entry point.

This module runs one complete probe:
- Setup (version 0 of parent and children)
- Concurrent run (one retry controller per child)
- Verification of the final state

Usage:
    occprobe --table test_table --region eu-west-1 --children 30

Configuration comes from environment variables (see config.py); command
line flags override them.

Exit codes:
    0  no anomaly, final state verified
    1  at least one worker observed an anomalous empty read
    2  verification failed, or workers did not finish in time
    3  configuration, credential, connection or unexpected store error

How to change safely:
    - Keep anomalies, verification failures and infrastructure errors on
      distinct exit codes; scripts rely on telling them apart
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum

import json_log_formatter

from .config import AppConfig, ObservabilityConfig, ProbeConfig, StoreBackend
from .errors import OccError, VerificationError
from .harness import ConcurrencyHarness, HarnessReport
from .occ import (
    ConditionalWriter,
    LogReader,
    Outcome,
    RetryController,
    RetryPolicy,
    WorkerResult,
)
from .seed import seed
from .store import (
    DynamoDBStore,
    KeyValueStore,
    ReadConsistency,
    StoreAuthError,
    StoreError,
    create_store,
)
from .verify import VerificationReport, Verifier

logger = logging.getLogger(__name__)


class ProbeOutcome(Enum):
    """Overall result of a probe run."""

    PASSED = "passed"
    ANOMALY_DETECTED = "anomaly_detected"
    VERIFICATION_FAILED = "verification_failed"
    INCOMPLETE = "incomplete"

    @property
    def exit_code(self) -> int:
        return {
            ProbeOutcome.PASSED: 0,
            ProbeOutcome.ANOMALY_DETECTED: 1,
            ProbeOutcome.VERIFICATION_FAILED: 2,
            ProbeOutcome.INCOMPLETE: 2,
        }[self]


EXIT_FATAL = 3


@dataclass
class ProbeReport:
    """Everything a probe run observed.

    Attributes:
        outcome: Overall outcome
        harness: Per-worker results of the concurrent run
        verification: Final state verification
    """

    outcome: ProbeOutcome
    harness: HarnessReport
    verification: VerificationReport = field(default_factory=VerificationReport)


def setup_logging(config: ObservabilityConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class Probe:
    """Seeds the table, runs the workers and verifies the result.

    Attributes:
        store: Connected store
        config: Probe configuration

    Example:
        >>> store = InMemoryStore()
        >>> await store.connect()
        >>> report = await Probe(store, ProbeConfig(children=2)).run()
        >>> report.outcome
        <ProbeOutcome.PASSED: 'passed'>
    """

    def __init__(self, store: KeyValueStore, config: ProbeConfig) -> None:
        self.store = store
        self.config = config
        self.reader = LogReader(store, config.read_consistency)
        self.writer = ConditionalWriter(store)
        self.policy = RetryPolicy(max_attempts=config.max_attempts)

    async def run(self) -> ProbeReport:
        """Run setup, the concurrent phase and verification.

        Raises:
            SetupError: If the entities already exist
            VerificationError: If the initial state cannot be read back
            FatalStoreError: If a worker's write is rejected unexpectedly
            StoreError: On infrastructure failures
        """
        parent_id = self.config.parent_id
        child_ids = self.config.child_ids

        await seed(self.writer, Verifier(self.store), parent_id, child_ids)

        logger.info(f"Running the test with {len(child_ids)} workers...")
        harness = ConcurrencyHarness(self._run_worker, timeout=self.config.timeout_seconds)
        harness_report = await harness.run(child_ids)
        logger.info(
            f"Test run completed in {harness_report.elapsed_seconds:.3f}s "
            f"({harness_report.total_attempts} write attempts), verifying results...",
            extra={
                "committed": len(harness_report.committed),
                "anomalies": len(harness_report.anomalies),
                "unfinished": len(harness_report.unfinished),
            },
        )

        verification = await Verifier(self.store, exact=True).verify_all(
            self._expectations(parent_id, harness_report)
        )

        outcome = self._outcome(harness_report, verification)
        return ProbeReport(outcome=outcome, harness=harness_report, verification=verification)

    async def _run_worker(self, child_id: str) -> WorkerResult:
        controller = RetryController(
            child_id=child_id,
            parent_id=self.config.parent_id,
            reader=self.reader,
            writer=self.writer,
            policy=self.policy,
        )
        return await controller.run()

    def _expectations(self, parent_id: str, report: HarnessReport) -> list[tuple[str, int]]:
        """Expected version counts given what each worker reported.

        A committed worker added one parent version and one child version;
        an aborted worker added nothing. Unfinished workers may or may not
        have committed, so their children and the parent are left out.
        """
        expectations = []
        if report.completed:
            expectations.append((parent_id, 1 + len(report.committed)))
        for worker_id, result in report.results.items():
            expectations.append((worker_id, 2 if result.outcome is Outcome.SUCCESS else 1))
        return expectations

    def _outcome(self, harness: HarnessReport, verification: VerificationReport) -> ProbeOutcome:
        if not harness.completed:
            return ProbeOutcome.INCOMPLETE
        if not verification.passed:
            return ProbeOutcome.VERIFICATION_FAILED
        if harness.anomalies:
            return ProbeOutcome.ANOMALY_DETECTED
        return ProbeOutcome.PASSED


def summarize(report: ProbeReport) -> str:
    """One-line, human-readable outcome."""
    if report.outcome is ProbeOutcome.PASSED:
        return "No read anomaly detected!"
    if report.outcome is ProbeOutcome.ANOMALY_DETECTED:
        ids = ", ".join(
            f"{r.worker_id} (read of {r.anomalous_entity})" for r in report.harness.anomalies
        )
        return f"Read anomaly detected by {len(report.harness.anomalies)} worker(s): {ids}"
    if report.outcome is ProbeOutcome.INCOMPLETE:
        return f"Workers did not finish in time: {', '.join(report.harness.unfinished)}"
    return "; ".join(str(f) for f in report.verification.failures)


async def run_probe(config: AppConfig, create_table: bool = False) -> ProbeReport:
    """Connect the configured store, run one probe and close the store."""
    store = create_store(config)
    if isinstance(store, DynamoDBStore):
        await store.connect(create_table=create_table)
    else:
        await store.connect()

    try:
        return await Probe(store, config.probe).run()
    finally:
        await store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Probe a transactional key-value store for read anomalies under OCC contention"
    )
    parser.add_argument("--backend", choices=[b.value for b in StoreBackend], help="Store backend")
    parser.add_argument("--table", help="DynamoDB table name")
    parser.add_argument("--region", help="AWS region")
    parser.add_argument("--endpoint-url", help="DynamoDB endpoint URL (for DynamoDB Local)")
    parser.add_argument("--profile", help="AWS profile name")
    parser.add_argument("--children", type=int, help="Number of child entities / workers")
    parser.add_argument("--key-prefix", help="Prefix for every entity id")
    parser.add_argument(
        "--eventual", action="store_true", help="Use eventually consistent latest-version reads"
    )
    parser.add_argument("--timeout", type=float, help="Overall run timeout in seconds")
    parser.add_argument("--max-attempts", type=int, help="Retry ceiling per worker")
    parser.add_argument(
        "--create-table", action="store_true", help="Create the table if it does not exist"
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    return parser


def apply_args(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """Override environment configuration with command line flags."""
    dynamodb = dataclasses.replace(
        config.dynamodb,
        **{
            k: v
            for k, v in {
                "table_name": args.table,
                "region": args.region,
                "endpoint_url": args.endpoint_url,
                "profile": args.profile,
            }.items()
            if v is not None
        },
    )
    probe_overrides = {
        k: v
        for k, v in {
            "children": args.children,
            "key_prefix": args.key_prefix,
            "timeout_seconds": args.timeout,
            "max_attempts": args.max_attempts,
        }.items()
        if v is not None
    }
    if args.eventual:
        probe_overrides["read_consistency"] = ReadConsistency.EVENTUAL
    probe = dataclasses.replace(config.probe, **probe_overrides)

    observability = config.observability
    if args.verbose:
        observability = dataclasses.replace(observability, log_level="DEBUG")
    if args.json_logs:
        observability = dataclasses.replace(observability, log_format="json")

    updated = dataclasses.replace(
        config,
        backend=StoreBackend(args.backend) if args.backend else config.backend,
        dynamodb=dynamodb,
        probe=probe,
        observability=observability,
    )
    updated.validate()
    return updated


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_args(AppConfig.from_env(), args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    setup_logging(config.observability)
    config.log_config()

    try:
        report = asyncio.run(run_probe(config, create_table=args.create_table))
    except StoreAuthError as e:
        print(f"Credential error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except VerificationError as e:
        print(str(e))
        sys.exit(ProbeOutcome.VERIFICATION_FAILED.exit_code)
    except (StoreError, OccError) as e:
        logger.error(f"Probe aborted: {e}", exc_info=True)
        print(f"Probe aborted: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)

    print(summarize(report))
    sys.exit(report.outcome.exit_code)


if __name__ == "__main__":
    main()
