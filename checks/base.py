"""
Shared check machinery: kinds, per-iteration records, run reports and the
Check base class.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional
import logging

from swarmcheck.core.errors import ConfigurationError, InsufficientTopologyError
from swarmcheck.core.runtime import RunContext
from swarmcheck.telemetry.metrics import MetricsSink, NullMetrics


class CheckKind(Enum):
    ROUNDTRIP = "roundtrip"
    REPLICATION = "replication"
    RECOVERY = "recovery"


class IterationOutcome(Enum):
    SUCCEEDED = "succeeded"
    UPLOAD_FAILED = "upload_failed"
    DOWNLOAD_FAILED = "download_failed"
    MISMATCH = "mismatch"


@dataclass(frozen=True)
class PayloadDiff:
    """How a downloaded payload differs from the uploaded one."""

    sent_length: int
    received_length: int
    differing_bytes: int = 0

    @property
    def length_mismatch(self) -> bool:
        return self.sent_length != self.received_length

    @property
    def matches(self) -> bool:
        return not self.length_mismatch and self.differing_bytes == 0

    @property
    def percent(self) -> float:
        """Share of differing bytes (only meaningful for equal lengths)."""
        if self.sent_length == 0:
            return 0.0
        return self.differing_bytes / self.sent_length * 100

    def describe(self) -> str:
        if self.length_mismatch:
            text = (
                f"length mismatch: download length {self.received_length}; "
                f"upload length {self.sent_length}"
            )
            if self.received_length > self.sent_length:
                text += " (received more than sent)"
            return text
        if self.differing_bytes:
            return f"data mismatch: found {self.differing_bytes} different bytes, ~{self.percent:.2f}%"
        return "data matches"


def compare_payloads(sent: bytes, received: bytes) -> PayloadDiff:
    """
    Compare uploaded and downloaded bytes.

    Differing bytes are only counted when the lengths agree.
    """
    if len(sent) != len(received):
        return PayloadDiff(len(sent), len(received))
    differing = sum(1 for a, b in zip(sent, received) if a != b)
    return PayloadDiff(len(sent), len(received), differing)


@dataclass(frozen=True)
class IterationRecord:
    """Write-once result of one check iteration."""

    index: int
    outcome: IterationOutcome
    roles: Mapping[str, str] = field(default_factory=dict)
    chunk: Optional[str] = None
    durations: Mapping[str, float] = field(default_factory=dict)
    diff: Optional[PayloadDiff] = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is IterationOutcome.SUCCEEDED


@dataclass
class CheckReport:
    """Everything a finished run recorded."""

    kind: CheckKind
    seed: int
    records: List[IterationRecord] = field(default_factory=list)
    interrupted: bool = False  # Ended by deadline or cancel signal

    def add(self, record: IterationRecord):
        self.records.append(record)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.records if r.succeeded)

    @property
    def failed(self) -> int:
        return len(self.records) - self.succeeded

    @property
    def mismatches(self) -> int:
        return sum(1 for r in self.records if r.outcome is IterationOutcome.MISMATCH)

    def summary(self) -> Dict:
        return {
            "kind": self.kind.value,
            "seed": self.seed,
            "iterations": len(self.records),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "mismatches": self.mismatches,
            "interrupted": self.interrupted,
        }


class Check:
    """
    Base class for verification checks.

    Subclasses set kind, options_type and min_nodes and implement run().
    """

    kind: CheckKind
    options_type: type
    min_nodes: int = 2

    def __init__(
        self,
        options,
        metrics: Optional[MetricsSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        if not isinstance(options, self.options_type):
            raise ConfigurationError(
                f"expected {self.options_type.__name__}, got {type(options).__name__}",
                operation=f"{self.kind.value} options",
            )
        self.options = options
        self.metrics = metrics or NullMetrics()
        self.logger = logger or logging.getLogger(type(self).__module__)

    def require_nodes(self, cluster):
        available = cluster.size()
        if available < self.min_nodes:
            raise InsufficientTopologyError(self.min_nodes, available, check=self.kind.value)

    def new_report(self, ctx: RunContext) -> CheckReport:
        return CheckReport(kind=self.kind, seed=ctx.seed)

    def run(self, ctx: RunContext, cluster) -> CheckReport:
        """
        Run the check against a cluster.

        Returns:
            CheckReport of all completed iterations

        Raises:
            SwarmCheckError: on a fatal outcome
        """
        raise NotImplementedError
