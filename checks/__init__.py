"""
SwarmCheck Verification Checks

- RoundTripCheck: upload/download integrity between random node pairs
- ReplicationCheck: chunks reach their closest node and are replicated
- RecoveryCheck: chunks deleted cluster-wide come back through recovery
"""

from typing import Dict, Type

from swarmcheck.checks.base import (
    Check,
    CheckKind,
    CheckReport,
    IterationOutcome,
    IterationRecord,
    PayloadDiff,
    compare_payloads,
)
from swarmcheck.checks.options import (
    CheckOptions,
    RecoveryOptions,
    ReplicationOptions,
    RoundTripOptions,
    build_options,
)
from swarmcheck.checks.recovery import RecoveryCheck
from swarmcheck.checks.replication import ReplicationCheck
from swarmcheck.checks.roundtrip import RoundTripCheck
from swarmcheck.core.errors import ConfigurationError

CHECKS: Dict[CheckKind, Type[Check]] = {
    CheckKind.ROUNDTRIP: RoundTripCheck,
    CheckKind.REPLICATION: ReplicationCheck,
    CheckKind.RECOVERY: RecoveryCheck,
}


def create_check(options, metrics=None, logger=None) -> Check:
    """
    Instantiate the check matching an options variant.

    Raises:
        ConfigurationError: if options is not a known variant
    """
    kind_value = getattr(options, "kind", None)
    try:
        kind = CheckKind(kind_value)
    except ValueError:
        raise ConfigurationError(f"unknown check kind: {kind_value!r}", operation="options") from None
    return CHECKS[kind](options, metrics=metrics, logger=logger)


__all__ = [
    "Check",
    "CheckKind",
    "CheckReport",
    "IterationOutcome",
    "IterationRecord",
    "PayloadDiff",
    "compare_payloads",
    "CheckOptions",
    "RoundTripOptions",
    "ReplicationOptions",
    "RecoveryOptions",
    "build_options",
    "RoundTripCheck",
    "ReplicationCheck",
    "RecoveryCheck",
    "CHECKS",
    "create_check",
]
