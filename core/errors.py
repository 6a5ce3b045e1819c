"""
Error taxonomy for cluster verification checks.

Every error that leaves a check carries the operation and, where one is
involved, the node it happened on. Only the CLI turns these into exit codes.
"""

from typing import Optional


class SwarmCheckError(Exception):
    """Base class for all check errors."""

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        self.message = message
        self.node = node
        self.operation = operation
        super().__init__(self._format())

    def _format(self) -> str:
        parts = []
        if self.node:
            parts.append(f"node {self.node}")
        if self.operation:
            parts.append(self.operation)
        if parts:
            return f"{': '.join(parts)}: {self.message}"
        return self.message


class ConfigurationError(SwarmCheckError):
    """Invalid or mismatched check options."""


class InsufficientTopologyError(SwarmCheckError):
    """Cluster has fewer nodes than the check requires."""

    def __init__(self, required: int, available: int, check: str = ""):
        self.required = required
        self.available = available
        label = f"{check} " if check else ""
        super().__init__(
            f"{label}requires at least {required} nodes, cluster has {available}"
        )


class LengthMismatch(SwarmCheckError, ValueError):
    """Addresses of different length cannot be compared."""

    def __init__(self, left: int, right: int):
        self.left = left
        self.right = right
        super().__init__(f"address length must match ({left} != {right})")


class EmptyCandidateSet(SwarmCheckError):
    """Every node of the snapshot is excluded."""


class TransientNetworkError(SwarmCheckError):
    """A node call failed; retried by policy, fatal once retries run out."""

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        operation: Optional[str] = None,
        attempts: int = 0,
    ):
        self.attempts = attempts
        super().__init__(message, node=node, operation=operation)

    def _format(self) -> str:
        text = super()._format()
        if self.attempts:
            text = f"{text} (after {self.attempts} attempts)"
        return text


class NodeAPIError(TransientNetworkError):
    """HTTP call to a node API failed."""

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.status_code = status_code
        super().__init__(message, node=node, operation=operation)


class IntegrityError(SwarmCheckError):
    """Downloaded bytes differ from uploaded bytes."""


class PollExhaustedError(SwarmCheckError):
    """A bounded wait ran out of attempts before its condition held."""

    def __init__(self, condition: str, node: Optional[str], attempts: int):
        self.condition = condition
        self.attempts = attempts
        super().__init__(
            f"{condition} not met after {attempts} attempts",
            node=node,
            operation="poll",
        )


class ReplicationError(SwarmCheckError):
    """No node besides the closest one holds the chunk."""


class RecoveryNotTriggeredError(SwarmCheckError):
    """The recovery request failed with something other than a pending signal."""


class RecoveryPending(SwarmCheckError):
    """
    Node accepted a targeted download and started recovery.

    Raised by node clients instead of returning data; the caller is expected
    to poll for the recovered chunk.
    """

    def __init__(self, address: str, node: Optional[str] = None):
        self.address = address
        super().__init__(
            f"recovery of chunk {address} pending",
            node=node,
            operation="download chunk",
        )


class RunCancelled(SwarmCheckError):
    """Run deadline passed or the run was cancelled."""

    def __init__(self, message: str = "run cancelled"):
        super().__init__(message)
