"""
Recovery-after-loss check.

Roles per chunk:
- A, C: the two nodes farthest apart, so the chunk is unlikely to sit near C
- B: the node closest to a random chunk's address (never A or C)

The chunk is uploaded on A, confirmed on B, read back from C, then deleted
from every node. A targeted download from C, hinting at A's address prefix,
starts recovery; A re-uploads and pins the chunk, and C is polled until it
serves the original bytes again.
"""

import random
from enum import Enum
from typing import Mapping, Optional, Tuple

from swarmcheck.checks.base import (
    Check,
    CheckKind,
    CheckReport,
    IterationOutcome,
    IterationRecord,
    compare_payloads,
)
from swarmcheck.checks.options import RecoveryOptions
from swarmcheck.core.address import Address
from swarmcheck.core.chunk import Chunk, random_chunk, verify_chunk
from swarmcheck.core.errors import (
    EmptyCandidateSet,
    IntegrityError,
    RecoveryNotTriggeredError,
    RecoveryPending,
    RunCancelled,
    TransientNetworkError,
)
from swarmcheck.core.retry import RetryPolicy
from swarmcheck.core.runtime import RunContext
from swarmcheck.core.streams import derive
from swarmcheck.core.topology import Topology


ORIGIN_HINT_CHARS = 2


class RecoveryTrigger(Enum):
    """How a node answered the targeted download."""
    DELIVERED = "delivered"
    PENDING = "pending"


class RecoveryCheck(Check):
    """Delete a chunk cluster-wide and verify it comes back through recovery."""

    kind = CheckKind.RECOVERY
    options_type = RecoveryOptions
    min_nodes = 3

    def run(self, ctx: RunContext, cluster) -> CheckReport:
        self.require_nodes(cluster)
        o: RecoveryOptions = self.options
        report = self.new_report(ctx)

        rnds = derive(ctx.seed, o.chunks_to_repair)
        self.logger.info(f"seed: {ctx.seed}")

        try:
            for i in range(o.chunks_to_repair):
                ctx.check()
                report.add(self._repair(ctx, cluster, i, rnds[i]))
        except RunCancelled:
            self.logger.info("recovery check cancelled")
            report.interrupted = True

        return report

    def select_roles(
        self,
        topology: Topology,
        rnd: random.Random,
    ) -> Tuple[str, str, str, Chunk]:
        """
        Pick nodes A, B, C and a chunk whose closest node is B.

        Raises:
            EmptyCandidateSet: if no drawn chunk is closest to a third node
        """
        node_a, node_c = topology.farthest_pair()

        for _ in range(self.options.max_role_draws):
            chunk = random_chunk(rnd)
            node_b, _ = topology.closest(chunk.address)
            if node_b in (node_a, node_c):
                continue

            self.logger.info(f"overlayA: {topology.address_of(node_a)}")
            self.logger.info(f"overlayB: {topology.address_of(node_b)}")
            self.logger.info(f"overlayC: {topology.address_of(node_c)}")
            self.logger.info(f"chunk address: {chunk.address}")
            return node_a, node_b, node_c, chunk

        raise EmptyCandidateSet(
            f"no chunk closest to a node other than {node_a} and {node_c} "
            f"after {self.options.max_role_draws} draws"
        )

    def _repair(self, ctx: RunContext, cluster, index: int, rnd: random.Random) -> IterationRecord:
        o: RecoveryOptions = self.options
        clients = cluster.node_clients()
        policy = RetryPolicy(max_attempts=o.retry_attempts, delay=o.retry_delay)
        topology = policy.call(lambda: Topology.capture(cluster), ctx, name="capture topology")

        name_a, name_b, name_c, chunk = self.select_roles(topology, rnd)
        node_a, node_b, node_c = clients[name_a], clients[name_b], clients[name_c]
        address_a = topology.address_of(name_a)

        batch_id = policy.call(
            lambda: node_a.create_batch(o.postage_amount, o.postage_depth, o.gas_price, o.postage_label),
            ctx,
            node=name_a,
            name="create batch",
        )
        self.logger.info(f"created batch id {batch_id}")

        ref = policy.call(
            lambda: node_a.upload_chunk(chunk.data, batch_id),
            ctx,
            node=name_a,
            name="upload chunk",
        )
        if not verify_chunk(chunk.data, ref):
            self.logger.warning(
                f"node {name_a}: reference {ref} differs from computed address {chunk.address}"
            )

        presence = RetryPolicy(
            max_attempts=o.presence_poll_attempts, delay=o.presence_poll_interval
        )
        presence.poll(
            lambda: node_b.has_chunk(ref),
            ctx,
            condition=f"chunk {ref} present",
            node=name_b,
        )

        data = policy.call(
            lambda: node_c.download_chunk(ref),
            ctx,
            node=name_c,
            name="download chunk",
        )
        self._verify(data, chunk, name_c, "download chunk")

        # A stale copy on any node, A included, would serve the chunk without recovery
        self._delete_everywhere(ctx, clients, ref, policy)

        trigger, delivered = self._trigger_recovery(node_c, name_c, ref, address_a.prefix(ORIGIN_HINT_CHARS))
        self.logger.info(f"recovery request on node {name_c}: {trigger.value}")
        if trigger is RecoveryTrigger.DELIVERED:
            self._verify(delivered, chunk, name_c, "trigger recovery")

        # While C asks A to repair, put the original chunk back on A and pin it
        self._reupload_and_pin(ctx, node_a, name_a, chunk, batch_id, policy)

        start = ctx.clock.now()
        recovery = RetryPolicy(
            max_attempts=o.recovery_poll_attempts, delay=o.recovery_poll_interval
        )

        def download_recovered():
            self.metrics.inc("download_attempts", labels={"node": name_c})
            return node_c.download_chunk(ref)

        recovered = recovery.poll(
            download_recovered,
            ctx,
            condition=f"chunk {ref} downloaded after recovery",
            node=name_c,
        )
        elapsed = ctx.clock.now() - start
        self._verify(recovered, chunk, name_c, "download recovered chunk")

        self.logger.info(f"repaired chunk {ref} in {elapsed:.3f}s")
        self.metrics.inc("repaired_count", labels={"node": name_a})
        self.metrics.set("repaired_time_seconds", elapsed, labels={"node": name_a, "chunk": ref.hex})
        self.metrics.observe("repaired_time_seconds_histogram", elapsed)

        return IterationRecord(
            index,
            IterationOutcome.SUCCEEDED,
            roles={"A": name_a, "B": name_b, "C": name_c},
            chunk=ref.hex,
            durations={"recovery": elapsed},
            detail=trigger.value,
        )

    def _verify(self, data: bytes, chunk: Chunk, node: str, operation: str):
        if data == chunk.data:
            return
        diff = compare_payloads(chunk.data, data)
        raise IntegrityError(
            f"chunk {chunk.address} does not have proper data ({diff.describe()})",
            node=node,
            operation=operation,
        )

    def _delete_everywhere(self, ctx: RunContext, clients: Mapping, address: Address, policy: RetryPolicy):
        """Remove the chunk from every node and confirm it is gone."""
        for name, client in clients.items():
            policy.call(lambda: client.remove_chunk(address), ctx, node=name, name="remove chunk")
            policy.poll(
                lambda: not client.has_chunk(address),
                ctx,
                condition=f"chunk {address} removed",
                node=name,
            )
        self.logger.info(f"deleted chunk {address} from {len(clients)} nodes")

    def _trigger_recovery(
        self, client, name: str, address: Address, origin_hint: str
    ) -> Tuple[RecoveryTrigger, Optional[bytes]]:
        """
        Download with an origin hint so the node starts recovery.

        Returns:
            The trigger outcome and, when the node answered at once, the bytes it served

        Raises:
            RecoveryNotTriggeredError: on any failure other than a pending recovery
        """
        try:
            data = client.download_chunk(address, origin_hint)
        except RecoveryPending:
            return RecoveryTrigger.PENDING, None
        except TransientNetworkError as e:
            raise RecoveryNotTriggeredError(
                f"chunk recovery not triggered: {e}", node=name, operation="trigger recovery"
            ) from e
        return RecoveryTrigger.DELIVERED, data

    def _reupload_and_pin(self, ctx, client, name: str, chunk: Chunk, batch_id: str, policy: RetryPolicy):
        ref = policy.call(
            lambda: client.upload_chunk(chunk.data, batch_id, pin=False),
            ctx,
            node=name,
            name="re-upload chunk",
        )
        policy.call(lambda: client.pin_root_hash(ref), ctx, node=name, name="pin root hash")
        self.logger.info(f"node {name}: re-uploaded and pinned chunk {ref}")
