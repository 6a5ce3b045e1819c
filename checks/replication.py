"""
Replication-on-write check.

Uploaded chunks must land on the node closest to their address and be
replicated at least once more, either while being forwarded or after storage.
"""

from typing import List

from swarmcheck.checks.base import Check, CheckKind, CheckReport, IterationOutcome, IterationRecord
from swarmcheck.checks.options import ReplicationOptions
from swarmcheck.core.chunk import random_chunk, verify_chunk
from swarmcheck.core.errors import (
    ConfigurationError,
    IntegrityError,
    ReplicationError,
    RunCancelled,
    TransientNetworkError,
)
from swarmcheck.core.retry import RetryPolicy
from swarmcheck.core.runtime import RunContext
from swarmcheck.core.streams import derive
from swarmcheck.core.topology import Topology


class ReplicationCheck(Check):
    """Verify chunks reach their closest node and one more holder."""

    kind = CheckKind.REPLICATION
    options_type = ReplicationOptions
    min_nodes = 2

    def _uploaders(self, names: List[str]) -> List[str]:
        o: ReplicationOptions = self.options
        if o.upload_nodes is None:
            if o.upload_node_count > len(names):
                raise ConfigurationError(
                    f"upload_node_count {o.upload_node_count} exceeds cluster size {len(names)}",
                    operation="replication options",
                )
            return names[:o.upload_node_count]

        unknown = [name for name in o.upload_nodes if name not in names]
        if unknown:
            raise ConfigurationError(
                f"unknown upload nodes: {', '.join(unknown)}",
                operation="replication options",
            )
        return list(o.upload_nodes)

    def run(self, ctx: RunContext, cluster) -> CheckReport:
        self.require_nodes(cluster)
        o: ReplicationOptions = self.options
        report = self.new_report(ctx)

        clients = cluster.node_clients()
        uploaders = self._uploaders(sorted(clients))
        rnds = derive(ctx.seed, len(uploaders))
        policy = RetryPolicy(max_attempts=o.retry_attempts, delay=o.retry_delay)

        self.logger.info(f"seed: {ctx.seed}")

        try:
            for i, name in enumerate(uploaders):
                ctx.check()
                uploader = clients[name]
                batch_id = policy.call(
                    lambda: uploader.get_or_create_batch(
                        o.postage_amount, o.postage_depth, o.gas_price, o.postage_label
                    ),
                    ctx,
                    node=name,
                    name="get or create batch",
                )
                self.logger.info(f"node {name}: batch id {batch_id}")

                for _ in range(o.chunks_per_node):
                    record = self._check_chunk(
                        ctx, cluster, len(report.records), name, batch_id, rnds[i], policy
                    )
                    report.add(record)
        except RunCancelled:
            self.logger.info("replication check cancelled")
            report.interrupted = True

        return report

    def _check_chunk(self, ctx, cluster, index, name, batch_id, rnd, policy) -> IterationRecord:
        o: ReplicationOptions = self.options
        clients = cluster.node_clients()
        uploader = clients[name]

        chunk = random_chunk(rnd)
        ref = policy.call(
            lambda: uploader.upload_chunk(chunk.data, batch_id),
            ctx,
            node=name,
            name="upload chunk",
        )
        self.metrics.inc("chunks_uploaded", labels={"node": name})
        self.logger.info(f"uploaded chunk {ref} to node {name}")
        if not verify_chunk(chunk.data, ref):
            self.logger.warning(
                f"node {name}: reference {ref} differs from computed address {chunk.address}"
            )

        ctx.sleep(o.retry_delay)

        topology = policy.call(lambda: Topology.capture(cluster), ctx, name="capture topology")
        closest_name, closest_address = topology.closest(ref)
        self.logger.info(f"closest node {closest_name} overlay {closest_address}")

        policy.poll(
            lambda: clients[closest_name].has_chunk(ref),
            ctx,
            condition=f"chunk {ref} found in the closest node {closest_address}",
            node=closest_name,
        )
        self.metrics.inc("chunks_synced", labels={"node": closest_name})
        self.logger.info(f"node {name} chunk {ref} found in the closest node {closest_address}")

        replica = None
        for candidate in topology.by_proximity(ref, excluded={closest_name}):
            ctx.check()
            try:
                present = clients[candidate].has_chunk(ref)
            except TransientNetworkError as e:
                self.logger.debug(f"node {candidate}: has chunk failed: {e}")
                continue
            if present:
                replica = candidate
                break

        if replica is None:
            raise ReplicationError(
                f"chunk {ref} not replicated", node=name, operation="replication"
            )
        self.metrics.inc("chunks_replicated", labels={"node": replica})
        self.logger.info(f"node {name} chunk {ref} was replicated to node {replica}")

        if o.verify_content:
            data = policy.call(
                lambda: clients[replica].download_chunk(ref),
                ctx,
                node=replica,
                name="download chunk",
            )
            if data != chunk.data:
                raise IntegrityError(
                    f"chunk {ref} downloaded from replica does not have proper data",
                    node=replica,
                    operation="download chunk",
                )

        return IterationRecord(
            index,
            IterationOutcome.SUCCEEDED,
            roles={"uploader": name, "closest": closest_name, "replica": replica},
            chunk=ref.hex,
        )
