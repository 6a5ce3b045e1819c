"""
Round-trip integrity check.

Each iteration picks an uploader and a downloader from a seeded permutation,
uploads random content on the first, waits for the network to sync and
downloads it from the second. Failed transfers and mismatches are logged and
counted; the run carries on until its deadline or iteration bound.
"""

import random
from typing import List, Mapping, Optional

from swarmcheck.checks.base import (
    Check,
    CheckKind,
    CheckReport,
    IterationOutcome,
    IterationRecord,
    PayloadDiff,
    compare_payloads,
)
from swarmcheck.checks.options import RoundTripOptions
from swarmcheck.core.address import Address
from swarmcheck.core.chunk import random_bytes
from swarmcheck.core.errors import IntegrityError, TransientNetworkError
from swarmcheck.core.retry import DelayMode, RetryPolicy
from swarmcheck.core.runtime import RunContext
from swarmcheck.core.streams import derive_stream


class RoundTripCheck(Check):
    """Upload/download loop between random node pairs."""

    kind = CheckKind.ROUNDTRIP
    options_type = RoundTripOptions
    min_nodes = 2

    def run(self, ctx: RunContext, cluster) -> CheckReport:
        self.require_nodes(cluster)
        o: RoundTripOptions = self.options
        report = self.new_report(ctx)

        clients = cluster.node_clients()
        names = sorted(clients)
        rnd = derive_stream(ctx.seed, 0)

        self.logger.info(f"random seed: {ctx.seed}")
        self.logger.info(f"content size: {o.content_size}")

        if o.warmup and not ctx.wait(o.warmup):
            report.interrupted = True
            return report

        run_ctx = ctx.with_timeout(o.duration)
        iteration = 0
        while o.max_iterations is None or iteration < o.max_iterations:
            if run_ctx.cancelled:
                report.interrupted = True
                break
            self.logger.info(f"starting iteration: #{iteration}")

            record = self._iteration(run_ctx, iteration, rnd, names, clients)
            if record is None:
                report.interrupted = True
                break
            report.add(record)
            iteration += 1

        self.logger.info(
            f"round trip finished: {report.succeeded}/{len(report.records)} succeeded, "
            f"{report.mismatches} mismatched"
        )
        return report

    def _select_pair(self, rnd: random.Random, names: List[str]):
        perm = list(range(len(names)))
        rnd.shuffle(perm)
        return names[perm[0]], names[perm[1]]

    def _iteration(
        self,
        ctx: RunContext,
        index: int,
        rnd: random.Random,
        names: List[str],
        clients: Mapping,
    ) -> Optional[IterationRecord]:
        """One upload/download cycle; None when the run was cancelled mid-way."""
        o: RoundTripOptions = self.options
        tx_name, rx_name = self._select_pair(rnd, names)
        roles = {"uploader": tx_name, "downloader": rx_name}
        self.logger.info(f"uploader: {tx_name}")
        self.logger.info(f"downloader: {rx_name}")

        tx_data = random_bytes(rnd, o.content_size)

        upload = self._upload_policy().execute(
            lambda: self._upload(ctx, tx_name, clients[tx_name], tx_data),
            ctx,
            on_failure=self._upload_failed,
        )
        if upload.cancelled:
            return None
        if not upload.succeeded:
            self.logger.info(f"upload from {tx_name} failed after {upload.attempts} attempts")
            return IterationRecord(
                index, IterationOutcome.UPLOAD_FAILED, roles, detail=str(upload.error)
            )

        address, tx_duration = upload.value
        self.metrics.observe("upload_duration_seconds", tx_duration)

        # Wait for nodes to sync
        if not ctx.wait(o.propagation_wait):
            return None

        last_diff: List[PayloadDiff] = []
        download = self._download_policy().execute(
            lambda: self._download(ctx, rx_name, clients[rx_name], address, tx_data, last_diff),
            ctx,
            on_failure=self._download_failed,
        )
        if download.cancelled:
            return None

        durations = {"upload": tx_duration}
        diff = last_diff[-1] if last_diff else None
        if not download.succeeded:
            outcome = (
                IterationOutcome.MISMATCH
                if isinstance(download.error, IntegrityError)
                else IterationOutcome.DOWNLOAD_FAILED
            )
            return IterationRecord(
                index, outcome, roles, address.hex, durations, diff, str(download.error)
            )

        durations["download"] = download.value
        self.metrics.observe("download_duration_seconds", download.value)
        return IterationRecord(
            index, IterationOutcome.SUCCEEDED, roles, address.hex, durations, diff
        )

    def _upload_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.options.upload_retries,
            delay=self.options.upload_retry_wait,
            mode=DelayMode.AFTER_FAILURE,
        )

    def _download_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.options.download_retries,
            delay=self.options.download_retry_wait,
            mode=DelayMode.BEFORE_EACH,
            retry_on=(TransientNetworkError, IntegrityError),
        )

    def _upload(self, ctx: RunContext, name: str, client, data: bytes):
        o: RoundTripOptions = self.options
        self.metrics.inc("upload_attempts")

        batch_id = client.get_or_create_batch(
            o.postage_amount, o.postage_depth, o.gas_price, o.postage_label
        )
        self.logger.info(f"node {name}: uploading data, batch id {batch_id}")
        start = ctx.clock.now()
        address = client.upload_bytes(data, batch_id)
        duration = ctx.clock.now() - start
        self.logger.info(f"node {name}: upload done in {duration:.3f}s")
        return address, duration

    def _upload_failed(self, error: BaseException, attempt: int):
        self.metrics.inc("upload_errors")
        self.logger.info(f"upload failed: {error}")
        self.logger.info(f"retrying in: {self.options.upload_retry_wait}s")

    def _download(
        self,
        ctx: RunContext,
        name: str,
        client,
        address: Address,
        expected: bytes,
        diffs: List[PayloadDiff],
    ) -> float:
        self.metrics.inc("download_attempts")
        self.logger.info(f"node {name}: downloading address {address}")
        start = ctx.clock.now()
        rx_data = client.download_bytes(address)
        duration = ctx.clock.now() - start
        self.logger.info(f"node {name}: download done in {duration:.3f}s")

        diff = compare_payloads(expected, rx_data)
        diffs.append(diff)
        if not diff.matches:
            self.metrics.inc("download_mismatch")
            self.logger.info("uploaded data does not match downloaded data")
            self.logger.info(diff.describe())
            raise IntegrityError(diff.describe(), node=name, operation="download bytes")
        return duration

    def _download_failed(self, error: BaseException, attempt: int):
        if isinstance(error, IntegrityError):
            return
        self.metrics.inc("download_errors")
        self.logger.info(f"download failed: {error}")
        self.logger.info(f"retrying in: {self.options.download_retry_wait}s")
