"""
Tests for the check runner CLI.
"""

import argparse
import logging
from unittest.mock import MagicMock

import pytest
from loguru import logger

import swarmcheck
from swarmcheck.cli import check_cli
from swarmcheck.cli.check_cli import (
    EXIT_CHECK_FAILED,
    EXIT_CONFIG_ERROR,
    EXIT_OK,
    CheckCLI,
    parse_node,
)


NODES = [
    "--node", "bee-0=http://bee-0:1633,http://bee-0:1635",
    "--node", "bee-1=http://bee-1:1633,http://bee-1:1635",
    "--node", "bee-2=http://bee-2:1633,http://bee-2:1635",
]


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo the CLI's logging setup after each test."""
    yield
    logger.remove()
    logging.getLogger().handlers.clear()


@pytest.fixture
def use_cluster(monkeypatch):
    """Route the CLI to an in-memory cluster."""
    def _use(cluster):
        factory = MagicMock()
        factory.from_endpoints.return_value = cluster
        monkeypatch.setattr(check_cli, "StaticCluster", factory)
        return factory
    return _use


@pytest.mark.unit
class TestParsing:
    """Test argument parsing."""

    def test_parse_node(self):
        assert parse_node("bee-0=http://a:1633,http://a:1635") == ("bee-0", ("http://a:1633", "http://a:1635"))
        assert parse_node("bee-0=http://a:1633") == ("bee-0", ("http://a:1633", None))

    @pytest.mark.parametrize("value", ["bee-0", "=http://a", "bee-0="])
    def test_parse_node_invalid(self, value):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_node(value)

    def test_option_flags(self):
        parser = CheckCLI().create_parser()
        args = parser.parse_args(["replication", "--upload-node-count", "2", "--upload-nodes", "bee-0", "bee-1", "--no-verify-content"])

        data = CheckCLI().options_from_args(args)

        assert data == {
            "kind": "replication",
            "upload_node_count": "2",
            "upload_nodes": ["bee-0", "bee-1"],
            "verify_content": False,
        }

    def test_unset_flags_keep_defaults(self):
        args = CheckCLI().create_parser().parse_args(["recovery"])
        assert CheckCLI().options_from_args(args) == {"kind": "recovery"}

    def test_version(self):
        assert swarmcheck.__version__.startswith("0.4.0-")


@pytest.mark.integration
class TestRun:
    """Test full CLI runs against the in-memory cluster."""

    def test_recovery_succeeds(self, tmp_path, make_cluster, use_cluster):
        cluster = make_cluster(3)
        factory = use_cluster(cluster)
        metrics_file = tmp_path / "metrics.prom"

        code = CheckCLI().run(
            NODES + ["--seed", "42", "--log-dir", str(tmp_path), "--metrics-out", str(metrics_file), "recovery"]
        )

        assert code == EXIT_OK
        endpoints = factory.from_endpoints.call_args[0][0]
        assert endpoints["bee-1"] == ("http://bee-1:1633", "http://bee-1:1635")
        assert cluster.closed
        assert 'check_recovery_repaired_count{node="bee-0"} 1' in metrics_file.read_text()

    def test_roundtrip_metric_names(self, tmp_path, make_cluster, use_cluster):
        use_cluster(make_cluster(3))
        metrics_file = tmp_path / "metrics.prom"
        waits = ["--warmup", "0", "--propagation-wait", "0", "--upload-retry-wait", "0", "--download-retry-wait", "0"]

        code = CheckCLI().run(
            NODES + ["--seed", "42", "--log-dir", str(tmp_path), "--metrics-out", str(metrics_file),
                     "roundtrip", "--max-iterations", "1", "--content-size", "100"] + waits
        )

        assert code == EXIT_OK
        assert "check_roundtrip_upload_attempts 1" in metrics_file.read_text()

    def test_check_failure(self, tmp_path, make_cluster, use_cluster):
        cluster = make_cluster(3)
        cluster.recoverable = False
        use_cluster(cluster)

        code = CheckCLI().run(NODES + ["--seed", "42", "--log-dir", str(tmp_path), "recovery", "--retry-delay", "0"])

        assert code == EXIT_CHECK_FAILED

    def test_invalid_option(self, tmp_path):
        code = CheckCLI().run(NODES + ["--log-dir", str(tmp_path), "recovery", "--postage-depth", "3"])
        assert code == EXIT_CONFIG_ERROR

    def test_no_nodes(self, tmp_path):
        assert CheckCLI().run(["--log-dir", str(tmp_path), "recovery"]) == EXIT_CONFIG_ERROR

    def test_no_command(self):
        assert CheckCLI().run([]) == EXIT_CONFIG_ERROR

    def test_cluster_too_small(self, tmp_path, make_cluster, use_cluster):
        use_cluster(make_cluster(2))
        code = CheckCLI().run(NODES[:4] + ["--log-dir", str(tmp_path), "recovery"])
        assert code == EXIT_CONFIG_ERROR
