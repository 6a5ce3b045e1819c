"""
Typed check options.

Each check kind has its own options model, validated on construction. The
kind field tags the variant so untyped input (CLI flags, environment) parses
straight into the right model.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from swarmcheck.core.errors import ConfigurationError


MINIMUM_BATCH_DEPTH = 17


class PostageOptions(BaseModel):
    """Funding batch parameters shared by all checks."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    postage_amount: int = Field(default=1_000_000, gt=0, description="Batch amount per chunk")
    postage_depth: int = Field(
        default=MINIMUM_BATCH_DEPTH,
        ge=MINIMUM_BATCH_DEPTH,
        le=255,
        description="Batch depth",
    )
    gas_price: str = Field(default="", description="Gas price for batch purchase (empty for node default)")
    postage_label: str = Field(default="test-label", description="Batch label")


class RoundTripOptions(PostageOptions):
    """Upload on one node, download from another, compare."""

    kind: Literal["roundtrip"] = "roundtrip"
    content_size: int = Field(default=5_000_000, gt=0, description="Bytes uploaded per iteration")
    postage_label: str = Field(default="smoke-test", description="Batch label")
    upload_retries: int = Field(default=3, ge=1, description="Upload attempts per iteration")
    download_retries: int = Field(default=3, ge=1, description="Download attempts per iteration")
    upload_retry_wait: float = Field(default=10.0, ge=0, description="Seconds to wait after a failed upload")
    download_retry_wait: float = Field(default=10.0, ge=0, description="Seconds to wait before each download")
    propagation_wait: float = Field(default=60.0, ge=0, description="Seconds for nodes to sync after upload")
    warmup: float = Field(default=5.0, ge=0, description="Seconds to wait before the first iteration")
    duration: Optional[float] = Field(default=12 * 3600.0, gt=0, description="Run length in seconds")
    max_iterations: Optional[int] = Field(default=None, gt=0, description="Stop after this many iterations")

    @model_validator(mode="after")
    def _bounded(self):
        if self.duration is None and self.max_iterations is None:
            raise ValueError("either duration or max_iterations must bound the run")
        return self


class ReplicationOptions(PostageOptions):
    """Upload chunks and verify they reach the closest node and one more."""

    kind: Literal["replication"] = "replication"
    upload_node_count: int = Field(default=1, gt=0, description="Number of uploading nodes")
    upload_nodes: Optional[List[str]] = Field(default=None, description="Explicit uploader names")
    chunks_per_node: int = Field(default=1, gt=0, description="Chunks uploaded per node")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per upload and per sync poll")
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds between attempts")
    verify_content: bool = Field(default=True, description="Download from the replica and compare")

    @model_validator(mode="after")
    def _uploaders_match(self):
        if self.upload_nodes is not None:
            if len(self.upload_nodes) != self.upload_node_count:
                raise ValueError(
                    f"upload_nodes lists {len(self.upload_nodes)} nodes "
                    f"but upload_node_count is {self.upload_node_count}"
                )
            if len(set(self.upload_nodes)) != len(self.upload_nodes):
                raise ValueError("upload_nodes contains duplicates")
        return self


class RecoveryOptions(PostageOptions):
    """Delete a chunk everywhere and verify it is recovered through its origin."""

    kind: Literal["recovery"] = "recovery"
    chunks_to_repair: int = Field(default=1, gt=0, description="Chunks to delete and recover")
    presence_poll_attempts: int = Field(default=10, ge=1, description="Polls for the chunk on node B")
    presence_poll_interval: float = Field(default=0.1, ge=0, description="Seconds between presence polls")
    recovery_poll_attempts: int = Field(default=10, ge=1, description="Polls for the recovered chunk on node C")
    recovery_poll_interval: float = Field(default=1.0, ge=0, description="Seconds between recovery polls")
    retry_attempts: int = Field(default=3, ge=1, description="Attempts per plain node call")
    retry_delay: float = Field(default=1.0, ge=0, description="Seconds after a failed node call")
    max_role_draws: int = Field(default=1000, ge=1, description="Chunks drawn while looking for node B")


CheckOptions = Annotated[
    Union[RoundTripOptions, ReplicationOptions, RecoveryOptions],
    Field(discriminator="kind"),
]

_adapter = TypeAdapter(CheckOptions)


def build_options(data: dict):
    """
    Parse untyped options into the variant named by data["kind"].

    Raises:
        ConfigurationError: on unknown kind or invalid values
    """
    try:
        return _adapter.validate_python(data)
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(errors, operation="options") from e
