"""Configuration for the S3 object relay.

All options are read from the process environment once, when the deployed
handler is built at cold start.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import marshmallow as mm
from aibs_informatics_core.models.base import (
    BooleanField,
    PathField,
    SchemaModel,
    StringField,
    custom_field,
)
from aibs_informatics_core.utils.os_operations import get_env_var

from aibs_informatics_s3_relay.common.metrics import DEFAULT_METRICS_NAMESPACE

DESTINATION_BUCKET_ENV_VAR = "DST_BUCKET"
STAGING_DIR_ENV_VAR = "RELAY_STAGING_DIR"
CLEANUP_STAGED_FILES_ENV_VAR = "RELAY_CLEANUP_STAGED_FILES"
RAISE_ON_FAILURE_ENV_VAR = "RELAY_RAISE_ON_FAILURE"
METRICS_NAMESPACE_ENV_VAR = "RELAY_METRICS_NAMESPACE"
SQS_QUEUE_TYPE_ENV_VAR = "RELAY_SQS_QUEUE_TYPE"

DEFAULT_STAGING_DIR = Path("/tmp")

SQS_QUEUE_TYPES = ("standard", "fifo")


@dataclass
class RelayConfig(SchemaModel):
    """Resolved settings of the relay.

    Attributes:
        destination_bucket: Bucket receiving every relayed object. Required.
        staging_dir: Directory in ephemeral storage where objects are staged.
        cleanup_staged_files: Delete staged files once the invocation finishes.
        raise_on_failure: Re-raise relay failures so that the Lambda runtime
            (or the SQS batch processor) records the invocation as failed.
        metrics_namespace: CloudWatch namespace for the relay metrics.
        sqs_queue_type: Kind of queue feeding the SQS entry point. A FIFO queue
            stops a batch at its first failed message.
    """

    destination_bucket: str = custom_field(mm_field=StringField())
    staging_dir: Path = custom_field(default=DEFAULT_STAGING_DIR, mm_field=PathField())
    cleanup_staged_files: bool = custom_field(default=True, mm_field=BooleanField())
    raise_on_failure: bool = custom_field(default=False, mm_field=BooleanField())
    metrics_namespace: str = custom_field(
        default=DEFAULT_METRICS_NAMESPACE, mm_field=StringField()
    )
    sqs_queue_type: str = custom_field(
        default="standard", mm_field=StringField(validate=mm.validate.OneOf(SQS_QUEUE_TYPES))
    )

    def __post_init__(self):
        self.staging_dir = Path(self.staging_dir)
        self.validate()

    def validate(self):
        if not self.destination_bucket or not self.destination_bucket.strip():
            raise ValueError(
                f"A destination bucket is required. Set the {DESTINATION_BUCKET_ENV_VAR} "
                "environment variable."
            )
        if not self.metrics_namespace:
            raise ValueError("A metrics namespace is required.")
        if self.sqs_queue_type not in SQS_QUEUE_TYPES:
            raise ValueError(
                f"Invalid SQS queue type {self.sqs_queue_type!r}. "
                f"Valid values include: {list(SQS_QUEUE_TYPES)}"
            )

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build the configuration from environment variables.

        Unset or empty optional variables keep their defaults. Booleans accept
        the usual spellings (`true`/`false`, `1`/`0`, `yes`/`no`, `on`/`off`).

        Raises:
            ValueError: If `DST_BUCKET` is unset or empty, or an option cannot
                be parsed.
        """
        data: Dict[str, Any] = {
            "destination_bucket": get_env_var(DESTINATION_BUCKET_ENV_VAR) or "",
        }
        for key, env_var in (
            ("staging_dir", STAGING_DIR_ENV_VAR),
            ("cleanup_staged_files", CLEANUP_STAGED_FILES_ENV_VAR),
            ("raise_on_failure", RAISE_ON_FAILURE_ENV_VAR),
            ("metrics_namespace", METRICS_NAMESPACE_ENV_VAR),
            ("sqs_queue_type", SQS_QUEUE_TYPE_ENV_VAR),
        ):
            value = get_env_var(env_var)
            if value and value.strip():
                data[key] = value.strip()
        try:
            return cls.from_dict(data)
        except mm.ValidationError as e:
            raise ValueError(f"Invalid relay configuration: {e.messages}") from e
