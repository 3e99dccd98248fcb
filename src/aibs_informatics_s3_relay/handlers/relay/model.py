"""Data models for the S3 object relay.

Defines the notification batch, the typed relay result and its failure context.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from aibs_informatics_core.models.base import (
    EnumField,
    ListField,
    SchemaModel,
    StringField,
    custom_field,
)


class RelayStage(str, Enum):
    """Progress of a single relay invocation.

    `RETRIEVING` moves to `RELAYING` and then `DONE`. `FAILED` is terminal and
    reachable from either working stage.
    """

    RETRIEVING = "RETRIEVING"
    RELAYING = "RELAYING"
    DONE = "DONE"
    FAILED = "FAILED"


class RelayFailureKind(str, Enum):
    STAGING_FILE_CREATE = "STAGING_FILE_CREATE"
    DOWNLOAD = "DOWNLOAD"
    STAGING_FILE_OPEN = "STAGING_FILE_OPEN"
    UPLOAD = "UPLOAD"
    INVALID_STAGING_PATH = "INVALID_STAGING_PATH"


@dataclass
class S3ObjectReference(SchemaModel):
    """A single object named by a notification record.

    Attributes:
        bucket_name: The source bucket.
        object_key: The object key, passed through as an opaque string.
    """

    bucket_name: str = custom_field(mm_field=StringField())
    object_key: str = custom_field(mm_field=StringField())


@dataclass
class RelayRequest(SchemaModel):
    """The notification batch of one invocation, in event order."""

    objects: List[S3ObjectReference] = custom_field(
        default_factory=list, mm_field=ListField(S3ObjectReference.as_mm_field())
    )


@dataclass
class RelayFailure(SchemaModel):
    """Context of the failure that stopped a relay.

    Attributes:
        kind: What went wrong.
        stage: The stage that was running when it went wrong.
        message: Description of the underlying error.
        bucket_name: Source or destination bucket involved, if any.
        object_key: Source or destination key involved, if any.
        local_path: Staging file involved, if any.
    """

    kind: RelayFailureKind = custom_field(mm_field=EnumField(RelayFailureKind))
    stage: RelayStage = custom_field(mm_field=EnumField(RelayStage))
    message: str = custom_field(mm_field=StringField())
    bucket_name: Optional[str] = custom_field(default=None, mm_field=StringField())
    object_key: Optional[str] = custom_field(default=None, mm_field=StringField())
    local_path: Optional[str] = custom_field(default=None, mm_field=StringField())


@dataclass
class RelayResponse(SchemaModel):
    """Typed outcome of a relay invocation.

    `staged_paths` and `relayed_keys` list what completed before the relay finished
    or stopped, so a failed response still tells which objects made it across.
    """

    destination_bucket: str = custom_field(mm_field=StringField())
    stage: RelayStage = custom_field(
        default=RelayStage.RETRIEVING, mm_field=EnumField(RelayStage)
    )
    staged_paths: List[str] = custom_field(
        default_factory=list, mm_field=ListField(StringField())
    )
    relayed_keys: List[str] = custom_field(
        default_factory=list, mm_field=ListField(StringField())
    )
    failure: Optional[RelayFailure] = custom_field(
        default=None, mm_field=RelayFailure.as_mm_field()
    )

    @property
    def success(self) -> bool:
        return self.stage == RelayStage.DONE
