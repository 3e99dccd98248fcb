"""Errors raised by the retrieval and relay stages."""

from pathlib import Path
from typing import Optional, Union

from aibs_informatics_s3_relay.handlers.relay.model import (
    RelayFailure,
    RelayFailureKind,
    RelayStage,
)


class RelayError(Exception):
    """Raised when an object cannot be staged or relayed.

    Carries the failure kind and whichever of bucket, key and staging path were
    involved so that the dispatcher can report them without parsing messages.
    """

    def __init__(
        self,
        kind: RelayFailureKind,
        message: str,
        bucket_name: Optional[str] = None,
        object_key: Optional[str] = None,
        local_path: Optional[Union[str, Path]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.bucket_name = bucket_name
        self.object_key = object_key
        self.local_path = str(local_path) if local_path is not None else None

    def to_failure(self, stage: RelayStage) -> RelayFailure:
        return RelayFailure(
            kind=self.kind,
            stage=stage,
            message=self.message,
            bucket_name=self.bucket_name,
            object_key=self.object_key,
            local_path=self.local_path,
        )

    def __str__(self) -> str:
        context = ", ".join(
            f"{name}={value}"
            for name, value in (
                ("bucket", self.bucket_name),
                ("key", self.object_key),
                ("path", self.local_path),
            )
            if value is not None
        )
        return f"[{self.kind.value}] {self.message}" + (f" ({context})" if context else "")
