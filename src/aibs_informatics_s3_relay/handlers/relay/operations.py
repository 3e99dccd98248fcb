"""S3 object relay.

Objects named in a notification batch are downloaded one at a time into a local
staging directory, and every staged file is then uploaded to the destination
bucket. Staging is where a transformation between the two copies would go.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, Sequence, Set, Union

from aibs_informatics_aws_utils.s3 import get_s3_client
from aibs_informatics_core.utils.file_operations import get_path_size_bytes, remove_path
from aibs_informatics_core.utils.json import JSON
from aws_lambda_powertools.logging import Logger

from aibs_informatics_s3_relay.common.handler import LambdaHandler, LambdaHandlerType
from aibs_informatics_s3_relay.common.logging import get_service_logger
from aibs_informatics_s3_relay.handlers.relay.config import RelayConfig
from aibs_informatics_s3_relay.handlers.relay.errors import RelayError
from aibs_informatics_s3_relay.handlers.relay.events import parse_relay_request
from aibs_informatics_s3_relay.handlers.relay.model import (
    RelayFailureKind,
    RelayRequest,
    RelayResponse,
    RelayStage,
    S3ObjectReference,
)

if TYPE_CHECKING:  # pragma: no cover
    from mypy_boto3_s3 import S3Client
else:
    S3Client = object

logger = get_service_logger(__name__)

StagedPath = Union[str, Path]


def get_staging_path(object_key: str, staging_dir: Path) -> str:
    """Derive the local staging path of an object key.

    The key is appended to the staging directory as a string, so `a/b.txt` stages
    at `<staging_dir>/a/b.txt` and `/x.txt` at `<staging_dir>//x.txt`. The joined
    string is kept as is because it also becomes the destination key.

    Raises:
        RelayError: If the key resolves to the staging directory itself or to a
            location outside of it.
    """
    staging_path = f"{staging_dir}/{object_key}"
    staging_root = Path(staging_dir).resolve()
    resolved_path = Path(staging_path).resolve()
    if staging_root not in resolved_path.parents or object_key.endswith("/"):
        raise RelayError(
            RelayFailureKind.INVALID_STAGING_PATH,
            f"Object key does not name a file under {staging_dir}",
            object_key=object_key,
            local_path=staging_path,
        )
    return staging_path


def get_staging_dirs(object_key: str, staging_dir: Path) -> List[Path]:
    """Directories under the staging directory that staging a key may create.

    Directories are listed deepest first. Segments that resolve to the staging
    directory or outside of it are left out.
    """
    staging_root = Path(staging_dir).resolve()
    segments = object_key.split("/")[:-1]
    staging_dirs = []
    for depth in range(len(segments), 0, -1):
        directory = Path(f"{staging_dir}/{'/'.join(segments[:depth])}").resolve()
        if staging_root in directory.parents and directory not in staging_dirs:
            staging_dirs.append(directory)
    return staging_dirs


def iter_staged_objects(
    s3_client: S3Client,
    objects: Iterable[S3ObjectReference],
    staging_dir: Path,
    logger: Logger = logger,
) -> Iterator[str]:
    """Download objects into the staging directory, yielding each staged path.

    Objects are fetched in order and each staging file is closed before the next
    object is fetched. Iteration stops at the first failure; files staged before
    it stay on disk.

    Raises:
        RelayError: On an invalid key, or when a staging file cannot be created or
            an object cannot be downloaded.
    """
    for obj in objects:
        staging_path = get_staging_path(obj.object_key, staging_dir)

        logger.info(f"Creating staging file {staging_path}")
        try:
            Path(staging_path).parent.mkdir(parents=True, exist_ok=True)
            staging_file = open(staging_path, "wb")
        except OSError as e:
            logger.error(f"Error creating staging file {staging_path}: {e}")
            raise RelayError(
                RelayFailureKind.STAGING_FILE_CREATE,
                f"Unable to create staging file: {e}",
                bucket_name=obj.bucket_name,
                object_key=obj.object_key,
                local_path=staging_path,
            ) from e

        with staging_file:
            logger.info(f"Downloading s3://{obj.bucket_name}/{obj.object_key}")
            try:
                s3_client.download_fileobj(
                    Bucket=obj.bucket_name, Key=obj.object_key, Fileobj=staging_file
                )
            except Exception as e:
                logger.error(f"Error downloading s3://{obj.bucket_name}/{obj.object_key}: {e}")
                raise RelayError(
                    RelayFailureKind.DOWNLOAD,
                    f"Unable to download object: {e}",
                    bucket_name=obj.bucket_name,
                    object_key=obj.object_key,
                    local_path=staging_path,
                ) from e
        yield staging_path


def stage_objects(
    s3_client: S3Client,
    objects: Sequence[S3ObjectReference],
    staging_dir: Path,
    logger: Logger = logger,
) -> List[str]:
    """Retrieval stage: download every object of a batch into the staging directory.

    Args:
        s3_client (S3Client): Client used for all downloads.
        objects (Sequence[S3ObjectReference]): The notification batch. May be empty.
        staging_dir (Path): Directory under which objects are staged.
        logger (Logger): Logger for progress messages.

    Raises:
        RelayError: On the first object that cannot be staged. No later object
            is attempted.

    Returns:
        Staged paths in batch order.
    """
    logger.info(f"Staging {len(objects)} object(s) under {staging_dir}")
    staged_paths = list(iter_staged_objects(s3_client, objects, staging_dir, logger=logger))
    if staged_paths:
        logger.info(f"Staged {len(staged_paths)} file(s), first is {staged_paths[0]}")
    else:
        logger.info("No objects to stage")
    return staged_paths


def iter_relayed_files(
    s3_client: S3Client,
    staged_paths: Iterable[StagedPath],
    destination_bucket: str,
    logger: Logger = logger,
) -> Iterator[str]:
    """Upload staged files to the destination bucket, yielding each destination key.

    The destination key is the staged path string. Each file is closed before the
    next one is opened. Iteration stops at the first failure; uploads made before
    it stay in the destination bucket.

    Raises:
        ValueError: If the destination bucket is empty.
        RelayError: When a staged file cannot be opened or uploaded.
    """
    if not destination_bucket:
        raise ValueError("Refusing to relay staged files without a destination bucket")

    for staged_path in staged_paths:
        destination_key = str(staged_path)
        try:
            staged_file = open(staged_path, "rb")
        except OSError as e:
            logger.error(f"Error opening staged file {staged_path}: {e}")
            raise RelayError(
                RelayFailureKind.STAGING_FILE_OPEN,
                f"Unable to open staged file: {e}",
                local_path=staged_path,
            ) from e

        with staged_file:
            logger.info(f"Uploading {staged_path} to s3://{destination_bucket}/{destination_key}")
            try:
                s3_client.upload_fileobj(
                    Fileobj=staged_file, Bucket=destination_bucket, Key=destination_key
                )
            except Exception as e:
                logger.error(f"Error uploading {staged_path} to {destination_bucket}: {e}")
                raise RelayError(
                    RelayFailureKind.UPLOAD,
                    f"Unable to upload staged file: {e}",
                    bucket_name=destination_bucket,
                    object_key=destination_key,
                    local_path=staged_path,
                ) from e
        yield destination_key


def relay_staged_files(
    s3_client: S3Client,
    staged_paths: Sequence[StagedPath],
    destination_bucket: str,
    logger: Logger = logger,
) -> List[str]:
    """Relay stage: upload every staged file to the destination bucket.

    Args:
        s3_client (S3Client): Client used for all uploads.
        staged_paths (Sequence[StagedPath]): Staged files, in retrieval order.
        destination_bucket (str): Bucket receiving the uploads.
        logger (Logger): Logger for progress messages.

    Raises:
        ValueError: If the destination bucket is empty.
        RelayError: On the first file that cannot be relayed. No later file is
            attempted.

    Returns:
        Destination keys written, in order.
    """
    logger.info(f"Relaying {len(staged_paths)} file(s) to {destination_bucket}")
    relayed_keys = list(
        iter_relayed_files(s3_client, staged_paths, destination_bucket, logger=logger)
    )
    logger.info(f"Relayed {len(relayed_keys)} file(s)")
    return relayed_keys


def remove_staged_files(staged_paths: Iterable[StagedPath], logger: Logger = logger) -> int:
    """Delete staged files, returning the number of bytes removed."""
    size_bytes_removed = 0
    for staged_path in map(Path, staged_paths):
        try:
            size_bytes = get_path_size_bytes(staged_path)
            remove_path(staged_path)
            size_bytes_removed += size_bytes
        except FileNotFoundError as e:
            logger.warning(f"Staged file {staged_path} does not exist anymore. Reason: {e}")
    logger.info(f"Removed {size_bytes_removed} bytes of staged files")
    return size_bytes_removed


def remove_empty_staging_dirs(
    object_keys: Iterable[str], staging_dir: Path, logger: Logger = logger
) -> int:
    """Delete empty directories created for nested keys, returning how many were removed.

    Directories that still hold files are kept, and the staging directory itself
    is never removed.
    """
    staging_dirs: Set[Path] = set()
    for object_key in object_keys:
        staging_dirs.update(get_staging_dirs(object_key, staging_dir))

    removed = 0
    for staging_subdir in sorted(staging_dirs, key=lambda d: len(d.parts), reverse=True):
        if staging_subdir.is_dir() and not any(staging_subdir.iterdir()):
            staging_subdir.rmdir()
            removed += 1
    if removed:
        logger.info(f"Removed {removed} empty staging director(ies)")
    return removed


@dataclass  # type: ignore[misc] # mypy #5374
class S3ObjectRelayHandler(LambdaHandler[RelayRequest, RelayResponse]):
    """Relays every object of an S3 notification batch to the destination bucket.

    The invocation moves from RETRIEVING to RELAYING to DONE, or stops in FAILED
    at the first object that cannot be staged or relayed. Failures are logged and
    returned as a failed `RelayResponse`; with `config.raise_on_failure` they are
    re-raised afterwards so the runtime can retry or dead-letter the event.

    Attributes:
        config: Relay settings. Read from the environment when not given.

    Example:
        ```python
        handler = S3ObjectRelayHandler.get_handler(config=RelayConfig.from_env())
        ```
    """

    config: RelayConfig = field(default_factory=RelayConfig.from_env)

    @property
    def metrics_namespace(self) -> str:
        return self.config.metrics_namespace

    @classmethod
    def deserialize_request(cls, request: JSON) -> RelayRequest:
        return parse_relay_request(request)

    def handle(self, request: RelayRequest) -> RelayResponse:
        start = datetime.now()
        response = RelayResponse(destination_bucket=self.config.destination_bucket)
        failed_path: Optional[str] = None
        s3_client = get_s3_client()

        try:
            self.logger.info(f"Retrieving {len(request.objects)} object(s)")
            for staged_path in iter_staged_objects(
                s3_client, request.objects, self.config.staging_dir, logger=self.logger
            ):
                response.staged_paths.append(staged_path)
            self.logger.info(f"Retrieval complete: {len(response.staged_paths)} object(s) staged")

            response.stage = RelayStage.RELAYING
            for relayed_key in iter_relayed_files(
                s3_client,
                response.staged_paths,
                self.config.destination_bucket,
                logger=self.logger,
            ):
                response.relayed_keys.append(relayed_key)
            self.logger.info(
                f"Relay complete: {len(response.relayed_keys)} object(s) relayed "
                f"to {self.config.destination_bucket}"
            )

            response.stage = RelayStage.DONE
        except RelayError as e:
            if e.kind == RelayFailureKind.DOWNLOAD:
                # partially written staging file
                failed_path = e.local_path
            response.failure = e.to_failure(stage=response.stage)
            response.stage = RelayStage.FAILED
            self.logger.error(
                f"Relay failed while {response.failure.stage.value.lower()}: {e}",
                extra={"failure": response.failure.to_dict()},
            )
            if self.config.raise_on_failure:
                raise
        finally:
            if self.config.cleanup_staged_files:
                self.remove_staging_files(request, response.staged_paths, failed_path)
            self.record_metrics(response, start)

        return response

    def remove_staging_files(
        self, request: RelayRequest, staged_paths: List[str], failed_path: Optional[str] = None
    ):
        to_remove = [Path(p) for p in staged_paths]
        if failed_path is not None and Path(failed_path) not in to_remove:
            to_remove.append(Path(failed_path))
        remove_staged_files([p for p in to_remove if p.exists()], logger=self.logger)
        remove_empty_staging_dirs(
            [obj.object_key for obj in request.objects],
            self.config.staging_dir,
            logger=self.logger,
        )

    def record_metrics(self, response: RelayResponse, start: datetime):
        self.metrics.add_duration_metric(start=start, name="Relay")
        if response.success:
            self.metrics.add_success_metric(name="Relay")
        else:
            self.metrics.add_failure_metric(name="Relay")
        self.metrics.add_count_metric("ObjectsStaged", len(response.staged_paths))
        self.metrics.add_count_metric("ObjectsRelayed", len(response.relayed_keys))
        self.metrics.flush_metrics()


def get_relay_handler(config: Optional[RelayConfig] = None) -> LambdaHandlerType:
    """Build the direct-invocation handler (S3 notification or EventBridge)."""
    return S3ObjectRelayHandler.get_handler(config=config or RelayConfig.from_env())


def get_relay_sqs_handler(config: Optional[RelayConfig] = None) -> LambdaHandlerType:
    """Build the SQS batch handler for S3 notifications delivered through a queue.

    Failures always propagate here so that the batch processor reports the
    failed message back to SQS instead of deleting it. With a FIFO queue
    (`config.sqs_queue_type`) the messages after a failed one are reported back
    unprocessed, preserving their order.
    """
    config = replace(config or RelayConfig.from_env(), raise_on_failure=True)
    return S3ObjectRelayHandler.get_sqs_batch_handler(
        config=config, queue_type=config.sqs_queue_type
    )
