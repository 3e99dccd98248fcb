"""Parsing of inbound notifications into relay requests.

Supported shapes:
    * S3 event notifications (``{"Records": [{"s3": ...}]}``), delivered directly
      or as the body of an SQS message. Keys in these notifications are URL-encoded.
    * EventBridge "Object Created" notifications from S3.
    * A serialized `RelayRequest` (``{"objects": [...]}``).
"""

from typing import Any, Dict, List, Mapping
from urllib.parse import unquote_plus

from aws_lambda_powertools.utilities.data_classes import S3Event, S3EventBridgeNotificationEvent

from aibs_informatics_s3_relay.handlers.relay.model import RelayRequest, S3ObjectReference

S3_EVENT_SOURCE = "aws.s3"
S3_TEST_EVENT = "s3:TestEvent"


def is_s3_notification(event: Mapping[str, Any]) -> bool:
    return "Records" in event


def is_s3_eventbridge_notification(event: Mapping[str, Any]) -> bool:
    return event.get("source") == S3_EVENT_SOURCE and "detail" in event


def is_s3_test_event(event: Mapping[str, Any]) -> bool:
    # S3 publishes this when a notification destination is first configured
    return event.get("Event") == S3_TEST_EVENT


def parse_s3_notification(event: Dict[str, Any]) -> List[S3ObjectReference]:
    try:
        return [
            S3ObjectReference(
                bucket_name=record.s3.bucket.name,
                object_key=unquote_plus(record.s3.get_object.key),
            )
            for record in S3Event(event).records
        ]
    except KeyError as e:
        raise ValueError(f"S3 notification record is missing {e}") from e


def parse_s3_eventbridge_notification(event: Dict[str, Any]) -> List[S3ObjectReference]:
    notification = S3EventBridgeNotificationEvent(event)
    return [
        S3ObjectReference(
            bucket_name=notification.detail.bucket.name,
            object_key=notification.detail.object.key,
        )
    ]


def parse_relay_request(event: Any) -> RelayRequest:
    """Convert an inbound Lambda event into a `RelayRequest`.

    Args:
        event: The raw invocation payload.

    Raises:
        ValueError: If the payload is not one of the supported shapes.

    Returns:
        The notification batch, with records in event order.
    """
    if not isinstance(event, Mapping):
        raise ValueError(f"Cannot parse relay request from {type(event).__name__}: {event}")
    if is_s3_test_event(event):
        return RelayRequest()
    if is_s3_notification(event):
        return RelayRequest(objects=parse_s3_notification(dict(event)))
    if is_s3_eventbridge_notification(event):
        return RelayRequest(objects=parse_s3_eventbridge_notification(dict(event)))
    if "objects" in event:
        return RelayRequest.from_dict(dict(event))
    raise ValueError(f"Unrecognized relay event with keys {sorted(event)}")
