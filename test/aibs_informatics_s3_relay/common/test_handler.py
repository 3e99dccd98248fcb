import json
from dataclasses import dataclass
from test.aibs_informatics_s3_relay.base import LambdaHandlerTestCase, LambdaHandlerType

from aibs_informatics_core.models.base import IntegerField, SchemaModel, custom_field

from aibs_informatics_s3_relay.common.handler import LambdaHandler, SQSRecord


@dataclass
class NoResponse(SchemaModel):
    pass


@dataclass
class CounterRequest(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


@dataclass
class CounterResponse(SchemaModel):
    count: int = custom_field(mm_field=IntegerField())


class CounterHandler_ReqResp(LambdaHandler[CounterRequest, CounterResponse]):
    def handle(self, request: CounterRequest) -> CounterResponse:
        if request.count < 0:
            raise ValueError("negative counts are not allowed")
        return CounterResponse(request.count + 1)


class CounterHandler_ReqNoResp(LambdaHandler[CounterRequest, NoResponse]):
    def handle(self, request: CounterRequest) -> None:
        self.log.info(f"Hey look the count is {request.count}")

    @classmethod
    def should_process_sqs_record(cls, record: SQSRecord) -> bool:
        return True if record.json_body and record.json_body.get("count") != 0 else False


def sqs_record(message_id: str, body: str) -> dict:
    return {
        "messageId": message_id,
        "receiptHandle": f"handle-{message_id}",
        "body": body,
        "attributes": {},
        "messageAttributes": {},
        "eventSource": "aws:sqs",
        "eventSourceARN": "arn:aws:sqs:us-west-2:123456789012:queue",
        "awsRegion": "us-west-2",
    }


class LambdaHandlerTests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return LambdaHandler.get_handler()

    def test__props__work(self):
        obj_handler = LambdaHandler()
        self.assertEqual(obj_handler.env_base, self.env_base)
        obj_handler.context

    def test__handle__method_is_not_implemented(self):
        with self.assertRaises(NotImplementedError):
            LambdaHandler().handle({})

    def test__service_name__prefers_powertools_env_var(self):
        self.assertEqual(CounterHandler_ReqResp.service_name(), "CounterHandler_ReqResp")
        self.set_env_vars(("POWERTOOLS_SERVICE_NAME", "relay"))
        self.assertEqual(CounterHandler_ReqResp.service_name(), "relay")


class CounterHandler_ReqNoResp_Tests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return CounterHandler_ReqNoResp.get_handler()

    def test__handler__handles_valid_request_and_returns_no_response(self):
        self.assertHandles(self.handler, CounterRequest(1).to_dict(), None)

    def test__handler__handles_invalid_request_and_raises_error(self):
        with self.assertRaises(Exception):
            self.assertHandles(self.handler, {"counts": 1}, None)

    def test__sqs_handler__skips_filtered_records(self):
        handler = CounterHandler_ReqNoResp.get_sqs_batch_handler()
        event = {
            "Records": [
                sqs_record("1", CounterRequest(1).to_json()),
                sqs_record("2", CounterRequest(0).to_json()),
            ]
        }
        self.assertHandles(handler, event, {"batchItemFailures": []})


class CounterHandler_ReqResp_Tests(LambdaHandlerTestCase):
    @property
    def handler(self) -> LambdaHandlerType:
        return CounterHandler_ReqResp.get_handler()

    def test__handler__handles_valid_request_and_returns_response(self):
        self.assertHandles(
            self.handler,
            CounterRequest(1).to_dict(),
            CounterResponse(2).to_dict(),
        )

    def test__handler__propagates_handle_errors(self):
        self.assertLambdaRaises(self.handler, CounterRequest(-1).to_dict(), ValueError)

    def test__sqs_handler__reports_failed_records(self):
        handler = CounterHandler_ReqResp.get_sqs_batch_handler()
        event = {
            "Records": [
                sqs_record("1", CounterRequest(1).to_json()),
                sqs_record("2", json.dumps({"count": -1})),
            ]
        }
        self.assertHandles(handler, event, {"batchItemFailures": [{"itemIdentifier": "2"}]})

    def test__sqs_handler__fifo_queue_fails_records_after_first_failure(self):
        handler = CounterHandler_ReqResp.get_sqs_batch_handler(queue_type="fifo")
        event = {
            "Records": [
                sqs_record("1", CounterRequest(1).to_json()),
                sqs_record("2", json.dumps({"count": -1})),
                sqs_record("3", CounterRequest(3).to_json()),
            ]
        }
        self.assertHandles(
            handler,
            event,
            {"batchItemFailures": [{"itemIdentifier": "2"}, {"itemIdentifier": "3"}]},
        )

    def test__sqs_handler__rejects_unknown_queue_type(self):
        with self.assertRaises(RuntimeError):
            CounterHandler_ReqResp.get_sqs_batch_handler(queue_type="priority")  # type: ignore
