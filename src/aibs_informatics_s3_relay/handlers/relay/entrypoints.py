"""Deployable Lambda entry points for the S3 object relay.

Configuration is resolved when this module is imported, so a function deployed
without `DST_BUCKET` fails during initialization instead of on its first upload.

Handler strings:
    * ``aibs_informatics_s3_relay.handlers.relay.entrypoints.handler``
    * ``aibs_informatics_s3_relay.handlers.relay.entrypoints.sqs_handler``
"""

from aibs_informatics_s3_relay.handlers.relay.config import RelayConfig
from aibs_informatics_s3_relay.handlers.relay.operations import (
    get_relay_handler,
    get_relay_sqs_handler,
)

config = RelayConfig.from_env()

handler = get_relay_handler(config)
sqs_handler = get_relay_sqs_handler(config)
