"""Logging utilities for the relay Lambda handlers.

Structured JSON logging is provided by AWS Lambda Powertools. Handler loggers are
attached to the root logger so that boto3 and library records share the format.
"""

import logging
from typing import Optional, Union

from aibs_informatics_core.utils.logging import get_all_handlers
from aws_lambda_powertools.logging import Logger

from aibs_informatics_s3_relay.common.base import HandlerMixins

SERVICE_NAME = "s3-relay"


class LoggingMixins(HandlerMixins):
    """Mixin class providing a lazily created powertools logger.

    Attributes:
        log: Alias for the logger property.
        logger: The AWS Lambda Powertools Logger instance.
    """

    @property
    def log(self) -> Logger:
        return self.logger

    @log.setter
    def log(self, value: Logger):
        self.logger = value

    @property
    def logger(self) -> Logger:
        """Get the Logger instance, creating one for this service if needed."""
        try:
            return self._logger
        except AttributeError:
            self.logger = self.get_logger(self.service_name())
        return self.logger

    @logger.setter
    def logger(self, value: Logger):
        self._logger = value

    @classmethod
    def get_logger(cls, service: Optional[str] = None, add_to_root: bool = False) -> Logger:
        return get_service_logger(service=service, add_to_root=add_to_root)

    def add_logger_to_root(self):
        add_handler_to_logger(self.logger, None)


def get_service_logger(
    service: Optional[str] = None, child: bool = False, add_to_root: bool = False
) -> Logger:
    """Create a service logger with optional root logger integration.

    Args:
        service (Optional[str]): The service name for the logger. Defaults to `SERVICE_NAME`.
        child (bool): Whether to create a child logger.
        add_to_root (bool): Whether to add the logger handler to the root logger.

    Returns:
        A configured Logger instance for the service.
    """
    service_logger = Logger(service=service or SERVICE_NAME, child=child)
    if add_to_root:
        add_handler_to_logger(service_logger)
    return service_logger


def add_handler_to_logger(
    source_logger: Logger, target_logger: Union[str, logging.Logger, None] = None
):
    """Copy the handler of a powertools logger onto a standard library logger.

    Args:
        source_logger (Logger): The Logger whose handler will be copied.
        target_logger (Union[str, logging.Logger, None]): Logger name, logger instance,
            or None for the root logger.
    """
    handler = source_logger.registered_handler

    if target_logger is None or isinstance(target_logger, str):
        target_logger = logging.getLogger(target_logger)
        log_level = min(source_logger.log_level, target_logger.getEffectiveLevel())
        target_logger.setLevel(log_level)

    if handler not in get_all_handlers(target_logger):
        target_logger.addHandler(handler)
