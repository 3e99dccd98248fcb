from aibs_informatics_core.utils.os_operations import get_env_var
from aws_lambda_powertools.utilities.typing import LambdaContext

CONTEXT_ATTR = "_context"

POWERTOOLS_SERVICE_NAME_KEY = "POWERTOOLS_SERVICE_NAME"


class HandlerMixins:
    """Mixin class giving handlers access to the current invocation.

    Attributes:
        context: The AWS Lambda context object for the current invocation.
    """

    @property
    def context(self) -> LambdaContext:
        """Get the Lambda context for the current invocation.

        Raises:
            ValueError: If no context has been assigned yet.
        """
        if not hasattr(self, CONTEXT_ATTR):
            raise ValueError(f"{self.__class__.__name__} has no Lambda context set")
        return getattr(self, CONTEXT_ATTR)

    @context.setter
    def context(self, value: LambdaContext):
        setattr(self, CONTEXT_ATTR, value)

    @classmethod
    def handler_name(cls) -> str:
        return cls.__name__

    @classmethod
    def service_name(cls) -> str:
        """Service name used by the logger and as the metrics dimension.

        The powertools service name env var wins over the class name so deployed
        functions can be told apart in shared log groups.
        """
        return get_env_var(POWERTOOLS_SERVICE_NAME_KEY) or cls.__name__
