"""
Lambda function URL lookups.
"""
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseServiceClient, is_not_found


logger = logging.getLogger(__name__)


class LambdaUrlClient(BaseServiceClient):
    """Reads function URL configurations."""

    @property
    def service_name(self) -> str:
        return 'lambda'

    def get_function_url_config(self, function_name: str) -> Optional[Dict[str, Any]]:
        """Get the function URL configuration of a function.

        Args:
            function_name: Name or ARN of the function

        Returns:
            Dictionary with url, arn, authType, cors, creationTime,
            lastModifiedTime and invokeMode, or None if the function has no URL

        Raises:
            ResolutionError: If the lookup fails for another reason
        """
        try:
            response = self.client.get_function_url_config(FunctionName=function_name)
        except ClientError as e:
            if is_not_found(e):
                logger.debug(f"Function {function_name} has no function URL")
                return None
            self._handle_aws_error(e, 'get_function_url_config', function_name)
        except BotoCoreError as e:
            self._handle_aws_error(e, 'get_function_url_config', function_name)

        return {
            'url': response.get('FunctionUrl'),
            'arn': response.get('FunctionArn'),
            'authType': response.get('AuthType'),
            'cors': response.get('Cors'),
            'creationTime': response.get('CreationTime'),
            'lastModifiedTime': response.get('LastModifiedTime'),
            'invokeMode': response.get('InvokeMode'),
        }
