"""
Base client interface for the AWS services the manifest is resolved against.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..core.exceptions import ResolutionError


NOT_FOUND_CODES = {
    'NotFoundException',
    'ResourceNotFoundException',
    'ValidationError',
}


def is_not_found(error: Exception) -> bool:
    """True if an AWS error means the requested resource does not exist."""
    if not isinstance(error, ClientError):
        return False
    code = error.response.get('Error', {}).get('Code')
    status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
    return code in NOT_FOUND_CODES or status == 404


class BaseServiceClient(ABC):
    """Abstract base class for read-only AWS service clients."""

    def __init__(self, session: boto3.Session, region: str):
        """Initialize the client with an AWS session and region.

        Args:
            session: boto3 session used to create the low level client
            region: AWS region to query
        """
        self.session = session
        self.region = region
        self._client = None

    @property
    def client(self):
        """Lazy-loaded AWS service client."""
        if self._client is None:
            self._client = self.session.client(self.service_name, region_name=self.region)
        return self._client

    @property
    @abstractmethod
    def service_name(self) -> str:
        """AWS service name (e.g., 'cloudformation', 'apigateway')."""
        pass

    def _collect_items(self, operation: str, items_key: str, token_key: str, **params) -> List[Dict[str, Any]]:
        """Call a paginated list operation until its token runs out."""
        items = []
        token = None
        while True:
            kwargs = dict(params)
            if token:
                kwargs[token_key] = token
            response = getattr(self.client, operation)(**kwargs)
            items.extend(response.get(items_key) or [])
            token = response.get(token_key)
            if not token:
                return items

    @staticmethod
    def _strip_metadata(response: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in response.items() if k != 'ResponseMetadata'}

    def _handle_aws_error(self, error: Exception, operation: str, resource_id: Optional[str] = None) -> None:
        """Handle AWS API errors and convert to ResolutionError.

        Args:
            error: The original AWS error
            operation: Operation that failed
            resource_id: ID of resource being looked up (if applicable)

        Raises:
            ResolutionError: Wrapped error with context
        """
        if not isinstance(error, (ClientError, BotoCoreError)):
            raise error
        resource_context = f" for resource {resource_id}" if resource_id else ""
        error_message = f"AWS {self.service_name} {operation} failed{resource_context}: {str(error)}"
        raise ResolutionError(error_message, details=str(error))
