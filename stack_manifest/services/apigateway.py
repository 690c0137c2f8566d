"""
API Gateway clients for REST (v1) and HTTP (v2) APIs.

Both expose the same surface so the resolver can treat them alike: API
details with a base URL, the region's custom domain names and the API
mappings of one domain.
"""
import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseServiceClient


logger = logging.getLogger(__name__)

DEFAULT_REST_STAGE = 'prod'


class RestApiClient(BaseServiceClient):
    """REST API (apigateway) lookups."""

    @property
    def service_name(self) -> str:
        return 'apigateway'

    def base_url(self, api_id: str, stage: Optional[str] = None) -> str:
        return f"https://{api_id}.execute-api.{self.region}.amazonaws.com/{stage or DEFAULT_REST_STAGE}"

    def get_api_details(self, api_id: str, stage: Optional[str] = None) -> Dict[str, Any]:
        """Get a REST API and its invoke URL.

        Args:
            api_id: Live REST API id
            stage: Deployment stage used in the invoke URL

        Returns:
            The GetRestApi response plus ``url``

        Raises:
            ResolutionError: If the API cannot be fetched
        """
        try:
            response = self.client.get_rest_api(restApiId=api_id)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_rest_api', api_id)

        details = self._strip_metadata(response)
        details['url'] = self.base_url(details.get('id') or api_id, stage)
        return details

    def get_domain_names(self) -> List[str]:
        """Names of all custom domains in the region."""
        try:
            items = self._collect_items('get_domain_names', 'items', 'position')
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_domain_names')
        return [item['domainName'] for item in items if item.get('domainName')]

    def get_mappings(self, domain_name: str) -> List[Dict[str, Any]]:
        """Base path mappings of one custom domain."""
        try:
            return self._collect_items('get_base_path_mappings', 'items', 'position', domainName=domain_name)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_base_path_mappings', domain_name)

    @staticmethod
    def mapping_targets(mapping: Dict[str, Any], api_id: str) -> bool:
        return mapping.get('restApiId') == api_id


class HttpApiClient(BaseServiceClient):
    """HTTP API (apigatewayv2) lookups."""

    @property
    def service_name(self) -> str:
        return 'apigatewayv2'

    def get_api_details(self, api_id: str, stage: Optional[str] = None) -> Dict[str, Any]:
        """Get an HTTP API; its ``ApiEndpoint`` is the invoke URL.

        Raises:
            ResolutionError: If the API cannot be fetched
        """
        try:
            response = self.client.get_api(ApiId=api_id)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_api', api_id)

        details = self._strip_metadata(response)
        details['id'] = details.get('ApiId') or api_id
        details['url'] = details.get('ApiEndpoint')
        return details

    def get_domain_names(self) -> List[str]:
        try:
            items = self._collect_items('get_domain_names', 'Items', 'NextToken')
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_domain_names')
        return [item['DomainName'] for item in items if item.get('DomainName')]

    def get_mappings(self, domain_name: str) -> List[Dict[str, Any]]:
        try:
            return self._collect_items('get_api_mappings', 'Items', 'NextToken', DomainName=domain_name)
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_api_mappings', domain_name)

    @staticmethod
    def mapping_targets(mapping: Dict[str, Any], api_id: str) -> bool:
        return mapping.get('ApiId') == api_id
