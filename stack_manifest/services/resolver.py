"""
Remote resolver: turns logical ids into live deployment details.

Every lookup is memoized in a ResolutionCache owned by the resolver, so a
run that asks for the same API a dozen times makes one remote call. Remote
failures are soft: they are logged and reported as "not found" so that one
missing resource never aborts the reconciliation of the others.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple

import boto3

from .apigateway import HttpApiClient, RestApiClient
from .base import BaseServiceClient
from .cache import ResolutionCache, cache_key
from .cloudformation import CloudFormationClient, StsClient
from .lambda_url import LambdaUrlClient
from .models import DomainMapping, Endpoint, EndpointType
from ..core.exceptions import ResolutionError


logger = logging.getLogger(__name__)


class RemoteResolver:
    """Memoized, concurrent lookups against live AWS resources."""

    def __init__(self, session: boto3.Session, stage: Optional[str] = None,
                 max_workers: int = 10, cache: Optional[ResolutionCache] = None):
        """Initialize the resolver.

        Args:
            session: boto3 session used for every client
            stage: Deployment stage used in REST API invoke URLs
            max_workers: Thread pool size for batched lookups
            cache: Cache to use; a fresh one is created when omitted
        """
        self.session = session
        self.stage = stage
        self.max_workers = max_workers
        self.cache = cache if cache is not None else ResolutionCache()

        self.client_classes = {
            'cloudformation': CloudFormationClient,
            'sts': StsClient,
            'lambda': LambdaUrlClient,
            EndpointType.REST_API.value: RestApiClient,
            EndpointType.HTTP_API.value: HttpApiClient,
        }

        self._client_cache: Dict[Tuple[str, str], BaseServiceClient] = {}
        self._client_lock = threading.Lock()

    def get_client(self, kind: str, region: str) -> BaseServiceClient:
        """Get or create the client for a service kind in a region.

        Raises:
            ResolutionError: If the kind is not supported
        """
        kind = getattr(kind, 'value', kind)
        key = (kind, region)
        with self._client_lock:
            if key not in self._client_cache:
                if kind not in self.client_classes:
                    raise ResolutionError(f"Unsupported client type: {kind}")
                self._client_cache[key] = self.client_classes[kind](self.session, region)
            return self._client_cache[key]

    def run_batch(self, items: Iterable[Tuple[Hashable, Any]],
                  operation: Callable[[Any], Any]) -> List[Tuple[Hashable, Any]]:
        """Run ``operation`` over the values of ``items`` concurrently.

        Args:
            items: ``(key, value)`` pairs
            operation: Called with each value

        Returns:
            ``(key, result)`` pairs in input order. A value whose operation
            raises yields ``None`` and the error is logged.
        """
        items = list(items)
        if not items:
            return []

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            submitted = [(key, executor.submit(operation, value)) for key, value in items]

            results = []
            for key, future in submitted:
                try:
                    results.append((key, future.result()))
                except Exception as e:
                    logger.error(f"Lookup failed for {key}: {e}")
                    results.append((key, None))

        logger.debug(f"Batch of {len(items)} lookups complete, {len(self.cache)} cached entries")
        return results

    def resolve_logical_resource(self, stack_name: str, logical_id: str, region: str) -> Dict[str, Any]:
        """Describe a stack resource by logical id; ``{}`` when not found."""
        client = self.get_client('cloudformation', region)

        def load():
            try:
                return client.describe_stack_resource(stack_name, logical_id)
            except ResolutionError as e:
                logger.warning(f"Could not resolve {logical_id} in stack {stack_name}: {e.message}")
                return {}

        return self.cache.get_or_load(cache_key('stack-resource', f"{stack_name}/{logical_id}", region), load)

    def resolve_api(self, api_type: EndpointType, physical_api_id: str, region: str) -> Dict[str, Any]:
        """Live details of an API, including its base ``url``; ``{}`` on failure."""
        api_type = EndpointType(api_type)
        client = self.get_client(api_type.value, region)

        def load():
            try:
                return client.get_api_details(physical_api_id, self.stage)
            except ResolutionError as e:
                logger.warning(f"Could not fetch {api_type.value} {physical_api_id}: {e.message}")
                return {}

        return self.cache.get_or_load(cache_key('api', physical_api_id, region, api_type.value), load)

    def resolve_api_by_logical_id(self, stack_name: str, logical_id: str,
                                  api_type: EndpointType, region: str) -> Dict[str, Any]:
        """Resolve an API logical id to its live details; ``{}`` when unresolved."""
        resource = self.resolve_logical_resource(stack_name, logical_id, region)
        physical_id = resource.get('PhysicalResourceId')
        if not physical_id:
            logger.warning(f"API {logical_id} is not deployed in stack {stack_name}")
            return {}
        return self.resolve_api(api_type, physical_id, region)

    def resolve_function_url(self, function_name: str, region: str) -> Optional[Dict[str, Any]]:
        """Function URL configuration of a function, None if it has none."""
        client = self.get_client('lambda', region)

        def load():
            try:
                return client.get_function_url_config(function_name)
            except ResolutionError as e:
                logger.warning(f"Could not fetch function URL of {function_name}: {e.message}")
                return None

        return self.cache.get_or_load(cache_key('function-url', function_name, region), load)

    def resolve_domain(self, api_type: EndpointType, api_id: str, region: str) -> DomainMapping:
        """Find the custom domain an API is mapped to, if any."""
        api_type = EndpointType(api_type)
        if api_type is EndpointType.FUNCTION_URL or not api_id:
            return DomainMapping(has_domain_mapping=False)

        client = self.get_client(api_type.value, region)
        try:
            domain_names = self.cache.get_or_load(
                cache_key('domains', api_type.value, region), client.get_domain_names)
            for domain_name in domain_names:
                mappings = self.cache.get_or_load(
                    cache_key('mappings', domain_name, region, api_type.value),
                    lambda: client.get_mappings(domain_name))
                if any(client.mapping_targets(mapping, api_id) for mapping in mappings):
                    return DomainMapping(has_domain_mapping=True, domain_name=domain_name)
        except ResolutionError as e:
            logger.warning(f"Could not look up domain mappings for {api_id}: {e.message}")

        return DomainMapping(has_domain_mapping=False)

    def caller_account_id(self, region: str) -> Optional[str]:
        """Account id reported by the credentials in use, None if unavailable."""
        client = self.get_client('sts', region)
        try:
            return self.cache.get_or_load(cache_key('account', 'caller', region), client.account_id)
        except ResolutionError as e:
            logger.warning(f"Could not determine caller account id: {e.message}")
            return None

    def resolve_endpoints(self, stack_name: str, endpoints: Dict[str, Endpoint],
                          region: str) -> List[Tuple[Hashable, Any]]:
        """Resolve the API behind every endpoint.

        Function URL endpoints resolve to themselves: their URL is already
        known.

        Returns:
            ``(endpoint key, details)`` pairs
        """
        def resolve(endpoint: Endpoint) -> Dict[str, Any]:
            if endpoint.type is EndpointType.FUNCTION_URL:
                return {'url': endpoint.url}
            return self.resolve_api_by_logical_id(stack_name, endpoint.api, endpoint.type, region)

        results = self.run_batch(endpoints.items(), resolve)
        logger.info(f"Resolved {sum(1 for _, details in results if details)} of {len(results)} endpoints")
        return results

    def resolve_function_urls(self, function_names: Iterable[Tuple[Hashable, str]],
                              region: str) -> List[Tuple[Hashable, Any]]:
        """Fetch function URL configurations for ``(key, function name)`` pairs."""
        return self.run_batch(function_names, lambda name: self.resolve_function_url(name, region))

    def resolve_domains(self, apis: Iterable[Tuple[Hashable, Tuple[EndpointType, str, str]]]
                        ) -> List[Tuple[Hashable, DomainMapping]]:
        """Look up domain mappings for ``(key, (type, api id, region))`` pairs."""
        return self.run_batch(apis, lambda api: self.resolve_domain(*api))
