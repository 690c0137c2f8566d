"""
Manifest assembler.

Folds the declared functions, the resolved endpoints and APIs and the stack
snapshot into the final manifest document.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.config import FunctionConfig, ServiceDefinition
from ..core.strings import (
    account_id_from_arn, cloudformation_console_url, function_name_from_arn, upper_case_first,
)
from ..services.models import ApiRecord, Endpoint
from .indices import HTTP_EVENT, ROUTE_EVENTS, UrlIndexBuilder, parse_route_event


logger = logging.getLogger(__name__)

QUALIFIED_ARN_SUFFIX = 'LambdaFunctionQualifiedArn'
UNDEPLOYED_OUTPUT_KEY = 'UnDeployedLambdaFunctionArn'
UNDEPLOYED_FUNCTION = {
    'OutputKey': UNDEPLOYED_OUTPUT_KEY,
    'OutputValue': 'Not deployed yet',
    'Description': 'Draft Lambda function',
}

# Event keys that are bookkeeping, not triggers
INTERNAL_EVENT_KEYS = {'resolvedMethod', 'resolvedPath'}

DependencyResolver = Callable[[str, FunctionConfig, str], Dict[str, Any]]


def normalize_account_id(value: Any) -> str:
    """Coerce an account id to a string; anything unusable becomes ``''``."""
    if isinstance(value, bool) or value is None:
        return ''
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value
    return ''


def _isoformat(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return value or ''


def is_undeployed(output: Dict[str, Any]) -> bool:
    return output.get('OutputKey') == UNDEPLOYED_OUTPUT_KEY


class ManifestAssembler:
    """Builds the manifest of one stage."""

    def __init__(self, service: ServiceDefinition, stack: Optional[Dict[str, Any]], region: str,
                 account_id: Any = None, provider_account_id: Optional[str] = None,
                 dependency_resolver: Optional[DependencyResolver] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize the assembler.

        Args:
            service: Service definition
            stack: Stack description (DescribeStacks entry)
            region: Region the stack lives in
            account_id: Explicitly configured account id, if any
            provider_account_id: Account id reported by the credentials in use
            dependency_resolver: Optional callable listing a function's
                dependencies as ``(name, config, runtime) -> dict``
            clock: Returns the current time; used for ``manifestUpdated``
        """
        self.service = service
        self.stack = stack or {}
        self.region = region
        self.explicit_account_id = account_id
        self.provider_account_id = provider_account_id
        self.dependency_resolver = dependency_resolver
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.outputs: List[Dict[str, Any]] = self.stack.get('Outputs') or []

    def output_value(self, key: str) -> Optional[str]:
        for output in self.outputs:
            if output.get('OutputKey') == key:
                return output.get('OutputValue')
        return None

    def live_function(self, name: str) -> Dict[str, Any]:
        """Qualified ARN output of a declared function, or the undeployed marker."""
        key = f"{upper_case_first(name)}{QUALIFIED_ARN_SUFFIX}"
        for output in self.outputs:
            if output.get('OutputKey') == key:
                return output
        return dict(UNDEPLOYED_FUNCTION)

    def resolve_account_id(self) -> str:
        """Account id, trying each known source in turn."""
        for candidate in (self.explicit_account_id, self.provider_account_id):
            account_id = normalize_account_id(candidate)
            if account_id:
                return account_id

        account_id = account_id_from_arn(self.stack.get('StackId'))
        if account_id:
            return account_id

        for output in self.outputs:
            value = output.get('OutputValue')
            if isinstance(value, str) and 'arn:aws' in value:
                account_id = account_id_from_arn(value[value.index('arn:aws'):])
                if account_id:
                    return account_id
        return ''

    def base_urls(self) -> Dict[str, str]:
        """Service-wide base URLs for function triggers.

        An active custom domain replaces the REST base URL; the raw stage
        URL stays available as ``apiGatewayBaseURL``. HTTP API URLs are
        never overridden.
        """
        service_endpoint = self.output_value('ServiceEndpoint') or ''
        http_api_url = self.output_value('HttpApiUrl') or ''

        domain = self.service.custom_domain
        api_gateway = domain.base_url if domain else service_endpoint
        return {
            'apiGateway': api_gateway,
            'apiGatewayBaseURL': service_endpoint,
            'httpApi': http_api_url,
            'httpApiBaseURL': http_api_url,
        }

    @staticmethod
    def route_base_url(kind: str, urls: Dict[str, str]) -> str:
        if kind == HTTP_EVENT:
            return urls['apiGateway'] or urls['apiGatewayBaseURL']
        return urls['httpApi'] or urls['httpApiBaseURL']

    @staticmethod
    def triggers(function: FunctionConfig) -> List[str]:
        """Unique event kinds of a function in order of first appearance."""
        kinds = []
        for event in function.events:
            if not isinstance(event, dict):
                continue
            for kind in event:
                if kind not in INTERNAL_EVENT_KEYS and kind not in kinds:
                    kinds.append(kind)
        return kinds

    @staticmethod
    def route_events(name: str, function: FunctionConfig) -> List[Tuple[str, str, str]]:
        """``(kind, method, path)`` of every http and httpApi event of a function."""
        routes = []
        for event in function.events:
            if not isinstance(event, dict):
                continue
            for kind in ROUTE_EVENTS:
                if kind not in event:
                    continue
                route = parse_route_event(kind, event[kind])
                if route is None:
                    logger.debug(f"Unrecognized {kind} event on {name}: {event[kind]!r}")
                    continue
                routes.append((kind, *route))
        return routes

    def dependencies(self, name: str, function: FunctionConfig) -> Dict[str, Any]:
        if self.dependency_resolver is None:
            return {}
        return self.dependency_resolver(name, function, self.service.function_runtime(function)) or {}

    def stack_metadata(self) -> Dict[str, Any]:
        stack = self.stack
        return {
            'id': stack.get('StackId') or '',
            'name': stack.get('StackName') or '',
            'status': stack.get('StackStatus') or '',
            'description': stack.get('Description') or '',
            'creationTime': _isoformat(stack.get('CreationTime')),
            'lastUpdatedTime': _isoformat(stack.get('LastUpdatedTime')),
            'tags': stack.get('Tags') or [],
            'terminationProtection': stack.get('EnableTerminationProtection', False),
            'consoleUrl': cloudformation_console_url(self.region, stack.get('StackId')),
        }

    def build(self, endpoints: Dict[str, Endpoint], apis: Dict[str, ApiRecord],
              unknown_resources: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Assemble the manifest.

        Args:
            endpoints: Resolved endpoints keyed by logical id
            apis: Resolved API records
            unknown_resources: Resources that could not be resolved

        Returns:
            The manifest document
        """
        account_id = self.resolve_account_id()
        base_urls = self.base_urls()
        indices = UrlIndexBuilder()

        urls: Dict[str, Any] = {record.key: record.base_url for record in apis.values()}
        urls.update({
            'apiGateway': '',
            'apiGatewayBaseURL': '',
            'httpApi': '',
            'httpApiBaseURL': '',
        })

        functions = {}
        for name, function in self.service.functions.items():
            live = self.live_function(name)
            if is_undeployed(live):
                logger.debug(f"Function {name} is not deployed, skipping")
                for _, _, path in self.route_events(name, function):
                    indices.exclude_route(path)
                continue

            arn = live.get('OutputValue')
            if not account_id:
                account_id = account_id_from_arn(arn) or ''

            if function.events:
                urls.update(base_urls)

            for kind, method, path in self.route_events(name, function):
                indices.add_route(name, self.route_base_url(kind, base_urls), path, method)

            functions[name] = {
                'name': function_name_from_arn(arn),
                'description': function.description or '',
                'arn': arn,
                'runtime': self.service.function_runtime(function),
                'triggers': self.triggers(function),
                'dependencies': self.dependencies(name, function),
            }

        folded = sum(1 for endpoint in endpoints.values() if indices.fold_endpoint(endpoint))
        urls.update(indices.to_dict())
        logger.info(f"Assembled {len(functions)} functions, {len(endpoints)} endpoints "
                    f"({folded} folded into url indices)")

        return {
            'metadata': {
                'manifestUpdated': self.clock().isoformat(),
                'region': self.region,
                'accountId': account_id,
                'stack': self.stack_metadata(),
            },
            'apis': {record.key: record.to_dict() for record in apis.values()},
            'urls': urls,
            'functions': functions,
            'endpoints': {key: endpoint.to_dict() for key, endpoint in endpoints.items()},
            'outputs': self.outputs,
            'unknownResources': list(unknown_resources or []),
        }
