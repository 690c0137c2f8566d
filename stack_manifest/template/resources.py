"""
Template resource resolver.

Recovers the REST and HTTP API route topology from a synthesized
CloudFormation template, independent of what is deployed.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..services.models import Endpoint, EndpointType
from .intrinsics import parse_intrinsic, reference_target, resolve_id, IntrinsicKind
from ..core.exceptions import TemplateResolutionError


logger = logging.getLogger(__name__)

REST_RESOURCE_TYPE = 'AWS::ApiGateway::Resource'
REST_METHOD_TYPE = 'AWS::ApiGateway::Method'
HTTP_ROUTE_TYPE = 'AWS::ApiGatewayV2::Route'
LAMBDA_URL_TYPE = 'AWS::Lambda::Url'

# CORS preflight methods are not real routes
IGNORED_METHODS = {'OPTIONS'}


def _properties(resource: Dict[str, Any]) -> Dict[str, Any]:
    return (resource or {}).get('Properties') or {}


def references(value: Any, logical_id: str) -> bool:
    """True if ``value`` points at ``logical_id`` by Ref, GetAtt or literal id."""
    try:
        intrinsic = parse_intrinsic(value)
    except TemplateResolutionError:
        return False
    if intrinsic.kind is IntrinsicKind.GET_ATT:
        return False
    return intrinsic.value == logical_id


def combine_matching_endpoints(endpoints: List[Endpoint]) -> List[Endpoint]:
    """Merge endpoints that share the same path and API.

    The first endpoint of a group establishes the record; later ones only
    append their methods and fill fields the record is missing.
    """
    grouped: Dict[str, Endpoint] = {}

    for endpoint in endpoints:
        key = f"{endpoint.path}||{endpoint.api}"
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = replace(endpoint, methods=list(endpoint.methods))
            continue

        existing.methods.extend(endpoint.methods)
        if existing.properties is None and endpoint.properties is not None:
            existing.properties = endpoint.properties

    return list(grouped.values())


class TemplateResourceResolver:
    """Builds endpoint records from a compiled template."""

    def __init__(self, template: Optional[Dict[str, Any]]):
        self.resources: Dict[str, Dict[str, Any]] = (template or {}).get('Resources') or {}

    def resources_of_type(self, resource_type: str) -> Iterator[Tuple[str, Dict[str, Any]]]:
        for logical_id, resource in self.resources.items():
            if isinstance(resource, dict) and resource.get('Type') == resource_type:
                yield logical_id, resource

    def full_path(self, logical_id: str) -> str:
        """Rebuild the URL path of a REST resource by walking its parents.

        The walk stops at a resource without a parent reference or whose
        parent is not part of the template. The result is not forced to start
        with ``/``; a parent without a path part (the API root) contributes an
        empty segment.
        """
        resource = self.resources[logical_id]
        parts = [_properties(resource).get('PathPart') or '']
        visited = {logical_id}

        current = resource
        while True:
            parent_ref = _properties(current).get('ParentId')
            if parent_ref is None:
                break
            parent_id = reference_target(parent_ref)
            if not parent_id or parent_id not in self.resources or parent_id in visited:
                break
            visited.add(parent_id)
            current = self.resources[parent_id]
            parts.insert(0, _properties(current).get('PathPart') or '')

        return '/'.join(str(part) for part in parts)

    def rest_methods(self, logical_id: str) -> List[Dict[str, Any]]:
        """Collect the non-OPTIONS methods attached to a REST resource."""
        methods = []
        for _, method_resource in self.resources_of_type(REST_METHOD_TYPE):
            properties = _properties(method_resource)
            if not references(properties.get('ResourceId'), logical_id):
                continue

            method = {
                'httpMethod': properties.get('HttpMethod'),
                'authorizationType': properties.get('AuthorizationType'),
                'apiKeyRequired': properties.get('ApiKeyRequired') or False,
            }
            integration = properties.get('Integration')
            if integration:
                method['integration'] = {
                    'type': integration.get('Type'),
                    'uri': integration.get('Uri') or None,
                    'httpMethod': integration.get('IntegrationHttpMethod') or None,
                }

            if method['httpMethod'] not in IGNORED_METHODS:
                methods.append(method)
        return methods

    def rest_endpoints(self) -> Dict[str, Endpoint]:
        """REST endpoints keyed by the logical id of their path resource.

        Raises:
            TemplateResolutionError: If a ``RestApiId`` cannot be resolved
        """
        endpoints = {}
        for logical_id, resource in self.resources_of_type(REST_RESOURCE_TYPE):
            api_id = resolve_id(_properties(resource).get('RestApiId'), 'Id', logical_id=logical_id)
            methods = self.rest_methods(logical_id)
            if not methods:
                continue

            endpoints[logical_id] = Endpoint(
                api=api_id,
                type=EndpointType.REST_API,
                resource_name=logical_id,
                path=self.full_path(logical_id),
                methods=methods,
            )

        logger.debug(f"Found {len(endpoints)} REST endpoints in template")
        return endpoints

    def http_endpoints(self) -> List[Endpoint]:
        """HTTP API endpoints, one per unique path and API.

        Raises:
            TemplateResolutionError: If an ``ApiId`` cannot be resolved
        """
        routes = []
        for logical_id, resource in self.resources_of_type(HTTP_ROUTE_TYPE):
            properties = _properties(resource)
            api_id = resolve_id(properties.get('ApiId'), 'Id', logical_id=logical_id)
            method, _, path = str(properties.get('RouteKey', '')).partition(' ')

            routes.append(Endpoint(
                api=api_id,
                type=EndpointType.HTTP_API,
                resource_name=logical_id,
                path=path or None,
                methods=[{'httpMethod': method, **properties}],
            ))

        combined = combine_matching_endpoints(routes)
        logger.debug(f"Found {len(routes)} HTTP API routes, {len(combined)} after merging")
        return combined

    def endpoints(self) -> Dict[str, Endpoint]:
        """All API endpoints keyed by the logical id they were built from."""
        endpoints = self.rest_endpoints()
        for endpoint in self.http_endpoints():
            endpoints[endpoint.resource_name] = endpoint
        return endpoints
