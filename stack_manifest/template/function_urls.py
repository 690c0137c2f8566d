"""
Function URL discovery.

A function can be exposed through a Lambda function URL in three ways that
leave different traces: a ``url`` property in the service definition, a
``<Name>LambdaFunctionUrl`` stack output and an ``AWS::Lambda::Url`` resource
in the compiled template. Each source yields candidates which are then merged
into one record per function.
"""
import logging
from copy import deepcopy
from typing import Any, Dict, List, NamedTuple, Optional

from ..core.config import ServiceDefinition
from ..core.exceptions import TemplateResolutionError
from ..core.strings import function_name_from_arn, lower_case_first
from ..services.models import FunctionUrlCandidate
from .intrinsics import IntrinsicKind, parse_intrinsic
from .resources import LAMBDA_URL_TYPE


logger = logging.getLogger(__name__)

VIA_CONFIG = 'service function config'
VIA_OUTPUTS = 'stack outputs'
VIA_RESOURCE_ARN = 'template url resource arn string'
VIA_RESOURCE_FUNCTION = 'template url resource function logical resource'


class TargetFunction(NamedTuple):
    """Function a Lambda URL resource points at."""
    logical_id: Optional[str]
    resource: Optional[Dict[str, Any]]
    name: Optional[str]                 # Set when the target is a literal ARN

    @property
    def resource_function_name(self) -> Optional[str]:
        name = ((self.resource or {}).get('Properties') or {}).get('FunctionName')
        return name if isinstance(name, str) else None


def merge_candidates(candidates: List[FunctionUrlCandidate]) -> List[FunctionUrlCandidate]:
    """Merge raw candidates into one record per function name.

    The first candidate carrying a URL is the base record (else the first
    one). Fields missing from the base are filled from the remaining
    candidates, first seen wins. The provenance tag is dropped. Finally,
    CORS allowed methods on the URL resource become the record's methods.
    """
    grouped: Dict[Optional[str], List[FunctionUrlCandidate]] = {}
    for candidate in candidates:
        grouped.setdefault(candidate.fn_name, []).append(candidate)

    merged_records = []
    for items in grouped.values():
        with_url = [item for item in items if item.url]
        base = with_url[0] if with_url else items[0]

        merged = deepcopy(base)
        for item in items:
            if item is base:
                continue
            for field_name in FunctionUrlCandidate.MERGE_FIELDS:
                if getattr(merged, field_name) is None and getattr(item, field_name) is not None:
                    setattr(merged, field_name, deepcopy(getattr(item, field_name)))
            for key, value in item.extra.items():
                merged.extra.setdefault(key, deepcopy(value))

        merged.via = None
        _apply_cors_methods(merged)
        merged_records.append(merged)

    return merged_records


def _apply_cors_methods(candidate: FunctionUrlCandidate) -> None:
    properties = (candidate.fn_url_resource or {}).get('Properties') or {}
    allow_methods = (properties.get('Cors') or {}).get('AllowMethods')
    if allow_methods:
        candidate.methods = [{'httpMethod': method} for method in allow_methods]


class FunctionUrlDiscoverer:
    """Finds every function exposed through a direct Lambda URL."""

    def __init__(self, service: ServiceDefinition, template: Optional[Dict[str, Any]], stack: Optional[Dict[str, Any]]):
        self.service = service
        self.resources: Dict[str, Dict[str, Any]] = (template or {}).get('Resources') or {}
        stack = stack or {}
        self.stack_name = stack.get('StackName') or service.stack_name()
        self.outputs: List[Dict[str, Any]] = stack.get('Outputs') or []

    def resolve_target(self, url_resource: Dict[str, Any]) -> Optional[TargetFunction]:
        """Resolve the ``TargetFunctionArn`` of a Lambda URL resource."""
        properties = (url_resource or {}).get('Properties') or {}
        target = properties.get('TargetFunctionArn')
        if target is None:
            return None

        if isinstance(target, str):
            if 'arn:aws:lambda' in target:
                return TargetFunction(None, None, function_name_from_arn(target))
            return None

        try:
            intrinsic = parse_intrinsic(target)
        except TemplateResolutionError:
            logger.warning(f"Unsupported TargetFunctionArn value {target!r}, skipping function URL")
            return None

        if intrinsic.kind is IntrinsicKind.GET_ATT and intrinsic.attribute != 'Arn':
            return None
        return TargetFunction(intrinsic.value, self.resources.get(intrinsic.value), None)

    def _stack_function_name(self, name: str) -> Optional[str]:
        """Deployed name for a declared function, using stack naming."""
        for candidate in (lower_case_first(name), name):
            if candidate in self.service.functions:
                return f"{self.stack_name}-{candidate}"
        return None

    def from_config(self) -> List[FunctionUrlCandidate]:
        """Functions that declare a ``url`` property."""
        candidates = []
        for key, function in self.service.functions.items():
            if not function.has_url:
                continue
            candidates.append(FunctionUrlCandidate(
                fn_name=function.name or f"{self.stack_name}-{key}",
                via=VIA_CONFIG,
                extra={'fnConfig': function.to_dict()},
            ))
        logger.debug(f"Service functions with urls: {[c.fn_name for c in candidates]}")
        return candidates

    def from_outputs(self) -> List[FunctionUrlCandidate]:
        """Stack outputs named ``<Name>FunctionUrl`` holding a Lambda URL."""
        candidates = []
        for output in self.outputs:
            key = output.get('OutputKey') or ''
            value = output.get('OutputValue')
            if not key.endswith('FunctionUrl') or not isinstance(value, str) or 'lambda-url' not in value:
                continue

            url_resource = self.resources.get(key) or {}
            target = self.resolve_target(url_resource)
            if key.endswith('LambdaFunctionUrl'):
                approx_name = key[:-len('LambdaFunctionUrl')]
            else:
                approx_name = key[:-len('FunctionUrl')]

            fn_name = ((url_resource.get('Properties') or {}).get('FunctionName')
                       or (target.resource_function_name if target else None)
                       or (target.name if target else None)
                       or self._stack_function_name(approx_name))

            fn_resource = None
            if target and target.logical_id:
                fn_resource = {'logicalId': target.logical_id, **(target.resource or {})}

            candidates.append(FunctionUrlCandidate(
                fn_name=fn_name,
                via=VIA_OUTPUTS,
                url=value,
                fn_url_resource={'logicalId': key, **url_resource},
                fn_resource=fn_resource,
            ))
        logger.debug(f"Function urls from stack outputs: {[c.fn_name for c in candidates]}")
        return candidates

    def from_resources(self) -> List[FunctionUrlCandidate]:
        """``AWS::Lambda::Url`` resources in the compiled template."""
        candidates = []
        for logical_id, resource in self.resources.items():
            if not isinstance(resource, dict) or resource.get('Type') != LAMBDA_URL_TYPE:
                continue

            target = self.resolve_target(resource)
            fn_url_resource = {'logicalId': logical_id, **resource}
            if target is None:
                logger.debug(f"Could not resolve target function of {logical_id}")
                continue

            if target.name:
                candidates.append(FunctionUrlCandidate(
                    fn_name=target.name,
                    via=VIA_RESOURCE_ARN,
                    fn_url_resource=fn_url_resource,
                ))
            elif target.resource_function_name:
                candidates.append(FunctionUrlCandidate(
                    fn_name=target.resource_function_name,
                    via=VIA_RESOURCE_FUNCTION,
                    fn_resource={'logicalId': target.logical_id, **(target.resource or {})},
                    fn_url_resource=fn_url_resource,
                ))
            else:
                logger.debug(f"Target function of {logical_id} has no literal FunctionName")
        logger.debug(f"Function urls from template resources: {[c.fn_name for c in candidates]}")
        return candidates

    def discover(self) -> List[FunctionUrlCandidate]:
        """All function URL records, one per function."""
        found = self.from_outputs() + self.from_resources() + self.from_config()
        merged = merge_candidates(found)
        logger.info(f"Discovered {len(merged)} function URLs from {len(found)} candidates")
        return merged
