"""
Reconciliation engine coordinating template parsing, remote resolution and
manifest assembly.
"""
import importlib
import importlib.util
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import boto3

from .domains import DomainOverrideResolver
from .models import ApiRecord, Endpoint, EndpointType, FunctionUrlCandidate
from .resolver import RemoteResolver
from ..core.config import ServiceDefinition
from ..core.exceptions import ConfigurationError
from ..core.strings import format_path, format_url
from ..manifest.assembler import DependencyResolver, ManifestAssembler
from ..template.function_urls import FunctionUrlDiscoverer
from ..template.resources import TemplateResourceResolver


logger = logging.getLogger(__name__)

PostProcessHook = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]


def function_url_id(url: Optional[str]) -> Optional[str]:
    """Url id of a Lambda function URL (its first host label)."""
    if not url or '://' not in url:
        return None
    host = url.split('://', 1)[1].split('/', 1)[0]
    return host.split('.', 1)[0] or None


def endpoint_url(base_url: Optional[str], path: Optional[str]) -> str:
    """Compose an endpoint URL from its API base URL and path."""
    if not base_url:
        return ''
    if not path:
        return base_url
    return f"{format_url(base_url)}{format_path(path)}"


def load_post_process_hook(reference: str) -> PostProcessHook:
    """Load a hook from ``module:function`` or ``path/to/file.py:function``.

    Raises:
        ConfigurationError: If the reference cannot be imported
    """
    module_ref, _, attribute = reference.rpartition(':')
    if not module_ref or not attribute:
        raise ConfigurationError(f"Post-process hook must look like module:function, got {reference!r}")

    try:
        if module_ref.endswith('.py'):
            path = Path(module_ref)
            spec = importlib.util.spec_from_file_location(path.stem, path)
            if spec is None or spec.loader is None:
                raise ImportError(f"cannot load {path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(module_ref)
        hook = getattr(module, attribute)
    except (ImportError, AttributeError, OSError) as e:
        raise ConfigurationError(f"Could not load post-process hook {reference}: {e}", details=str(e))

    if not callable(hook):
        raise ConfigurationError(f"Post-process hook {reference} is not callable")
    return hook


class ReconciliationEngine:
    """Reconciles a service definition with its deployed stack."""

    def __init__(self, session: boto3.Session, stage: Optional[str] = None,
                 resolver: Optional[RemoteResolver] = None, max_workers: int = 10,
                 dependency_resolver: Optional[DependencyResolver] = None,
                 post_process: Optional[PostProcessHook] = None,
                 silence_post_process: bool = False):
        """Initialize the engine.

        Args:
            session: boto3 session used for all lookups
            stage: Deployment stage (used in REST invoke URLs)
            resolver: Remote resolver; a fresh one is created when omitted
            max_workers: Thread pool size for batched lookups
            dependency_resolver: Optional function dependency lister
            post_process: Optional hook applied to the finished manifest
            silence_post_process: Suppress logging while the hook runs
        """
        self.session = session
        self.stage = stage
        self.resolver = resolver or RemoteResolver(session, stage=stage, max_workers=max_workers)
        self.dependency_resolver = dependency_resolver
        self.post_process = post_process
        self.silence_post_process = silence_post_process

    def fetch_stack(self, stack_name: str, region: str) -> Dict[str, Any]:
        return self.resolver.get_client('cloudformation', region).describe_stack(stack_name)

    def fetch_template(self, stack_name: str, region: str) -> Dict[str, Any]:
        return self.resolver.get_client('cloudformation', region).get_template(stack_name)

    def discover_function_urls(self, service: ServiceDefinition, template: Dict[str, Any],
                               stack: Dict[str, Any], stack_name: str, region: str,
                               unknown_resources: List[Dict[str, Any]]) -> Dict[str, Endpoint]:
        """Find deployed function URLs and turn them into endpoints.

        Returns:
            Function URL endpoints keyed by the function's logical id
        """
        candidates = FunctionUrlDiscoverer(service, template, stack).discover()

        def resolve_function(candidate: FunctionUrlCandidate) -> Optional[Dict[str, Any]]:
            logical_id = (candidate.fn_resource or {}).get('logicalId')
            if not logical_id:
                return None
            return self.resolver.resolve_logical_resource(stack_name, logical_id, region)

        existing = []
        for candidate, detail in self.resolver.run_batch(((c, c) for c in candidates), resolve_function):
            if detail is not None and not detail:
                logical_id = candidate.fn_resource.get('logicalId')
                logger.warning(f"Function {logical_id} of stack {stack_name} not found, skipping its URL")
                unknown_resources.append({'logicalId': logical_id, 'type': candidate.fn_resource.get('Type')})
                continue
            if detail and detail.get('arn') and not candidate.arn:
                candidate.arn = detail['arn']
            existing.append(candidate)

        missing_url = [(c, c.function_name) for c in existing if not c.url and c.function_name]
        for candidate, config in self.resolver.resolve_function_urls(missing_url, region):
            if not config:
                continue
            candidate.url = config.get('url')
            candidate.arn = candidate.arn or config.get('arn')
            candidate.extra.setdefault('urlConfig', config)

        endpoints = {}
        for candidate in existing:
            if not candidate.url:
                logger.debug(f"Function {candidate.fn_name} has no deployed URL")
                continue
            resource = candidate.fn_resource or candidate.fn_url_resource or {}
            logical_id = resource.get('logicalId') or candidate.fn_name
            endpoints[logical_id] = Endpoint(
                api=logical_id,
                type=EndpointType.FUNCTION_URL,
                resource_name=logical_id,
                path=None,
                methods=list(candidate.methods or []),
                url=candidate.url,
                properties=resource.get('Properties'),
            )

        logger.info(f"Found {len(endpoints)} deployed function URLs")
        return endpoints

    def resolve_apis(self, endpoints: Dict[str, Endpoint], stack_name: str, region: str,
                     unknown_resources: List[Dict[str, Any]]) -> Dict[str, ApiRecord]:
        """Resolve every endpoint's API and fill in endpoint URLs.

        Returns:
            API records keyed by the logical id of the API
        """
        records: Dict[str, ApiRecord] = {}
        unresolved = set()

        for key, details in self.resolver.resolve_endpoints(stack_name, endpoints, region):
            endpoint = endpoints[key]
            details = details or {}

            if endpoint.type is EndpointType.FUNCTION_URL:
                live_id = function_url_id(endpoint.url)
            else:
                live_id = details.get('id')
            base_url = details.get('url')

            endpoint.url = endpoint_url(base_url, endpoint.path)
            if not base_url and endpoint.api not in unresolved:
                unresolved.add(endpoint.api)
                unknown_resources.append({'logicalId': endpoint.api, 'type': endpoint.type.value})

            record = records.get(endpoint.api)
            if record is not None:
                record.endpoint_count += 1
                continue
            records[endpoint.api] = ApiRecord(
                id=live_id,
                logical_id=endpoint.api,
                type=endpoint.type,
                base_url=base_url,
                region=region,
            )

        if unresolved:
            logger.warning(f"Could not resolve {len(unresolved)} APIs of stack {stack_name}: "
                           f"{', '.join(sorted(unresolved))}")
        return records

    def apply_post_process(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        """Run the post-process hook; a non-None return replaces the manifest."""
        if self.post_process is None:
            return manifest

        previous_level = logging.root.manager.disable
        if self.silence_post_process:
            logging.disable(logging.CRITICAL)
        try:
            result = self.post_process(manifest)
        finally:
            if self.silence_post_process:
                logging.disable(previous_level)

        return manifest if result is None else result

    def build(self, service: ServiceDefinition, stack: Dict[str, Any], template: Dict[str, Any],
              region: str, account_id: Any = None, provider_account_id: Optional[str] = None) -> Dict[str, Any]:
        """Reconcile one stage and return its manifest.

        Raises:
            TemplateResolutionError: If the template uses unsupported intrinsics
        """
        stack = stack or {'Outputs': []}
        stack_name = stack.get('StackName') or service.stack_name(self.stage)
        unknown_resources: List[Dict[str, Any]] = []

        endpoints = TemplateResourceResolver(template).endpoints()
        logger.info(f"Found {len(endpoints)} API endpoints in template")

        endpoints.update(self.discover_function_urls(
            service, template, stack, stack_name, region, unknown_resources))

        records = self.resolve_apis(endpoints, stack_name, region, unknown_resources)
        DomainOverrideResolver(self.resolver).apply_domain_overrides(records)
        apis = {record.key: record for record in records.values()}

        assembler = ManifestAssembler(
            service, stack, region,
            account_id=account_id,
            provider_account_id=provider_account_id,
            dependency_resolver=self.dependency_resolver,
        )
        manifest = assembler.build(endpoints, apis, unknown_resources)
        return self.apply_post_process(manifest)

    def run(self, service: ServiceDefinition, stack_name: Optional[str] = None,
            region: Optional[str] = None, account_id: Any = None,
            template: Optional[Dict[str, Any]] = None,
            lookup_account: bool = True) -> Dict[str, Dict[str, Any]]:
        """Fetch the deployed stack and build its stage-keyed manifest.

        Args:
            service: Service definition
            stack_name: Stack to reconcile; defaults to ``<service>-<stage>``
            region: Region; defaults to the provider region
            account_id: Explicit account id
            template: Compiled template; fetched from the stack when omitted
            lookup_account: Ask STS for the account id when none is given

        Returns:
            ``{stage: manifest}``
        """
        stage = self.stage or service.provider.stage
        region = region or service.provider.region
        stack_name = stack_name or service.stack_name(stage)

        logger.info(f"Reconciling stack {stack_name} in {region}")
        stack = self.fetch_stack(stack_name, region)
        if template is None:
            template = self.fetch_template(stack_name, region) if stack.get('StackId') else {}

        provider_account_id = None
        if not account_id and lookup_account:
            provider_account_id = self.resolver.caller_account_id(region)

        manifest = self.build(service, stack, template, region,
                              account_id=account_id, provider_account_id=provider_account_id)
        return {stage: manifest}
