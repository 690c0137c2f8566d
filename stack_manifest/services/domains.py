"""
Custom domain overrides for resolved APIs.
"""
import logging
from typing import Dict, List

from .models import ApiRecord, DomainMapping, EndpointType
from .resolver import RemoteResolver


logger = logging.getLogger(__name__)


def replace_base_url(domain_name: str) -> str:
    """Base URL an API is reachable at through a mapped custom domain."""
    return f"https://{domain_name}/"


class DomainOverrideResolver:
    """Rewrites API base URLs for APIs served from a custom domain."""

    def __init__(self, resolver: RemoteResolver):
        self.resolver = resolver

    def lookup(self, records: List[ApiRecord]) -> Dict[str, DomainMapping]:
        """Domain mappings of every record, keyed by record key.

        Function URL records and records without a live id are never
        mapped and are not looked up.
        """
        mappings = {}
        pending = []
        for record in records:
            if record.type is EndpointType.FUNCTION_URL or not record.id:
                mappings[record.key] = DomainMapping(has_domain_mapping=False)
            else:
                pending.append((record.key, (record.type, record.id, record.region)))

        for key, mapping in self.resolver.resolve_domains(pending):
            mappings[key] = mapping or DomainMapping(has_domain_mapping=False)
        return mappings

    def apply_domain_overrides(self, api_map: Dict[str, ApiRecord]) -> Dict[str, ApiRecord]:
        """Apply domain mappings to the records of ``api_map`` in place.

        On a hit the record keeps its previous base URL as ``raw_base_url``
        and is re-pointed at the custom domain.

        Returns:
            The same mapping, for chaining
        """
        mappings = self.lookup(list(api_map.values()))
        overridden = 0
        for key, record in api_map.items():
            mapping = mappings.get(record.key)
            if mapping is None or not mapping.has_domain_mapping:
                continue
            record.raw_base_url = record.base_url
            record.base_url = replace_base_url(mapping.domain_name)
            record.domain_name = mapping.domain_name
            overridden += 1

        if overridden:
            logger.info(f"Applied custom domains to {overridden} APIs")
        return api_map
