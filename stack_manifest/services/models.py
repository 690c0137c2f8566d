"""
Data models for reconciled endpoints and APIs.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EndpointType(str, Enum):
    REST_API = 'restApi'
    HTTP_API = 'httpApi'
    FUNCTION_URL = 'functionUrl'


@dataclass
class Endpoint:
    """One invocable surface of the service."""
    api: Optional[str]                  # Logical id of the API (or function for URLs)
    type: EndpointType
    resource_name: str                  # Logical id the endpoint was built from
    path: Optional[str] = None
    methods: List[Dict[str, Any]] = field(default_factory=list)
    url: str = ''                       # Filled once the API is resolved
    properties: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'api': self.api,
            'url': self.url,
            'path': self.path,
            'type': self.type.value,
            'methods': self.methods,
            'resourceName': self.resource_name,
        }
        if self.properties is not None:
            data['Properties'] = self.properties
        return data


@dataclass
class ApiRecord:
    """A live API that one or more endpoints resolve to."""
    id: Optional[str]                   # Live API id (None when unresolved)
    logical_id: Optional[str]
    type: EndpointType
    base_url: Optional[str]
    region: str
    endpoint_count: int = 1
    raw_base_url: Optional[str] = None
    domain_name: Optional[str] = None

    @property
    def key(self) -> str:
        """Manifest key: the live id, or the logical id while unresolved."""
        return self.id or self.logical_id or ''

    @property
    def is_deployed(self) -> bool:
        return bool(self.id)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'logicalId': self.logical_id,
            'type': self.type.value,
            'baseUrl': self.base_url,
            'region': self.region,
            'endpointCount': self.endpoint_count,
            'isDeployed': self.is_deployed,
        }
        if self.raw_base_url is not None:
            data['rawBaseUrl'] = self.raw_base_url
        if self.domain_name is not None:
            data['domainName'] = self.domain_name
        return data


@dataclass
class FunctionUrlCandidate:
    """Evidence that a function is invokable through a Lambda function URL."""
    fn_name: Optional[str]
    via: Optional[str] = None           # Provenance tag, dropped after merge
    url: Optional[str] = None
    fn_resource: Optional[Dict[str, Any]] = None
    fn_url_resource: Optional[Dict[str, Any]] = None
    methods: Optional[List[Dict[str, Any]]] = None
    arn: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # Fields that take part in key-by-key merging, in output order
    MERGE_FIELDS = ('fn_name', 'url', 'fn_resource', 'fn_url_resource', 'methods', 'arn')

    @property
    def function_name(self) -> Optional[str]:
        """Name to query Lambda with: the resource's FunctionName, else fnName."""
        properties = (self.fn_resource or {}).get('Properties') or {}
        name = properties.get('FunctionName')
        return name if isinstance(name, str) else self.fn_name

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'fnName': self.fn_name,
            'url': self.url,
            'fnResource': self.fn_resource,
            'fnUrlResource': self.fn_url_resource,
            'methods': self.methods,
            'arn': self.arn,
        }
        data = {k: v for k, v in data.items() if v is not None}
        data.update(self.extra)
        if self.via is not None:
            data['via'] = self.via
        return data


@dataclass
class DomainMapping:
    """Result of a custom domain lookup for one API."""
    has_domain_mapping: bool
    domain_name: Optional[str] = None
