"""Service definition models for Stack Manifest."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from stack_manifest.core.exceptions import ConfigurationError
from stack_manifest.template.loader import load_document


DOMAIN_MANAGER_PLUGIN = 'serverless-domain-manager'


def evaluate_enabled(enabled: Any) -> bool:
    """Evaluate a loosely typed ``enabled`` flag.

    Absent means enabled; booleans are honoured; the strings ``"true"`` and
    ``"false"`` are honoured; anything else means disabled.
    """
    if enabled is None:
        return True
    if isinstance(enabled, bool):
        return enabled
    if isinstance(enabled, str) and enabled == 'true':
        return True
    return False


class CustomDomainConfig(BaseModel):
    """``custom.customDomain`` block used by serverless-domain-manager."""

    model_config = ConfigDict(extra='allow', populate_by_name=True)

    domain_name: Optional[str] = Field(default=None, alias='domainName')
    base_path: Optional[str] = Field(default=None, alias='basePath')
    enabled: Any = None

    @property
    def is_enabled(self) -> bool:
        return evaluate_enabled(self.enabled)

    @property
    def base_url(self) -> str:
        """Public base URL for the domain, without a trailing slash."""
        return f"https://{self.domain_name}/{self.base_path or ''}".rstrip('/')


class ProviderConfig(BaseModel):
    """Provider defaults shared by all functions."""

    model_config = ConfigDict(extra='allow')

    name: str = Field(default='aws')
    runtime: Optional[str] = None
    stage: str = Field(default='dev')
    region: str = Field(default='us-east-1')


class FunctionConfig(BaseModel):
    """A single function entry of the service definition.

    Unknown keys (``url``, ``environment``, ...) are kept as extras so they
    can travel into function URL records untouched.
    """

    model_config = ConfigDict(extra='allow')

    handler: Optional[str] = None
    runtime: Optional[str] = None
    description: Optional[str] = None
    name: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator('events', mode='before')
    @classmethod
    def validate_events(cls, v: Any) -> List[Dict[str, Any]]:
        if v is None:
            return []
        return v

    @property
    def has_url(self) -> bool:
        """True when the function declares a direct Lambda URL."""
        return 'url' in (self.model_extra or {})

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ServiceDefinition(BaseModel):
    """Declarative description of a serverless service."""

    model_config = ConfigDict(extra='allow')

    service: Union[str, Dict[str, Any], None] = None
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    functions: Dict[str, FunctionConfig] = Field(default_factory=dict)
    plugins: List[str] = Field(default_factory=list)
    custom: Dict[str, Any] = Field(default_factory=dict)
    resources: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('plugins', mode='before')
    @classmethod
    def validate_plugins(cls, v: Any) -> List[str]:
        """Accept both the list form and the ``{modules: [...]}`` form."""
        if v is None:
            return []
        if isinstance(v, dict):
            return list(v.get('modules') or [])
        return v

    @field_validator('functions', 'custom', 'resources', mode='before')
    @classmethod
    def validate_mappings(cls, v: Any) -> Dict[str, Any]:
        if v is None:
            return {}
        return v

    @property
    def service_name(self) -> str:
        if isinstance(self.service, dict):
            return str(self.service.get('name', ''))
        return self.service or ''

    def stack_name(self, stage: Optional[str] = None) -> str:
        """Default stack name: ``<service>-<stage>``."""
        return f"{self.service_name}-{stage or self.provider.stage}"

    def has_plugin(self, name: str) -> bool:
        return name in self.plugins

    def function_runtime(self, function: FunctionConfig) -> str:
        """Runtime of a function, falling back to the provider default."""
        return function.runtime or self.provider.runtime or 'NA'

    @property
    def custom_domain(self) -> Optional[CustomDomainConfig]:
        """Custom domain settings when they are active, else None.

        A custom domain is active only when the domain manager plugin is
        listed, a domain name is configured and the enabled flag evaluates
        to true.
        """
        raw = self.custom.get('customDomain')
        if not self.has_plugin(DOMAIN_MANAGER_PLUGIN) or not isinstance(raw, dict):
            return None
        domain = CustomDomainConfig.model_validate(raw)
        if not domain.domain_name or not domain.is_enabled:
            return None
        return domain

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ServiceDefinition':
        """Validate a raw service mapping.

        Raises:
            ConfigurationError: If the mapping is not a valid service definition.
        """
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid service definition: {e}", details=str(e))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'ServiceDefinition':
        """Load a service definition from a YAML or JSON file.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Service file not found: {path}")

        try:
            data = load_document(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigurationError(f"Failed to parse service file {path}: {e}", details=str(e))

        return cls.from_dict(data)
