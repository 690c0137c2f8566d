"""Tests for custom domain overrides of resolved APIs."""

from unittest.mock import Mock

from stack_manifest.services.domains import DomainOverrideResolver, replace_base_url
from stack_manifest.services.models import ApiRecord, DomainMapping, EndpointType

from conftest import REGION


REST_URL = f"https://abc123.execute-api.{REGION}.amazonaws.com/dev"


def _records():
    return {
        "abc123": ApiRecord(id="abc123", logical_id="ApiGatewayRestApi", type=EndpointType.REST_API,
                            base_url=REST_URL, region=REGION),
        "xyz789": ApiRecord(id="xyz789", logical_id="HttpApi", type=EndpointType.HTTP_API,
                            base_url=f"https://xyz789.execute-api.{REGION}.amazonaws.com", region=REGION),
        "fnurl": ApiRecord(id="fnurl", logical_id="ApiLambdaFunction", type=EndpointType.FUNCTION_URL,
                           base_url="https://fnurl.lambda-url.us-east-1.on.aws/", region=REGION),
        "Unresolved": ApiRecord(id=None, logical_id="Unresolved", type=EndpointType.REST_API,
                                base_url=None, region=REGION),
    }


def test_replace_base_url():
    assert replace_base_url("api.example.com") == "https://api.example.com/"


def test_apply_domain_overrides(mock_resolver):
    mock_resolver.resolve_domain.side_effect = lambda api_type, api_id, region: (
        DomainMapping(True, "api.example.com") if api_id == "abc123" else DomainMapping(False)
    )
    mock_resolver.resolve_domains.side_effect = lambda apis: mock_resolver.run_batch(
        apis, lambda api: mock_resolver.resolve_domain(*api))

    records = DomainOverrideResolver(mock_resolver).apply_domain_overrides(_records())

    rest = records["abc123"]
    assert rest.base_url == "https://api.example.com/"
    assert rest.raw_base_url == REST_URL
    assert rest.domain_name == "api.example.com"
    assert rest.to_dict()["rawBaseUrl"] == REST_URL

    assert records["xyz789"].raw_base_url is None
    assert records["xyz789"].domain_name is None

    looked_up = [call.args[1] for call in mock_resolver.resolve_domain.call_args_list]
    assert looked_up == ["abc123", "xyz789"]


def test_lookup_marks_function_urls_unmapped():
    resolver = Mock()
    resolver.resolve_domains.return_value = [("abc123", None), ("xyz789", DomainMapping(False))]

    mappings = DomainOverrideResolver(resolver).lookup(list(_records().values()))

    assert mappings["fnurl"] == DomainMapping(has_domain_mapping=False)
    assert mappings["Unresolved"] == DomainMapping(has_domain_mapping=False)
    assert mappings["abc123"] == DomainMapping(has_domain_mapping=False)
