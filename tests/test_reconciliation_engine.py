"""End-to-end tests for the reconciliation engine with stubbed AWS clients."""

import logging
from unittest.mock import Mock

import pytest

from stack_manifest.core.config import ServiceDefinition
from stack_manifest.core.exceptions import ConfigurationError, ResolutionError, TemplateResolutionError
from stack_manifest.services.orchestrator import (
    ReconciliationEngine, endpoint_url, function_url_id, load_post_process_hook
)
from stack_manifest.services.resolver import RemoteResolver

from conftest import ACCOUNT_ID, REGION, STACK_NAME


REST_BASE = f"https://abc123.execute-api.{REGION}.amazonaws.com/dev"
FUNCTION_URL = "https://fnurl123.lambda-url.us-east-1.on.aws/"
FUNCTION_ARN = f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:orders-dev-api"

PHYSICAL_RESOURCES = {
    "ApiGatewayRestApi": {
        "PhysicalResourceId": "abc123",
        "ResourceType": "AWS::ApiGateway::RestApi",
        "arn": f"arn:aws:apigateway:{REGION}::/restapis/abc123",
    },
    "ApiLambdaFunction": {
        "PhysicalResourceId": "orders-dev-api",
        "ResourceType": "AWS::Lambda::Function",
        "arn": FUNCTION_ARN,
    },
}


def _describe_stack_resource(stack_name, logical_id):
    if logical_id not in PHYSICAL_RESOURCES:
        raise ResolutionError(f"Resource {logical_id} does not exist for stack {stack_name}")
    return dict(PHYSICAL_RESOURCES[logical_id], LogicalResourceId=logical_id)


@pytest.fixture
def clients(stack, rest_template):
    cloudformation = Mock()
    cloudformation.describe_stack_resource.side_effect = _describe_stack_resource
    cloudformation.describe_stack.return_value = stack
    cloudformation.get_template.return_value = rest_template

    rest = Mock()
    rest.get_api_details.return_value = {"id": "abc123", "url": REST_BASE}
    rest.get_domain_names.return_value = []

    lambda_client = Mock()
    lambda_client.get_function_url_config.return_value = None

    sts = Mock()
    sts.account_id.return_value = "111111111111"

    return {"cloudformation": cloudformation, "restApi": rest, "lambda": lambda_client, "sts": sts}


@pytest.fixture
def engine(clients):
    resolver = RemoteResolver(Mock(), stage="dev", max_workers=4)
    for kind, client in clients.items():
        resolver._client_cache[(kind, REGION)] = client
    return ReconciliationEngine(Mock(), stage="dev", resolver=resolver)


@pytest.fixture
def url_template(rest_template):
    rest_template["Resources"].update({
        "ApiLambdaFunction": {
            "Type": "AWS::Lambda::Function",
            "Properties": {"FunctionName": "orders-dev-api"},
        },
        "ApiLambdaFunctionUrl": {
            "Type": "AWS::Lambda::Url",
            "Properties": {
                "TargetFunctionArn": {"Fn::GetAtt": ["ApiLambdaFunction", "Arn"]},
                "Cors": {"AllowMethods": ["GET"]},
            },
        },
    })
    return rest_template


class TestHelpers:
    """Small pure helpers."""

    def test_function_url_id(self):
        assert function_url_id(FUNCTION_URL) == "fnurl123"
        assert function_url_id(None) is None
        assert function_url_id("not a url") is None

    def test_endpoint_url(self):
        assert endpoint_url(REST_BASE, "/orders") == f"{REST_BASE}/orders"
        assert endpoint_url(REST_BASE + "/", "orders") == f"{REST_BASE}/orders"
        assert endpoint_url(REST_BASE, None) == REST_BASE
        assert endpoint_url(None, "/orders") == ""


class TestBuild:
    """Phases of a reconciliation run."""

    def test_rest_endpoints_resolve(self, engine, clients, service, stack, rest_template):
        manifest = engine.build(service, stack, rest_template, REGION)

        endpoints = manifest["endpoints"]
        assert set(endpoints) == {"ApiGatewayResourceOrders", "ApiGatewayResourceOrdersIdVar"}
        assert endpoints["ApiGatewayResourceOrders"]["url"] == f"{REST_BASE}/orders"
        assert endpoints["ApiGatewayResourceOrdersIdVar"]["url"] == f"{REST_BASE}/orders/{{id}}"

        assert manifest["apis"] == {"abc123": {
            "id": "abc123",
            "logicalId": "ApiGatewayRestApi",
            "type": "restApi",
            "baseUrl": REST_BASE,
            "region": REGION,
            "endpointCount": 2,
            "isDeployed": True,
        }}
        assert manifest["urls"]["abc123"] == REST_BASE
        assert manifest["unknownResources"] == []
        assert clients["restApi"].get_api_details.call_count == 1

    def test_unresolved_api_degrades(self, engine, clients, service, stack, rest_template):
        clients["cloudformation"].describe_stack_resource.side_effect = ResolutionError("gone")

        manifest = engine.build(service, stack, rest_template, REGION)

        assert manifest["apis"]["ApiGatewayRestApi"]["isDeployed"] is False
        assert manifest["endpoints"]["ApiGatewayResourceOrders"]["url"] == ""
        assert manifest["unknownResources"] == [{"logicalId": "ApiGatewayRestApi", "type": "restApi"}]
        assert "listOrders" in manifest["functions"]

    def test_domain_override(self, engine, clients, service, stack, rest_template):
        rest = clients["restApi"]
        rest.get_domain_names.return_value = ["api.example.com"]
        rest.get_mappings.return_value = [{"restApiId": "abc123"}]
        rest.mapping_targets.side_effect = lambda mapping, api_id: mapping["restApiId"] == api_id

        api = engine.build(service, stack, rest_template, REGION)["apis"]["abc123"]

        assert api["baseUrl"] == "https://api.example.com/"
        assert api["rawBaseUrl"] == REST_BASE
        assert api["domainName"] == "api.example.com"

    def test_function_url_from_outputs(self, engine, clients, service, stack, url_template):
        stack["Outputs"].append({"OutputKey": "ApiLambdaFunctionUrl", "OutputValue": FUNCTION_URL})

        manifest = engine.build(service, stack, url_template, REGION)

        endpoint = manifest["endpoints"]["ApiLambdaFunction"]
        assert endpoint["type"] == "functionUrl"
        assert endpoint["url"] == FUNCTION_URL
        assert endpoint["methods"] == [{"httpMethod": "GET"}]
        assert manifest["apis"]["fnurl123"]["type"] == "functionUrl"
        assert manifest["urls"]["byPath"][FUNCTION_URL]["resourceName"] == "ApiLambdaFunction"
        clients["lambda"].get_function_url_config.assert_not_called()

    def test_function_url_fetched_when_missing_from_outputs(self, engine, clients, service, stack,
                                                            url_template):
        clients["lambda"].get_function_url_config.return_value = {"url": FUNCTION_URL, "arn": FUNCTION_ARN}

        manifest = engine.build(service, stack, url_template, REGION)

        assert manifest["endpoints"]["ApiLambdaFunction"]["url"] == FUNCTION_URL
        clients["lambda"].get_function_url_config.assert_called_once_with("orders-dev-api")

    def test_function_url_with_missing_function_is_unknown(self, engine, service, stack, url_template):
        url_template["Resources"]["ApiLambdaFunction"]["Properties"]["FunctionName"] = "orders-dev-api"
        url_template["Resources"]["GhostLambdaFunction"] = {
            "Type": "AWS::Lambda::Function", "Properties": {"FunctionName": "orders-dev-ghost"},
        }
        url_template["Resources"]["GhostLambdaFunctionUrl"] = {
            "Type": "AWS::Lambda::Url",
            "Properties": {"TargetFunctionArn": {"Fn::GetAtt": ["GhostLambdaFunction", "Arn"]}},
        }

        manifest = engine.build(service, stack, url_template, REGION)

        assert {"logicalId": "GhostLambdaFunction", "type": "AWS::Lambda::Function"} in manifest["unknownResources"]
        assert "GhostLambdaFunction" not in manifest["endpoints"]

    def test_unsupported_intrinsic_is_fatal(self, engine, service, stack):
        template = {"Resources": {"Orders": {
            "Type": "AWS::ApiGateway::Resource",
            "Properties": {"PathPart": "orders", "RestApiId": {"Fn::ImportValue": "api"}},
        }}}
        with pytest.raises(TemplateResolutionError):
            engine.build(service, stack, template, REGION)


class TestPostProcess:
    """Post-processing hook."""

    def test_none_return_keeps_manifest(self, engine, service, stack, rest_template):
        def hook(manifest):
            manifest["extra"] = True

        engine.post_process = hook
        assert engine.build(service, stack, rest_template, REGION)["extra"] is True

    def test_return_value_replaces_manifest(self, engine, service, stack, rest_template):
        engine.post_process = lambda manifest: {"replaced": sorted(manifest["functions"])}
        assert engine.build(service, stack, rest_template, REGION) == {
            "replaced": ["createOrder", "listOrders"],
        }

    def test_logging_restored_after_hook_error(self, engine, service, stack, rest_template):
        def hook(manifest):
            assert logging.root.manager.disable == logging.CRITICAL
            raise RuntimeError("hook failed")

        engine.post_process = hook
        engine.silence_post_process = True
        previous = logging.root.manager.disable

        with pytest.raises(RuntimeError, match="hook failed"):
            engine.build(service, stack, rest_template, REGION)
        assert logging.root.manager.disable == previous

    def test_load_hook_from_file(self, tmp_path):
        hook_file = tmp_path / "hooks.py"
        hook_file.write_text("def tag(manifest):\n    manifest['tagged'] = True\n")

        hook = load_post_process_hook(f"{hook_file}:tag")
        manifest = {}
        hook(manifest)
        assert manifest == {"tagged": True}

    def test_load_hook_from_module(self):
        assert load_post_process_hook("json:dumps") is __import__("json").dumps

    @pytest.mark.parametrize("reference", ["no_colon", "json:missing", "not_a_module_xyz:f", "json:__name__"])
    def test_bad_hook_reference(self, reference):
        with pytest.raises(ConfigurationError):
            load_post_process_hook(reference)


class TestRun:
    """Fetching the stack and template."""

    def test_run_returns_stage_keyed_manifest(self, engine, clients, service):
        document = engine.run(service)

        assert list(document) == ["dev"]
        clients["cloudformation"].describe_stack.assert_called_once_with(STACK_NAME)
        clients["cloudformation"].get_template.assert_called_once_with(STACK_NAME)
        assert document["dev"]["metadata"]["accountId"] == "111111111111"
        assert set(document["dev"]["endpoints"]) == {"ApiGatewayResourceOrders", "ApiGatewayResourceOrdersIdVar"}

    def test_explicit_account_skips_sts(self, engine, clients, service):
        document = engine.run(service, account_id="222222222222")

        assert document["dev"]["metadata"]["accountId"] == "222222222222"
        clients["sts"].account_id.assert_not_called()

    def test_given_template_is_not_fetched(self, engine, clients, service):
        engine.run(service, template={"Resources": {}})
        clients["cloudformation"].get_template.assert_not_called()

    def test_missing_stack_skips_template(self, engine, clients, service):
        clients["cloudformation"].describe_stack.return_value = {"Outputs": []}

        document = engine.run(service)

        clients["cloudformation"].get_template.assert_not_called()
        assert document["dev"]["functions"] == {}
        assert document["dev"]["endpoints"] == {}
