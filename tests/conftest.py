"""
Pytest configuration and shared fixtures for Stack Manifest tests.
"""

import os
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from stack_manifest.core.config import ServiceDefinition


ACCOUNT_ID = "123456789012"
REGION = "us-east-1"
STACK_NAME = "orders-dev"
STACK_ID = f"arn:aws:cloudformation:{REGION}:{ACCOUNT_ID}:stack/{STACK_NAME}/0a1b2c3d"


@pytest.fixture(scope="session", autouse=True)
def aws_credentials():
    """Fake credentials so boto3 never reaches real AWS."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = REGION


@pytest.fixture
def mock_aws_services():
    """Mock all AWS services used by the application."""
    with mock_aws():
        yield


@pytest.fixture
def session(mock_aws_services):
    return boto3.Session(region_name=REGION)


@pytest.fixture
def service_config():
    """Raw service definition as it appears in serverless.yml."""
    return {
        "service": "orders",
        "provider": {"name": "aws", "runtime": "python3.12", "stage": "dev", "region": REGION},
        "functions": {
            "listOrders": {
                "handler": "handler.list_orders",
                "description": "List orders",
                "events": [{"http": {"path": "orders", "method": "get"}}],
            },
            "createOrder": {
                "handler": "handler.create_order",
                "runtime": "python3.11",
                "events": [
                    {"http": {"path": "orders", "method": "post"}},
                    {"httpApi": "POST /v2/orders"},
                    {"http": {"path": "orders/{id}", "method": "put"}},
                ],
            },
            "draft": {
                "handler": "handler.draft",
                "events": [{"http": {"path": "draft", "method": "get"}}],
            },
        },
    }


@pytest.fixture
def service(service_config):
    return ServiceDefinition.from_dict(service_config)


@pytest.fixture
def rest_template():
    """Compiled template with a REST API, two resources and an OPTIONS method."""
    return {
        "Resources": {
            "ApiGatewayRestApi": {"Type": "AWS::ApiGateway::RestApi", "Properties": {"Name": STACK_NAME}},
            "ApiGatewayResourceOrders": {
                "Type": "AWS::ApiGateway::Resource",
                "Properties": {
                    "ParentId": {"Fn::GetAtt": ["ApiGatewayRestApi", "RootResourceId"]},
                    "PathPart": "orders",
                    "RestApiId": {"Ref": "ApiGatewayRestApi"},
                },
            },
            "ApiGatewayResourceOrdersIdVar": {
                "Type": "AWS::ApiGateway::Resource",
                "Properties": {
                    "ParentId": {"Ref": "ApiGatewayResourceOrders"},
                    "PathPart": "{id}",
                    "RestApiId": {"Ref": "ApiGatewayRestApi"},
                },
            },
            "ApiGatewayMethodOrdersGet": {
                "Type": "AWS::ApiGateway::Method",
                "Properties": {
                    "HttpMethod": "GET",
                    "AuthorizationType": "NONE",
                    "ResourceId": {"Ref": "ApiGatewayResourceOrders"},
                    "RestApiId": {"Ref": "ApiGatewayRestApi"},
                    "Integration": {"Type": "AWS_PROXY", "IntegrationHttpMethod": "POST"},
                },
            },
            "ApiGatewayMethodOrdersOptions": {
                "Type": "AWS::ApiGateway::Method",
                "Properties": {
                    "HttpMethod": "OPTIONS",
                    "AuthorizationType": "NONE",
                    "ResourceId": {"Ref": "ApiGatewayResourceOrders"},
                    "RestApiId": {"Ref": "ApiGatewayRestApi"},
                },
            },
            "ApiGatewayMethodOrdersIdVarPut": {
                "Type": "AWS::ApiGateway::Method",
                "Properties": {
                    "HttpMethod": "PUT",
                    "AuthorizationType": "AWS_IAM",
                    "ApiKeyRequired": True,
                    "ResourceId": "ApiGatewayResourceOrdersIdVar",
                    "RestApiId": {"Ref": "ApiGatewayRestApi"},
                },
            },
        }
    }


@pytest.fixture
def stack_outputs():
    return [
        {
            "OutputKey": "ListOrdersLambdaFunctionQualifiedArn",
            "OutputValue": f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:orders-dev-listOrders:3",
        },
        {
            "OutputKey": "CreateOrderLambdaFunctionQualifiedArn",
            "OutputValue": f"arn:aws:lambda:{REGION}:{ACCOUNT_ID}:function:orders-dev-createOrder:7",
        },
        {
            "OutputKey": "ServiceEndpoint",
            "OutputValue": f"https://abc123.execute-api.{REGION}.amazonaws.com/dev",
        },
        {
            "OutputKey": "HttpApiUrl",
            "OutputValue": f"https://xyz789.execute-api.{REGION}.amazonaws.com",
        },
    ]


@pytest.fixture
def stack(stack_outputs):
    """A DescribeStacks entry."""
    return {
        "StackId": STACK_ID,
        "StackName": STACK_NAME,
        "StackStatus": "UPDATE_COMPLETE",
        "Description": "The AWS CloudFormation template for this Serverless application",
        "Tags": [{"Key": "team", "Value": "orders"}],
        "EnableTerminationProtection": False,
        "Outputs": stack_outputs,
    }


@pytest.fixture
def mock_resolver():
    """Resolver double whose batches run sequentially."""
    resolver = Mock()
    resolver.run_batch.side_effect = lambda items, operation: [(k, operation(v)) for k, v in items]
    return resolver
