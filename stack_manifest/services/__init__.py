"""AWS service lookups package."""

from .base import BaseServiceClient
from .models import Endpoint, EndpointType, ApiRecord, FunctionUrlCandidate, DomainMapping
from .cache import ResolutionCache, cache_key
from .cloudformation import CloudFormationClient, StsClient
from .apigateway import RestApiClient, HttpApiClient
from .lambda_url import LambdaUrlClient
from .resolver import RemoteResolver

__all__ = [
    'BaseServiceClient',
    'Endpoint',
    'EndpointType',
    'ApiRecord',
    'FunctionUrlCandidate',
    'DomainMapping',
    'ResolutionCache',
    'cache_key',
    'CloudFormationClient',
    'StsClient',
    'RestApiClient',
    'HttpApiClient',
    'LambdaUrlClient',
    'RemoteResolver',
]
