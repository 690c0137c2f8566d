"""
CloudFormation client: stack snapshot, compiled template and logical resources.
"""
import logging
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .base import BaseServiceClient
from ..template.loader import parse_document


logger = logging.getLogger(__name__)


def construct_arn(resource_type: str, physical_id: str, region: str, account_id: str) -> str:
    """Build the ARN of a stack resource from its type and physical id.

    Types without a known ARN layout return the physical id unchanged.
    """
    if resource_type == 'AWS::ApiGatewayV2::Api':
        return f"arn:aws:apigateway:{region}::/apis/{physical_id}"
    if resource_type == 'AWS::ApiGateway::RestApi':
        return f"arn:aws:apigateway:{region}::/restapis/{physical_id}"
    if resource_type == 'AWS::Lambda::Function':
        return f"arn:aws:lambda:{region}:{account_id}:function:{physical_id}"
    if resource_type == 'AWS::DynamoDB::Table':
        return f"arn:aws:dynamodb:{region}:{account_id}:table/{physical_id}"
    if resource_type == 'AWS::S3::Bucket':
        return f"arn:aws:s3:::{physical_id}"
    if resource_type == 'AWS::IAM::Role':
        return f"arn:aws:iam::{account_id}:role/{physical_id}"
    return physical_id


class CloudFormationClient(BaseServiceClient):
    """Read-only access to one region's CloudFormation stacks."""

    @property
    def service_name(self) -> str:
        return 'cloudformation'

    def describe_stack(self, stack_name: str) -> Dict[str, Any]:
        """Describe a stack.

        Args:
            stack_name: Name or id of the stack

        Returns:
            The last stack description returned, or ``{'Outputs': []}`` when
            the stack does not exist

        Raises:
            ResolutionError: If the call fails for another reason
        """
        try:
            response = self.client.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if 'does not exist' in str(e):
                logger.warning(f"Stack {stack_name} does not exist in {self.region}")
                return {'Outputs': []}
            self._handle_aws_error(e, 'describe_stacks', stack_name)
        except BotoCoreError as e:
            self._handle_aws_error(e, 'describe_stacks', stack_name)

        stacks = response.get('Stacks') or []
        if not stacks:
            return {'Outputs': []}
        stack = stacks[-1]
        stack.setdefault('Outputs', [])
        return stack

    def get_template(self, stack_name: str) -> Dict[str, Any]:
        """Fetch and parse the processed template of a stack.

        Raises:
            ResolutionError: If the template cannot be fetched
        """
        try:
            response = self.client.get_template(StackName=stack_name, TemplateStage='Processed')
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_template', stack_name)
        return parse_document(response.get('TemplateBody'))

    def describe_stack_resource(self, stack_name: str, logical_id: str) -> Dict[str, Any]:
        """Describe one logical resource of a stack, adding its ARN.

        Raises:
            ResolutionError: If the resource cannot be described
        """
        try:
            response = self.client.describe_stack_resource(
                StackName=stack_name,
                LogicalResourceId=logical_id,
            )
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'describe_stack_resource', logical_id)

        detail = dict(response.get('StackResourceDetail') or {})
        stack_id = detail.get('StackId') or ''
        account_id = stack_id.split(':')[4] if stack_id.count(':') >= 4 else ''
        detail['arn'] = construct_arn(
            detail.get('ResourceType', ''),
            detail.get('PhysicalResourceId', ''),
            self.region,
            account_id,
        )
        return detail


class StsClient(BaseServiceClient):
    """Caller identity lookups."""

    @property
    def service_name(self) -> str:
        return 'sts'

    def account_id(self) -> Optional[str]:
        """Account id of the current credentials.

        Raises:
            ResolutionError: If the identity cannot be determined
        """
        try:
            return self.client.get_caller_identity().get('Account')
        except (ClientError, BotoCoreError) as e:
            self._handle_aws_error(e, 'get_caller_identity')
