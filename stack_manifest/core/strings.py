"""String helpers for ARNs, URLs and naming conventions."""

from typing import Optional
from urllib.parse import quote


def upper_case_first(value: str) -> str:
    return value[:1].upper() + value[1:]


def lower_case_first(value: str) -> str:
    return value[:1].lower() + value[1:]


def arn_segment(arn: Optional[str], index: int) -> Optional[str]:
    """Return the ``index``-th colon separated segment of an ARN, if present."""
    if not isinstance(arn, str) or not arn.startswith('arn:'):
        return None
    parts = arn.split(':')
    if len(parts) <= index:
        return None
    return parts[index]


def account_id_from_arn(arn: Optional[str]) -> Optional[str]:
    return arn_segment(arn, 4)


def function_name_from_arn(arn: Optional[str]) -> Optional[str]:
    """Function name of a Lambda ARN, None for anything else."""
    if not isinstance(arn, str) or not arn.startswith('arn:aws:lambda:'):
        return None
    return arn_segment(arn, 6)


def format_url(url: str) -> str:
    """Strip one trailing slash."""
    return url[:-1] if url.endswith('/') else url


def format_path(path: str) -> str:
    """Ensure exactly one leading slash."""
    return '/' + path[1:] if path.startswith('/') else '/' + path


def cloudformation_console_url(region: Optional[str], stack_id: Optional[str]) -> str:
    """AWS console URL showing the resources of a stack."""
    if not region or not stack_id:
        return ''
    return (
        f"https://{region}.console.aws.amazon.com/cloudformation/home?region={region}"
        f"#/stacks/resources?filteringText=&filteringStatus=active&viewNested=true"
        f"&stackId={quote(stack_id, safe='')}"
    )
