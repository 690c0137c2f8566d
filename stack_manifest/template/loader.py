"""
Loading of CloudFormation templates and serverless service files.

Templates come back from ``GetTemplate`` either already parsed (JSON bodies)
or as raw YAML text that uses the short-form intrinsic tags (``!Ref``,
``!GetAtt``, ``!Sub`` ...). Those tags are expanded into their long form so
the rest of the engine only ever sees ``{"Ref": ...}`` and
``{"Fn::GetAtt": [...]}`` shapes.
"""
import json
from pathlib import Path
from typing import Any, Dict, Union

import yaml


class CloudFormationLoader(yaml.SafeLoader):
    """SafeLoader that understands CloudFormation short-form tags."""
    pass


def _intrinsic_constructor(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        value = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    elif isinstance(node, yaml.MappingNode):
        value = loader.construct_mapping(node, deep=True)
    else:
        raise yaml.constructor.ConstructorError(
            None, None, f"unexpected node type {node.__class__} for tag !{tag_suffix}", node.start_mark
        )

    if tag_suffix == 'Ref':
        return {'Ref': value}
    if tag_suffix == 'Condition':
        return {'Condition': value}
    if tag_suffix == 'GetAtt' and isinstance(value, str):
        # !GetAtt Resource.Attribute
        logical_id, _, attribute = value.partition('.')
        return {'Fn::GetAtt': [logical_id, attribute]}
    return {f'Fn::{tag_suffix}': value}


CloudFormationLoader.add_multi_constructor('!', _intrinsic_constructor)


def parse_document(body: Union[str, bytes, Dict[str, Any], None]) -> Dict[str, Any]:
    """Parse a JSON or YAML document body into a dictionary.

    Args:
        body: Raw template/service text, or an already parsed mapping

    Returns:
        Parsed document (empty dict for empty input)

    Raises:
        ValueError: If the body is not a mapping once parsed
    """
    if body is None:
        return {}
    if isinstance(body, dict):
        return body
    if isinstance(body, bytes):
        body = body.decode('utf-8')
    if not body.strip():
        return {}

    try:
        document = json.loads(body)
    except json.JSONDecodeError:
        document = yaml.load(body, Loader=CloudFormationLoader)

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"Expected a mapping at document root, got {type(document).__name__}")
    return document


def load_document(path: Union[str, Path]) -> Dict[str, Any]:
    """Read and parse a JSON or YAML file."""
    return parse_document(Path(path).read_text())
