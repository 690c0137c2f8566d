"""
CloudFormation intrinsic values.

A template property that points at another resource can be a plain string,
a ``{"Ref": "X"}`` object or a ``{"Fn::GetAtt": ["X", "Attr"]}`` object.
Each shape is parsed into an :class:`Intrinsic` and resolved with a single
function per kind.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..core.exceptions import TemplateResolutionError


class IntrinsicKind(str, Enum):
    LITERAL = 'Literal'
    REF = 'Ref'
    GET_ATT = 'GetAtt'


@dataclass(frozen=True)
class Intrinsic:
    """A parsed reference value."""
    kind: IntrinsicKind
    value: str                        # literal string or referenced logical id
    attribute: Optional[str] = None   # only set for GetAtt


def parse_intrinsic(value: Any) -> Intrinsic:
    """Parse a raw property value into an :class:`Intrinsic`.

    Args:
        value: Raw property value from the template

    Returns:
        Parsed intrinsic

    Raises:
        TemplateResolutionError: If the value is not one of the recognised shapes
    """
    if isinstance(value, str):
        return Intrinsic(IntrinsicKind.LITERAL, value)

    if isinstance(value, dict):
        ref = value.get('Ref')
        if isinstance(ref, str) and ref:
            return Intrinsic(IntrinsicKind.REF, ref)

        get_att = value.get('Fn::GetAtt')
        if (
            isinstance(get_att, (list, tuple))
            and len(get_att) == 2
            and all(isinstance(part, str) for part in get_att)
        ):
            return Intrinsic(IntrinsicKind.GET_ATT, get_att[0], attribute=get_att[1])

    raise TemplateResolutionError(f"Unsupported intrinsic value: {value!r}")


def _resolve_literal(intrinsic: Intrinsic, attribute: str) -> str:
    return intrinsic.value


def _resolve_ref(intrinsic: Intrinsic, attribute: str) -> str:
    return intrinsic.value


def _resolve_get_att(intrinsic: Intrinsic, attribute: str) -> str:
    if intrinsic.attribute != attribute:
        raise TemplateResolutionError(
            f"Fn::GetAtt on {intrinsic.value} must target '{attribute}', got '{intrinsic.attribute}'",
            logical_id=intrinsic.value
        )
    return intrinsic.value


_RESOLVERS = {
    IntrinsicKind.LITERAL: _resolve_literal,
    IntrinsicKind.REF: _resolve_ref,
    IntrinsicKind.GET_ATT: _resolve_get_att,
}


def resolve_id(value: Any, attribute: str = 'Id', logical_id: Optional[str] = None) -> str:
    """Resolve an API id property (``RestApiId``, ``ApiId``) to a logical id.

    Args:
        value: Raw property value
        attribute: Attribute a GetAtt must target
        logical_id: Resource being processed, for error context

    Raises:
        TemplateResolutionError: If the value cannot be resolved
    """
    try:
        intrinsic = parse_intrinsic(value)
        return _RESOLVERS[intrinsic.kind](intrinsic, attribute)
    except TemplateResolutionError as e:
        resource_context = f" on {logical_id}" if logical_id else ""
        raise TemplateResolutionError(
            f"Could not resolve {attribute} reference{resource_context}: {e.message}",
            logical_id=logical_id or e.logical_id,
            details=str(value)
        )


def reference_target(value: Any) -> Optional[str]:
    """Return the logical id a ``Ref``/``Fn::GetAtt`` points at, or None.

    Used where an unrecognised shape simply ends a lookup (parent chains,
    method to resource matching) instead of failing the run.
    """
    try:
        intrinsic = parse_intrinsic(value)
    except TemplateResolutionError:
        return None
    if intrinsic.kind is IntrinsicKind.LITERAL:
        return None
    return intrinsic.value
