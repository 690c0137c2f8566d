"""
URL indices of the manifest: by path, by function and by method.
"""
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core.strings import format_path, format_url
from ..services.models import Endpoint


HTTP_EVENT = 'http'
HTTP_API_EVENT = 'httpApi'
ROUTE_EVENTS = (HTTP_EVENT, HTTP_API_EVENT)

CATCH_ALL_ROUTE = '*'


def parse_route_event(kind: str, value: Any) -> Optional[Tuple[str, str]]:
    """Extract ``(method, path)`` from an ``http`` or ``httpApi`` event.

    Accepts the mapping form ``{path, method}`` and the string forms
    ``"METHOD /path"`` and ``"*"`` (catch-all, HTTP APIs only).
    """
    if isinstance(value, dict):
        return str(value.get('method') or 'ANY'), str(value.get('path') or '')
    if isinstance(value, str):
        value = value.strip()
        if value == CATCH_ALL_ROUTE:
            return CATCH_ALL_ROUTE, CATCH_ALL_ROUTE
        method, _, path = value.partition(' ')
        if path:
            return method, path.strip()
    return None


def _merge_methods(index: Dict[str, Any], key: str, url: str, method: str) -> None:
    existing = index.get(key) or {}
    methods = [method] + list(existing.get('methods') or [])
    index[key] = {'url': url, 'methods': methods}


def merge_by_path(by_path: Dict[str, Any], path: str, url: str, method: str) -> None:
    """Record ``method`` for a path; a recurring path gets the new method first."""
    _merge_methods(by_path, path, url, method)


def merge_by_function(by_function: Dict[str, Any], function_name: str, url: str, method: str) -> None:
    """Same rule as by path, keyed by function name."""
    _merge_methods(by_function, function_name, url, method)


def merge_by_method(by_method: Dict[str, List[str]], method: str, url: str) -> None:
    """Append ``url`` to the list of a method."""
    by_method.setdefault(method, []).append(url)


class UrlIndexBuilder:
    """Accumulates the byPath, byFunction and byMethod indices."""

    def __init__(self):
        self.by_path: Dict[str, Any] = {}
        self.by_function: Dict[str, Any] = {}
        self.by_method: Dict[str, List[str]] = {}
        # Trigger paths of deployed and of undeployed functions
        self.route_paths: Set[str] = set()
        self.excluded_paths: Set[str] = set()

    def add_route(self, function_name: str, base_url: str, path: str, method: str) -> str:
        """Add one function trigger to all three indices.

        Returns:
            The composed URL of the route
        """
        formatted_path = format_path(path)
        url = f"{format_url(base_url or '')}{formatted_path}"
        method = method.upper()

        self.route_paths.add(formatted_path)
        merge_by_path(self.by_path, formatted_path, url, method)
        merge_by_function(self.by_function, function_name, url, method)
        merge_by_method(self.by_method, method, url)
        return url

    def exclude_route(self, path: str) -> None:
        """Keep template endpoints on ``path`` out of the indices."""
        self.excluded_paths.add(format_path(path))

    def fold_endpoint(self, endpoint: Endpoint) -> bool:
        """Fold a resolved template endpoint into byPath and byMethod.

        Endpoints without a URL are left out, as are endpoints on a path
        owned by a function trigger. A later endpoint on an already folded
        path replaces it in byPath; its methods are still added to byMethod.

        Returns:
            True if the endpoint was folded in
        """
        if not endpoint.url:
            return False

        key = format_path(endpoint.path) if endpoint.path else endpoint.url
        if key in self.route_paths or key in self.excluded_paths:
            return False

        self.by_path[key] = endpoint.to_dict()
        for method in endpoint.methods:
            http_method = method.get('httpMethod')
            if http_method:
                merge_by_method(self.by_method, str(http_method).upper(), endpoint.url)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'byPath': self.by_path,
            'byFunction': self.by_function,
            'byMethod': self.by_method,
        }
