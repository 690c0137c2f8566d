"""
Core exception classes for Stack Manifest.
"""


class ManifestError(Exception):
    """Base exception for all Stack Manifest errors."""

    def __init__(self, message: str, details: str = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ConfigurationError(ManifestError):
    """Raised when the service definition or CLI options are invalid."""
    pass


class TemplateResolutionError(ManifestError):
    """Raised when a template intrinsic cannot be resolved.

    This is fatal for the run: the template uses a CloudFormation function
    shape the engine does not understand.
    """

    def __init__(self, message: str, logical_id: str = None, details: str = None):
        super().__init__(message, details=details)
        self.logical_id = logical_id


class ResolutionError(ManifestError):
    """Raised when a live AWS lookup fails.

    Callers treat this as a soft failure and mark the resource unresolved.
    """
    pass


class StateError(ManifestError):
    """Raised when reading or writing the manifest file fails."""
    pass
