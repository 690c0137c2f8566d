"""
Stack Manifest - reconcile a serverless service with its deployed stack.

Reads a service definition, the CloudFormation stack it was deployed as and
the live API Gateway and Lambda resources behind it, and writes one manifest
describing what is actually running and how to reach it.
"""

__version__ = "1.0.0"

from stack_manifest.core.exceptions import ManifestError

__all__ = ["ManifestError"]
