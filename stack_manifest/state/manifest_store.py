"""
Manifest persistence: load the previous document, merge and save atomically.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ..core.exceptions import StateError

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_PATH = Path('.serverless') / 'manifest.json'


class ManifestStore:
    """Reads and writes the stage-keyed manifest file."""

    def __init__(self, path: Optional[Path] = None):
        """Initialize the store.

        Args:
            path: Manifest file. Defaults to .serverless/manifest.json under
                the working directory.
        """
        self.path = Path(path) if path is not None else Path.cwd() / DEFAULT_MANIFEST_PATH

    def load(self) -> Dict[str, Any]:
        """Load the previous manifest document.

        Returns:
            The stored document, or an empty dict if there is none

        Raises:
            StateError: If the file exists but cannot be read or parsed
        """
        if not self.path.exists():
            return {}

        try:
            content = self.path.read_text()
        except OSError as e:
            raise StateError(f"Failed to read manifest {self.path}: {e}")

        if not content.strip():
            return {}

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise StateError(f"Manifest file corrupted: {e}", details=str(self.path))

        if not isinstance(data, dict):
            raise StateError(f"Manifest {self.path} does not contain a JSON object")
        return data

    @staticmethod
    def merge(previous: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow merge: stages in ``current`` replace the same stages in ``previous``."""
        merged = dict(previous or {})
        merged.update(current or {})
        return merged

    def save(self, document: Dict[str, Any]) -> Path:
        """Write the document as indented JSON.

        Returns:
            Path to the saved file

        Raises:
            StateError: If saving fails
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)

            # Write atomically via temp file
            temp_file = self.path.with_suffix('.tmp')
            with open(temp_file, 'w') as f:
                json.dump(document, f, indent=2, default=str)

            temp_file.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StateError(f"Failed to save manifest: {e}")

        logger.info(f"Saved manifest to {self.path}")
        return self.path

    def update(self, document: Dict[str, Any]) -> Dict[str, Any]:
        """Merge ``document`` over the stored one and save the result."""
        merged = self.merge(self.load(), document)
        self.save(merged)
        return merged
