"""Manifest assembly: URL indices and the final document."""
