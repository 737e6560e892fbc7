"""
Artifact storage boundary.
"""

from candidate_pipeline.storage.client import StorageClient, build_artifact_path, sanitize_filename

__all__ = [
    "StorageClient",
    "build_artifact_path",
    "sanitize_filename",
]
