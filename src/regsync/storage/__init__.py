"""Version text retrieval collaborators."""

from .versions import InMemoryVersionStore, MetadataVersionStore, VersionStore, load_text, normalize_extracted_text

__all__ = [
    "InMemoryVersionStore",
    "MetadataVersionStore",
    "VersionStore",
    "load_text",
    "normalize_extracted_text",
]
