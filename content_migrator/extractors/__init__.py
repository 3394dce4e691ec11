"""Extractors that read metadata and content from the source instance."""

from .base import BaseExtractor, ExtractionResult
from .platform_extractor import CollectionItemExtractor, PlatformExtractor

__all__ = [
    "BaseExtractor",
    "ExtractionResult",
    "CollectionItemExtractor",
    "PlatformExtractor",
]
