"""
Ordered object sources.

- OrderedMetadataSource: forward-only stream over one database catalog
- ManifestSource: sorted, deduplicated manifest entries
- oracle: catalog listing and definition fetch functions
"""

from .base import OrderedSource
from .manifest import ManifestSource, deduplicate_manifest
from .metadata import CatalogLister, OrderedMetadataSource, SourceOrderError

__all__ = [
    "OrderedSource",
    "OrderedMetadataSource",
    "ManifestSource",
    "CatalogLister",
    "SourceOrderError",
    "deduplicate_manifest",
]
