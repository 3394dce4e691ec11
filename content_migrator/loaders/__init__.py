"""Loaders that write items, files, flows and access control into the target."""

from .base import BaseLoader, LoadResult
from .item_loader import ItemLoader
from .flow_loader import FlowLoader
from .file_loader import FileLoader
from .access_loader import AccessControlLoader

__all__ = [
    "BaseLoader",
    "LoadResult",
    "ItemLoader",
    "FlowLoader",
    "FileLoader",
    "AccessControlLoader",
]
