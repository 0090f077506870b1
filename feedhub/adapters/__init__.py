"""Content source adapters."""

from .base import ContentAdapter
from .registry import AdapterRegistry, build_adapter_registry

__all__ = ["ContentAdapter", "AdapterRegistry", "build_adapter_registry"]
