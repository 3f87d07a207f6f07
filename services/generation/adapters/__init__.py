"""
Provider adapters.

One conforming implementation of ProviderAdapter per backend, looked up
by model id through AdapterRegistry.
"""

from .base import ProviderAdapter
from .fal import FalAdapter
from .kie import KieAdapter
from .ltx import LtxAdapter
from .registry import AdapterRegistry, build_default_registry
from .seedance import SeedanceAdapter
from .wan import WanAdapter

__all__ = [
    "ProviderAdapter",
    "AdapterRegistry",
    "build_default_registry",
    "WanAdapter",
    "SeedanceAdapter",
    "KieAdapter",
    "FalAdapter",
    "LtxAdapter",
]
