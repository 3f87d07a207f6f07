"""
Model registry: maps a public model identifier to its adapter instance.

Adding a backend means registering another conforming adapter, not
extending a dispatch conditional.
"""

import logging
from typing import Iterator, Optional

import httpx

from core.config import Config
from core.errors import ValidationError

from ..models import MediaKind
from .base import ProviderAdapter
from .fal import FalAdapter
from .kie import KieAdapter
from .ltx import LtxAdapter
from .seedance import SEEDANCE_PRO, SeedanceAdapter
from .wan import WanAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Registry of adapters keyed by model id.

    Usage:
        registry = AdapterRegistry()
        registry.register(WanAdapter(config.api.dashscope, http, "wan"))
        adapter = registry.get("wan")
    """

    def __init__(self):
        self._adapters: dict[str, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter, model_id: Optional[str] = None) -> ProviderAdapter:
        model_id = model_id or adapter.model_id
        if model_id in self._adapters:
            logger.info(f"Replacing adapter for model {model_id}")
        self._adapters[model_id] = adapter
        return adapter

    def get(self, model_id: str) -> ProviderAdapter:
        """Adapter for a model id. Unknown models are a 400."""
        adapter = self._adapters.get(model_id)
        if adapter is None:
            raise ValidationError(
                f"Generation not supported for model: {model_id}. "
                f"Available models: {', '.join(sorted(self._adapters)) or 'none'}",
                error_code="UNKNOWN_MODEL",
            )
        return adapter

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._adapters))

    def __len__(self) -> int:
        return len(self._adapters)

    def describe(self) -> list[dict]:
        """Model catalog for the API."""
        return [
            {
                "model": model_id,
                "provider": adapter.provider,
                "media_kind": adapter.media_kind.value,
                "configured": adapter.config.configured,
                "min_duration": adapter.duration_rule.min_seconds,
                "max_duration": adapter.duration_rule.max_seconds,
                "audio": adapter.supports_audio,
            }
            for model_id, adapter in sorted(self._adapters.items())
        ]


def build_default_registry(config: Config, http_client: httpx.AsyncClient) -> AdapterRegistry:
    """Register every built-in model against the given configuration."""
    api = config.api
    download = config.download
    registry = AdapterRegistry()

    registry.register(WanAdapter(api.dashscope, http_client, "wan", download))

    registry.register(SeedanceAdapter(api.byteplus, http_client, "seedance", download))
    registry.register(SeedanceAdapter(
        api.byteplus, http_client, "seedance-pro", download,
        t2v_model=SEEDANCE_PRO,
        i2v_model=SEEDANCE_PRO,
    ))

    registry.register(KieAdapter(
        api.kie, http_client, "kling", download,
        market_model="kling-2.6/text-to-video",
        i2v_market_model="kling-2.6/image-to-video",
    ))
    registry.register(KieAdapter(
        api.kie, http_client, "veo", download,
        market_model="veo3-fast/text-to-video",
    ))
    registry.register(KieAdapter(
        api.kie, http_client, "flux", download,
        market_model="flux-2/text-to-image",
        media_kind=MediaKind.IMAGE,
    ))

    registry.register(FalAdapter(api.fal, http_client, "fal-kling", download))

    registry.register(LtxAdapter(api.ltx, http_client, "ltx-2", download))

    return registry
