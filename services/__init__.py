"""
Generation Services

Services for the generation job pipeline:
- generation: Provider adapters, poll loop and the unified client
- streaming: SSE progress streaming and the HTTP job API
"""

from .generation import GenerationClient, GenerationRequest, GenerationResult

__all__ = [
    "GenerationClient",
    "GenerationRequest",
    "GenerationResult",
]
