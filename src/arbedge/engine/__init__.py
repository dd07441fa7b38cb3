"""Engine integration: HTTP client and response models."""

from arbedge.engine.client import CircuitBreaker, EngineAPIError, EngineClient


__all__ = [
    "CircuitBreaker",
    "EngineAPIError",
    "EngineClient",
]
