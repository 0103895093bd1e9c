"""Grant agent package."""

from .config import AgentConfig, DiscoveryConfig, ValidationConfig

__all__ = ["AgentConfig", "DiscoveryConfig", "ValidationConfig"]
