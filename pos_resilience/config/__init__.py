"""Configuration package for the POS terminal service."""
from .settings import GatewayConfig, Settings, get_settings

__all__ = ["GatewayConfig", "Settings", "get_settings"]
