"""Service configuration: TOML loading and config models.

Usage:
    >>> from entity_mapper.config import load_service_config, ServiceProfile, ServiceConfig
"""

from entity_mapper.config.loader import load_service_config
from entity_mapper.config.models import ServiceConfig, ServiceProfile

__all__ = ["load_service_config", "ServiceConfig", "ServiceProfile"]
