"""Configuration: environment Settings plus the layered YAML loader."""

from thinkfolio.config.loader import load_config, validate_config
from thinkfolio.config.settings import Settings

__all__ = ["Settings", "load_config", "validate_config"]
