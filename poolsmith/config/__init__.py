"""Configuration management."""
from poolsmith.config.loader import ConfigLoader
from poolsmith.models.errors import ConfigValidationError

__all__ = ['ConfigLoader', 'ConfigValidationError']
