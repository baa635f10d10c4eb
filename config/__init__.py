"""
Configuration package.

Provides the service configuration object and its error type.
"""
from .base import ConfigurationError, DoorbellConfiguration, MqttSettings

__all__ = [
    'ConfigurationError',
    'DoorbellConfiguration',
    'MqttSettings'
]
