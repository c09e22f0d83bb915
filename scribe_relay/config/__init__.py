"""
Configuration module for the dictation relay.
"""

from .settings import ServiceSettings, get_env

__all__ = [
    'ServiceSettings',
    'get_env'
]
