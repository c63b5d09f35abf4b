"""
Configuration module for agent teams.
"""
from .settings import Settings

__all__ = [
    'Settings',
]
