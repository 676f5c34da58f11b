"""Utilities and constants."""

from .worker_attributes import SUPPORTED_ATTRIBUTES
from .ttl_cache import ttl_cache

__all__ = ['SUPPORTED_ATTRIBUTES', 'ttl_cache']
