"""Bulk endpoint error mapping."""
from .api_errors import HTTPStatusMapping

__all__ = [
    'HTTPStatusMapping',
]
