"""
ORM event listeners. Importing this package registers them.
"""
from . import handlers

__all__ = ['handlers']
