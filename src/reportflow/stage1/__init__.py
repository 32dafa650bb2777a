"""
Stage 1: Loader

Fetches CSV resources and infers a column schema once per table.
"""

from .loader import Loader

__all__ = ['Loader']
