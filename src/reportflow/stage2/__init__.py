"""
Stage 2: Cleaner

Date parsing, categorical conversion, explicit missing-value policy,
derived fields and column drops.
"""

from .cleaner import Cleaner, CleaningSpec

__all__ = ['Cleaner', 'CleaningSpec']
