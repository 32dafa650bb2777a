"""
Stage 3: Reshaper and Aggregator

Wide-to-long reshaping of date-per-column tables, and grouped summaries.
"""

from .reshaper import Reshaper
from .aggregator import Aggregator

__all__ = ['Reshaper', 'Aggregator']
