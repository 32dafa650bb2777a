"""
Stage 4: Modeler and Reporter

Fits the report's regression and produces outputs:
- Coefficient tables and model summaries
- Plots
- Aggregate tables and source profiles
"""

from .models import Modeler
from .reporter import Reporter
from .visualizer import Visualizer

__all__ = ['Modeler', 'Reporter', 'Visualizer']
