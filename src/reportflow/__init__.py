"""
reportflow: tabular ETL and regression reporting.

Stages:
- stage1: Loader (CSV fetch + schema inference)
- stage2: Cleaner
- stage3: Reshaper, Aggregator
- stage4: Modeler, Reporter
"""

from .exceptions import (
    PipelineError,
    RetrievalError,
    FormatError,
    ValidationError,
    CollinearityError,
)
from .schema import ColumnDescriptor, Table, AggregationResult, ModelResult

__version__ = "0.1.0"

__all__ = [
    # data model
    "ColumnDescriptor",
    "Table",
    "AggregationResult",
    "ModelResult",

    # exceptions
    "PipelineError",
    "RetrievalError",
    "FormatError",
    "ValidationError",
    "CollinearityError",
]
