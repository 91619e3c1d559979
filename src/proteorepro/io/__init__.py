"""Reading input tables and writing processed matrices."""

from .loaders import load_expression_table, load_group_assignment, read_table
from .writers import write_expression_table, write_quality_flags, write_summary_table

__all__ = [
    "read_table",
    "load_expression_table",
    "load_group_assignment",
    "write_expression_table",
    "write_quality_flags",
    "write_summary_table",
]
