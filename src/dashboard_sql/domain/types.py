"""
Type aliases for the dashboard-sql system.

Provides reusable, descriptive type aliases for common patterns
to improve code readability.
"""

from typing import Any, Dict, List


# One result row: {column_name: value}
Row = Dict[str, Any]

# Full result set in row order
Rows = List[Row]

# Raw tool-call arguments as decoded from the model response
ToolArguments = Dict[str, Any]
