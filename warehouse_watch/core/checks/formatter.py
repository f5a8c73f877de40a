"""
Result Formatter

Renders a QueryResult as a plain-text report: a header line, then one line per row.
Cells are joined with a comma and are not quoted, so a value that contains a comma
makes its line ambiguous. The report is meant to be read, not parsed.
"""

from warehouse_watch.core.checks.models import QueryResult

DELIMITER = ","


class ResultFormatter:
    """Pure, deterministic QueryResult -> str rendering."""

    def __init__(self, delimiter: str = DELIMITER):
        self.delimiter = delimiter

    def format(self, result: QueryResult) -> str:
        lines = [self.delimiter.join(result.headers)]
        lines.extend(self.delimiter.join(row) for row in result.rows)
        return "\n".join(lines)
