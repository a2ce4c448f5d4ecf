"""Output formatting utilities for the trade journal CLI.

Provides:
- Signed P&L, percentage and count formatting
- Aligned plain-text tables
"""

from typing import Optional, List, Any

from utils.strings import parse_number


def format_pnl(value: Optional[float], precision: int = 2) -> str:
    """Format a profit/loss amount with an explicit sign.

    Examples:
        format_pnl(1234.5) -> "+$1,234.50"
        format_pnl(-40) -> "-$40.00"
        format_pnl(0) -> "$0.00"
        format_pnl(None) -> "-"
    """
    if value is None:
        return "-"
    if value > 0:
        return f"+${value:,.{precision}f}"
    if value < 0:
        return f"-${abs(value):,.{precision}f}"
    return f"${0:.{precision}f}"


def format_percent(value: Optional[float], precision: int = 1) -> str:
    """Format a percentage for display.

    Examples:
        format_percent(42.5) -> "42.5%"
        format_percent(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:.{precision}f}%"


def format_count(value: Optional[int]) -> str:
    """Format a count with thousands separator ("1,234"); None gives "-"."""
    if value is None:
        return "-"
    return f"{value:,d}"


def format_minutes(value: Optional[float]) -> str:
    """Format a duration in minutes as "2h 05m" (or "45m" under an hour)."""
    if value is None:
        return "-"
    total = int(round(value))
    hours, minutes = divmod(total, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m"


class TableFormatter:
    """Formats rows as aligned text columns; numeric cells are right-aligned."""

    def __init__(self, columns: List[str], column_widths: Optional[List[int]] = None):
        self.columns = columns
        self.column_widths = column_widths or [len(col) for col in columns]
        self.rows: List[List[str]] = []

    def add_row(self, values: List[Any]) -> None:
        """Add a row to the table.

        Raises:
            ValueError: If value count doesn't match column count
        """
        if len(values) != len(self.columns):
            raise ValueError(f"Expected {len(self.columns)} values, got {len(values)}")

        str_values = []
        for i, val in enumerate(values):
            str_val = str(val) if val is not None else "-"
            str_values.append(str_val)
            if len(str_val) > self.column_widths[i]:
                self.column_widths[i] = len(str_val)
        self.rows.append(str_values)

    def _format_row(self, values: List[str], is_header: bool = False) -> str:
        cells = []
        for i, val in enumerate(values):
            width = self.column_widths[i]
            numeric = not is_header and parse_number(val.rstrip("%").replace("+", "")) is not None
            cells.append(val.rjust(width) if numeric else val.ljust(width))
        return "  ".join(cells).rstrip()

    def to_string(self, show_header: bool = True, show_separator: bool = True) -> str:
        """Format table as multi-line string."""
        lines = []
        if show_header:
            lines.append(self._format_row(self.columns, is_header=True))
            if show_separator:
                lines.append("  ".join("-" * w for w in self.column_widths))
        for row in self.rows:
            lines.append(self._format_row(row))
        return "\n".join(lines)

    def print_table(self, show_header: bool = True, show_separator: bool = True) -> None:
        print(self.to_string(show_header, show_separator))
