"""Output formatting utilities for CLI."""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormat(Enum):
    """Output format options."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"


def _yaml_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _yaml_safe(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_yaml_safe(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


class OutputFormatter:
    """Handle output formatting for different formats."""

    def __init__(self, format_type: str = "table", console: Optional[Console] = None):
        self.console = console or Console()
        try:
            self.format = OutputFormat(format_type.lower())
        except ValueError:
            self.format = OutputFormat.TABLE

    def emit(self, text: str):
        """Print text verbatim, without wrapping or markup."""
        self.console.print(text, soft_wrap=True, markup=False, highlight=False)

    def _structured(self, data: Any) -> bool:
        if self.format == OutputFormat.JSON:
            self.emit(json.dumps(data, indent=2, default=str))
            return True
        if self.format == OutputFormat.YAML:
            self.emit(yaml.safe_dump(_yaml_safe(data), default_flow_style=False, sort_keys=False))
            return True
        return False

    def print_list(
        self,
        items: List[Dict[str, Any]],
        columns: Optional[List[str]] = None,
        title: Optional[str] = None,
    ):
        """Print a list of items."""
        if self._structured(items):
            return

        if not items:
            self.console.print("[dim]No items found[/dim]")
            return

        if not columns:
            columns = list(items[0].keys())

        table = Table(title=title)
        for col in columns:
            table.add_column(col.replace("_", " ").title())

        for item in items:
            row = []
            for col in columns:
                value = item.get(col, "")
                if value is None:
                    value = "[dim]-[/dim]"
                elif isinstance(value, bool):
                    value = "[green]✓[/green]" if value else "[red]✗[/red]"
                else:
                    value = str(value)
                row.append(value)
            table.add_row(*row)

        self.console.print(table)

    def print_detail(self, item: Dict[str, Any], title: Optional[str] = None):
        """Print detailed view of a single item."""
        if self._structured(item):
            return

        if title:
            self.console.print(f"[bold]{title}[/bold]\n")

        for key, value in item.items():
            formatted_key = key.replace("_", " ").title()
            if value is None:
                formatted_value = "[dim]Not set[/dim]"
            elif isinstance(value, bool):
                formatted_value = "[green]Yes[/green]" if value else "[red]No[/red]"
            elif isinstance(value, (list, dict)):
                formatted_value = escape(json.dumps(value, indent=2, default=str))
            else:
                formatted_value = escape(str(value))
            self.console.print(
                f"[cyan]{formatted_key}:[/cyan] {formatted_value}", soft_wrap=True
            )

    def _status(self, status: str, message: str, style: str, symbol: str):
        if self._structured({"status": status, "message": message}):
            return
        self.console.print(f"[{style}]{symbol}[/{style}] {escape(message)}", soft_wrap=True)

    def print_success(self, message: str):
        self._status("success", message, "green", "✓")

    def print_error(self, message: str):
        self._status("error", message, "red", "✗")

    def print_warning(self, message: str):
        self._status("warning", message, "yellow", "⚠")
