"""Theme and shared console for the inboxrules CLI."""

from rich.console import Console
from rich.theme import Theme

# Semantic color theme for consistent UI
INBOXRULES_THEME = Theme(
    {
        "success": "green",
        "error": "bold red",
        "warning": "#d4a017",
        "info": "cyan",
        # Condition types
        "static": "cyan",
        "group": "magenta",
        "category": "blue",
        "ai": "orange1",
        # UI elements
        "header": "bold #a0a0a0",
        "muted": "#808080",
        "rule": "bold cyan",
    }
)

console = Console(theme=INBOXRULES_THEME)
