"""ContextLayer: Slack message actions to ClickUp tasks, with full context."""

__version__ = "0.1.0"
