"""Downstream integrations: ClickUp."""

from contextlayer.integrations.clickup_client import ClickUpClient, ClickUpTask

__all__ = ["ClickUpClient", "ClickUpTask"]
