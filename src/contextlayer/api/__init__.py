"""HTTP routers: Slack interactivity and the dashboard API."""

from contextlayer.api.dashboard import router as dashboard_router
from contextlayer.api.slack_routes import router as slack_router

__all__ = ["dashboard_router", "slack_router"]
