"""Error taxonomy for the sync pipeline.

Boundary errors (authentication, payload shape) are raised synchronously
and mapped to 4xx responses. Everything after mapping creation is handled
by the orchestrator and reported through the Slack response_url.
"""

from __future__ import annotations

from uuid import UUID


class ContextLayerError(Exception):
    """Base class for all ContextLayer errors."""


class AuthenticationError(ContextLayerError):
    """Inbound Slack request failed verification."""

    MISSING_HEADERS = "missing_headers"
    STALE_TIMESTAMP = "stale_timestamp"
    SIGNATURE_MISMATCH = "signature_mismatch"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class InvalidPayload(ContextLayerError):
    """Slack payload could not be parsed into a message action."""


class WorkspaceNotConfigured(ContextLayerError):
    def __init__(self, slack_workspace_id: str) -> None:
        super().__init__(f"Workspace not configured for {slack_workspace_id}")
        self.slack_workspace_id = slack_workspace_id


class DuplicateMapping(ContextLayerError):
    """A mapping already exists for this (message, workspace) pair."""

    def __init__(self, slack_message_id: str, slack_workspace_id: str) -> None:
        super().__init__(
            f"Message {slack_message_id} in workspace {slack_workspace_id} "
            "is already being handled"
        )
        self.slack_message_id = slack_message_id
        self.slack_workspace_id = slack_workspace_id


class MappingNotFound(ContextLayerError):
    def __init__(self, mapping_id: UUID | str) -> None:
        super().__init__(f"Mapping {mapping_id} not found")
        self.mapping_id = mapping_id


class InvalidTransition(ContextLayerError):
    def __init__(self, mapping_id: UUID | str, current: str, target: str) -> None:
        super().__init__(
            f"Mapping {mapping_id} cannot move from {current} to {target}"
        )
        self.mapping_id = mapping_id
        self.current = current
        self.target = target


class PersistenceError(ContextLayerError):
    """Wraps database failures surfaced to the caller."""


class ExternalAPIError(ContextLayerError):
    """Normalized failure from an external HTTP API."""

    service = "external"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return f"{self.service} API error: {self.message}"


class EnrichmentError(ExternalAPIError):
    """Slack lookup failed. Logged and degraded, never propagated."""

    service = "Slack"


class DownstreamAPIError(ExternalAPIError):
    """ClickUp rejected or failed the task creation call."""

    service = "ClickUp"
