"""Dashboard and workspace-configuration endpoints.

Read access to mappings, a manual re-queue for failed mappings, and the
workspace upsert. Workspace credentials are never included in a response.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from contextlayer.config import settings
from contextlayer.core.orchestrator import SyncContext
from contextlayer.db.models import Mapping
from contextlayer.errors import MappingNotFound

logger = structlog.get_logger()

router = APIRouter(prefix="/api", tags=["dashboard"])


class WorkspaceConfig(BaseModel):
    slack_workspace_id: str
    slack_workspace_name: str | None = None
    slack_bot_token: str | None = None
    clickup_api_token: str | None = None
    clickup_team_id: str | None = None
    default_clickup_list_id: str | None = None
    is_active: bool | None = None


def get_context(request: Request) -> SyncContext:
    return request.app.state.context


def _mapping_detail(mapping: Mapping) -> dict[str, Any]:
    data = mapping.to_dict()
    data["workspace"] = mapping.workspace.to_public_dict() if mapping.workspace else None
    data["thread_context"] = [entry.to_dict() for entry in mapping.thread_context]
    return data


@router.get("/mappings")
async def list_mappings(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    workspace_id: str | None = None,
    sync_status: str | None = None,
    context: SyncContext = Depends(get_context),
) -> dict[str, Any]:
    mappings, total = await context.mappings.list_mappings(
        limit=limit, offset=offset, workspace_id=workspace_id, sync_status=sync_status,
    )
    return {
        "mappings": [m.to_dict() for m in mappings],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("/mappings/{mapping_id}")
async def get_mapping(
    mapping_id: UUID,
    context: SyncContext = Depends(get_context),
) -> Any:
    """One mapping with its workspace and thread context, root first."""
    mapping = await context.mappings.get(mapping_id)
    if mapping is None:
        return JSONResponse(status_code=404, content={"error": "Mapping not found"})
    return _mapping_detail(mapping)


@router.get("/failed-mappings")
async def list_failed_mappings(
    max_retries: int = Query(settings.failed_mapping_max_retries, ge=0),
    context: SyncContext = Depends(get_context),
) -> dict[str, Any]:
    mappings = await context.mappings.list_failed(max_retries)
    return {"failed_mappings": [m.to_dict() for m in mappings], "count": len(mappings)}


@router.post("/mappings/{mapping_id}/retry")
async def retry_mapping(
    mapping_id: UUID,
    context: SyncContext = Depends(get_context),
) -> Any:
    """Re-queue a failed mapping. Nothing is re-run here."""
    try:
        await context.mappings.requeue(mapping_id)
    except MappingNotFound:
        return JSONResponse(status_code=404, content={"error": "Failed mapping not found"})
    return {"message": "Mapping queued for retry", "mapping_id": str(mapping_id)}


@router.post("/workspace")
async def upsert_workspace(
    config: WorkspaceConfig,
    context: SyncContext = Depends(get_context),
) -> dict[str, Any]:
    fields = config.model_dump(exclude={"slack_workspace_id"})
    workspace = await context.workspaces.upsert(config.slack_workspace_id, **fields)
    return workspace.to_public_dict()


@router.get("/workspaces")
async def list_workspaces(context: SyncContext = Depends(get_context)) -> list[dict[str, Any]]:
    workspaces = await context.workspaces.list_active()
    return [w.to_public_dict() for w in workspaces]
