"""ContextLayer core: sync orchestration, mapping lifecycle, formatting."""

from contextlayer.core.mappings import MappingDraft, MappingLifecycleManager
from contextlayer.core.orchestrator import (
    SyncContext,
    SyncOrchestrator,
    SyncResult,
    SyncStage,
)
from contextlayer.core.task_manager import SyncRunner
from contextlayer.core.workspaces import WorkspaceDirectory

__all__ = [
    "MappingDraft",
    "MappingLifecycleManager",
    "SyncContext",
    "SyncOrchestrator",
    "SyncResult",
    "SyncRunner",
    "SyncStage",
    "WorkspaceDirectory",
]
