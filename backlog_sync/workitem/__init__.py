"""
WorkItem Gateway Package

Service-agnostic work item access for backlog-sync.
Supports Azure DevOps out of the box, behind the WorkItemGateway protocol.
"""

from backlog_sync.workitem.types import (
    Anchor,
    AnchorKind,
    PatchOperation,
    PatchReport,
    PatchResult,
    PatchStatus,
    QuerySpec,
    ReorderIntent,
    WorkItem,
)
from backlog_sync.workitem.errors import (
    BacklogSyncError,
    DeadlineExceeded,
    DuplicateIdentifier,
    EmptyIntent,
    GatewayError,
    GatewayUnavailable,
    InvalidSpec,
    OrderResolutionError,
    ReorderPreconditionError,
    RequestRejected,
    UnknownAnchor,
)
from backlog_sync.workitem.protocol import WorkItemGateway
from backlog_sync.workitem.query import build_query
from backlog_sync.workitem.config import load_config, load_provider_config, get_provider_config

__all__ = [
    "Anchor",
    "AnchorKind",
    "PatchOperation",
    "PatchReport",
    "PatchResult",
    "PatchStatus",
    "QuerySpec",
    "ReorderIntent",
    "WorkItem",
    "BacklogSyncError",
    "DeadlineExceeded",
    "DuplicateIdentifier",
    "EmptyIntent",
    "GatewayError",
    "GatewayUnavailable",
    "InvalidSpec",
    "OrderResolutionError",
    "ReorderPreconditionError",
    "RequestRejected",
    "UnknownAnchor",
    "WorkItemGateway",
    "build_query",
    "load_config",
    "load_provider_config",
    "get_provider_config",
]
