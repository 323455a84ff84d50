"""
Backlog sync configuration loading.

Loads gateway, field-mapping and ordering configuration from YAML with
environment variable expansion.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# Azure DevOps limits workitemsbatch to 200 ids per request
MAX_BATCH_SIZE = 200


def expand_env_vars(value: Any) -> Any:
    """
    Recursively expand ${VAR} environment variables in config values.

    Args:
        value: Config value (string, dict, list, or other)

    Returns:
        Value with env vars expanded
    """
    if isinstance(value, str):
        # Match ${VAR} or $VAR patterns
        pattern = r'\$\{([^}]+)\}|\$([A-Z_][A-Z0-9_]*)'

        def replace(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, "")

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [expand_env_vars(item) for item in value]

    return value


@dataclass
class FieldMap:
    """
    Field reference names for the active process template.

    The order field differs between templates (Agile/Scrum use
    Microsoft.VSTS.Common.StackRank or BacklogPriority), so it is never
    hardcoded in the resolver.
    """
    id: str = "System.Id"
    work_item_type: str = "System.WorkItemType"
    title: str = "System.Title"
    state: str = "System.State"
    order: str = "Microsoft.VSTS.Common.StackRank"
    assignee: str = "System.AssignedTo"
    area_path: str = "System.AreaPath"
    iteration_path: str = "System.IterationPath"
    tags: str = "System.Tags"
    changed_date: str = "System.ChangedDate"
    project: str = "System.TeamProject"

    def detail_fields(self) -> list[str]:
        """Fields requested by a detail fetch."""
        return [
            self.id,
            self.work_item_type,
            self.title,
            self.state,
            self.order,
            self.assignee,
            self.area_path,
            self.iteration_path,
            self.tags,
            self.changed_date,
        ]


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for transient transport failures."""
    max_retries: int = 3
    backoff_base_s: float = 0.5
    backoff_max_s: float = 8.0

    def delay(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        return min(self.backoff_base_s * (2 ** attempt), self.backoff_max_s)


@dataclass
class GatewayConfig:
    """Connection settings for the tracking service."""
    organization_url: str = ""
    project: str = ""
    token: str = field(default="", repr=False)
    api_version: str = "7.1"
    timeout_s: float = 30.0
    batch_size: int = MAX_BATCH_SIZE
    max_workers: int = 4
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    fields: FieldMap = field(default_factory=FieldMap)


@dataclass
class OrderingConfig:
    """Order resolver tuning."""
    min_gap: float = 1e-6
    stride: float = 1000.0
    non_negative: bool = False


@dataclass
class SyncConfig:
    """Complete backlog sync configuration."""
    default_provider: str = "azure_devops"
    providers: dict[str, dict[str, Any]] = field(default_factory=dict)
    ordering: OrderingConfig = field(default_factory=OrderingConfig)
    allowed_fields: list[str] | None = None


def load_provider_config(config_path: str | Path | None = None) -> dict:
    """
    Load raw configuration from YAML file.

    Looks for config in this order:
    1. Explicitly provided path
    2. config/backlog_sync.yaml relative to project root
    3. Returns minimal default config built from the environment

    Environment variables in the format ${VAR} are expanded.

    Args:
        config_path: Optional path to config file

    Returns:
        Dict with provider configuration
    """
    if config_path is None:
        # backlog_sync/workitem/config.py -> project root is ../../..
        project_root = Path(__file__).parent.parent.parent
        config_path = project_root / "config" / "backlog_sync.yaml"

    config_path = Path(config_path)

    if not config_path.exists():
        return {
            "default_provider": "azure_devops",
            "providers": {
                "azure_devops": {
                    "organization_url": os.environ.get("ADO_ORG_URL", ""),
                    "project": os.environ.get("ADO_PROJECT", ""),
                    "token": os.environ.get("ADO_PAT", ""),
                }
            },
        }

    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    return expand_env_vars(config)


def get_provider_config(provider_name: str, config: dict | None = None) -> dict:
    """
    Get configuration for a specific provider.

    Raises:
        ValueError: If provider not found in config
    """
    if config is None:
        config = load_provider_config()

    providers = config.get("providers", {})

    if provider_name not in providers:
        raise ValueError(f"Provider '{provider_name}' not found in config")

    return providers[provider_name]


def parse_gateway_config(data: dict) -> GatewayConfig:
    """
    Build a GatewayConfig from a provider section.

    Raises:
        ValueError: If a numeric setting is out of range
    """
    retry_data = data.get("retry", {}) or {}
    retry = RetryPolicy(
        max_retries=int(retry_data.get("max_retries", 3)),
        backoff_base_s=float(retry_data.get("backoff_base_s", 0.5)),
        backoff_max_s=float(retry_data.get("backoff_max_s", 8.0)),
    )
    if retry.max_retries < 0:
        raise ValueError("retry.max_retries must be >= 0")

    field_data = data.get("fields", {}) or {}
    unknown = set(field_data) - set(FieldMap.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown field mapping keys: {', '.join(sorted(unknown))}")

    batch_size = int(data.get("batch_size", MAX_BATCH_SIZE))
    if not 1 <= batch_size <= MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")

    max_workers = int(data.get("max_workers", 4))
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")

    return GatewayConfig(
        organization_url=str(data.get("organization_url", "")).rstrip("/"),
        project=str(data.get("project", "")),
        token=str(data.get("token", "")),
        api_version=str(data.get("api_version", "7.1")),
        timeout_s=float(data.get("timeout_s", 30.0)),
        batch_size=batch_size,
        max_workers=max_workers,
        retry=retry,
        fields=FieldMap(**field_data),
    )


def load_config(config_path: str | Path | None = None) -> SyncConfig:
    """
    Load and validate the complete configuration.

    Raises:
        ValueError: If configuration is invalid
        yaml.YAMLError: If YAML is malformed
    """
    data = load_provider_config(config_path)

    ordering_data = data.get("ordering", {}) or {}
    ordering = OrderingConfig(
        min_gap=float(ordering_data.get("min_gap", 1e-6)),
        stride=float(ordering_data.get("stride", 1000.0)),
        non_negative=bool(ordering_data.get("non_negative", False)),
    )
    if ordering.min_gap <= 0:
        raise ValueError("ordering.min_gap must be > 0")
    if ordering.stride <= ordering.min_gap:
        raise ValueError("ordering.stride must be larger than ordering.min_gap")

    query_data = data.get("query", {}) or {}
    allowed = query_data.get("allowed_fields")

    return SyncConfig(
        default_provider=data.get("default_provider", "azure_devops"),
        providers=data.get("providers", {}) or {},
        ordering=ordering,
        allowed_fields=list(allowed) if allowed is not None else None,
    )
