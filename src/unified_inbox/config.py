"""Configuration management."""

import logging
import os
import re
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, ClassVar, Optional

import yaml

from unified_inbox.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

ADO = "ado"
GITHUB = "gh"


@dataclass
class StatusMapping:
    """Display color for an item type/status pair."""
    type: str
    status: str
    color: str


@dataclass
class InstanceConfig:
    """Connection to one provider account or organization."""

    id: str
    name: str
    enabled: bool = True
    personal_access_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    status_mappings: list[StatusMapping] = field(default_factory=list)

    instance_type: ClassVar[str] = ""

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return self.expires_at <= now


@dataclass
class AdoInstanceConfig(InstanceConfig):
    organization: Optional[str] = None
    base_url: Optional[str] = None
    user_id: str = ""
    ignored_work_item_states: list[str] = field(default_factory=lambda: ["Closed", "Removed"])
    custom_work_item_query: Optional[str] = None

    instance_type: ClassVar[str] = ADO

    @property
    def resolved_base_url(self) -> str:
        return (self.base_url or f"https://dev.azure.com/{self.organization}").rstrip("/")


@dataclass
class GitHubInstanceConfig(InstanceConfig):
    username: str = ""
    api_url: str = "https://api.github.com"

    instance_type: ClassVar[str] = GITHUB


INSTANCE_CLASSES: dict[str, type[InstanceConfig]] = {
    ADO: AdoInstanceConfig,
    GITHUB: GitHubInstanceConfig,
}


@dataclass
class ProviderConfig:
    """Instances of one provider plus projects polled in addition."""
    instances: list[InstanceConfig] = field(default_factory=list)
    pinned_projects: list[str] = field(default_factory=list)


@dataclass
class FetchConfig:
    """Fetch and concurrency settings."""
    request_timeout: float = 30.0
    pull_request_concurrency: int = 10
    pipeline_concurrency: int = 3
    pipeline_runs_top: int = 10
    pipeline_runs_kept: int = 5
    new_items_window_hours: int = 24
    project_page_size: int = 50
    work_item_batch_size: int = 200


@dataclass
class PathsConfig:
    """Path settings."""
    storage_dir: Path = Path(".inbox")


@dataclass
class Settings:
    """Application settings."""

    ado: ProviderConfig = field(default_factory=ProviderConfig)
    github: ProviderConfig = field(default_factory=ProviderConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    group_by_instance: bool = False

    @property
    def providers(self) -> dict[str, ProviderConfig]:
        return {ADO: self.ado, GITHUB: self.github}

    @property
    def storage_dir(self) -> Path:
        return self.paths.storage_dir

    def all_instances(self) -> list[InstanceConfig]:
        return [*self.ado.instances, *self.github.instances]

    def get_instance(self, instance_id: str) -> Optional[InstanceConfig]:
        return next((i for i in self.all_instances() if i.id == instance_id), None)

    def pinned_projects_for(self, instance: InstanceConfig) -> list[str]:
        return self.providers[instance.instance_type].pinned_projects


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(f"Invalid expires_at value: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _env_token(instance_type: str, instance_id: str) -> Optional[str]:
    suffix = re.sub(r"[^A-Za-z0-9]", "_", instance_id).upper()
    if instance_type == ADO:
        return os.getenv(f"ADO_PAT_{suffix}") or os.getenv("ADO_PAT")
    return os.getenv(f"GITHUB_TOKEN_{suffix}") or os.getenv("GITHUB_TOKEN")


def parse_instance(data: dict[str, Any], instance_type: Optional[str] = None) -> InstanceConfig:
    """Build an instance config from a mapping with snake or camel case keys."""
    if not isinstance(data, dict):
        raise ConfigurationError(f"Instance configuration must be a mapping, got {type(data).__name__}")

    values = {_snake_case(key): value for key, value in data.items()}
    instance_type = values.pop("instance_type", None) or instance_type
    if instance_type not in INSTANCE_CLASSES:
        raise ConfigurationError(f"Unknown instance type: {instance_type!r}")
    cls = INSTANCE_CLASSES[instance_type]

    for required in ("id", "name"):
        if not values.get(required):
            raise ConfigurationError(f"{instance_type} instance is missing '{required}'")
    values["id"] = str(values["id"])

    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        logger.warning("Ignoring unknown keys for instance %s: %s", values["id"], ", ".join(sorted(unknown)))
        for key in unknown:
            values.pop(key)

    values["expires_at"] = _parse_datetime(values.get("expires_at"))
    try:
        values["status_mappings"] = [
            StatusMapping(**mapping) for mapping in values.get("status_mappings") or []
        ]
    except TypeError as e:
        raise ConfigurationError(f"Invalid status_mappings for instance {values['id']}: {e}") from e
    if not values.get("personal_access_token"):
        values["personal_access_token"] = _env_token(instance_type, values["id"])

    instance = cls(**values)

    if isinstance(instance, AdoInstanceConfig) and not (instance.organization or instance.base_url):
        raise ConfigurationError(
            f"ADO instance '{instance.id}' needs either 'organization' or 'base_url'"
        )
    if isinstance(instance, GitHubInstanceConfig) and not instance.username:
        raise ConfigurationError(f"GitHub instance '{instance.id}' is missing 'username'")

    return instance


def _parse_provider(section: dict[str, Any], instance_type: str) -> ProviderConfig:
    instances = [parse_instance(data, instance_type) for data in section.get("instances") or []]
    ids = [instance.id for instance in instances]
    duplicates = {i for i in ids if ids.count(i) > 1}
    if duplicates:
        raise ConfigurationError(f"Duplicate instance ids: {', '.join(sorted(duplicates))}")
    return ProviderConfig(
        instances=instances,
        pinned_projects=[str(p) for p in section.get("pinned_projects") or []],
    )


def load_config(config_path: Path = Path("config.yaml")) -> dict:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def get_settings(config_path: Path = Path("config.yaml")) -> Settings:
    """Get application settings from YAML config and environment."""
    try:
        config = load_config(config_path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Could not parse {config_path}: {e}") from e

    settings = Settings()

    if "ado" in config:
        settings.ado = _parse_provider(config["ado"] or {}, ADO)

    if "github" in config:
        settings.github = _parse_provider(config["github"] or {}, GITHUB)

    all_ids = [instance.id for instance in settings.all_instances()]
    if len(all_ids) != len(set(all_ids)):
        raise ConfigurationError("Instance ids must be unique across providers")

    if "fetch" in config:
        for key, value in (config["fetch"] or {}).items():
            setattr(settings.fetch, key, value)

    if "paths" in config:
        for key, value in (config["paths"] or {}).items():
            setattr(settings.paths, key, Path(value))

    storage_override = os.getenv("UNIFIED_INBOX_STORAGE_DIR")
    if storage_override:
        settings.paths.storage_dir = Path(storage_override)

    if "group_by_instance" in config:
        settings.group_by_instance = bool(config["group_by_instance"])

    return settings
