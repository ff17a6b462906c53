from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

EXISTING_POLICIES = ("skip", "update", "merge")


@dataclass(slots=True)
class PipelineConfig:
    min_score: int = 30
    deadline_seconds: float = 50.0
    retry_max: int = 1
    retry_backoff_seconds: float = 2.0
    request_timeout_seconds: float = 20.0
    keywords_per_tag: int = 5
    keyword_limit: int = 25
    existing_policy: str = "skip"
    description_max_length: int = 5000
    urgent_deadline_days: int = 7
    search_result_limit: int = 200


@dataclass(slots=True)
class StoreConfig:
    database_url: str = "sqlite:///grant_discovery.db"
    echo: bool = False


@dataclass(slots=True)
class ServerConfig:
    cron_secret: str | None = None
    require_secret: bool = False
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class GrantsGovConfig:
    enabled: bool = True
    base_url: str = "https://www.grants.gov/grantsws/rest/opportunities/search"
    detail_url: str = "https://www.grants.gov/search-results-detail/"
    limit: int = 100
    max_keywords: int = 15


@dataclass(slots=True)
class NihConfig:
    enabled: bool = True
    base_url: str = "https://api.reporter.nih.gov/v2/projects/search"
    limit: int = 50
    max_keywords: int = 5
    fiscal_years: list[int] = field(default_factory=lambda: [2024, 2025])


@dataclass(slots=True)
class NsfConfig:
    enabled: bool = True
    base_url: str = "https://api.nsf.gov/services/v1/awards.json"
    limit: int = 25
    max_keywords: int = 3


@dataclass(slots=True)
class FederalRegisterConfig:
    enabled: bool = True
    base_url: str = "https://www.federalregister.gov/api/v1/documents.json"
    limit: int = 50
    max_keywords: int = 3
    lookback_days: int = 30


@dataclass(slots=True)
class FemaConfig:
    enabled: bool = True
    base_url: str = "https://www.fema.gov/api/open/v2/DisasterDeclarationsSummaries"
    limit: int = 30


@dataclass(slots=True)
class UsaSpendingConfig:
    enabled: bool = True
    base_url: str = "https://api.usaspending.gov/api/v2/search/spending_by_award/"
    limit: int = 25
    max_keywords: int = 5
    lookback_days: int = 365


@dataclass(slots=True)
class AppConfig:
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    grants_gov: GrantsGovConfig = field(default_factory=GrantsGovConfig)
    nih: NihConfig = field(default_factory=NihConfig)
    nsf: NsfConfig = field(default_factory=NsfConfig)
    federal_register: FederalRegisterConfig = field(default_factory=FederalRegisterConfig)
    fema: FemaConfig = field(default_factory=FemaConfig)
    usa_spending: UsaSpendingConfig = field(default_factory=UsaSpendingConfig)
    user_agent: str = "grant-discovery/0.1"
    log_level: str = "INFO"


def _merge(default: Any, override: Any) -> Any:
    if isinstance(default, dict) and isinstance(override, dict):
        merged: dict[str, Any] = {**default}
        for key, value in override.items():
            merged[key] = _merge(default.get(key), value)
        return merged
    return override if override is not None else default


def load_config(path: Path) -> AppConfig:
    data: dict[str, Any] = {}
    if path.exists():
        data = _read_toml(path)

    merged = _merge(asdict(AppConfig()), data)
    config = AppConfig(
        pipeline=PipelineConfig(**merged.get("pipeline", {})),
        store=StoreConfig(**merged.get("store", {})),
        server=ServerConfig(**merged.get("server", {})),
        grants_gov=GrantsGovConfig(**merged.get("grants_gov", {})),
        nih=NihConfig(**merged.get("nih", {})),
        nsf=NsfConfig(**merged.get("nsf", {})),
        federal_register=FederalRegisterConfig(**merged.get("federal_register", {})),
        fema=FemaConfig(**merged.get("fema", {})),
        usa_spending=UsaSpendingConfig(**merged.get("usa_spending", {})),
        user_agent=merged.get("user_agent", "grant-discovery/0.1"),
        log_level=merged.get("log_level", "INFO"),
    )

    if env_secret := os.getenv("CRON_SECRET"):
        config.server.cron_secret = env_secret.strip()
    if env_db := os.getenv("DATABASE_URL"):
        config.store.database_url = env_db
    if env_level := os.getenv("GRANT_DISCOVERY_LOG_LEVEL"):
        config.log_level = env_level

    config.pipeline.existing_policy = config.pipeline.existing_policy.lower()
    if config.pipeline.existing_policy not in EXISTING_POLICIES:
        raise ValueError(
            f"pipeline.existing_policy must be one of {', '.join(EXISTING_POLICIES)}, "
            f"got {config.pipeline.existing_policy!r}"
        )
    return config


def config_path(cli_path: str | None) -> Path:
    if cli_path:
        return Path(cli_path).expanduser()
    if env_path := os.getenv("GRANT_DISCOVERY_CONFIG"):
        return Path(env_path).expanduser()
    return Path("config.toml")


def _read_toml(path: Path) -> dict[str, Any]:
    import tomllib

    with path.open("rb") as handle:
        return tomllib.load(handle)


def split_csv(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [item.strip() for item in value.split(",") if item.strip()] or None
