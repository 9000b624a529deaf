"""Declarative configuration schema for the Gridiron ingestion pipeline."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    PrivateAttr,
    field_validator,
    model_validator,
)


class StrictModel(BaseModel):
    """Base model enforcing strict validation rules."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
    )


class AppSettings(StrictModel):
    """Top-level runtime metadata."""

    environment: str = Field(
        default="development",
        description="Normalized deployment environment name.",
        examples=["production"],
    )
    debug: bool = Field(
        default=False,
        description="When true, enables verbose console logging.",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone used when resolving relative date phrases.",
        examples=["America/New_York"],
    )

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"development", "production", "staging", "test"}:
            raise ValueError(
                "environment must be one of: development, staging, production, test"
            )
        return normalized


class PathsConfig(StrictModel):
    """Filesystem layout settings."""

    data_dir: Path = Field(
        default=Path("data"),
        description="Root directory for persistent runtime artefacts.",
        examples=["/var/lib/gridiron"],
    )
    logs_dir: Path = Field(
        default=Path("logs"),
        description="Directory where operational logs are written.",
    )

    @model_validator(mode="after")
    def _ensure_child_paths(self) -> "PathsConfig":
        base = self.data_dir if self.data_dir.is_absolute() else self.data_dir.resolve()
        object.__setattr__(self, "data_dir", base)
        if not self.logs_dir.is_absolute():
            object.__setattr__(self, "logs_dir", (base / self.logs_dir).resolve())
        return self


class DatabaseConfig(StrictModel):
    """Database connectivity parameters."""

    driver: str = Field(
        default="sqlite",
        description="Database backend driver to use.",
        examples=["postgresql"],
    )
    path: Optional[Path] = Field(
        default=Path("data/gridiron.db"),
        description="Filesystem path for SQLite database files.",
    )
    host: Optional[str] = Field(default=None, description="SQL server hostname.")
    port: Optional[int] = Field(default=None, description="SQL server TCP port.")
    name: str = Field(default="gridiron", description="Database name.")
    user: Optional[str] = Field(default=None, description="Database username.")
    password: Optional[str] = Field(
        default=None, description="Database password; treated as secret."
    )
    pool_size: PositiveInt = Field(
        default=5, description="Number of persistent connections per process."
    )
    max_overflow: PositiveInt = Field(
        default=10, description="Extra connections that may be opened temporarily."
    )

    @field_validator("path", "host", "port", "user", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # saved files spell unset optionals as ""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _validate_backend(self) -> "DatabaseConfig":
        driver = self.driver.lower()
        if driver not in {"sqlite", "postgresql"}:
            raise ValueError("driver must be either 'sqlite' or 'postgresql'")
        if driver == "sqlite":
            if not self.path:
                raise ValueError("SQLite configuration requires a file path")
        else:
            missing = [
                name for name in ("host", "port", "user") if getattr(self, name) in (None, "")
            ]
            if missing:
                raise ValueError(
                    "PostgreSQL configuration requires fields: " + ", ".join(missing)
                )
        return self


class CollectionConfig(StrictModel):
    """Candidate fetching behaviour."""

    request_timeout_seconds: PositiveInt = Field(
        default=15,
        description="Timeout applied to every outbound HTTP request.",
    )
    default_item_limit: PositiveInt = Field(
        default=200,
        description="Candidate limit for a single-source run.",
    )
    per_source_limit: PositiveInt = Field(
        default=50,
        description="Candidate limit per source during an all-sources run.",
    )
    max_concurrent_fetches: int = Field(
        default=6,
        ge=1,
        le=8,
        description="Concurrent page fetches for enrichment and image backfill.",
    )
    max_response_bytes: PositiveInt = Field(
        default=5 * 1024 * 1024,
        description="Responses larger than this are discarded.",
    )
    user_agent: str = Field(
        default="GridironIngestBot/0.4 (+https://example.org/bot)",
        description="HTTP User-Agent header sent to publishers.",
    )


class RateLimitingConfig(StrictModel):
    """Retry and backoff parameters for outbound requests."""

    max_retries: int = Field(
        default=2, ge=0, le=6, description="Retry attempts after the first request."
    )
    backoff_base: PositiveFloat = Field(
        default=0.5, description="Base factor for exponential backoff (seconds)."
    )
    backoff_max: PositiveFloat = Field(
        default=8.0, description="Upper bound for a single backoff sleep."
    )
    jitter_max: float = Field(
        default=0.3, ge=0.0, description="Maximum random jitter added to delays."
    )


class SourceRuleConfig(StrictModel):
    """Editorial rule applied to candidates of one source or domain."""

    required_any: List[str] = Field(
        default_factory=list,
        description="At least one of these terms must appear in title/summary/path.",
    )
    forbidden: List[str] = Field(
        default_factory=list, description="Terms that reject the candidate."
    )
    path_allow: List[str] = Field(
        default_factory=list, description="Regexes; when set, the path must match one."
    )
    path_deny: List[str] = Field(
        default_factory=list, description="Regexes that reject the candidate path."
    )


class FilteringConfig(StrictModel):
    """URL and content filter vocabulary."""

    deny_domains: List[str] = Field(
        default_factory=lambda: [
            "bbc.com",
            "onefootball.com",
            "mlb.com",
            "nhl.com",
            "nba.com",
            "thehockeynews.com",
            "mmajunkie.usatoday.com",
            "ufc.com",
            "golfdigest.com",
        ],
        description="Domains (and their subdomains) that are always rejected.",
    )
    deny_keywords: List[str] = Field(
        default_factory=lambda: [
            "boxing",
            "mma",
            "ufc",
            "wrestling",
            "bowling",
            "nhl",
            "hockey",
            "mlb",
            "baseball",
            "nba",
            "basketball",
            "premier league",
            "champions league",
            "soccer",
            "mls",
            "laliga",
            "serie a",
            "golf",
            "pga",
            "ryder cup",
            "high school",
            "high-school",
        ],
        description="Cross-sport keywords matched against title and path.",
    )
    editorial_block_terms: List[str] = Field(
        default_factory=lambda: [
            "wnba",
            "nascar",
            "cricket",
            "rugby",
            "tennis",
            "la liga",
            "sponsored content",
            "betting promo",
            "promo code",
        ],
        description="Phrases that reject a candidate's title or description.",
    )
    forbidden_path_pattern: str = Field(
        default=r"/(about|privacy|terms|contact|subscribe|gift|advertis|affiliate|login|signin|signup|careers)\b",
        description="Regex rejecting utility paths.",
    )
    guarded_source_ids: List[int] = Field(
        default_factory=list,
        description="Mixed-sport sources whose items must look clearly NFL.",
    )
    source_rules: Dict[str, SourceRuleConfig] = Field(
        default_factory=dict,
        description="Per-source rules keyed by source id or domain.",
    )


DEFAULT_DATE_WEIGHTS: Dict[str, int] = {
    "rss": 95,
    "atom": 95,
    "dc": 95,
    "jsonld": 90,
    "og": 80,
    "meta": 80,
    "time-tag": 70,
    "text": 65,
    "url": 60,
    "relative": 55,
    "sitemap": 50,
    "http-header": 45,
    "modified": 40,
}


class DatesConfig(StrictModel):
    """Published-date resolver tuning."""

    weights: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_DATE_WEIGHTS),
        description="Confidence per signal family (0-100).",
    )
    max_future_skew_hours: PositiveInt = Field(
        default=36,
        description="Candidates further in the future than this are dropped.",
    )

    @field_validator("weights")
    @classmethod
    def _check_weights(cls, value: Dict[str, int]) -> Dict[str, int]:
        merged = dict(DEFAULT_DATE_WEIGHTS)
        for key, weight in value.items():
            if key not in DEFAULT_DATE_WEIGHTS:
                raise ValueError(f"unknown date signal family: {key}")
            if not 0 <= int(weight) <= 100:
                raise ValueError(f"weight for {key} must be within 0..100")
            merged[key] = int(weight)
        return merged


class ClassificationConfig(StrictModel):
    """Topic classifier behaviour."""

    max_week: int = Field(
        default=18, ge=1, le=25, description="Highest valid regular-season week."
    )
    preseason_months: List[int] = Field(
        default_factory=lambda: [6, 7, 8],
        description="Months (1-12) in which an undated-by-week article is week 0.",
    )
    junk_topics_policy: Literal["keep", "reclassify"] = Field(
        default="keep",
        description=(
            "How the re-classification pass treats topic arrays holding no canonical tag."
        ),
    )

    @field_validator("preseason_months")
    @classmethod
    def _check_months(cls, value: List[int]) -> List[int]:
        for month in value:
            if not 1 <= month <= 12:
                raise ValueError("preseason_months entries must be within 1..12")
        return sorted(set(value))


class ImagesConfig(StrictModel):
    """Representative image backfill settings."""

    backfill_enabled: bool = Field(
        default=True, description="Look up og:image for rows without a usable image."
    )
    weak_markers: List[str] = Field(
        default_factory=lambda: [
            "favicon",
            "apple-touch-icon",
            "sprite",
            "logo",
            "avatar",
            "headshot",
            "placeholder",
            "blank.gif",
            "pixel",
        ],
        description="Path fragments that mark an image as low quality.",
    )
    min_dimension: PositiveInt = Field(
        default=200,
        description="Width/height hints below this mark an image as tiny.",
    )


class LoggingConfig(StrictModel):
    """Logging subsystem configuration."""

    level: str = Field(
        default="INFO",
        description="Minimum log level captured by the pipeline logger.",
        examples=["DEBUG"],
    )
    file_path: Path = Field(
        default=Path("data/logs/ingest.log"),
        description="Path of the rotating log file.",
    )
    max_file_size_mb: PositiveInt = Field(
        default=10, description="Maximum size per log file before rotation (MiB)."
    )
    retention_days: PositiveInt = Field(
        default=14, description="Number of days to keep rotated log files."
    )
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{line} | {message}",
        description="loguru format template for the file sink.",
    )

    @model_validator(mode="after")
    def _resolve_path(self) -> "LoggingConfig":
        if not self.file_path.is_absolute():
            self.file_path = self.file_path.resolve()
        return self


class MetricsConfig(StrictModel):
    """Prometheus counters exposed by the metrics observer."""

    enabled: bool = Field(default=False, description="Attach the metrics observer.")
    namespace: str = Field(default="gridiron", description="Metric name prefix.")


class Config(StrictModel):
    """Complete Gridiron configuration model."""

    app: AppSettings = Field(default_factory=AppSettings)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    rate_limiting: RateLimitingConfig = Field(default_factory=RateLimitingConfig)
    filtering: FilteringConfig = Field(default_factory=FilteringConfig)
    dates: DatesConfig = Field(default_factory=DatesConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    _metadata: object = PrivateAttr(default=None)


DEFAULT_CONFIG = Config()


def iter_field_docs(
    model: BaseModel | type[BaseModel],
    prefix: str = "",
    *,
    include_defaults: bool = True,
) -> Iterable[dict[str, object]]:
    """Yield flattened schema documentation entries."""

    instance = DEFAULT_CONFIG if isinstance(model, type) else model
    target_model = type(instance) if not isinstance(model, type) else model

    for name, field in target_model.model_fields.items():
        value = getattr(instance, name, field.default)
        key = f"{prefix}{name}" if not prefix else f"{prefix}.{name}"
        is_nested = isinstance(value, BaseModel)
        yield {
            "name": key,
            "type": getattr(field.annotation, "__name__", str(field.annotation)),
            "description": field.description or "",
            "default": None if (is_nested or not include_defaults) else value,
            "examples": field.examples or [],
            "is_nested": is_nested,
        }
        if is_nested:
            yield from iter_field_docs(value, key)


__all__ = [
    "Config",
    "DEFAULT_CONFIG",
    "DEFAULT_DATE_WEIGHTS",
    "SourceRuleConfig",
    "StrictModel",
    "iter_field_docs",
]
