"""Configuration models and input loading for the harvester.

Two layers:
  - SearchSpec:   the run input record (keyword, limits, recency, proxy hint).
                  Invalid values are coerced to defaults, never fatal.
  - Settings:     runtime knobs for the two fetch tiers and the output sink.
"""

import logging
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from harvester.core.proxy import ProxyConfiguration

logger = logging.getLogger(__name__)

DEFAULT_RESULTS_WANTED = 100
DEFAULT_MAX_PAGES = 20


class ConfigError(ValueError):
    """The run input is not a record and cannot be coerced."""


class RecencyWindow(str, Enum):
    """Upper bound on the age of an emitted record."""

    ANY = "any"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def seconds(self) -> int | None:
        return _WINDOW_SECONDS[self]


_WINDOW_SECONDS: dict[RecencyWindow, int | None] = {
    RecencyWindow.ANY: None,
    RecencyWindow.DAY: 86400,
    RecencyWindow.WEEK: 7 * 86400,
    RecencyWindow.MONTH: 30 * 86400,
}


class SearchSpec(BaseModel):
    """Immutable input to a single run.

    Accepts the actor-style camelCase keys (``startUrl``, ``postedWithin`` ...)
    as well as snake_case names. Unknown keys are ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    keyword: str = ""
    location: str = ""
    start_url: str | None = Field(default=None, alias="startUrl")
    start_urls: list[str] = Field(default_factory=list, alias="startUrls")
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = DEFAULT_MAX_PAGES
    posted_within: RecencyWindow = Field(default=RecencyWindow.ANY, alias="postedWithin")
    collect_details: bool = Field(default=False, alias="collectDetails")
    proxy_configuration: ProxyConfiguration = Field(
        default_factory=ProxyConfiguration, alias="proxyConfiguration",
    )

    @field_validator("keyword", "location", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            logger.warning("Expected text input, got %s, using ''", type(v).__name__)
            return ""
        return v.strip()

    @field_validator("start_url", mode="before")
    @classmethod
    def _coerce_start_url(cls, v: Any) -> str | None:
        if isinstance(v, str) and v.strip():
            return v.strip()
        return None

    @field_validator("start_urls", mode="before")
    @classmethod
    def _coerce_start_urls(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        urls: list[str] = []
        for item in v:
            # Apify request-list entries arrive as {"url": "..."}
            if isinstance(item, dict):
                item = item.get("url")
            if isinstance(item, str) and item.strip():
                urls.append(item.strip())
        return urls

    @field_validator("results_wanted", mode="before")
    @classmethod
    def _coerce_results_wanted(cls, v: Any) -> int:
        return _positive_int(v, DEFAULT_RESULTS_WANTED, "results_wanted")

    @field_validator("max_pages", mode="before")
    @classmethod
    def _coerce_max_pages(cls, v: Any) -> int:
        return _positive_int(v, DEFAULT_MAX_PAGES, "max_pages")

    @field_validator("posted_within", mode="before")
    @classmethod
    def _coerce_window(cls, v: Any) -> RecencyWindow:
        if v is None or v == "":
            return RecencyWindow.ANY
        try:
            return RecencyWindow(str(v).strip().lower())
        except ValueError:
            logger.warning("Unknown postedWithin value '%s', using 'any'", v)
            return RecencyWindow.ANY

    @field_validator("collect_details", mode="before")
    @classmethod
    def _coerce_flag(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes")
        return bool(v)

    @field_validator("proxy_configuration", mode="before")
    @classmethod
    def _coerce_proxy(cls, v: Any) -> Any:
        if v is None or not isinstance(v, dict | ProxyConfiguration):
            return ProxyConfiguration()
        return v

    @property
    def explicit_start_url(self) -> str | None:
        """startUrl wins over startUrls; only the first of startUrls is used."""
        if self.start_url:
            return self.start_url
        if self.start_urls:
            return self.start_urls[0]
        return None

    @classmethod
    def from_input(cls, raw: Any) -> "SearchSpec":
        """Build a SearchSpec from an untrusted input record.

        Raises:
            ConfigError: If ``raw`` is not a mapping. Anything else is coerced.
        """
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            msg = f"Input must be a record (JSON object), got {type(raw).__name__}"
            raise ConfigError(msg)
        return cls.model_validate(raw)


def _positive_int(v: Any, default: int, field_name: str) -> int:
    if v is None or v == "":
        return default
    if isinstance(v, bool):
        logger.warning("Invalid %s value %r, using %d", field_name, v, default)
        return default
    try:
        n = int(float(v))
    except (TypeError, ValueError):
        logger.warning("Invalid %s value %r, using %d", field_name, v, default)
        return default
    if n < 1:
        logger.warning("Non-positive %s value %r, using %d", field_name, v, default)
        return default
    return n


class HttpTierConfig(BaseModel):
    """Fast tier: plain HTTP GETs with rotating sessions."""

    timeout_s: float = Field(default=30.0, gt=0, le=30.0)
    max_concurrency: int = Field(default=2, ge=1, le=2)
    max_retries: int = Field(default=2, ge=0, le=2)
    pacing_min_s: float = Field(default=2.0, ge=0.0)
    pacing_max_s: float = Field(default=4.0, ge=0.0)
    min_body_length: int = Field(default=5000, ge=0)
    session_pool_size: int = Field(default=10, ge=1)
    session_max_uses: int = Field(default=2, ge=1)


class BrowserTierConfig(BaseModel):
    """Escalated tier: one headless browser, one context per page request."""

    headless: bool = True
    request_timeout_s: float = Field(default=60.0, gt=0, le=60.0)
    navigation_timeout_ms: int = Field(default=30000, ge=1000)
    settle_min_s: float = Field(default=1.5, ge=0.0)
    settle_max_s: float = Field(default=3.0, ge=0.0)
    max_retries: int = Field(default=2, ge=0, le=2)


class OutputConfig(BaseModel):
    """Where the dataset and key-value records are written."""

    storage_dir: str = "storage"


class Settings(BaseModel):
    """Top-level runtime settings loaded from YAML."""

    http: HttpTierConfig = Field(default_factory=HttpTierConfig)
    browser: BrowserTierConfig = Field(default_factory=BrowserTierConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)


def load_input(path: str | Path) -> Any:
    """Read the raw run input from a JSON or YAML file.

    A missing file is an empty input record. The result is not validated here;
    pass it to :meth:`SearchSpec.from_input`.
    """
    path = Path(path)
    if not path.exists():
        logger.info("No input file at %s, using defaults", path)
        return {}
    try:
        return yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        msg = f"Input file {path} is not valid JSON/YAML: {e}"
        raise ConfigError(msg) from e
