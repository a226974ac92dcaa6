"""Runtime settings and per-run generator options."""

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SEC_USER_AGENT = "investor-report-generator/1.0 (contact: investor-report@example.com)"

_TRUE_VALUES = {"true", "1", "yes", "y"}
_FALSE_VALUES = {"false", "0", "no", "n"}


def parse_bool(value: str | bool | None, default: bool) -> bool:
    """Parse a boolean-ish environment value, falling back to default."""
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    text = value.strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return default


@dataclass(frozen=True)
class FetchBudget:
    """Timeout and fixed-delay retry budget for one upstream."""

    timeout: float
    attempts: int
    delay: float


# Per-upstream budgets (seconds)
REGISTRY_BUDGET = FetchBudget(timeout=20.0, attempts=3, delay=0.8)
SEARCH_BUDGET = FetchBudget(timeout=15.0, attempts=2, delay=0.4)
QUOTE_BUDGET = FetchBudget(timeout=15.0, attempts=2, delay=0.4)
SUMMARY_BUDGET = FetchBudget(timeout=18.0, attempts=2, delay=0.5)


@dataclass(frozen=True)
class Settings:
    """Environment-derived settings shared by the CLI and the MCP server."""

    data_dir: Path = Path("data")
    sec_user_agent: str = DEFAULT_SEC_USER_AGENT
    cache_dir: Path = Path(".cache/registry")
    registry_cache_ttl: int = 86400

    @property
    def sources_dir(self) -> Path:
        return self.data_dir / "sources"

    @property
    def index_path(self) -> Path:
        return self.data_dir / "index.json"


def load_settings(data_dir: str | os.PathLike[str] | None = None) -> Settings:
    """Build Settings from environment variables (explicit data_dir wins)."""
    return Settings(
        data_dir=Path(data_dir or os.environ.get("STOCK_DATA_DIR", "data")),
        sec_user_agent=os.environ.get("SEC_USER_AGENT", DEFAULT_SEC_USER_AGENT),
        cache_dir=Path(os.environ.get("CACHE_DIR", ".cache/registry")),
        registry_cache_ttl=int(os.environ.get("REGISTRY_CACHE_TTL", "86400")),
    )


@dataclass(frozen=True)
class GeneratorOptions:
    """Immutable options for a single generation run."""

    ticker: str = ""
    name: str = ""
    strict: bool = True
    allow_placeholders: bool = True
    force: bool = False
    dry_run: bool = False
    build_index: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "ticker", (self.ticker or "").strip().upper())
        object.__setattr__(self, "name", (self.name or "").strip())

        if not self.ticker and not self.name:
            raise ValueError("Either --ticker or --name is required.")

    def to_policy(self) -> dict[str, bool | str]:
        """Policy block recorded in the provenance manifest."""
        return {
            "strict": self.strict,
            "allowPlaceholders": self.allow_placeholders,
            "sourcePriority": "official_first",
        }


def resolve_strict(explicit: bool | None, default: bool = True) -> bool:
    """Explicit flag wins; otherwise GENERATOR_STRICT_MODE; otherwise default."""
    if explicit is not None:
        return explicit
    return parse_bool(os.environ.get("GENERATOR_STRICT_MODE"), default)
