"""
Configuration loader (``voucher_staging.config``).

Responsibility
--------------
Loads the YAML configuration file and parses it into frozen dataclasses.
Every section is optional; absent keys take the documented defaults.  The
``VOUCHER_STAGING_DATABASE_URL`` environment variable overrides
``database.url``.

Example::

    debounce_seconds: 0.5
    database:
      url: sqlite:///staging.db
      echo: false
    posting:
      voucher_type: GENERAL
      currency: VND
      fx_rate: 1
      voucher_status: POSTED
      posted_marker: "Đã ghi sổ"
      failure_marker: "Lỗi ghi sổ"

Failure modes
-------------
* Named file missing  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Wrong types / unknown keys / invalid currency  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from voucher_staging.db.types import InvalidCurrencyError, validate_currency
from voucher_staging.domain.staging import POSTED_MARKER, POSTING_FAILED_MARKER
from voucher_staging.exceptions import ConfigurationError

DATABASE_URL_ENV = "VOUCHER_STAGING_DATABASE_URL"
DEFAULT_DATABASE_URL = "sqlite:///voucher_staging.db"
DEFAULT_DEBOUNCE_SECONDS = 0.5


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = DEFAULT_DATABASE_URL
    echo: bool = False


@dataclass(frozen=True)
class PostingDefaults:
    """Constant parts of every voucher payload, plus the row status notes."""

    voucher_type: str = "GENERAL"
    currency: str = "VND"
    fx_rate: Decimal = Decimal(1)
    voucher_status: str = "POSTED"
    posted_marker: str = POSTED_MARKER
    failure_marker: str = POSTING_FAILED_MARKER


@dataclass(frozen=True)
class StagingConfig:
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    posting: PostingDefaults = field(default_factory=PostingDefaults)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        ConfigurationError: missing file, invalid YAML, or a non-mapping
            document.
    """
    if not path.exists():
        raise ConfigurationError(str(path), "file not found")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(str(path), f"invalid yaml: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: Mapping[str, Any], key: str, source: str, allowed: set[str]) -> dict[str, Any]:
    raw = data.get(key) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(source, f"'{key}' must be a mapping")
    unknown = set(raw) - allowed
    if unknown:
        raise ConfigurationError(source, f"unknown keys in '{key}': {sorted(unknown)}")
    return raw


def _expect(value: Any, kind: type | tuple[type, ...], name: str, source: str) -> Any:
    if isinstance(value, bool) and kind is not bool:
        raise ConfigurationError(source, f"'{name}' has the wrong type")
    if not isinstance(value, kind):
        raise ConfigurationError(source, f"'{name}' has the wrong type")
    return value


def parse_database(data: Mapping[str, Any], source: str) -> DatabaseSettings:
    raw = _section(data, "database", source, {"url", "echo"})
    defaults = DatabaseSettings()
    return DatabaseSettings(
        url=_expect(raw.get("url", defaults.url), str, "database.url", source),
        echo=_expect(raw.get("echo", defaults.echo), bool, "database.echo", source),
    )


def parse_posting(data: Mapping[str, Any], source: str) -> PostingDefaults:
    defaults = PostingDefaults()
    raw = _section(
        data,
        "posting",
        source,
        {"voucher_type", "currency", "fx_rate", "voucher_status", "posted_marker", "failure_marker"},
    )

    try:
        currency = validate_currency(raw.get("currency", defaults.currency))
    except InvalidCurrencyError as exc:
        raise ConfigurationError(source, str(exc)) from exc

    try:
        fx_rate = Decimal(str(raw.get("fx_rate", defaults.fx_rate)))
    except InvalidOperation as exc:
        raise ConfigurationError(source, "'posting.fx_rate' is not a number") from exc
    if not fx_rate.is_finite() or fx_rate <= 0:
        raise ConfigurationError(source, "'posting.fx_rate' must be positive")

    posted_marker = _expect(
        raw.get("posted_marker", defaults.posted_marker), str, "posting.posted_marker", source
    )
    if not posted_marker.strip():
        raise ConfigurationError(source, "'posting.posted_marker' must not be empty")

    return PostingDefaults(
        voucher_type=_expect(
            raw.get("voucher_type", defaults.voucher_type), str, "posting.voucher_type", source
        ),
        currency=currency,
        fx_rate=fx_rate,
        voucher_status=_expect(
            raw.get("voucher_status", defaults.voucher_status), str, "posting.voucher_status", source
        ),
        posted_marker=posted_marker,
        failure_marker=_expect(
            raw.get("failure_marker", defaults.failure_marker), str, "posting.failure_marker", source
        ),
    )


def parse_config(data: Mapping[str, Any], source: str = "<mapping>") -> StagingConfig:
    """Parse an already-loaded mapping into a StagingConfig."""
    unknown = set(data) - {"debounce_seconds", "database", "posting"}
    if unknown:
        raise ConfigurationError(source, f"unknown keys: {sorted(unknown)}")

    debounce = _expect(
        data.get("debounce_seconds", DEFAULT_DEBOUNCE_SECONDS),
        (int, float),
        "debounce_seconds",
        source,
    )
    if debounce < 0:
        raise ConfigurationError(source, "'debounce_seconds' must not be negative")

    return StagingConfig(
        debounce_seconds=float(debounce),
        database=parse_database(data, source),
        posting=parse_posting(data, source),
    )


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> StagingConfig:
    """
    Load configuration from ``path`` (defaults when None) and apply the
    environment override for the database URL.
    """
    env = os.environ if environ is None else environ
    if path is None:
        config = StagingConfig()
    else:
        config = parse_config(load_yaml_file(path), str(path))

    override = env.get(DATABASE_URL_ENV)
    if override:
        config = StagingConfig(
            debounce_seconds=config.debounce_seconds,
            database=DatabaseSettings(url=override, echo=config.database.echo),
            posting=config.posting,
        )
    return config
