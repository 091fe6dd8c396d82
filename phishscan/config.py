"""Config loading for PhishScan.

Reads `.phishscan/config.yaml` (or `~/.phishscan/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. PHISHSCAN_CONFIG environment variable (if set)
  3. `.phishscan/config.yaml` (working directory — for development)
  4. `~/.phishscan/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after the file is parsed):
  PHISHSCAN_PORT           — overrides server.port
  PHISHSCAN_ENV            — overrides environment
  PHISHSCAN_ALLOW_DEV_MODE — overrides rate_limit.allow_dev_mode ("true"/"false")

Secrets (OPENAI_API_KEY, SUPABASE_URL, SUPABASE_KEY) are NOT part of Config.
They are read by the classifier and cache factories at startup only.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from phishscan.constants import (
    CACHE_EXPIRY_DAYS,
    DEFAULT_LLM_BASE_URL,
    DEFAULT_LLM_MODEL,
    LLM_TIMEOUT_S,
    MAX_CONTENT_BYTES,
    RATE_LIMIT_DEFAULT,
    RATE_LIMIT_DEVELOPMENT,
    RATE_LIMIT_WINDOW_HOURS,
)
from phishscan.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# ─── Validation sets ─────────────────────────────────────────────────────────

PRODUCTION = "production"

VALID_ENVIRONMENTS: frozenset[str] = frozenset({PRODUCTION, "development", "test"})

VALID_CACHE_BACKENDS: frozenset[str] = frozenset({"auto", "memory", "sqlite", "supabase", "none"})

DEFAULT_CONFIG_PATHS = [
    ".phishscan/config.yaml",
    os.path.expanduser("~/.phishscan/config.yaml"),
]


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding configuration."""

    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class RateLimitConfig:
    """Per-client daily quota.

    development_limit only ever applies when Config.environment is not
    "production" AND allow_dev_mode is true AND the client is a loopback
    address. See RateLimitPolicy.from_config().
    """

    limit: int = RATE_LIMIT_DEFAULT
    development_limit: int = RATE_LIMIT_DEVELOPMENT
    allow_dev_mode: bool = False
    window_hours: int = RATE_LIMIT_WINDOW_HOURS


@dataclass
class CacheConfig:
    """URL verdict cache configuration.

    backend:
      auto     — Supabase when SUPABASE_URL + SUPABASE_KEY are set, else SQLite
      memory   — process-local store (lost on restart)
      sqlite   — aiosqlite file at ``path``
      supabase — Supabase ``url_cache`` table (requires the env vars)
      none     — caching disabled; every lookup is a miss
    """

    backend: str = "auto"
    retention_days: int = CACHE_EXPIRY_DAYS
    path: str = "~/.phishscan/cache.db"


@dataclass
class LLMConfig:
    """OpenAI-compatible Chat Completions endpoint used as the external classifier."""

    base_url: str = DEFAULT_LLM_BASE_URL
    model: str = DEFAULT_LLM_MODEL
    timeout_s: float = LLM_TIMEOUT_S
    temperature: float = 0.0


@dataclass
class AnalysisConfig:
    """Request validation limits."""

    max_content_bytes: int = MAX_CONTENT_BYTES


@dataclass
class Config:
    """Root configuration object populated from .phishscan/config.yaml.

    All fields have safe defaults — PhishScan can start without any config file,
    and the default environment is "production" so relaxed quotas are opt-in.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    environment: str = PRODUCTION
    server: ServerConfig = field(default_factory=ServerConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On invalid environment or cache.backend value, or a
                           non-boolean rate_limit.allow_dev_mode.
        """
        environment = raw.get("environment", PRODUCTION)
        _require_choice("environment", environment, VALID_ENVIRONMENTS)

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {})
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8000),
        )

        # ── Rate limit ────────────────────────────────────────────────────────
        rl_raw = raw.get("rate_limit", {})
        rate_limit = RateLimitConfig(
            limit=rl_raw.get("limit", RATE_LIMIT_DEFAULT),
            development_limit=rl_raw.get("development_limit", RATE_LIMIT_DEVELOPMENT),
            allow_dev_mode=_require_bool(
                "rate_limit.allow_dev_mode", rl_raw.get("allow_dev_mode", False)
            ),
            window_hours=rl_raw.get("window_hours", RATE_LIMIT_WINDOW_HOURS),
        )

        # ── Cache ─────────────────────────────────────────────────────────────
        cache_raw = raw.get("cache", {})
        cache_backend = cache_raw.get("backend", "auto")
        _require_choice("cache.backend", cache_backend, VALID_CACHE_BACKENDS)
        cache = CacheConfig(
            backend=cache_backend,
            retention_days=cache_raw.get("retention_days", CACHE_EXPIRY_DAYS),
            path=cache_raw.get("path", "~/.phishscan/cache.db"),
        )

        # ── LLM ───────────────────────────────────────────────────────────────
        llm_raw = raw.get("llm", {})
        llm = LLMConfig(
            base_url=llm_raw.get("base_url", DEFAULT_LLM_BASE_URL).rstrip("/"),
            model=llm_raw.get("model", DEFAULT_LLM_MODEL),
            timeout_s=float(llm_raw.get("timeout_s", LLM_TIMEOUT_S)),
            temperature=float(llm_raw.get("temperature", 0.0)),
        )

        # ── Analysis ──────────────────────────────────────────────────────────
        analysis_raw = raw.get("analysis", {})
        analysis = AnalysisConfig(
            max_content_bytes=analysis_raw.get("max_content_bytes", MAX_CONTENT_BYTES),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            environment=environment,
            server=server,
            rate_limit=rate_limit,
            cache=cache,
            llm=llm,
            analysis=analysis,
            path=path,
        )


def _require_choice(name: str, value: object, allowed: frozenset[str]) -> None:
    if value not in allowed:
        msg = (
            f"CONFIG ERROR: Invalid {name}: '{value}'. "
            f"Supported values: {sorted(allowed)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)


def _require_bool(name: str, value: object) -> bool:
    # YAML true/false only; a quoted "false" must not enable anything
    if not isinstance(value, bool):
        msg = (
            f"CONFIG ERROR: Invalid {name}: {value!r}. "
            f"Expected a boolean (true or false)."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    return value


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate PhishScan configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Environment overrides are applied in both cases, followed by the production
    guard: ``rate_limit.allow_dev_mode`` is forced off when the effective
    environment is "production".

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid ``environment`` / ``cache.backend``, or an
                       invalid ``PHISHSCAN_PORT`` / ``PHISHSCAN_ENV``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("PHISHSCAN_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    # ── No config file found ─────────────────────────────────────────────────
    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        _enforce_production_guard(config)
        return config

    # ── Parse config file ─────────────────────────────────────────────────────
    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        msg = (
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "PhishScan refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)
    except OSError as exc:
        msg = f"CONFIG ERROR: Could not read {found_path}: {exc}"
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if not isinstance(raw, dict):
        if raw is None:
            msg = (
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        else:
            msg = (
                f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
                "The config file must be a YAML dictionary at the top level."
            )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    # ── Version validation ────────────────────────────────────────────────────
    version = raw.get("version")
    if version is None:
        msg = (
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    if version not in SUPPORTED_VERSIONS:
        msg = (
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
        print(msg, file=sys.stderr)
        raise SystemExit(1)

    config = Config.from_dict(raw, path=found_path)

    _apply_env_overrides(config)
    _enforce_production_guard(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "PhishScan is configured to bind on 0.0.0.0 (all interfaces). "
            "Put it behind a reverse proxy that sets X-Forwarded-For, otherwise "
            "every client shares one rate-limit bucket."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        environment=config.environment,
        cache_backend=config.cache.backend,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Handles:
      PHISHSCAN_PORT           — integer; SystemExit(1) if invalid
      PHISHSCAN_ENV            — one of VALID_ENVIRONMENTS; SystemExit(1) if invalid
      PHISHSCAN_ALLOW_DEV_MODE — "true" enables, anything else disables

    Called for both file-loaded and default configs so env vars always take
    precedence over any file value.
    """
    env_port = os.environ.get("PHISHSCAN_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            msg = (
                f"CONFIG ERROR: PHISHSCAN_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )
            print(msg, file=sys.stderr)
            raise SystemExit(1)

    env_environment = os.environ.get("PHISHSCAN_ENV")
    if env_environment is not None:
        _require_choice("PHISHSCAN_ENV", env_environment.strip().lower(), VALID_ENVIRONMENTS)
        config.environment = env_environment.strip().lower()

    env_dev_mode = os.environ.get("PHISHSCAN_ALLOW_DEV_MODE")
    if env_dev_mode is not None:
        config.rate_limit.allow_dev_mode = env_dev_mode.strip().lower() == "true"


def _enforce_production_guard(config: Config) -> None:
    """Turn off the development quota switch in production, loudly."""
    if config.is_production and config.rate_limit.allow_dev_mode:
        logger.warning(
            "rate_limit.allow_dev_mode ignored in production — standard quota applies",
            limit=config.rate_limit.limit,
        )
        config.rate_limit.allow_dev_mode = False
