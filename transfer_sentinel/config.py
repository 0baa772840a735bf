"""Environment-based configuration with validation."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root or cwd
_env_path = Path(__file__).resolve().parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_int(key: str, default: int = 0) -> int:
    return int(os.getenv(key, str(default)))


def _env_float(key: str, default: float = 0.0) -> float:
    return float(os.getenv(key, str(default)))


def _env_bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """JSON-RPC provider and log polling settings."""

    rpc_url: str = field(default_factory=lambda: _env("RPC_URL_HTTP"))
    poll_interval_seconds: float = field(
        default_factory=lambda: _env_float("CHAIN_POLL_INTERVAL_SECONDS", 2.0)
    )
    max_block_range: int = field(
        default_factory=lambda: _env_int("CHAIN_MAX_BLOCK_RANGE", 2000)
    )
    request_timeout: int = field(
        default_factory=lambda: _env_int("CHAIN_REQUEST_TIMEOUT", 10)
    )


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """PostgreSQL connection settings."""

    host: str = field(default_factory=lambda: _env("DB_HOST", "localhost"))
    port: int = field(default_factory=lambda: _env_int("DB_PORT", 5432))
    user: str = field(default_factory=lambda: _env("DB_USER", "sentinel"))
    password: str = field(default_factory=lambda: _env("DB_PASSWORD"))
    database: str = field(
        default_factory=lambda: _env("DB_NAME", "transfer_sentinel")
    )
    pool_min: int = field(default_factory=lambda: _env_int("DB_POOL_MIN", 2))
    pool_max: int = field(default_factory=lambda: _env_int("DB_POOL_MAX", 10))

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.user}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


@dataclass(frozen=True, slots=True)
class RegistryConfig:
    """Subscription lifecycle settings.

    ``subscribe_max_attempts`` caps how many consecutive discovery sweeps
    may retry a contract whose subscription keeps failing (0 = no cap).
    After ``subscribe_retry_cooldown_seconds`` the contract gets a fresh
    round of attempts.
    """

    subscribe_timeout_seconds: float = field(
        default_factory=lambda: _env_float("SUBSCRIBE_TIMEOUT_SECONDS", 15.0)
    )
    subscribe_max_attempts: int = field(
        default_factory=lambda: _env_int("SUBSCRIBE_MAX_ATTEMPTS", 5)
    )
    subscribe_retry_cooldown_seconds: float = field(
        default_factory=lambda: _env_float("SUBSCRIBE_RETRY_COOLDOWN_SECONDS", 300.0)
    )
    discovery_interval_seconds: int = field(
        default_factory=lambda: _env_int("DISCOVERY_INTERVAL_SECONDS", 60)
    )


@dataclass(frozen=True, slots=True)
class DetectionConfig:
    """Risk-analysis collaborator settings."""

    analyzer_url: str = field(default_factory=lambda: _env("RISK_ANALYZER_URL"))
    analyzer_token: str = field(
        default_factory=lambda: _env("RISK_ANALYZER_TOKEN")
    )
    max_concurrency: int = field(
        default_factory=lambda: _env_int("DETECTION_MAX_CONCURRENCY", 8)
    )
    timeout_seconds: float = field(
        default_factory=lambda: _env_float("DETECTION_TIMEOUT_SECONDS", 30.0)
    )


@dataclass(frozen=True, slots=True)
class MetricsConfig:
    """Prometheus metrics settings."""

    enabled: bool = field(
        default_factory=lambda: _env_bool("METRICS_ENABLED", False)
    )
    port: int = field(
        default_factory=lambda: _env_int("METRICS_PORT", 9090)
    )


@dataclass(frozen=True, slots=True)
class HealthConfig:
    """Health check endpoint settings."""

    enabled: bool = field(
        default_factory=lambda: _env_bool("HEALTH_ENABLED", True)
    )
    port: int = field(
        default_factory=lambda: _env_int("HEALTH_PORT", 8080)
    )


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Root application configuration aggregating all sub-configs."""

    chain: ChainConfig = field(default_factory=ChainConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    log_level: str = field(
        default_factory=lambda: _env("LOG_LEVEL", "INFO")
    )
    log_json: bool = field(
        default_factory=lambda: _env_bool("LOG_JSON", False)
    )

    def errors(self) -> list[str]:
        """Return human-readable problems with the current settings."""
        errors: list[str] = []
        if not self.chain.rpc_url:
            errors.append("RPC_URL_HTTP is required")
        if not self.database.password:
            errors.append("DB_PASSWORD is required")
        if self.chain.poll_interval_seconds <= 0:
            errors.append("CHAIN_POLL_INTERVAL_SECONDS must be positive")
        if self.chain.max_block_range < 1:
            errors.append("CHAIN_MAX_BLOCK_RANGE must be at least 1")
        if self.detection.max_concurrency < 1:
            errors.append("DETECTION_MAX_CONCURRENCY must be at least 1")
        if self.registry.subscribe_max_attempts < 0:
            errors.append("SUBSCRIBE_MAX_ATTEMPTS must not be negative")
        if self.registry.subscribe_retry_cooldown_seconds < 0:
            errors.append("SUBSCRIBE_RETRY_COOLDOWN_SECONDS must not be negative")
        return errors

    def validate(self) -> None:
        """Validate required fields; exits on failure."""
        errors = self.errors()
        if errors:
            for e in errors:
                print(f"[CONFIG ERROR] {e}", file=sys.stderr)
            raise SystemExit(1)
