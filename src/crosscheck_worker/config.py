"""Runtime configuration for the cross-check worker."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

MIN_STORAGE_SIZE_MB = 50
FIRST_LINE_COLUMN_MODES = ("one_based", "engine")


@dataclass(slots=True)
class RpcSettings:
    """Orchestrator connection settings."""

    base_url: str = "http://localhost:8080/api/v1"
    auth_key: str = ""
    request_timeout_seconds: float = 30.0


@dataclass(slots=True)
class EngineSettings:
    """External similarity engine settings."""

    command: str = "java -jar jplag.jar"
    language: str = "csharp"
    first_line_columns: str = "one_based"

    def command_prefix(self) -> list[str]:
        return shlex.split(self.command)


@dataclass(slots=True)
class DownloadSettings:
    """Submission download settings."""

    request_timeout_seconds: float = 60.0
    max_retries: int = 3


@dataclass(slots=True)
class PollingSettings:
    """Adaptive polling intervals of the worker loop."""

    initial_delay_seconds: float = 5.0
    busy_interval_seconds: float = 0.1
    idle_interval_seconds: float = 5.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    work_dir: Path = Path(".crosscheck")
    storage_size_mb: int = 1024
    sqlite_busy_timeout_ms: int = 5_000
    rpc: RpcSettings = field(default_factory=RpcSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    download: DownloadSettings = field(default_factory=DownloadSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)

    @property
    def storage_dir(self) -> Path:
        return self.work_dir / "storage"

    @property
    def db_path(self) -> Path:
        return self.storage_dir / "data.db"

    @property
    def engine_workdir(self) -> Path:
        return self.work_dir / "check" / "01"

    @property
    def logs_dir(self) -> Path:
        return self.work_dir / "logs"

    @property
    def storage_limit_bytes(self) -> int:
        return self.storage_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls, work_dir: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            work_dir=work_dir or Path(os.getenv("CROSSCHECK_WORK_DIR", ".crosscheck")),
            storage_size_mb=_env_int("CROSSCHECK_STORAGE_SIZE_MB", 1024),
            sqlite_busy_timeout_ms=_env_int("CROSSCHECK_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            rpc=RpcSettings(
                base_url=os.getenv("CROSSCHECK_SERVER_URL", "http://localhost:8080/api/v1"),
                auth_key=os.getenv("CROSSCHECK_SERVER_KEY", ""),
                request_timeout_seconds=_env_float("CROSSCHECK_SERVER_TIMEOUT_SECONDS", 30.0),
            ),
            engine=EngineSettings(
                command=os.getenv("CROSSCHECK_ENGINE_COMMAND", "java -jar jplag.jar"),
                language=os.getenv("CROSSCHECK_ENGINE_LANGUAGE", "csharp"),
                first_line_columns=os.getenv(
                    "CROSSCHECK_ENGINE_FIRST_LINE_COLUMNS",
                    "one_based",
                ).strip(),
            ),
            download=DownloadSettings(
                request_timeout_seconds=_env_float("CROSSCHECK_DOWNLOAD_TIMEOUT_SECONDS", 60.0),
                max_retries=_env_int("CROSSCHECK_DOWNLOAD_MAX_RETRIES", 3),
            ),
            polling=PollingSettings(
                initial_delay_seconds=_env_float("CROSSCHECK_POLL_INITIAL_DELAY_SECONDS", 5.0),
                busy_interval_seconds=_env_float("CROSSCHECK_POLL_BUSY_INTERVAL_SECONDS", 0.1),
                idle_interval_seconds=_env_float("CROSSCHECK_POLL_IDLE_INTERVAL_SECONDS", 5.0),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if required worker settings are missing or invalid."""

        self.validate_storage()
        _validate_server_url(self.rpc.base_url)
        if self.rpc.request_timeout_seconds <= 0:
            raise ValueError("CROSSCHECK_SERVER_TIMEOUT_SECONDS must be > 0.")
        if not self.engine.command_prefix():
            raise ValueError("CROSSCHECK_ENGINE_COMMAND must not be empty.")
        if not self.engine.language.strip():
            raise ValueError("CROSSCHECK_ENGINE_LANGUAGE must not be empty.")
        if self.download.request_timeout_seconds <= 0:
            raise ValueError("CROSSCHECK_DOWNLOAD_TIMEOUT_SECONDS must be > 0.")
        if self.download.max_retries < 0:
            raise ValueError("CROSSCHECK_DOWNLOAD_MAX_RETRIES must be >= 0.")
        for name, value in (
            ("CROSSCHECK_POLL_INITIAL_DELAY_SECONDS", self.polling.initial_delay_seconds),
            ("CROSSCHECK_POLL_BUSY_INTERVAL_SECONDS", self.polling.busy_interval_seconds),
            ("CROSSCHECK_POLL_IDLE_INTERVAL_SECONDS", self.polling.idle_interval_seconds),
        ):
            if value < 0:
                raise ValueError(f"{name} must be >= 0.")

    def validate_storage(self) -> None:
        """Validate only what local store maintenance commands need."""

        if not str(self.work_dir).strip():
            raise ValueError("CROSSCHECK_WORK_DIR must not be empty.")
        if self.storage_size_mb < MIN_STORAGE_SIZE_MB:
            raise ValueError(
                f"CROSSCHECK_STORAGE_SIZE_MB is too small: {self.storage_size_mb} "
                f"(minimum is {MIN_STORAGE_SIZE_MB} MB).",
            )
        if self.engine.first_line_columns not in FIRST_LINE_COLUMN_MODES:
            raise ValueError(
                "Invalid CROSSCHECK_ENGINE_FIRST_LINE_COLUMNS value: "
                f"{self.engine.first_line_columns!r}. "
                f"Expected one of {', '.join(FIRST_LINE_COLUMN_MODES)}.",
            )


def _validate_server_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid orchestrator URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {raw!r}") from error
