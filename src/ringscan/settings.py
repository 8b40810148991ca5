"""Environment-driven settings and RESTBase table config loading."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ringscan.errors import ErrorKind, ScanError
from ringscan.logging import configure_logging
from ringscan.params import ConsistencyLevel, ScanParams

DEFAULT_CONFIG_PATH = Path("/etc/restbase/config.yaml")


class ScanSettings(BaseSettings):
    """Settings loaded from `RINGSCAN_*` environment variables or a `.env` file."""

    model_config = SettingsConfigDict(
        env_prefix="RINGSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    config_path: Path = Field(
        default=DEFAULT_CONFIG_PATH,
        validation_alias=AliasChoices("CONFIG", "RINGSCAN_CONFIG_PATH"),
    )
    log_level: str = "INFO"
    log_json: bool = False

    page_size: int = Field(default=50, gt=0)
    consistency: ConsistencyLevel = ConsistencyLevel.ONE
    backoff_ceiling: float = Field(default=20.0, gt=0)
    skip_stride: int = Field(default=500_000_000, gt=0)

    def configure_logging(self) -> None:
        """Apply `log_level` and `log_json` to structlog and stdlib logging."""
        configure_logging(json_output=self.log_json, level=self.log_level)

    def scan_params(self) -> ScanParams:
        """Build scan parameters from these settings."""
        return ScanParams(
            page_size=self.page_size,
            consistency=self.consistency,
            backoff_ceiling=self.backoff_ceiling,
            skip_stride=self.skip_stride,
        )


def load_table_config(path: Path | str | None = None) -> dict[str, Any]:
    """Return the table section of a RESTBase config.

    Without a path, `ScanSettings().config_path` is used, which honours the
    `CONFIG` environment variable and falls back to /etc/restbase/config.yaml.
    """
    config_path = Path(path) if path is not None else ScanSettings().config_path
    try:
        with config_path.open(encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        msg = f"Failed to read config {config_path}: {e}"
        raise ScanError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e

    try:
        table = config["default_project"]["x-modules"][0]["options"]["table"]
    except (KeyError, IndexError, TypeError) as e:
        msg = f"Config {config_path} has no default_project table section"
        raise ScanError(msg, kind=ErrorKind.INVALID_INPUT, source=e) from e
    if not isinstance(table, dict):
        msg = f"Table section of {config_path} is not a mapping"
        raise ScanError(msg, kind=ErrorKind.INVALID_INPUT)
    return table
