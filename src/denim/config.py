"""Manage configuration settings for the Denim data store."""

import argparse
import dataclasses
import datetime
import enum
import pathlib
import shutil
import tomllib
from typing import Optional


DB_FILE_NAME = "denim.db"
CONFIG_FILE_NAME = "denim.toml"


class ConfigError(Exception):
    """Errors when setting or accessing settings."""

    class ErrorType(enum.Enum):
        BAD_VALUE = 1

    error_type: ErrorType

    def __init__(self, message: str, error_type: ErrorType) -> None:
        """Set error type."""
        super().__init__(message)
        self.error_type = error_type


@dataclasses.dataclass
class Settings:
    """Configuration data for the Denim data store."""

    db_path: Optional[pathlib.Path] = None
    config_path: Optional[pathlib.Path] = None
    session_lifetime_hours: float = 24
    default_timezone: str = "Europe/London"
    log_level: str = "INFO"
    log_dir: Optional[pathlib.Path] = None

    @property
    def session_lifetime(self) -> datetime.timedelta:
        """How long a new web session stays valid."""
        return datetime.timedelta(hours=self.session_lifetime_hours)

    def update_from_args(self, args: argparse.Namespace) -> None:
        """Read settings.

        A database path given on the command line wins over one in the
        configuration file.
        """
        self.db_path = None
        self.config_path = self._get_full_path(
            getattr(args, "config_path", None), CONFIG_FILE_NAME
        )
        if self.config_path is not None:
            self._read_config_file()
        db_path = getattr(args, "db_path", None)
        if db_path is not None or self.db_path is None:
            self.db_path = self._get_full_path(db_path, DB_FILE_NAME, must_exist=False)

    @staticmethod
    def _convert_path_to_absolute(path: pathlib.Path | str) -> pathlib.Path:
        """Convert relative paths to absolute paths."""
        if isinstance(path, str):
            path = pathlib.Path(path)
        return path if path.is_absolute() else pathlib.Path.cwd() / path

    @staticmethod
    def _get_full_path(
        path: Optional[pathlib.Path],
        default_file_name: str,
        must_exist: bool = True,
    ) -> Optional[pathlib.Path]:
        """Convert path arg to full filesystem path.

        If path is None, looks for file in current working directory. Otherwise
        converts relative paths to absolute paths. When must_exist is True,
        returns None if path does not point to an existing file.
        """
        cwd = pathlib.Path.cwd()
        full_path: Optional[pathlib.Path] = None
        if path is None:
            full_path = cwd / default_file_name
        elif path.is_absolute():
            full_path = path
        else:
            full_path = cwd / path
        if must_exist and not full_path.is_file():
            full_path = None
        return full_path

    def _read_config_file(self) -> None:
        """Read TOML configuration file."""
        if self.config_path is None:
            return
        app_settings = dataclasses.asdict(self)
        with open(self.config_path, "rb") as toml_file:
            file_settings = tomllib.load(toml_file)
        for setting_name, value in file_settings.items():
            if setting_name not in app_settings:
                continue
            if isinstance(value, str) and value.lower() in ["", "none", "null"]:
                value = None
            if setting_name in ("db_path", "log_dir") and value is not None:
                value = self._convert_path_to_absolute(value)
            elif setting_name == "session_lifetime_hours":
                if not isinstance(value, (int, float)) or value <= 0:
                    raise ConfigError(
                        f"session_lifetime_hours must be a positive number, got {value!r}.",
                        ConfigError.ErrorType.BAD_VALUE,
                    )
            setattr(self, setting_name, value)

    def create_new_config_file(self, config_path: pathlib.Path) -> None:
        """Create a new configuration file with default settings."""
        if not config_path.exists():
            shutil.copy(
                pathlib.Path(__file__).parent / "example-config.toml", config_path
            )


# Store settings in a module-level variable, which will be available from any
# other module that imports denim.config. There is only a single instance of
# the Settings class.
settings = Settings()
