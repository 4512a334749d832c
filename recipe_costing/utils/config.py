"""
Configuration management for the recipe costing core.

This module handles:
- Database path configuration
- Environment-specific configuration (development vs. production)
- Costing settings (base currency, recursion depth bound)
"""

import logging
import os
from pathlib import Path
from typing import Optional

from .constants import (
    APP_NAME,
    APP_VERSION,
    DATABASE_FILENAME,
    DATABASE_VERSION,
    DEFAULT_BASE_CURRENCY,
    DEFAULT_MAX_RECIPE_DEPTH,
)

logger = logging.getLogger(__name__)

ENV_ENVIRONMENT = "RECIPE_COSTING_ENV"
ENV_BASE_CURRENCY = "RECIPE_COSTING_BASE_CURRENCY"
ENV_MAX_DEPTH = "RECIPE_COSTING_MAX_DEPTH"
ENV_DATA_DIR = "RECIPE_COSTING_DATA_DIR"


class Config:
    """
    Application configuration manager.

    Handles database location, environment mode and the costing settings
    shared by the cost engine and the prep-sheet aggregator.
    """

    def __init__(
        self,
        environment: str = "production",
        base_currency: Optional[str] = None,
        max_recipe_depth: Optional[int] = None,
        data_dir: Optional[Path] = None,
    ):
        """
        Initialize configuration.

        Args:
            environment: Environment mode - 'production' or 'development'
            base_currency: Currency all exchange rates are expressed against.
                Falls back to RECIPE_COSTING_BASE_CURRENCY, then USD.
            max_recipe_depth: Bound on sub-recipe nesting during resolution.
                Falls back to RECIPE_COSTING_MAX_DEPTH, then 32.
            data_dir: Directory holding the database file. Falls back to
                RECIPE_COSTING_DATA_DIR, then an environment default.
        """
        self.environment = environment
        self._app_name = APP_NAME
        self._app_version = APP_VERSION
        self._database_version = DATABASE_VERSION

        if base_currency is None:
            base_currency = os.environ.get(ENV_BASE_CURRENCY, DEFAULT_BASE_CURRENCY)
        self._base_currency = base_currency.strip().upper()

        if max_recipe_depth is None:
            max_recipe_depth = self._read_int_env(ENV_MAX_DEPTH, DEFAULT_MAX_RECIPE_DEPTH)
        if max_recipe_depth < 1:
            raise ValueError("max_recipe_depth must be >= 1")
        self._max_recipe_depth = max_recipe_depth

        if data_dir is None:
            env_dir = os.environ.get(ENV_DATA_DIR)
            if env_dir:
                data_dir = Path(env_dir)
            elif environment == "development":
                data_dir = self._get_project_data_dir()
            else:
                data_dir = self._get_user_data_dir()
        self._database_dir = Path(data_dir)
        self._database_path = self._database_dir / DATABASE_FILENAME

    @staticmethod
    def _read_int_env(name: str, default: int) -> int:
        raw = os.environ.get(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning(f"Ignoring non-integer {name}={raw!r}; using {default}")
            return default

    def _get_project_data_dir(self) -> Path:
        """Project data/ directory used in development."""
        project_root = Path(__file__).parent.parent.parent
        return project_root / "data"

    def _get_user_data_dir(self) -> Path:
        """Per-user data directory used in production."""
        return Path.home() / ".recipe_costing"

    def ensure_directories(self) -> None:
        """Create the database directory if it doesn't exist."""
        self._database_dir.mkdir(parents=True, exist_ok=True)

    @property
    def app_name(self) -> str:
        return self._app_name

    @property
    def app_version(self) -> str:
        return self._app_version

    @property
    def database_version(self) -> str:
        return self._database_version

    @property
    def base_currency(self) -> str:
        """Currency against which every exchange rate is expressed."""
        return self._base_currency

    @property
    def max_recipe_depth(self) -> int:
        """Maximum sub-recipe nesting the resolvers will follow."""
        return self._max_recipe_depth

    @property
    def database_path(self) -> Path:
        """Full path to the database file."""
        return self._database_path

    @property
    def database_url(self) -> str:
        """
        SQLAlchemy database URL.

        Returns:
            Database URL string for SQLAlchemy
        """
        db_path_str = str(self._database_path).replace("\\", "/")
        return f"sqlite:///{db_path_str}"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def database_exists(self) -> bool:
        """Check if the database file exists."""
        return self._database_path.exists()

    def __repr__(self) -> str:
        return (
            f"Config(environment='{self.environment}', "
            f"base_currency='{self._base_currency}', "
            f"database_path='{self._database_path}')"
        )


_config_instance: Optional[Config] = None


def get_config(environment: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Once created, the singleton's environment cannot be changed by passing
    a different environment argument - this prevents switching databases
    mid-session.

    Args:
        environment: Optional environment for initial creation. If None, uses
                    RECIPE_COSTING_ENV or defaults to production. Ignored if
                    the singleton already exists.

    Returns:
        Config instance
    """
    global _config_instance

    if _config_instance is None:
        if environment is None:
            environment = os.environ.get(ENV_ENVIRONMENT, "production")
        _config_instance = Config(environment)
    elif environment is not None and environment != _config_instance.environment:
        logger.warning(
            f"get_config() called with environment='{environment}' but singleton "
            f"already exists with environment='{_config_instance.environment}'. "
            f"Returning existing singleton."
        )

    return _config_instance


def reset_config() -> None:
    """Reset the global configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None


def get_database_url() -> str:
    """Get the database URL of the global configuration."""
    return get_config().database_url
