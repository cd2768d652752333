"""Configuration loader for JSON/YAML profiles and environment variables."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .schema import SyncProfileConfig, default_collections
from ..core.conduit import Conduit, ConduitOrderError, order_conduits
from ..utils.logging import get_logger


ENV_PREFIX = "PILOTSYNC_"

_TRUE_VALUES = ["true", "1", "yes", "on"]

_STRING_OVERRIDES = {
    "local_base_path": f"{ENV_PREFIX}LOCAL_BASE_PATH",
    "state_directory": f"{ENV_PREFIX}STATE_DIRECTORY",
    "conflict_policy": f"{ENV_PREFIX}SYNC_CONFLICT_POLICY",
    "mode": f"{ENV_PREFIX}SYNC_MODE",
}

_NUMERIC_OVERRIDES = {
    "volatility_threshold": (f"{ENV_PREFIX}SYNC_VOLATILITY_THRESHOLD", float),
    "volatility_min_records": (f"{ENV_PREFIX}SYNC_VOLATILITY_MIN_RECORDS", int),
    "name_attempt_limit": (f"{ENV_PREFIX}LOCAL_NAME_ATTEMPT_LIMIT", int),
}


class ConfigurationError(Exception):
    """Raised when configuration loading fails."""
    pass


class ConfigLoader:
    """Loads and validates sync profiles from files, dictionaries and the environment."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, file_path: Union[str, Path]) -> SyncProfileConfig:
        """Load a profile from a JSON or YAML file.

        Args:
            file_path: Path to the profile

        Returns:
            Validated SyncProfileConfig object

        Raises:
            ConfigurationError: If the file cannot be loaded or validated
        """
        file_path = Path(file_path)

        if not file_path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        self.logger.info("Loading configuration from file", file_path=str(file_path))

        suffix = file_path.suffix.lower()
        if suffix not in (".yaml", ".yml", ".json"):
            raise ConfigurationError(f"Unsupported file format: {file_path.suffix}")

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                if suffix == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML format: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON format: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")

        config = self._build(data)
        self.logger.info(
            "Configuration loaded successfully",
            profile=config.name,
            collections_count=len(config.collections)
        )
        return config

    def load_from_dict(self, data: Dict[str, Any]) -> SyncProfileConfig:
        """Load a profile from a dictionary.

        Args:
            data: Profile data

        Returns:
            Validated SyncProfileConfig object
        """
        config = self._build(dict(data))
        self.logger.info("Configuration loaded from dictionary", collections_count=len(config.collections))
        return config

    def save_to_file(
        self,
        config: SyncProfileConfig,
        file_path: Union[str, Path],
        format: str = "yaml"
    ) -> None:
        """Save a profile to a file.

        Args:
            config: Profile to save
            file_path: Output file path
            format: Output format ('yaml' or 'json')
        """
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json")

        try:
            with open(file_path, "w", encoding="utf-8") as f:
                if format.lower() == "yaml":
                    yaml.safe_dump(data, f, default_flow_style=False, indent=2, allow_unicode=True)
                elif format.lower() == "json":
                    json.dump(data, f, indent=2)
                else:
                    raise ConfigurationError(f"Unsupported format: {format}")
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration: {e}") from e

        self.logger.info("Configuration saved successfully", file_path=str(file_path))

    def create_default_config(self) -> SyncProfileConfig:
        """Create a profile syncing the four built-in collections."""
        config = self._build({})
        if not config.collections:
            config = config.model_copy(update={"collections": default_collections()})
        self.logger.info("Created default configuration")
        return config

    def validate_config(self, config: SyncProfileConfig) -> List[str]:
        """Check a profile for problems that do not prevent loading it.

        Args:
            config: Profile to check

        Returns:
            List of validation warnings
        """
        warnings = []
        known_ids = {collection.id for collection in config.collections}

        if not config.enabled_collections():
            warnings.append("No enabled collections")

        for collection in config.collections:
            for reference in list(collection.run_after) + list(collection.run_before):
                if reference not in known_ids:
                    warnings.append(
                        f"Collection '{collection.id}' references unknown collection '{reference}'"
                    )

        conduits = [
            Conduit(
                descriptor=collection.to_descriptor(),
                run_after=tuple(collection.run_after),
                run_before=tuple(collection.run_before),
            )
            for collection in config.enabled_collections()
        ]
        try:
            order_conduits(conduits)
        except ConduitOrderError as e:
            warnings.append(str(e))

        if Path(config.state_directory).resolve() == Path(config.local_base_path).resolve():
            warnings.append("State directory is the same as the local collection store")

        if warnings:
            self.logger.warning("Configuration validation warnings", warnings=warnings)
        else:
            self.logger.info("Configuration validation passed")

        return warnings

    def _build(self, data: Dict[str, Any]) -> SyncProfileConfig:
        data = self._apply_env_overrides(data)
        try:
            return SyncProfileConfig(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to profile data.

        The variables are the ones read by the settings classes, for example
        PILOTSYNC_SYNC_CONFLICT_POLICY or PILOTSYNC_LOG_LEVEL.
        """
        env_overrides: Dict[str, Any] = {}

        for key, env_name in _STRING_OVERRIDES.items():
            value = os.getenv(env_name)
            if value:
                env_overrides[key] = value

        parallel_load = os.getenv(f"{ENV_PREFIX}SYNC_PARALLEL_LOAD")
        if parallel_load:
            env_overrides["parallel_load"] = parallel_load.lower() in _TRUE_VALUES

        for key, (env_name, convert) in _NUMERIC_OVERRIDES.items():
            value = os.getenv(env_name)
            if not value:
                continue
            try:
                env_overrides[key] = convert(value)
            except ValueError:
                self.logger.warning(f"Invalid {env_name} value, ignoring", value=value)

        logging_overrides = {}
        for key in ("level", "format", "file_path"):
            value = os.getenv(f"{ENV_PREFIX}LOG_{key.upper()}")
            if value:
                logging_overrides[key] = value
        if logging_overrides:
            env_overrides["logging"] = {**(data.get("logging") or {}), **logging_overrides}

        if env_overrides:
            self.logger.info("Applied environment variable overrides", overrides=list(env_overrides.keys()))
            data = {**data, **env_overrides}

        return data


def load_config_from_env(env_file: Optional[str] = None) -> SyncProfileConfig:
    """Load a profile using environment variables and default locations.

    Looks for a profile in this order:
    1. PILOTSYNC_CONFIG_FILE environment variable
    2. ./config/pilotsync.yaml, .yml or .json
    3. ./pilotsync.yaml, .yml or .json

    If no file is found, the default profile is used.
    """
    load_dotenv(env_file)
    loader = ConfigLoader()
    logger = get_logger("load_config_from_env")

    config_file = os.getenv(f"{ENV_PREFIX}CONFIG_FILE")
    if config_file:
        if os.path.exists(config_file):
            return loader.load_from_file(config_file)
        logger.warning("Specified config file not found", file=config_file)

    possible_files = [
        "./config/pilotsync.yaml",
        "./config/pilotsync.yml",
        "./config/pilotsync.json",
        "./pilotsync.yaml",
        "./pilotsync.yml",
        "./pilotsync.json",
    ]

    for file_path in possible_files:
        if os.path.exists(file_path):
            logger.info("Found configuration file", file=file_path)
            return loader.load_from_file(file_path)

    logger.info("No configuration file found, using default configuration")
    return loader.create_default_config()
