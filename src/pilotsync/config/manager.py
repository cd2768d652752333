"""Configuration manager turning sync profiles into configured engines."""

from typing import Optional

from .loader import ConfigLoader, ConfigurationError, load_config_from_env
from .schema import SyncProfileConfig
from ..backends.base import Backend
from ..backends.factory import BackendFactory, BackendType
from ..core.sync_engine import SyncEngine
from ..utils.logging import get_logger, log_execution_time, setup_logging


class ConfigManager:
    """Loads a sync profile and builds the engine it describes."""

    def __init__(self, config_file: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_file: Optional profile path; default locations are searched otherwise
        """
        self.config_file = config_file
        self.loader = ConfigLoader()
        self.logger = get_logger(self.__class__.__name__)

        self._config: Optional[SyncProfileConfig] = None

    @property
    def config(self) -> SyncProfileConfig:
        """The loaded profile, loading it on first access."""
        return self.load_config()

    @log_execution_time
    def load_config(self, force_reload: bool = False) -> SyncProfileConfig:
        """Load the profile from file or fall back to the default one.

        Args:
            force_reload: Force reload even if a profile is already loaded

        Returns:
            Loaded profile
        """
        if self._config and not force_reload:
            return self._config

        try:
            if self.config_file:
                self._config = self.loader.load_from_file(self.config_file)
            else:
                self._config = load_config_from_env()
        except ConfigurationError:
            raise
        except Exception as e:
            self.logger.error("Failed to load configuration", error=str(e))
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        self.loader.validate_config(self._config)
        return self._config

    def set_config(self, config: SyncProfileConfig) -> None:
        """Use an already built profile."""
        self._config = config

    def configure_logging(self) -> None:
        """Apply the profile's logging section."""
        logging_config = self.config.logging
        setup_logging(
            log_level=logging_config.level,
            log_format=logging_config.format,
            log_file=logging_config.file_path
        )

    def create_local_backend(self) -> Backend:
        """Build the local collection store described by the profile."""
        config = self.config
        return BackendFactory.create_backend(
            BackendType.LOCAL_FILE,
            base_path=config.local_base_path,
            name_attempt_limit=config.name_attempt_limit,
            extensions={kind.value: ext for kind, ext in config.extensions.items()},
        )

    def create_engine(self, remote_backend: Backend, local_backend: Optional[Backend] = None) -> SyncEngine:
        """Build a sync engine with every profile collection registered.

        Args:
            remote_backend: Device-side store supplied by the transport layer
            local_backend: Local store; built from the profile when omitted

        Returns:
            Configured SyncEngine
        """
        config = self.config
        engine = SyncEngine(
            local_backend=local_backend or self.create_local_backend(),
            remote_backend=remote_backend,
            state_directory=config.state_directory,
            conflict_policy=config.conflict_policy,
            mode=config.mode,
            parallel_load=config.parallel_load,
            volatility_threshold=config.volatility_threshold,
            volatility_min_records=config.volatility_min_records,
        )

        for collection in config.collections:
            engine.register_collection(
                collection.to_descriptor(),
                enabled=collection.enabled,
                run_after=collection.run_after,
                run_before=collection.run_before,
            )

        self.logger.info(
            "Sync engine configured",
            profile=config.name,
            collections=[collection.id for collection in config.collections]
        )
        return engine
