"""
Base class and registry for extraction adapters.
"""

from typing import Any, Dict, List, Optional

from lexicon_harvester.pipeline.interfaces import Extractor
from lexicon_harvester.utils.errors import ConfigurationError
from lexicon_harvester.utils.logging import get_logger


logger = get_logger(__name__)


class BaseExtractor(Extractor):
    """Abstract base class for all extraction adapters."""

    def __init__(self, source_name: str, config: Optional[Dict[str, Any]] = None):
        """
        Initialize extractor with source name and configuration.

        Args:
            source_name: Name of the data source (e.g. 'hanzii')
            config: Optional extractor-specific configuration
        """
        self.source_name = source_name
        self.config = config or {}

    def validate_config(self) -> bool:
        """Validate extractor configuration. Override for specific checks."""
        return True


class ExtractorRegistry:
    """Registry of extraction adapters by source name."""

    def __init__(self):
        self._extractors: Dict[str, type] = {}
        self._configs: Dict[str, Dict[str, Any]] = {}

    def register(self, name: str, extractor_class: type, default_config: Optional[Dict[str, Any]] = None) -> None:
        """
        Register an extractor class.

        Args:
            name: Extractor name (e.g. 'hanzii')
            extractor_class: Class extending BaseExtractor
            default_config: Default configuration for the extractor

        Raises:
            ConfigurationError: If the class does not extend BaseExtractor
        """
        if not (isinstance(extractor_class, type) and issubclass(extractor_class, BaseExtractor)):
            raise ConfigurationError(
                "Extractor class must extend BaseExtractor",
                {"extractor_name": name, "extractor_class": str(extractor_class)}
            )

        self._extractors[name] = extractor_class
        self._configs[name] = default_config or {}
        logger.debug(f"Extractor registered: {name}, has_config={bool(default_config)}")

    def create(self, name: str, config: Optional[Dict[str, Any]] = None) -> BaseExtractor:
        """
        Instantiate a registered extractor.

        Args:
            name: Extractor name
            config: Overrides merged over the default configuration

        Returns:
            Extractor instance

        Raises:
            ConfigurationError: If the extractor is unknown or its config is invalid
        """
        if name not in self._extractors:
            raise ConfigurationError(
                f"Extractor '{name}' is not registered",
                {"available_extractors": self.list_extractors()}
            )

        final_config = dict(self._configs[name])
        if config:
            final_config.update(config)

        instance = self._extractors[name](name, final_config)
        if not instance.validate_config():
            raise ConfigurationError(
                f"Invalid configuration for extractor '{name}'",
                {"config": final_config}
            )
        return instance

    def list_extractors(self) -> List[str]:
        return sorted(self._extractors)

    def is_registered(self, name: str) -> bool:
        return name in self._extractors
