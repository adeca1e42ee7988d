"""
Configurable Registry
=====================

Scoped instance cache for configurables plus plugin key resolution.

A registry hands out exactly one live instance per (class, id). It is a
plain object owned by whoever runs imports; tests build their own.
"""

from typing import Dict, List, NamedTuple, Optional, Tuple, Type, TypeVar

from .configurable import Configurable
from .importer import Importer
from ..storage.config_repository import ConfigRepository
from ..utils.exceptions import ErrorCode, InvalidArgumentError
from ..utils.logging import get_logger_for_component

STAGES = ("fetcher", "parser", "processor")

C = TypeVar("C", bound=Configurable)


class StageChain(NamedTuple):
    """The three stage instances of one importer."""
    fetcher: Configurable
    parser: Configurable
    processor: Configurable


def _builtin_plugins() -> List[Type[Configurable]]:
    # Imported here: the stage modules depend on this package
    from ..processing.fetchers import FileFetcher, HTTPFetcher
    from ..processing.parsers import CSVParser, SyndicationParser
    from ..processing.processors import EntityProcessor

    return [FileFetcher, HTTPFetcher, CSVParser, SyndicationParser, EntityProcessor]


class ConfigurableRegistry:
    """Instance cache keyed by (class, id)."""

    def __init__(self, config_repository: Optional[ConfigRepository] = None, register_builtins: bool = True):
        """Initialize registry.

        Args:
            config_repository: Storage for configuration; without it stored
                configuration is neither loaded nor saved
            register_builtins: Register the bundled fetcher, parser and
                processor plugins
        """
        self.config_repository = config_repository
        self.logger = get_logger_for_component("registry")

        self._instances: Dict[Tuple[type, str], Configurable] = {}
        self._plugins: Dict[str, Type[Configurable]] = {}
        self._chains: Dict[str, StageChain] = {}
        self.notifications: List[Tuple[str, str, str]] = []

        if register_builtins:
            for plugin_class in _builtin_plugins():
                self.register_plugin(plugin_class)

    # Instances

    def instance(self, cls: Type[C], configurable_id: str) -> C:
        """Return the live instance for (cls, id), constructing it once.

        A new instance starts from its defaults, is enabled, and then has
        any stored configuration merged over the defaults.

        Raises:
            InvalidArgumentError: If the id is empty
        """
        if not configurable_id:
            raise InvalidArgumentError(
                f"Cannot create {cls.__name__} without an id", argument="id"
            )

        key = (cls, configurable_id)
        existing = self._instances.get(key)
        if existing is not None:
            return existing

        configurable = cls(configurable_id, registry=self)
        configurable.enable()

        if self.config_repository is not None:
            record = self.config_repository.load(cls.storage_key(), configurable_id)
            if record is not None:
                configurable.set_config(record.config)
                configurable.disabled = record.disabled
                self.logger.debug(f"Loaded stored configuration for {cls.storage_key()}:{configurable_id}")

        self._instances[key] = configurable
        return configurable

    def importer(self, importer_id: str) -> Importer:
        return self.instance(Importer, importer_id)

    def clear(self) -> None:
        """Forget every instance. Only for process or request boundaries."""
        self._instances.clear()
        self._chains.clear()
        self.notifications.clear()

    def __len__(self) -> int:
        return len(self._instances)

    # Plugins

    def register_plugin(self, plugin_class: Type[Configurable]) -> None:
        """Make a stage class resolvable by its plugin key.

        Raises:
            InvalidArgumentError: If the class has no key or no valid stage
        """
        if not plugin_class.plugin_key:
            raise InvalidArgumentError(
                f"{plugin_class.__name__} has no plugin_key", argument="plugin_key"
            )
        if plugin_class.stage not in STAGES:
            raise InvalidArgumentError(
                f"{plugin_class.__name__} has invalid stage {plugin_class.stage!r}",
                argument="stage",
            )
        self._plugins[plugin_class.plugin_key] = plugin_class

    def plugin_keys(self, stage: Optional[str] = None) -> List[str]:
        return sorted(
            key for key, plugin_class in self._plugins.items()
            if stage is None or plugin_class.stage == stage
        )

    def resolve_plugin(self, plugin_key: str, stage: Optional[str] = None) -> Type[Configurable]:
        """Map a plugin key to its class.

        Raises:
            InvalidArgumentError: If the key is unknown or serves another stage
        """
        plugin_class = self._plugins.get(plugin_key)
        if plugin_class is None:
            raise InvalidArgumentError(
                f"Unknown plugin '{plugin_key}'",
                argument="plugin_key",
                error_code=ErrorCode.UNKNOWN_PLUGIN,
            )
        if stage is not None and plugin_class.stage != stage:
            raise InvalidArgumentError(
                f"Plugin '{plugin_key}' is a {plugin_class.stage}, not a {stage}",
                argument="plugin_key",
                error_code=ErrorCode.UNKNOWN_PLUGIN,
            )
        return plugin_class

    def stage_chain(self, importer: Importer) -> StageChain:
        """Resolve the enabled stage instances of an importer.

        Raises:
            InvalidArgumentError: If a plugin key cannot be resolved
            NotExistingError: If the importer or a stage is disabled
        """
        importer.existing()

        chain = self._chains.get(importer.id)
        if chain is None:
            keys = importer.plugin_keys()
            chain = StageChain(*(
                self.instance(self.resolve_plugin(keys[stage], stage), importer.id)
                for stage in STAGES
            ))
            self._chains[importer.id] = chain

        for stage in chain:
            stage.existing()
        return chain

    # Notifications

    def invalidate(self, configurable: Configurable) -> None:
        """Drop derived stage chains after ``configurable`` changed."""
        if self._chains.pop(configurable.id, None) is not None:
            self.logger.debug(f"Invalidated stage chain for {configurable.id}")

    def record_notification(self, configurable: Configurable, event: str) -> None:
        self.notifications.append((configurable.storage_key(), configurable.id, event))
