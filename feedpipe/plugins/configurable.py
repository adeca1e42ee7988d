"""
Configurable Base
=================

Base class for everything that carries persisted configuration: importers
and the fetcher, parser and processor stages of an import.

Configuration is a flat mapping owned by the instance and always
materialized over the declared defaults. Only keys present in the defaults
survive a write, and reads never miss a key.
"""

import copy
import importlib.util
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Set, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..database.models import ConfigurableRecord
from ..utils.exceptions import InvalidArgumentError, NotExistingError, ValidationError
from ..utils.logging import get_plugin_logger

if TYPE_CHECKING:
    from .registry import ConfigurableRegistry


class Configurable:
    """Object with defaulted, persistable configuration.

    Subclasses either override ``config_defaults`` or declare their options
    as a pydantic ``config_model``, in which case defaults, the form
    descriptor and form validation are derived from the model.
    """

    #: Stable key used for storage and plugin resolution
    plugin_key: str = ""
    #: Pipeline stage served by this class ("fetcher", "parser", "processor")
    stage: Optional[str] = None
    #: Optional pydantic model describing the options
    config_model: Optional[Type[BaseModel]] = None

    def __init__(self, configurable_id: str, registry: Optional["ConfigurableRegistry"] = None):
        if not configurable_id:
            raise InvalidArgumentError("Configurable id cannot be empty", argument="id")

        self.id = configurable_id
        self.registry = registry
        self.disabled = False
        self._config: Dict[str, Any] = self.config_defaults()
        self.logger = get_plugin_logger(self.storage_key(), importer_id=configurable_id)

    @classmethod
    def storage_key(cls) -> str:
        return cls.plugin_key or cls.__name__

    # Configuration

    def config_defaults(self) -> Dict[str, Any]:
        """Full default configuration."""
        if self.config_model is not None:
            return self.config_model().model_dump()
        return {}

    def get_config(self) -> Dict[str, Any]:
        """Current configuration merged over the defaults.

        Returns a copy; mutating it does not change the instance.
        """
        merged = self.config_defaults()
        merged.update({k: v for k, v in self._config.items() if k in merged})
        return copy.deepcopy(merged)

    def set_config(self, config: Mapping[str, Any]) -> None:
        """Replace the configuration.

        Unknown keys are dropped and missing keys are taken from the defaults.
        With a ``config_model`` the values are validated and normalized.

        Raises:
            InvalidArgumentError: If a value fails model validation
        """
        defaults = self.config_defaults()
        merged = {
            key: copy.deepcopy(config[key]) if key in config else value
            for key, value in defaults.items()
        }

        if self.config_model is not None:
            try:
                merged = self.config_model.model_validate(merged).model_dump()
            except PydanticValidationError as e:
                field, message = _first_error(e)
                raise InvalidArgumentError(
                    f"Invalid value for {field}: {message}", argument=field
                ) from e

        self._config = merged

    def add_config(self, config: Mapping[str, Any]) -> None:
        """Merge ``config`` over the current configuration."""
        merged = self.get_config()
        merged.update(config)
        self.set_config(merged)

    # Form boundary

    def config_form(self, state: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Describe the editable options, or None if there is nothing to edit.

        ``state`` carries values already entered by the user; they take
        precedence over the stored configuration in the descriptor.
        """
        if self.config_model is None:
            return None

        values = self.get_config()
        if state:
            values.update({k: v for k, v in state.items() if k in values})

        schema = self.config_model.model_json_schema()
        properties = schema.get("properties", {})
        required = set(schema.get("required", []))

        fields = []
        for name, spec in properties.items():
            fields.append({
                "name": name,
                "title": spec.get("title", name),
                "type": spec.get("type", "string"),
                "description": spec.get("description", ""),
                "default": spec.get("default"),
                "required": name in required,
                "value": values.get(name),
            })

        return {
            "id": self.id,
            "plugin_key": self.storage_key(),
            "title": schema.get("title", self.storage_key()),
            "fields": fields,
        }

    def config_form_validate(self, values: Mapping[str, Any]) -> Dict[str, str]:
        """Validate user-entered values.

        Returns:
            Mapping of field name to message; empty when the values are valid
        """
        if self.config_model is None:
            return {}

        candidate = self.get_config()
        candidate.update({k: v for k, v in values.items() if k in candidate})

        try:
            self.config_model.model_validate(candidate)
        except PydanticValidationError as e:
            errors: Dict[str, str] = {}
            for error in e.errors():
                location = error.get("loc") or ("__root__",)
                errors.setdefault(str(location[0]), error.get("msg", "Invalid value"))
            return errors

        return {}

    def config_form_submit(self, values: Mapping[str, Any]) -> None:
        """Commit user-entered values and persist them.

        Raises:
            ValidationError: If the values fail model validation
            NotImplementedError: If no configuration storage is attached
        """
        self.add_config(self._coerce(values))
        self.save()
        self.notify("saved")
        if self.registry is not None:
            self.registry.invalidate(self)

    def _coerce(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        if self.config_model is None:
            return dict(values)

        candidate = self.get_config()
        candidate.update({k: v for k, v in values.items() if k in candidate})
        try:
            return self.config_model.model_validate(candidate).model_dump()
        except PydanticValidationError as e:
            field, message = _first_error(e)
            raise ValidationError(f"Invalid value for {field}: {message}", field_name=field) from e

    # Persistence

    def to_record(self) -> ConfigurableRecord:
        return ConfigurableRecord(
            id=self.id,
            class_name=self.storage_key(),
            config=self.get_config(),
            disabled=self.disabled,
        )

    def save(self) -> None:
        """Persist the configuration.

        Raises:
            NotImplementedError: If the instance has no configuration storage
        """
        repository = self.registry.config_repository if self.registry is not None else None
        if repository is None:
            raise NotImplementedError(
                f"{type(self).__name__} has no configuration storage attached"
            )
        repository.save(self.to_record())

    def notify(self, event: str) -> None:
        self.logger.info(f"Configuration of {self.storage_key()}:{self.id} {event}")
        if self.registry is not None:
            self.registry.record_notification(self, event)

    # Availability

    def dependencies(self) -> Set[str]:
        """Importable modules this configurable needs."""
        return set()

    def missing_dependencies(self) -> Set[str]:
        missing = set()
        for name in self.dependencies():
            try:
                found = importlib.util.find_spec(name) is not None
            except (ImportError, ValueError):
                found = False
            if not found:
                missing.add(name)
        return missing

    def enable(self) -> None:
        self.disabled = False

    def disable(self) -> None:
        self.disabled = True

    def existing(self) -> "Configurable":
        """Return self, guarding against use of a disabled configurable.

        Raises:
            NotExistingError: If the configurable is disabled
        """
        if self.disabled:
            raise NotExistingError(
                f"{self.storage_key()} '{self.id}' is disabled",
                configurable_id=self.id,
            )
        return self

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.storage_key()}:{self.id}>"


def submit_form(configurable: Configurable, values: Mapping[str, Any]) -> Dict[str, str]:
    """Validate and, when valid, submit form values.

    Returns:
        Field errors; the configuration is saved only when this is empty
    """
    errors = configurable.config_form_validate(values)
    if errors:
        configurable.logger.warning(
            f"Rejected configuration for {configurable.storage_key()}:{configurable.id}: "
            f"{', '.join(sorted(errors))}"
        )
        return errors

    configurable.config_form_submit(values)
    return {}


def _first_error(error: PydanticValidationError):
    """(field, message) of the first pydantic error."""
    first = error.errors()[0]
    field = str((first.get("loc") or ("__root__",))[0])
    return field, first.get("msg", "Invalid value")
