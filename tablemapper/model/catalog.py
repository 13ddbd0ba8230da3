"""
Model registry.

A ``Catalog`` wires a set of Model classes to one backend. Models are created
on first request, so declaring a relation to a model does not create that
model's table until the relation is used.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Type, Union

from tablemapper.errors import ConfigurationError
from tablemapper.infrastructure.backend import SqlBackend
from tablemapper.utils.logging import get_logger

if TYPE_CHECKING:  # pragma: no cover
    from tablemapper.model.model import Model

log = get_logger(__name__)

ModelRef = Union[str, "Type[Model]"]


class Catalog:
    """
    Registry of models sharing one backend.

    Parameters
    ----------
    backend : SqlBackend
        Injected into every model the catalog creates.
    models : Iterable[type[Model]] | None
        Model classes to register, each under its table name.
    auto_create : bool
        Passed to each model: create missing tables on first use.
    """

    def __init__(
        self,
        backend: SqlBackend,
        models: Optional[Iterable["Type[Model]"]] = None,
        auto_create: bool = True,
    ) -> None:
        self.backend = backend
        self.auto_create = auto_create
        self._classes: Dict[str, "Type[Model]"] = {}
        self._models: Dict[str, "Model"] = {}
        for model_class in models or []:
            self.register(model_class)

    def __repr__(self) -> str:
        return f"<Catalog models={self.names()}>"

    def register(self, model_class: "Type[Model]", name: Optional[str] = None) -> str:
        """Register a model class; returns the name it is reachable under."""
        name = (name or model_class.default_table_name()).lower()
        existing = self._classes.get(name)
        if existing is not None and existing is not model_class:
            raise ConfigurationError(
                f"Model name '{name}' is already taken by {existing.__name__}"
            )
        self._classes[name] = model_class
        return name

    def adopt(self, model: "Model") -> None:
        """Take in an already constructed model."""
        self._classes.setdefault(model.model_name, type(model))
        self._models[model.model_name] = model

    def get(self, ref: ModelRef) -> "Model":
        """
        The model for a name or class, created on first request.

        Raises
        ------
        ConfigurationError
            If a name was never registered.
        """
        if isinstance(ref, type):
            name = ref.default_table_name()
            if name not in self._classes:
                self.register(ref)
        else:
            name = str(ref).lower()
        model = self._models.get(name)
        if model is not None:
            return model
        try:
            model_class = self._classes[name]
        except KeyError:
            raise ConfigurationError(f"No model registered as '{name}'") from None
        log.debug("Creating model", extra={"model": name})
        # the model adopts itself into this catalog
        return model_class(self.backend, catalog=self, auto_create=self.auto_create)

    def __getitem__(self, ref: ModelRef) -> "Model":
        return self.get(ref)

    def __contains__(self, ref: ModelRef) -> bool:
        if isinstance(ref, type):
            return ref.default_table_name() in self._classes
        return str(ref).lower() in self._classes

    def names(self) -> List[str]:
        return sorted(self._classes)


__all__ = ["Catalog"]
