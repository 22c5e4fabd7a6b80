"""Hydra ConfigStore registration utilities."""

from __future__ import annotations

from typing import Any

from hydra.core.config_store import ConfigStore
from loguru import logger
from pydantic import BaseModel


def config_defaults(model: type[BaseModel]) -> dict[str, Any]:
    """Default values of every optional field of a pydantic config model.

    Required fields are left out so Hydra reports them as missing when a
    config omits them. Tuples become lists (YAML has no tuple type).
    """
    defaults: dict[str, Any] = {}
    for field_name, field in model.model_fields.items():
        if field.is_required():
            continue
        value = field.get_default(call_default_factory=True)
        defaults[field_name] = list(value) if isinstance(value, tuple) else value
    return defaults


def register(
    cls: type[Any] | None = None,
    *,
    group: str | None = None,
    name: str | None = None,
    config: type[BaseModel] | None = None,
    **kwargs: Any,
) -> type[Any] | Any:
    """Decorator to register a class with Hydra's ConfigStore.

    Stores a node whose ``_target_`` is the decorated class. When *config*
    is given, the node is pre-filled with that pydantic model's defaults, so
    the YAML config only needs the values it changes. Explicit ``kwargs``
    override those defaults.

    If *group* is not provided it is the second-to-last element of the
    module path (``imageclass_views.data.datamodule`` -> ``data``).
    """

    def _process_class(target_cls: type[Any]) -> type[Any]:
        node_group = group or target_cls.__module__.split(".")[-2]
        config_name = name or target_cls.__name__
        node: dict[str, Any] = {
            "_target_": f"{target_cls.__module__}.{target_cls.__name__}"
        }
        if config is not None:
            node.update(config_defaults(config))
        node.update(kwargs)
        logger.debug(
            f"Registering {target_cls.__name__} as '{config_name}' "
            f"in group '{node_group}'"
        )
        ConfigStore.instance().store(group=node_group, name=config_name, node=node)
        return target_cls

    if cls is None:
        return _process_class
    return _process_class(cls)
