"""Blueprint registration helpers."""

from __future__ import annotations

import importlib
import importlib.util
import pkgutil
from pathlib import Path
from typing import Iterator

from flask import Blueprint, Flask

from common.logging import get_logger

logger = get_logger(__name__)


def _iter_blueprints(package: str = "plugins") -> Iterator[Blueprint]:
    module_path = Path(__file__).resolve().parent.parent / package
    if not module_path.exists():
        return
    for module_info in pkgutil.iter_modules([str(module_path)]):
        if not module_info.ispkg:
            continue
        dotted = f"{package}.{module_info.name}.api"
        if importlib.util.find_spec(dotted) is None:
            logger.debug("Plugin %s has no api module", module_info.name)
            continue
        module = importlib.import_module(dotted)
        yield from getattr(module, "blueprints", None) or ()


def register_plugin_blueprints(app: Flask) -> None:
    for bp in _iter_blueprints():
        app.register_blueprint(bp)


__all__ = ["register_plugin_blueprints"]
