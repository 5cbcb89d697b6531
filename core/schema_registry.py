# core/schema_registry.py
from __future__ import annotations
from typing import Callable, List, Tuple
from sqlalchemy.engine import Engine
import pkgutil
import importlib
import logging

logger = logging.getLogger(__name__)

# Schema installer type
SchemaInstaller = Callable[[Engine], None]

# Registry: (name, installer_func)
_REGISTRY: List[Tuple[str, SchemaInstaller]] = []


def register(
    name: str | SchemaInstaller, installer: SchemaInstaller | None = None
) -> SchemaInstaller | Callable[[SchemaInstaller], SchemaInstaller]:
    """
    Registers a schema installer function.
    Can be used as a decorator (@register) or a function call (register("name", fn)).
    Registering the same name twice keeps the first installer.
    """
    def _add(key: str, fn: SchemaInstaller) -> SchemaInstaller:
        if not any(existing == key for existing, _ in _REGISTRY):
            _REGISTRY.append((key, fn))
        return fn

    # Used as @register("name")
    if isinstance(name, str) and installer is None:
        def decorator(fn: SchemaInstaller) -> SchemaInstaller:
            return _add(name, fn)
        return decorator

    # Used as @register
    elif callable(name) and installer is None:
        return _add(name.__name__, name)

    # Used as register("name", fn)
    elif isinstance(name, str) and callable(installer):
        return _add(name, installer)

    raise TypeError("Invalid usage of @register")


def run_all(engine: Engine):
    """
    Runs all registered schema installers in order.

    Installers are idempotent (CREATE ... IF NOT EXISTS); a failing installer
    aborts initialisation since later tables reference earlier ones.
    """
    logger.debug(f"SchemaRegistry: running {len(_REGISTRY)} installers")
    for name, installer_fn in _REGISTRY:
        logger.debug(f"Applying schema: {name}")
        installer_fn(engine)


def registered_names() -> List[str]:
    return [name for name, _ in _REGISTRY]


def auto_discover(package: str = "schemas"):
    """
    Imports every module of a package to trigger its @register decorators.

    :param package: dotted package name (e.g. "schemas").
    """
    pkg = importlib.import_module(package)
    for _, module_name, is_pkg in pkgutil.walk_packages(
        path=list(pkg.__path__),
        prefix=f"{pkg.__name__}.",
    ):
        if is_pkg:
            continue
        importlib.import_module(module_name)
        logger.debug(f"Schema auto_discover: {module_name}")
