"""
Shared option handling for CLI commands.
"""

import importlib
from typing import Any, Optional

from replaycache.config import CacheConfig


def resolve_config(
    root: Optional[str] = None,
    backend: Optional[str] = None,
    prefix: Optional[str] = None,
    ttl: Optional[int] = None,
    redis_url: Optional[str] = None,
    **overrides: Any,
) -> CacheConfig:
    """
    Environment config with command-line overrides applied.

    Raises:
        ConfigurationError: If a value is invalid
    """
    return CacheConfig.from_env().with_overrides(
        root=root,
        backend=backend.lower() if backend else None,
        key_prefix=prefix,
        ttl=ttl,
        redis_url=redis_url,
        **overrides,
    )


def load_object(path: str) -> Any:
    """
    Import "package.module:attribute".

    Raises:
        ValueError: If path has no ":" separator
        ImportError / AttributeError: If the target cannot be found
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"expected 'module:attribute', got {path!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    return obj
