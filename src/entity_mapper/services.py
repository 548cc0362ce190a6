"""Service registry.

Mappers name their backend by *service name*; a ``ServiceRegistry`` turns
that name into a live client.  A name is either a factory (built lazily on
first use, then memoised), a ready instance, or a dispatcher: a function
mapping arguments (usually an entity identity) to another service name.

Usage:
    from entity_mapper.services import ServiceRegistry

    registry = ServiceRegistry.from_file("services.toml")
    registry.define_dispatcher("topic_db", lambda topic_id=None: f"db{(topic_id or 0) % 2}")

    client = registry.get("topic_db", 7)   # -> service "db1"
    await registry.close()
"""

import inspect
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import quote

import redis.asyncio as aioredis

from entity_mapper.adapters.sql import AsyncSQLAdapter
from entity_mapper.config.loader import load_service_config
from entity_mapper.config.models import ServiceConfig, ServiceProfile
from entity_mapper.errors import ServiceError, ServiceNotFoundError

logger = logging.getLogger(__name__)


# ============================================================================
# Profile -> Client
# ============================================================================


def resolve_url(profile: ServiceProfile) -> str:
    """Resolve a profile URL with password substitution.

    Args:
        profile: Service profile from config

    Returns:
        Connection URL with ``[YOUR-PASSWORD]`` replaced by the URL-quoted
        password (unchanged when there is no password or placeholder)
    """
    url = profile.url
    if profile.password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.password, safe=""))
    return url


def build_service(profile: ServiceProfile) -> Any:
    """Create the client described by ``profile``.

    ``sql``/``postgres`` profiles build an ``AsyncSQLAdapter``; ``redis``
    profiles a ``redis.asyncio`` client with ``decode_responses=True``.
    ``options`` are passed through to the constructor.
    """
    url = resolve_url(profile)

    if profile.provider == "redis":
        return aioredis.from_url(url, **{"decode_responses": True, **profile.options})

    return AsyncSQLAdapter(url, **profile.options)


# ============================================================================
# Registry
# ============================================================================


class ServiceRegistry:
    """Explicit registry of backend services, passed to mappers.

    Args:
        config: Optional service configuration; every profile becomes a
            lazily built service of the same name.
    """

    def __init__(self, config: ServiceConfig | None = None) -> None:
        self._factories: dict[str, Callable[[], Any]] = {}
        self._dispatchers: dict[str, Callable[..., str | None]] = {}
        self._instances: dict[str, Any] = {}
        self._built: set[str] = set()

        if config is not None:
            for name, profile in config.services.items():
                self.define(name, lambda profile=profile: build_service(profile))

    @classmethod
    def from_file(cls, config_path: Path | str | None = None) -> "ServiceRegistry":
        """Build a registry from a services.toml file (see ``load_service_config``)."""
        return cls(load_service_config(config_path))

    def define(self, name: str, factory: Callable[[], Any]) -> None:
        """Register a zero-argument factory, replacing any existing definition."""
        self._forget(name)
        self._factories[name] = factory

    def define_instance(self, name: str, instance: Any) -> None:
        """Register an already built client."""
        self._forget(name)
        self._instances[name] = instance

    def define_dispatcher(self, name: str, dispatcher: Callable[..., str | None]) -> None:
        """Register a function that maps ``get()`` arguments to another service name."""
        self._forget(name)
        self._dispatchers[name] = dispatcher

    def has(self, name: str) -> bool:
        return name in self._factories or name in self._instances or name in self._dispatchers

    def names(self) -> list[str]:
        return sorted({*self._factories, *self._instances, *self._dispatchers})

    def get(self, name: str, *args: Any) -> Any:
        """Resolve ``name`` to a client.

        Dispatchers are called with ``args`` and resolved recursively;
        arguments are ignored for plain services.

        Raises:
            ServiceNotFoundError: If ``name`` (or a dispatched name) is undefined.
            ServiceError: If a dispatcher returns no name or loops.
        """
        seen: list[str] = []

        while name in self._dispatchers:
            if name in seen:
                raise ServiceError(f"Dispatcher loop: {' -> '.join([*seen, name])}")
            seen.append(name)

            target = self._dispatchers[name](*args)
            if not target:
                raise ServiceError(f"Dispatcher '{name}' returned no service name")
            name = target

        if name in self._instances:
            return self._instances[name]

        factory = self._factories.get(name)
        if factory is None:
            raise ServiceNotFoundError(f"Undefined service: {name}")

        instance = factory()
        if instance is None:
            raise ServiceError(f"Service '{name}' factory returned nothing")

        logger.info("Built service '%s' (%s)", name, type(instance).__name__)
        self._instances[name] = instance
        self._built.add(name)
        return instance

    async def close(self) -> None:
        """Close every instance built from a factory and forget it.

        Instances registered with ``define_instance`` belong to the caller
        and are left open.  ``aclose()`` is preferred over ``close()``; either
        is awaited when it returns an awaitable.
        """
        built, self._built = self._built, set()

        for name in sorted(built):
            instance = self._instances.pop(name, None)
            closer = getattr(instance, "aclose", None) or getattr(instance, "close", None)
            if closer is None:
                continue

            result = closer()
            if inspect.isawaitable(result):
                await result
            logger.debug("Closed service '%s'", name)

    def _forget(self, name: str) -> None:
        self._factories.pop(name, None)
        self._dispatchers.pop(name, None)
        self._instances.pop(name, None)
        self._built.discard(name)
