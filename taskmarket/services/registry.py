"""Named services owned by one application instance.

Services are registered in dependency order. ``initialize`` runs their
optional ``initialize()`` hooks in that order, ``cleanup`` runs ``cleanup()``
hooks in reverse, and ``health_check`` collects ``health_check()`` results.
"""

from __future__ import annotations

import inspect
from typing import Any, Dict, Iterator

from taskmarket.config.logger import app_logger


async def _call_hook(service: Any, hook_name: str) -> Any:
    hook = getattr(service, hook_name, None)
    if hook is None or not callable(hook):
        return None
    result = hook()
    if inspect.isawaitable(result):
        result = await result
    return result


class ServiceContext:
    """Explicit table of named services, passed to whatever needs lookups."""

    def __init__(self) -> None:
        self._services: Dict[str, Any] = {}
        self._initialized: list[str] = []

    def register(self, name: str, service: Any) -> Any:
        if name in self._services:
            raise ValueError(f"Service already registered: {name}")
        self._services[name] = service
        app_logger.debug("Service registered: {}", name)
        return service

    def get(self, name: str) -> Any:
        try:
            return self._services[name]
        except KeyError:
            raise LookupError(f"Service not registered: {name}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._services

    def __iter__(self) -> Iterator[str]:
        return iter(self._services)

    async def initialize(self) -> None:
        """Initialize every service; on failure, clean up the ones already started."""
        for name, service in self._services.items():
            try:
                await _call_hook(service, "initialize")
            except Exception:
                app_logger.error("Service failed to initialize: {}", name)
                await self.cleanup()
                raise
            self._initialized.append(name)
            app_logger.info("Service initialized: {}", name)

    async def cleanup(self) -> None:
        while self._initialized:
            name = self._initialized.pop()
            try:
                await _call_hook(self._services[name], "cleanup")
                app_logger.info("Service cleaned up: {}", name)
            except Exception as exc:
                app_logger.opt(exception=exc).error("Service cleanup failed: {}", name)

    async def health_check(self) -> Dict[str, bool]:
        report: Dict[str, bool] = {}
        for name, service in self._services.items():
            if getattr(service, "health_check", None) is None:
                report[name] = True
                continue
            try:
                report[name] = bool(await _call_hook(service, "health_check"))
            except Exception as exc:
                app_logger.warning("Health check failed for {}: {}", name, exc)
                report[name] = False
        return report
