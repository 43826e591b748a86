"""
Plugin API - Capability surface exposed to plugins.

One instance per registry, shared by every plugin registered through it.
Registrations are global, not plugin-scoped: plugins should namespace their
ids by plugin name ("metrics-exporter.status-widget"). A duplicate id is a
hard error and never overwrites the first registration.

The registry does not clean up after a plugin. A plugin that wants its
registrations gone calls the remove_* methods from its own deactivate().
The one exception is a failed initialize(): the registry rolls back whatever
the plugin registered before it raised (checkpoint() / rollback()).

Example:
    api = PluginAPI(router)

    api.add_route("GET", "/export/status", handler)        # -> GET /api/plugins/export/status
    api.add_dashboard_widget({"id": "export.widget", "title": "Export", "component": "ExportWidget"})
    api.schedule_job("export.nightly", "0 3 * * *", run_export)
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from fastapi import APIRouter
from fastapi.routing import APIRoute
from pydantic import BaseModel, ValidationError

from .errors import DuplicateRegistrationError, InvalidRegistrationError
from .models import (
    DashboardWidget,
    JobHandler,
    MenuItem,
    ScheduledJob,
    SettingsPage,
    WorkerHandler,
)

__all__ = ["APICheckpoint", "PLUGIN_ROUTE_PREFIX", "HTTP_METHODS", "PluginAPI"]

logger = structlog.get_logger(__name__)

PLUGIN_ROUTE_PREFIX = "/api/plugins"
HTTP_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

M = TypeVar("M", bound=BaseModel)

Middleware = Callable[..., Any]


@dataclass(frozen=True)
class APICheckpoint:
    """Registration keys at a point in time, see PluginAPI.checkpoint()."""

    routes: frozenset[tuple[str, str]]
    middleware: int
    migrations: int
    widgets: frozenset[str]
    settings_pages: frozenset[str]
    menu_items: frozenset[str]
    jobs: frozenset[str]
    workers: frozenset[str]


def _validate(model_cls: type[M], kind: str, value: M | Mapping[str, Any]) -> M:
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls.model_validate(value)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvalidRegistrationError(kind, f"missing or invalid field(s): {', '.join(fields)}") from e


class PluginAPI:
    """Registration facade for routes, UI extensions, jobs and workers.

    Args:
        router: FastAPI router that plugin routes are mounted on
        prefix: Path prefix for all plugin routes
    """

    def __init__(self, router: APIRouter | None = None, prefix: str = PLUGIN_ROUTE_PREFIX) -> None:
        self.router = router if router is not None else APIRouter()
        self.prefix = prefix.rstrip("/")
        self._routes: set[tuple[str, str]] = set()
        self._middleware: list[Middleware] = []
        self._migrations: list[str] = []
        self._widgets: dict[str, DashboardWidget] = {}
        self._settings_pages: dict[str, SettingsPage] = {}
        self._menu_items: dict[str, MenuItem] = {}
        self._jobs: dict[str, ScheduledJob] = {}
        self._workers: dict[str, WorkerHandler] = {}

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    def add_route(self, method: str, path: str, handler: Callable[..., Any], **route_kwargs: Any) -> str:
        """Mount a handler under the plugin prefix.

        Args:
            method: GET, POST, PUT, PATCH or DELETE
            path: Path below the prefix, e.g. "/export/status"
            handler: FastAPI endpoint callable
            **route_kwargs: Passed to APIRouter.add_api_route (summary, tags, ...)

        Returns:
            The full mounted path

        Raises:
            InvalidRegistrationError: Unsupported method or empty path
            DuplicateRegistrationError: Same method and path already registered
        """
        method = method.upper()
        if method not in HTTP_METHODS:
            raise InvalidRegistrationError("route", f"unsupported HTTP method {method}")
        if not path or not path.strip("/"):
            raise InvalidRegistrationError("route", "path must not be empty")

        full_path = f"{self.prefix}/{path.lstrip('/')}"
        key = (method, full_path)
        if key in self._routes:
            raise DuplicateRegistrationError("Route", f"{method} {full_path}")

        self.router.add_api_route(full_path, handler, methods=[method], **route_kwargs)
        self._routes.add(key)
        logger.info("plugin_route_registered", method=method, path=full_path)
        return full_path

    def remove_route(self, method: str, path: str) -> bool:
        """Unmount a route registered through add_route."""
        method = method.upper()
        full_path = f"{self.prefix}/{path.lstrip('/')}"
        if (method, full_path) not in self._routes:
            return False

        self.router.routes[:] = [
            r for r in self.router.routes
            if not (isinstance(r, APIRoute) and r.path == full_path and method in r.methods)
        ]
        self._routes.discard((method, full_path))
        return True

    def add_middleware(self, middleware: Middleware) -> None:
        """Add `async (request, call_next) -> response` for requests under the prefix."""
        if not callable(middleware):
            raise InvalidRegistrationError("middleware", "must be callable")
        self._middleware.append(middleware)
        logger.info("plugin_middleware_registered")

    def add_migration(self, migration: str) -> None:
        if not migration or not migration.strip():
            raise InvalidRegistrationError("migration", "must not be empty")
        self._migrations.append(migration)
        logger.info("plugin_migration_registered")

    # ─────────────────────────────────────────────────────────────────────
    # UI extensions
    # ─────────────────────────────────────────────────────────────────────

    def add_dashboard_widget(self, widget: DashboardWidget | Mapping[str, Any]) -> DashboardWidget:
        """Register a widget; id, title and component are required."""
        widget = _validate(DashboardWidget, "widget", widget)
        if widget.id in self._widgets:
            raise DuplicateRegistrationError("Widget", widget.id)
        self._widgets[widget.id] = widget
        logger.info("dashboard_widget_registered", id=widget.id)
        return widget

    def add_settings_page(self, page: SettingsPage | Mapping[str, Any]) -> SettingsPage:
        """Register a settings page; id, title and component are required."""
        page = _validate(SettingsPage, "settings page", page)
        if page.id in self._settings_pages:
            raise DuplicateRegistrationError("Settings page", page.id)
        self._settings_pages[page.id] = page
        logger.info("settings_page_registered", id=page.id)
        return page

    def add_menu_item(self, item: MenuItem | Mapping[str, Any]) -> MenuItem:
        """Register a menu item; id, label and route are required."""
        item = _validate(MenuItem, "menu item", item)
        if item.id in self._menu_items:
            raise DuplicateRegistrationError("Menu item", item.id)
        self._menu_items[item.id] = item
        logger.info("menu_item_registered", id=item.id)
        return item

    # ─────────────────────────────────────────────────────────────────────
    # Background work
    # ─────────────────────────────────────────────────────────────────────

    def schedule_job(self, name: str, schedule: str, handler: JobHandler) -> ScheduledJob:
        """Register a background job under a cron expression."""
        if not name:
            raise InvalidRegistrationError("job", "name is required")
        if not schedule or not schedule.strip():
            raise InvalidRegistrationError("job", f"schedule is required for {name}")
        if name in self._jobs:
            raise DuplicateRegistrationError("Job", name)

        job = ScheduledJob(name=name, schedule=schedule.strip(), handler=handler)
        self._jobs[name] = job
        logger.info("job_scheduled", name=name, schedule=job.schedule)
        return job

    def add_worker(self, name: str, handler: WorkerHandler) -> None:
        if not name:
            raise InvalidRegistrationError("worker", "name is required")
        if name in self._workers:
            raise DuplicateRegistrationError("Worker", name)
        self._workers[name] = handler
        logger.info("worker_registered", name=name)

    # ─────────────────────────────────────────────────────────────────────
    # Getters (copies)
    # ─────────────────────────────────────────────────────────────────────

    def get_routes(self) -> list[tuple[str, str]]:
        return sorted(self._routes, key=lambda r: (r[1], r[0]))

    def get_middleware(self) -> list[Middleware]:
        return list(self._middleware)

    def get_migrations(self) -> list[str]:
        return list(self._migrations)

    def get_widgets(self) -> list[DashboardWidget]:
        return list(self._widgets.values())

    def get_settings_pages(self) -> list[SettingsPage]:
        return list(self._settings_pages.values())

    def get_menu_items(self) -> list[MenuItem]:
        return list(self._menu_items.values())

    def get_jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    def get_workers(self) -> dict[str, WorkerHandler]:
        return dict(self._workers)

    # ─────────────────────────────────────────────────────────────────────
    # Cleanup
    # ─────────────────────────────────────────────────────────────────────

    def remove_widget(self, widget_id: str) -> bool:
        return self._widgets.pop(widget_id, None) is not None

    def remove_settings_page(self, page_id: str) -> bool:
        return self._settings_pages.pop(page_id, None) is not None

    def remove_menu_item(self, item_id: str) -> bool:
        return self._menu_items.pop(item_id, None) is not None

    def remove_job(self, name: str) -> bool:
        return self._jobs.pop(name, None) is not None

    def remove_worker(self, name: str) -> bool:
        return self._workers.pop(name, None) is not None

    def checkpoint(self) -> APICheckpoint:
        """Snapshot current registrations for a later rollback()."""
        return APICheckpoint(
            routes=frozenset(self._routes),
            middleware=len(self._middleware),
            migrations=len(self._migrations),
            widgets=frozenset(self._widgets),
            settings_pages=frozenset(self._settings_pages),
            menu_items=frozenset(self._menu_items),
            jobs=frozenset(self._jobs),
            workers=frozenset(self._workers),
        )

    def rollback(self, checkpoint: APICheckpoint) -> int:
        """Remove everything registered since `checkpoint`.

        Returns:
            Number of registrations removed
        """
        removed = 0
        for method, full_path in self._routes - checkpoint.routes:
            self.remove_route(method, full_path.removeprefix(self.prefix))
            removed += 1

        removed += len(self._middleware) - checkpoint.middleware
        del self._middleware[checkpoint.middleware:]
        removed += len(self._migrations) - checkpoint.migrations
        del self._migrations[checkpoint.migrations:]

        for registry, kept in (
            (self._widgets, checkpoint.widgets),
            (self._settings_pages, checkpoint.settings_pages),
            (self._menu_items, checkpoint.menu_items),
            (self._jobs, checkpoint.jobs),
            (self._workers, checkpoint.workers),
        ):
            for key in set(registry) - kept:
                del registry[key]
                removed += 1

        if removed:
            logger.info("plugin_api_rolled_back", removed=removed)
        return removed

    def clear_all(self) -> None:
        """Drop every non-route registration."""
        self._widgets.clear()
        self._settings_pages.clear()
        self._menu_items.clear()
        self._migrations.clear()
        self._jobs.clear()
        self._workers.clear()
        self._middleware.clear()

    def summary(self) -> dict[str, int]:
        """Registration counts per kind."""
        return {
            "routes": len(self._routes),
            "middleware": len(self._middleware),
            "migrations": len(self._migrations),
            "widgets": len(self._widgets),
            "settings_pages": len(self._settings_pages),
            "menu_items": len(self._menu_items),
            "jobs": len(self._jobs),
            "workers": len(self._workers),
        }
