"""
Registration models for the PluginAPI.

Plugins may pass these models or plain dicts; dicts are validated into the
models so that missing required fields fail at registration time.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "DashboardWidget",
    "JobHandler",
    "MenuItem",
    "ScheduledJob",
    "SettingsPage",
    "WorkerHandler",
]

JobHandler = Callable[[], Awaitable[None]]
WorkerHandler = Callable[[Any], Awaitable[None]]


class _Registration(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )


class DashboardWidget(_Registration):
    """Widget rendered on the dashboard by the frontend."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    component: str = Field(..., min_length=1, description="Frontend component name")
    position: str | None = Field(None, description="e.g. main, sidebar")
    size: str | None = None
    permissions: tuple[str, ...] = ()


class SettingsPage(_Registration):
    """Page added to the settings area."""

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    component: str = Field(..., min_length=1)
    icon: str | None = None
    permissions: tuple[str, ...] = ()


class MenuItem(_Registration):
    """Navigation entry."""

    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    route: str = Field(..., min_length=1)
    icon: str | None = None
    position: str | None = None
    order: int | None = None


@dataclass(frozen=True)
class ScheduledJob:
    """Background job with a cron expression."""

    name: str
    schedule: str
    handler: JobHandler
