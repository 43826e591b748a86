"""
Core Routes - Health, plugin status, and admin endpoints.

These routes are always available regardless of loaded plugins.
Plugin routes are mounted by plugins under /api/plugins/...
"""

import secrets
from typing import Any, Literal

from fastapi import APIRouter, Depends, Header, HTTPException

from ..plugins import PluginDependencyError, PluginNotFoundError
from .context import AppContext, get_app_context

__all__ = ["admin_router", "router"]

router = APIRouter(tags=["core"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(
    x_admin_token: str | None = Header(default=None),
    ctx: AppContext = Depends(get_app_context),
) -> None:
    """Gate for admin routes: X-Admin-Token must match the configured token."""
    expected = ctx.config.admin_token
    if not expected:
        raise HTTPException(status_code=403, detail="Admin API disabled (WILLI_ADMIN_TOKEN not set)")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=401, detail="Invalid admin token")


@router.get("/health")
async def health() -> dict[str, str]:
    """Basic health check.

    Always returns 200 if the server is running.
    Use /ready for plugin health.
    """
    return {"status": "ok"}


@router.get("/ready")
async def ready(ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
    """Readiness check including the health of every active plugin."""
    report = await ctx.registry.health_check()
    return {
        "status": "ready" if report.ok else "degraded",
        "plugins": report.to_dict(),
    }


@router.get("/plugins")
async def list_plugins(ctx: AppContext = Depends(get_app_context)) -> list[dict[str, Any]]:
    """List all registered plugins."""
    return ctx.registry.list_plugins()


@router.get("/plugins/{name}")
async def get_plugin(name: str, ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
    """Get details about a specific plugin."""
    info = next((p for p in ctx.registry.list_plugins() if p["name"] == name), None)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Plugin '{name}' not found")

    health: dict[str, Any] | None = None
    if info["active"]:
        report = await ctx.registry.health_check()
        unhealthy = next((u for u in report.unhealthy if u.name == name), None)
        health = (
            {"status": "unhealthy", "message": unhealthy.message}
            if unhealthy
            else {"status": "healthy"}
        )

    return {**info, "health": health}


@router.get("/extensions")
async def list_extensions(ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
    """UI extensions contributed by plugins, for the frontend shell."""
    api = ctx.api
    return {
        "widgets": [w.model_dump() for w in api.get_widgets()],
        "settings_pages": [p.model_dump() for p in api.get_settings_pages()],
        "menu_items": [m.model_dump() for m in api.get_menu_items()],
    }


@admin_router.get("/usage-metrics", dependencies=[Depends(require_admin)])
async def usage_metrics(ctx: AppContext = Depends(get_app_context)) -> dict[str, Any]:
    """Free/paid usage, provider counters and estimated savings."""
    return ctx.key_manager.get_usage_metrics()


@admin_router.post("/usage-metrics/reset", dependencies=[Depends(require_admin)])
async def reset_usage_metrics(
    tier: Literal["free", "paid", "providers", "all"] = "all",
    ctx: AppContext = Depends(get_app_context),
) -> dict[str, Any]:
    """Zero the selected counters and persist immediately."""
    await ctx.key_manager.reset_metrics(tier)
    return {"status": "reset", "tier": tier, "metrics": ctx.key_manager.get_usage_metrics()}


@admin_router.post("/plugins/{name}/{action}", dependencies=[Depends(require_admin)])
async def change_plugin_state(
    name: str,
    action: Literal["activate", "deactivate"],
    ctx: AppContext = Depends(get_app_context),
) -> dict[str, Any]:
    """Activate or deactivate a registered plugin."""
    transition = ctx.registry.activate if action == "activate" else ctx.registry.deactivate
    try:
        await transition(name)
    except PluginNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except PluginDependencyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return {"name": name, "active": ctx.registry.is_active(name)}
