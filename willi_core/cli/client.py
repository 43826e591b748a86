"""
CLI Client - HTTP client for a running `willi serve`.

Provides synchronous methods for CLI commands.
"""

import sys
from typing import Any

import httpx

from ..config import WilliConfig

__all__ = ["AdminClient", "print_error", "print_metrics", "print_plugins"]


class AdminClient:
    """HTTP client for the server's core and admin routes.

    Example:
        with AdminClient(config) as client:
            if client.is_running():
                print(client.usage_metrics()["summary"]["cost_savings"])
    """

    def __init__(
        self,
        config: WilliConfig | None = None,
        base_url: str | None = None,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or WilliConfig()
        self.base_url = (base_url or self.config.server_url).rstrip("/")
        token = token or self.config.admin_token
        headers = {"X-Admin-Token": token} if token else {}
        self._client = httpx.Client(timeout=5.0, headers=headers, transport=transport)

    def is_running(self) -> bool:
        """Check if the server is running and responding."""
        try:
            response = self._client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.ConnectError:
            return False

    def health(self) -> dict[str, Any]:
        return self._get("/health")

    def ready(self) -> dict[str, Any]:
        """Readiness including plugin health."""
        return self._get("/ready")

    def plugins(self) -> list[dict[str, Any]]:
        return self._get("/plugins")

    def usage_metrics(self) -> dict[str, Any]:
        return self._get("/admin/usage-metrics")

    def reset_metrics(self, tier: str = "all") -> dict[str, Any]:
        return self._post("/admin/usage-metrics/reset", params={"tier": tier})

    def _get(self, path: str) -> Any:
        response = self._client.get(f"{self.base_url}{path}")
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, **kwargs: Any) -> Any:
        response = self._client.post(f"{self.base_url}{path}", **kwargs)
        response.raise_for_status()
        return response.json()

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "AdminClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()


def print_plugins(plugins: list[dict[str, Any]]) -> None:
    if not plugins:
        print("No plugins registered")
        return
    for p in plugins:
        state = "[*]" if p.get("active") else "[ ]"
        deps = f" (requires: {', '.join(p['dependencies'])})" if p.get("dependencies") else ""
        print(f"{state} {p['name']} v{p['version']}{deps}")
        if p.get("description"):
            print(f"    {p['description']}")


def print_metrics(metrics: dict[str, Any]) -> None:
    """Pretty-print the usage metrics report."""
    summary = metrics.get("summary", {})
    free = metrics.get("free", {})
    paid = metrics.get("paid", {})
    rate = free.get("rate", {})
    savings = summary.get("cost_savings", {})

    print(f"Usage for {summary.get('current_day', 'unknown')}")
    print()
    print(
        f"  free  today {free.get('current_day_usage', 0)}/{free.get('quota_limit', '?')}"
        f"  total {free.get('total_usage', 0)}"
        f"  this minute {rate.get('minute_usage', 0)}/{rate.get('minute_limit', '?')}"
    )
    print(f"  paid  today {paid.get('current_day_usage', 0)}  total {paid.get('total_usage', 0)}")

    providers = metrics.get("providers", {})
    if providers:
        print()
        print("Providers:")
        for name, p in providers.items():
            print(f"  {name:<8} today {p.get('current_day_usage', 0)}  total {p.get('total_usage', 0)}")

    print()
    print(
        f"Saved by free tier: {savings.get('total_free_requests', 0)} requests,"
        f" ${savings.get('cost_savings_usd', 0):.2f} / EUR {savings.get('cost_savings_eur', 0):.2f}"
    )


def print_error(message: str) -> None:
    """Print error message to stderr."""
    print(f"Error: {message}", file=sys.stderr)
