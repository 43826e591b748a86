"""Tests for the CLI and its HTTP client."""

import httpx
import pytest

from willi_core.cli import main
from willi_core.cli.client import AdminClient, print_metrics
from willi_core.cli.parser import create_parser

METRICS = {
    "free": {
        "current_day_usage": 37,
        "total_usage": 4120,
        "quota_limit": 100,
        "rate": {"minute_usage": 2, "minute_limit": 10},
    },
    "paid": {"current_day_usage": 5, "total_usage": 311},
    "providers": {"gemini": {"current_day_usage": 30, "total_usage": 4000}},
    "summary": {
        "current_day": "2025-03-14",
        "cost_savings": {"total_free_requests": 4120, "cost_savings_usd": 1.442, "cost_savings_eur": 1.2257},
    },
}


def fake_server(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.startswith("/admin") and request.headers.get("X-Admin-Token") != "secret":
            return httpx.Response(401, json={"detail": "Invalid admin token"})
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if request.url.path == "/admin/usage-metrics":
            return httpx.Response(200, json=METRICS)
        if request.url.path == "/admin/usage-metrics/reset":
            return httpx.Response(200, json={"status": "reset", "tier": request.url.params["tier"]})
        return httpx.Response(404, json={"detail": "Not Found"})

    return httpx.MockTransport(handler)


class TestParser:
    """Test argument parsing."""

    def test_reset_metrics_default_tier(self):
        """Tier defaults to all."""
        assert create_parser().parse_args(["reset-metrics"]).tier == "all"

    def test_reset_metrics_invalid_tier(self):
        """Unknown tiers are rejected by argparse."""
        with pytest.raises(SystemExit):
            create_parser().parse_args(["reset-metrics", "premium"])

    def test_no_command_prints_help(self, capsys):
        """No subcommand shows help and exits 0."""
        assert main([]) == 0
        assert "usage: willi" in capsys.readouterr().out


class TestAdminClient:
    """Test the HTTP client against a mocked server."""

    def test_sends_token_and_reads_metrics(self, config):
        """The admin token header is set on every request."""
        requests = []
        with AdminClient(config, transport=fake_server(requests)) as client:
            assert client.is_running()
            metrics = client.usage_metrics()

        assert metrics["free"]["total_usage"] == 4120
        assert requests[-1].headers["X-Admin-Token"] == "secret"
        assert str(requests[-1].url) == "http://127.0.0.1:19100/admin/usage-metrics"

    def test_reset_passes_tier(self, config):
        """Tier goes in the query string."""
        requests = []
        with AdminClient(config, transport=fake_server(requests)) as client:
            result = client.reset_metrics("free")

        assert result == {"status": "reset", "tier": "free"}
        assert requests[-1].method == "POST"

    def test_wrong_token_raises(self, config):
        """HTTP errors surface as HTTPStatusError."""
        with AdminClient(config, token="wrong", transport=fake_server([])) as client:
            with pytest.raises(httpx.HTTPStatusError):
                client.usage_metrics()

    def test_not_running(self, config):
        """Connection errors mean not running."""
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        with AdminClient(config, transport=httpx.MockTransport(refuse)) as client:
            assert not client.is_running()


class TestOutput:
    """Test report formatting."""

    def test_print_metrics(self, capsys):
        """Prints tiers, providers and savings."""
        print_metrics(METRICS)

        out = capsys.readouterr().out
        assert "free  today 37/100  total 4120  this minute 2/10" in out
        assert "gemini" in out
        assert "$1.44 / EUR 1.23" in out
