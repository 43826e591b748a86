"""Tests for the plugin capability surface."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from willi_core.plugins import (
    DashboardWidget,
    DuplicateRegistrationError,
    InvalidRegistrationError,
    PluginAPI,
)


@pytest.fixture
def app():
    return FastAPI()


@pytest.fixture
def api(app):
    return PluginAPI(app.router)


async def noop_job() -> None:
    pass


class TestRoutes:
    """Test route mounting."""

    def test_route_is_served_under_prefix(self, app, api):
        """Routes land under /api/plugins."""
        async def status():
            return {"exported": 3}

        path = api.add_route("GET", "/export/status", status)

        assert path == "/api/plugins/export/status"
        response = TestClient(app).get(path)
        assert response.status_code == 200
        assert response.json() == {"exported": 3}

    def test_duplicate_route_rejected(self, app, api):
        """Same method and path twice: the first handler stays."""
        async def first():
            return {"handler": "first"}

        async def second():
            return {"handler": "second"}

        api.add_route("GET", "/export/status", first)
        with pytest.raises(DuplicateRegistrationError):
            api.add_route("get", "export/status", second)

        assert TestClient(app).get("/api/plugins/export/status").json() == {"handler": "first"}

    def test_same_path_other_method(self, api):
        """Method is part of the key."""
        api.add_route("GET", "/items", lambda: [])
        api.add_route("POST", "/items", lambda: {})

        assert api.get_routes() == [("GET", "/api/plugins/items"), ("POST", "/api/plugins/items")]

    def test_invalid_method(self, api):
        """Unsupported methods are rejected."""
        with pytest.raises(InvalidRegistrationError):
            api.add_route("TRACE", "/x", lambda: None)

    def test_remove_route(self, app, api):
        """Removed routes are no longer served."""
        api.add_route("GET", "/gone", lambda: {})

        assert api.remove_route("GET", "/gone")
        assert TestClient(app).get("/api/plugins/gone").status_code == 404
        assert not api.remove_route("GET", "/gone")


class TestUIExtensions:
    """Test widgets, settings pages and menu items."""

    def test_duplicate_widget_keeps_first(self, api):
        """Second registration with the same id fails; the first is intact."""
        api.add_dashboard_widget({"id": "export.widget", "title": "Export", "component": "ExportWidget"})

        with pytest.raises(DuplicateRegistrationError, match="export.widget"):
            api.add_dashboard_widget({"id": "export.widget", "title": "Other", "component": "Other"})

        widgets = api.get_widgets()
        assert len(widgets) == 1
        assert widgets[0].title == "Export"

    def test_widget_missing_fields(self, api):
        """Widgets need id, title and component."""
        with pytest.raises(InvalidRegistrationError, match="component"):
            api.add_dashboard_widget({"id": "w", "title": "W"})

    def test_widget_model_accepted(self, api):
        """Models pass through unchanged."""
        widget = DashboardWidget(id="w", title="W", component="C", position="sidebar")

        assert api.add_dashboard_widget(widget) is widget

    def test_settings_page(self, api):
        """Settings pages need id, title and component."""
        api.add_settings_page({"id": "export.settings", "title": "Export", "component": "ExportSettings"})

        with pytest.raises(InvalidRegistrationError):
            api.add_settings_page({"id": "broken", "component": "X"})
        with pytest.raises(DuplicateRegistrationError):
            api.add_settings_page({"id": "export.settings", "title": "Again", "component": "X"})

        assert [p.id for p in api.get_settings_pages()] == ["export.settings"]

    def test_menu_item(self, api):
        """Menu items need id, label and route."""
        api.add_menu_item({"id": "export.menu", "label": "Export", "route": "/export", "order": 5})

        with pytest.raises(InvalidRegistrationError, match="route"):
            api.add_menu_item({"id": "m", "label": "M"})

        assert api.get_menu_items()[0].order == 5

    def test_getters_return_copies(self, api):
        """Mutating a getter result does not change the API."""
        api.add_menu_item({"id": "m", "label": "M", "route": "/m"})

        api.get_menu_items().clear()

        assert len(api.get_menu_items()) == 1

    def test_remove(self, api):
        """Remove by id."""
        api.add_dashboard_widget({"id": "w", "title": "W", "component": "C"})

        assert api.remove_widget("w")
        assert not api.remove_widget("w")
        assert api.get_widgets() == []


class TestBackgroundWork:
    """Test jobs, workers, migrations and middleware."""

    def test_duplicate_job_keeps_first(self, api):
        """Jobs are keyed by name."""
        api.schedule_job("export.nightly", "0 3 * * *", noop_job)

        with pytest.raises(DuplicateRegistrationError):
            api.schedule_job("export.nightly", "0 4 * * *", noop_job)

        assert api.get_jobs()["export.nightly"].schedule == "0 3 * * *"

    def test_job_needs_schedule(self, api):
        """An empty schedule is rejected."""
        with pytest.raises(InvalidRegistrationError):
            api.schedule_job("job", "  ", noop_job)

    def test_duplicate_worker(self, api):
        """Workers are keyed by name."""
        api.add_worker("export.queue", noop_job)

        with pytest.raises(DuplicateRegistrationError):
            api.add_worker("export.queue", noop_job)

    def test_migrations_and_middleware(self, api):
        """Kept in registration order."""
        async def mw(request, call_next):
            return await call_next(request)

        api.add_migration("CREATE TABLE export_runs (id TEXT)")
        api.add_middleware(mw)

        assert api.get_migrations() == ["CREATE TABLE export_runs (id TEXT)"]
        assert api.get_middleware() == [mw]

    def test_clear_all_and_summary(self, api):
        """clear_all drops everything except routes."""
        api.add_route("GET", "/r", lambda: {})
        api.add_dashboard_widget({"id": "w", "title": "W", "component": "C"})
        api.schedule_job("j", "* * * * *", noop_job)

        assert api.summary()["widgets"] == 1

        api.clear_all()

        summary = api.summary()
        assert summary["routes"] == 1
        assert summary["widgets"] == 0
        assert summary["jobs"] == 0


class TestRollback:
    """Test checkpoint and rollback."""

    def test_rollback_removes_only_newer_registrations(self, app, api):
        """Registrations made before the checkpoint survive."""
        api.add_route("GET", "/kept", lambda: {"kept": True})
        api.add_dashboard_widget({"id": "kept.widget", "title": "Kept", "component": "Kept"})
        checkpoint = api.checkpoint()

        api.add_route("POST", "/dropped", lambda: {})
        api.add_dashboard_widget({"id": "dropped.widget", "title": "Dropped", "component": "Dropped"})
        api.add_middleware(lambda request, call_next: call_next(request))
        api.add_migration("CREATE TABLE dropped (id TEXT)")
        api.schedule_job("dropped.job", "* * * * *", noop_job)
        api.add_worker("dropped.worker", noop_job)

        assert api.rollback(checkpoint) == 6

        assert api.get_routes() == [("GET", "/api/plugins/kept")]
        assert [w.id for w in api.get_widgets()] == ["kept.widget"]
        assert api.summary()["middleware"] == 0
        assert api.get_jobs() == {}
        client = TestClient(app)
        assert client.get("/api/plugins/kept").status_code == 200
        assert client.post("/api/plugins/dropped").status_code == 404

    def test_rollback_without_changes(self, api):
        """Nothing registered since the checkpoint: nothing removed."""
        assert api.rollback(api.checkpoint()) == 0
