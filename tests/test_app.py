"""Tests for the DashboardApp composition root."""

import asyncio
import logging
from pathlib import Path

import pytest

from agrismart_telemetry.adapters import HistoryFetchError
from agrismart_telemetry.app import DashboardApp
from agrismart_telemetry.config import load_config
from agrismart_telemetry.connection import ConnectionRegistry
from agrismart_telemetry.core import Topic

from test_history import COMBINED_RECORDS, StubHistoryClient


@pytest.fixture
def app_config(tmp_path: Path):
    config_path = tmp_path / "agrismart-telemetry.cfg"
    config_path.write_text(
        "[backend]\nurl = http://node.test:5000\n"
        "[connection]\nreconnection_delay = 0.01\nrandomization_factor = 0\n",
        encoding="utf-8",
    )
    return load_config(config_path, environ={})


@pytest.mark.asyncio
async def test_start_connects_and_loads_history(app_config, transport_factory, eventually):
    client = StubHistoryClient(COMBINED_RECORDS)
    app = DashboardApp(app_config, transport_factory=transport_factory, history_client=client)
    views = []
    app.subscribe(views.append)

    await app.start()
    await eventually(lambda: app.manager is not None and app.manager.is_connected)
    await app.history_task

    transport_factory.last.emit(Topic.INIT, {"soil_pct": 37, "pump_on": True})

    view = app.view()
    assert view.link_label == "Live"
    assert view.soil_pct == 37
    assert view.pump_label == "ON"
    assert view.chart_status == "ready"
    assert views[-1] == view
    assert client.calls == ["/api/charts/24h"]

    manager = app.manager
    await app.stop()

    assert app.running is False
    assert manager.listener_count == 0
    with pytest.raises(RuntimeError):
        app.view()


@pytest.mark.asyncio
async def test_history_failure_leaves_telemetry_live(app_config, transport_factory, eventually):
    client = StubHistoryClient(HistoryFetchError("status 500"))

    async with DashboardApp(
        app_config, transport_factory=transport_factory, history_client=client
    ) as app:
        await eventually(lambda: app.manager.is_connected)
        state = await app.history_task
        transport_factory.last.emit(Topic.UPDATE, {"soil_pct": 61})

        view = app.view()
        assert state.loading is False
        assert view.chart_status == "error"
        assert view.chart_error == "status 500"
        assert view.soil_pct == 61
        assert view.sparkline == (61,)


@pytest.mark.asyncio
async def test_remount_shares_connection_without_duplicate_delivery(
    app_config, transport_factory, eventually
):
    registry = ConnectionRegistry(transport_factory=transport_factory)

    first = DashboardApp(
        app_config, registry=registry, history_client=StubHistoryClient(COMBINED_RECORDS)
    )
    await first.start()
    manager = first.manager
    await first.stop()

    # An injected registry stays open across remounts.
    assert len(registry) == 1
    assert manager.listener_count == 0

    second = DashboardApp(
        app_config, registry=registry, history_client=StubHistoryClient(COMBINED_RECORDS)
    )
    deliveries = []
    second.subscribe(lambda view: deliveries.append(view.soil_pct))
    await second.start()
    await eventually(lambda: second.manager.is_connected)

    assert second.manager is manager
    assert manager.listener_count == 1
    assert len(transport_factory.transports) == 1

    deliveries.clear()
    transport_factory.last.emit(Topic.UPDATE, {"soil_pct": 18})
    assert deliveries == [18]

    await second.stop()
    await registry.shutdown()


@pytest.mark.asyncio
async def test_stop_during_history_load_resets_loader(app_config, transport_factory):
    client = StubHistoryClient(COMBINED_RECORDS)
    client.gate = asyncio.Event()
    app = DashboardApp(app_config, transport_factory=transport_factory, history_client=client)

    await app.start()
    await asyncio.sleep(0)
    assert app.history_loader.state.loading is True

    await app.stop()

    assert app.history_loader.state.loading is False


@pytest.mark.asyncio
async def test_failing_view_listener_is_logged(app_config, transport_factory, eventually, caplog):
    app = DashboardApp(
        app_config,
        transport_factory=transport_factory,
        history_client=StubHistoryClient(COMBINED_RECORDS),
    )

    def explode(view):
        raise RuntimeError("render failed")

    app.subscribe(explode)
    with caplog.at_level(logging.ERROR):
        await app.start()
        await eventually(lambda: app.manager.is_connected)
        await app.history_task

    assert "Dashboard listener failed" in caplog.text
    assert app.view().chart_status == "ready"

    await app.stop()


@pytest.mark.asyncio
async def test_dashboards_share_an_empty_injected_registry(
    app_config, transport_factory, eventually
):
    registry = ConnectionRegistry(transport_factory=transport_factory)
    first = DashboardApp(
        app_config, registry=registry, history_client=StubHistoryClient(COMBINED_RECORDS)
    )
    second = DashboardApp(
        app_config, registry=registry, history_client=StubHistoryClient(COMBINED_RECORDS)
    )

    await first.start()
    await second.start()
    await eventually(lambda: first.manager.is_connected)

    assert first.manager is second.manager
    assert registry.get(app_config.backend_url) is first.manager
    assert len(transport_factory.transports) == 1
    assert first.manager.listener_count == 2

    manager = first.manager
    await first.stop()
    await second.stop()

    # Injected registries outlive the dashboards that borrow them.
    assert len(registry) == 1
    assert manager.is_connected is True

    await registry.shutdown()
    assert manager.is_connected is False
