"""Composition root wiring the push and pull paths into one dashboard view."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, List, Optional

from .adapters.history_api import HistoryApiClient
from .config import AppConfig, load_config
from .connection import ConnectionManager, ConnectionRegistry
from .core import TelemetryView, TransportFactory
from .history import HistoryLoader, HistoryState
from .logging import configure_logging
from .synchronizer import TelemetrySynchronizer
from .view import DashboardView, build_dashboard_view

LOGGER = logging.getLogger(__name__)

ViewListener = Callable[[DashboardView], None]


class DashboardApp:
    """Owns the lifetime of one operator dashboard.

    ``start()`` connects the push channel through the registry, attaches a
    synchronizer and schedules a single history load that runs alongside it.
    ``stop()`` releases the synchronizer's subscription first so a remounted
    dashboard never shares a listener with a stale one.

    The registry and HTTP client may be injected; injected collaborators are
    left open on ``stop()``.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        registry: Optional[ConnectionRegistry] = None,
        transport_factory: Optional[TransportFactory] = None,
        history_client: Optional[HistoryApiClient] = None,
    ) -> None:
        self._config = config if config is not None else load_config()

        self._owns_registry = registry is None
        if registry is None:
            registry = ConnectionRegistry(transport_factory=transport_factory)
        self._registry = registry

        self._owns_history_client = history_client is None
        if history_client is None:
            history_client = HistoryApiClient(
                self._config.backend_url,
                timeout=self._config.history.request_timeout,
            )
        self._history_client = history_client
        self._history_loader = HistoryLoader(self._history_client, self._config.history)

        self._manager: Optional[ConnectionManager] = None
        self._synchronizer: Optional[TelemetrySynchronizer] = None
        self._history_task: Optional[asyncio.Task[HistoryState]] = None
        self._listeners: List[ViewListener] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def manager(self) -> Optional[ConnectionManager]:
        return self._manager

    @property
    def synchronizer(self) -> Optional[TelemetrySynchronizer]:
        return self._synchronizer

    @property
    def history_loader(self) -> HistoryLoader:
        return self._history_loader

    @property
    def history_task(self) -> Optional[asyncio.Task[HistoryState]]:
        return self._history_task

    @property
    def running(self) -> bool:
        return self._synchronizer is not None

    # ------------------------------------------------------------------
    # View surface
    # ------------------------------------------------------------------
    def view(self) -> DashboardView:
        if self._synchronizer is None:
            raise RuntimeError("Dashboard is not running")
        return build_dashboard_view(self._synchronizer.current, self._history_loader.state)

    def subscribe(self, listener: ViewListener) -> Callable[[], None]:
        """Call ``listener`` with a fresh view whenever either source changes."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self._synchronizer is not None:
            return

        LOGGER.info("Dashboard starting against %s", self._config.backend_url)

        manager = await self._registry.connect(self._config.connection)
        self._manager = manager
        self._synchronizer = TelemetrySynchronizer(manager)
        self._unsubscribers.append(self._synchronizer.subscribe(self._on_telemetry))
        self._unsubscribers.append(self._history_loader.subscribe(self._on_history))

        self._history_task = asyncio.create_task(self._history_loader.load())

    async def stop(self) -> None:
        if self._synchronizer is None:
            return

        LOGGER.info("Dashboard stopping")

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        self._synchronizer.close()
        self._synchronizer = None

        if self._history_task is not None:
            self._history_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._history_task
            self._history_task = None
        await self._history_loader.cancel()

        if self._owns_registry:
            await self._registry.shutdown()
        self._manager = None

        if self._owns_history_client:
            await self._history_client.aclose()

        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def __aenter__(self) -> "DashboardApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def run(self) -> None:
        """Run until cancelled, logging each merged view."""

        self._shutdown_event = asyncio.Event()
        unsubscribe = self.subscribe(_log_view)
        await self.start()
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("Dashboard received shutdown signal")
            raise
        finally:
            unsubscribe()
            await self.stop()

    @classmethod
    def launch(cls, config: Optional[AppConfig] = None) -> None:
        instance = cls(config=config)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("Dashboard received shutdown signal")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_telemetry(self, _view: TelemetryView) -> None:
        self._notify()

    def _on_history(self, _state: HistoryState) -> None:
        self._notify()

    def _notify(self) -> None:
        if self._synchronizer is None or not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                LOGGER.exception("Dashboard listener failed")


def _log_view(view: DashboardView) -> None:
    LOGGER.info(
        "link=%s soil=%d%% (raw %d) air=%s humidity=%s soil_temp=%s pump=%s mode=%s chart=%s",
        view.link_label,
        view.soil_pct,
        view.soil_raw,
        view.air_temp,
        view.humidity,
        view.soil_temp,
        view.pump_label,
        view.mode_label,
        view.chart_status,
    )
