"""Main pipeline orchestrator for the copy-signal tracker.

This module provides the TrackerPipeline class that wires together the
upstream client, the store and the tracker components, and drives them on
a timer:

    every POLL_INTERVAL:  reconcile wallets -> rebuild live picks
                          -> evaluate metrics -> publish majorities
    daily at DAILY_SUMMARY_HOUR:  daily summary -> leaderboard ingestion
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta
from enum import Enum
from typing import Any, TypeVar
from zoneinfo import ZoneInfo

from polymarket_copy_signals.alerter.notes import NotesUpdater
from polymarket_copy_signals.alerter.publisher import SignalPublisher
from polymarket_copy_signals.alerter.summary import DailySummary
from polymarket_copy_signals.alerter.telegram import TelegramChannel
from polymarket_copy_signals.config import Settings, get_settings
from polymarket_copy_signals.health import HealthServer
from polymarket_copy_signals.ingestor.data_api import DataApiClient
from polymarket_copy_signals.storage.database import STORE_UNAVAILABLE_ERRORS, DatabaseManager
from polymarket_copy_signals.storage.repos import WalletDTO, WalletRepository
from polymarket_copy_signals.tracker.leaderboard import LeaderboardIngestor, LeaderboardRunStats
from polymarket_copy_signals.tracker.live_picks import LivePicksBuilder
from polymarket_copy_signals.tracker.metrics import MetricsEvaluator
from polymarket_copy_signals.tracker.reconciler import ReconcileResult, SignalReconciler

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


def _require(component: _T | None, name: str) -> _T:
    if component is None:
        raise RuntimeError(f"Pipeline {name} is not initialized")
    return component


def seconds_until_daily(now: datetime, hour: int, tz: ZoneInfo) -> float:
    """Seconds from ``now`` until the next ``hour``:00 local time in ``tz``."""
    local_now = now.astimezone(tz)
    target = datetime.combine(local_now.date(), time(hour=hour), tzinfo=tz)
    if target <= local_now:
        target = datetime.combine(local_now.date() + timedelta(days=1), time(hour=hour), tzinfo=tz)
    return (target.astimezone(UTC) - now.astimezone(UTC)).total_seconds()


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    ticks_completed: int = 0
    ticks_skipped: int = 0
    ticks_failed: int = 0
    wallets_failed: int = 0
    signals_inserted: int = 0
    signals_published: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None


class TrackerPipeline:
    """Scheduler for the tracker.

    A tick never overlaps another: the timer drops a tick while the
    previous one is still running. Within a tick all wallet
    reconciliations finish before the live-picks rebuild, which finishes
    before metrics evaluation and publishing.

    Example:
        ```python
        from polymarket_copy_signals.config import get_settings
        from polymarket_copy_signals.pipeline import TrackerPipeline

        pipeline = TrackerPipeline(get_settings())
        await pipeline.run()  # until SIGINT/SIGTERM
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        db_manager: DatabaseManager | None = None,
        data_client: DataApiClient | None = None,
        telegram: TelegramChannel | None = None,
        serve_health: bool = True,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, log signals instead of sending. Overrides settings.dry_run.
            db_manager: Preconfigured database manager (tests).
            data_client: Preconfigured upstream client (tests).
            telegram: Preconfigured chat channel (tests).
            serve_health: Start the liveness endpoint with the scheduler.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._serve_health = serve_health

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        self._db_manager = db_manager
        self._data_client = data_client
        self._telegram = telegram

        # Components (initialized in initialize())
        self._reconciler: SignalReconciler | None = None
        self._live_picks: LivePicksBuilder | None = None
        self._metrics: MetricsEvaluator | None = None
        self._publisher: SignalPublisher | None = None
        self._summary: DailySummary | None = None
        self._leaderboard: LeaderboardIngestor | None = None
        self._health: HealthServer | None = None
        self._initialized = False

        # Synchronization
        self._tick_lock = asyncio.Lock()
        self._stop_event: asyncio.Event | None = None
        self._tick_loop_task: asyncio.Task[None] | None = None
        self._current_tick: asyncio.Task[bool] | None = None
        self._daily_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == PipelineState.RUNNING

    @property
    def db(self) -> DatabaseManager:
        if self._db_manager is None:
            raise RuntimeError("Pipeline is not initialized")
        return self._db_manager

    async def initialize(self) -> None:
        """Build all components and verify the store is reachable.

        Raises:
            sqlalchemy.exc.OperationalError: If the store is unreachable.
        """
        if self._initialized:
            return

        s = self._settings
        tracker = s.tracker

        if self._db_manager is None:
            self._db_manager = DatabaseManager.from_settings(s.database)
        await self._db_manager.ping()
        logger.info("Database connection verified")

        if self._data_client is None:
            self._data_client = DataApiClient(
                data_api_url=s.polymarket.data_api_url,
                trades_api_url=s.polymarket.trades_api_url,
                timeout_seconds=s.polymarket.request_timeout_seconds,
                max_retries=s.polymarket.max_retries,
                retry_delay_seconds=s.polymarket.retry_delay_seconds,
                requests_per_second=s.polymarket.requests_per_second,
                page_size=s.polymarket.positions_page_size,
            )

        if self._telegram is None:
            token = s.telegram.bot_token.get_secret_value() if s.telegram.bot_token else None
            self._telegram = TelegramChannel(token, s.telegram.chat_id)
        if self._telegram.enabled:
            logger.info("Telegram channel enabled")
        else:
            logger.warning("Telegram channel not configured; signals go to notes only")

        thresholds = tracker.confidence_thresholds()
        self._reconciler = SignalReconciler(
            self._db_manager,
            self._data_client,
            win_rate_threshold=tracker.win_rate_threshold,
        )
        self._live_picks = LivePicksBuilder(
            self._db_manager, win_rate_threshold=tracker.win_rate_threshold
        )
        self._metrics = MetricsEvaluator(
            self._db_manager,
            losing_streak_threshold=tracker.losing_streak_threshold,
            win_rate_threshold=tracker.win_rate_threshold,
        )
        self._publisher = SignalPublisher(
            self._db_manager,
            self._telegram,
            NotesUpdater(self._db_manager, tracker.notes_slug),
            thresholds=thresholds,
            min_wallets=tracker.min_wallets_for_signal,
            timezone=tracker.timezone,
            force_send=tracker.force_send,
            dry_run=self._dry_run,
        )
        self._summary = DailySummary(
            self._db_manager,
            self._telegram,
            thresholds=thresholds,
            min_wallets=tracker.min_wallets_for_signal,
            timezone=tracker.timezone,
            dry_run=self._dry_run,
        )
        self._leaderboard = LeaderboardIngestor(
            self._db_manager,
            self._data_client,
            self._reconciler,
            categories=s.leaderboard.categories,
            time_periods=s.leaderboard.time_periods,
            limit=s.leaderboard.limit,
            pnl_min=s.leaderboard.pnl_min,
            vol_mult=s.leaderboard.vol_mult,
        )
        self._initialized = True

    async def start(self) -> None:
        """Start the scheduler.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting tracker pipeline...")

        try:
            await self.initialize()
            self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Tracker pipeline started")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self.close()
            raise

    async def stop(self) -> None:
        """Stop the scheduler; an in-flight tick runs to completion."""
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping tracker pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self.close()

        self._state = PipelineState.STOPPED
        logger.info("Tracker pipeline stopped")

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    def _start_background_services(self) -> None:
        tracker = self._settings.tracker
        self._tick_loop_task = asyncio.create_task(self._run_tick_loop())
        self._daily_task = asyncio.create_task(self._run_daily_loop())
        self._heartbeat_task = asyncio.create_task(self._run_heartbeat_loop())
        if self._serve_health:
            self._health = HealthServer(
                self._settings.health_port, status_provider=self._health_status
            )
            self._health.start()
        logger.debug(
            "Tick every %.1fs, daily job at %02d:00 %s",
            tracker.poll_interval_seconds,
            tracker.daily_summary_hour,
            tracker.timezone,
        )

    async def _stop_background_services(self) -> None:
        # Loops observe the stop event; the tick loop waits for its in-flight tick.
        for task in (self._tick_loop_task, self._daily_task, self._heartbeat_task):
            if task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._tick_loop_task = None
        self._daily_task = None
        self._heartbeat_task = None

        if self._health is not None:
            await self._health.stop()
            self._health = None

    async def close(self) -> None:
        """Release network clients and database connections."""
        if self._data_client is not None:
            await self._data_client.close()
        if self._telegram is not None:
            await self._telegram.close()
        if self._db_manager is not None:
            await self._db_manager.dispose_async()
        self._initialized = False
        logger.debug("Resources cleaned up")

    async def _wait_or_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if stop was requested."""
        stop_event = _require(self._stop_event, "stop event")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=timeout)
            return True
        except TimeoutError:
            return False

    async def _run_tick_loop(self) -> None:
        if not self._stop_event:
            return

        if self._settings.leaderboard.on_startup:
            await self.run_leaderboard()

        interval = self._settings.tracker.poll_interval_seconds
        while not self._stop_event.is_set():
            if self._current_tick is not None and not self._current_tick.done():
                self._stats.ticks_skipped += 1
                logger.info("Tracker loop already running, skipping tick")
            else:
                self._current_tick = asyncio.create_task(self.run_tick())
            if await self._wait_or_stop(interval):
                break

        if self._current_tick is not None:
            await self._current_tick
            self._current_tick = None

    async def _run_daily_loop(self) -> None:
        if not self._stop_event:
            return

        tracker = self._settings.tracker
        tz = ZoneInfo(tracker.timezone)
        while not self._stop_event.is_set():
            delay = seconds_until_daily(datetime.now(UTC), tracker.daily_summary_hour, tz)
            logger.debug("Next daily job in %.0f seconds", delay)
            if await self._wait_or_stop(delay):
                break
            await self.run_daily_job()

    async def _run_heartbeat_loop(self) -> None:
        if not self._stop_event:
            return

        interval = self._settings.tracker.heartbeat_interval_seconds
        while not await self._wait_or_stop(interval):
            logger.info(
                "[HEARTBEAT] Tracker alive @ %s (ticks=%d, skipped=%d, failed=%d)",
                datetime.now(UTC).isoformat(),
                self._stats.ticks_completed,
                self._stats.ticks_skipped,
                self._stats.ticks_failed,
            )

    def _health_status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "ticks_completed": self._stats.ticks_completed,
            "last_tick_at": self._stats.last_tick_at.isoformat() if self._stats.last_tick_at else None,
        }

    async def run_tick(self) -> bool:
        """Run one tracker pass unless one is already running.

        Returns:
            True if the pass completed.
        """
        if self._tick_lock.locked():
            self._stats.ticks_skipped += 1
            logger.info("Tracker loop already running")
            return False

        async with self._tick_lock:
            try:
                await self._tick()
            except STORE_UNAVAILABLE_ERRORS as e:
                self._stats.ticks_failed += 1
                self._stats.last_error = str(e)
                logger.error("Store unavailable, tick aborted: %s", e)
                return False
            except Exception as e:
                self._stats.ticks_failed += 1
                self._stats.last_error = str(e)
                logger.exception("Tracker loop error: %s", e)
                return False

        self._stats.ticks_completed += 1
        self._stats.last_tick_at = datetime.now(UTC)
        return True

    async def _tick(self) -> None:
        await self.initialize()
        reconciler = _require(self._reconciler, "reconciler")
        live_picks = _require(self._live_picks, "live-picks builder")
        metrics = _require(self._metrics, "metrics evaluator")
        publisher = _require(self._publisher, "publisher")

        async with self.db.get_async_session() as session:
            wallets = await WalletRepository(session).list_all()
        if not wallets:
            logger.info("No wallets found")
        else:
            logger.info("Tracking %d wallets...", len(wallets))
            await self._reconcile_all(wallets)

        if self._settings.tracker.reprocess:
            logger.info("REPROCESS flag detected, updating resolved picks...")
            for wallet in wallets:
                await reconciler.reprocess(wallet)
            logger.info("Finished reprocessing resolved picks.")

        await live_picks.rebuild()
        await metrics.evaluate_all()
        published = await publisher.publish()
        self._stats.signals_published += len(published.published)
        logger.info("Tracker loop completed successfully")

    async def _reconcile_all(self, wallets: list[WalletDTO]) -> None:
        reconciler = _require(self._reconciler, "reconciler")
        semaphore = asyncio.Semaphore(self._settings.tracker.worker_concurrency)

        async def reconcile(wallet: WalletDTO) -> ReconcileResult:
            async with semaphore:
                return await reconciler.reconcile(wallet)

        results = await asyncio.gather(*(reconcile(w) for w in wallets), return_exceptions=True)
        for wallet, result in zip(wallets, results, strict=True):
            if isinstance(result, STORE_UNAVAILABLE_ERRORS):
                raise result
            if isinstance(result, Exception):
                self._stats.wallets_failed += 1
                logger.error("Error tracking wallet %s: %s", wallet.id, result)
            elif isinstance(result, BaseException):
                raise result
            else:
                self._stats.signals_inserted += result.inserted

    async def run_leaderboard(self) -> LeaderboardRunStats | None:
        await self.initialize()
        leaderboard = _require(self._leaderboard, "leaderboard ingestor")
        try:
            return await leaderboard.run()
        except Exception as e:
            logger.error("Failed to fetch leaderboard wallets: %s", e)
            return None

    async def run_summary(self) -> str | None:
        await self.initialize()
        summary = _require(self._summary, "daily summary")
        try:
            return await summary.send()
        except Exception as e:
            logger.error("Failed to send daily summary: %s", e)
            return None

    async def run_daily_job(self) -> None:
        logger.info("Running daily summary + leaderboard fetch...")
        await self.run_summary()
        await self.run_leaderboard()

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error("Unhandled error in event loop: %s", context.get("message"), exc_info=exc)

    async def run(self) -> None:
        """Start the scheduler and run until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        loop.set_exception_handler(self._handle_loop_exception)

        await self.start()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_stop)

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> TrackerPipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
