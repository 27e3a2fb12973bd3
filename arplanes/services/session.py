"""Single reconciliation timeline tying the feed, reconciler and scene together."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Optional, Union

from arplanes.config import settings
from arplanes.ingestors.feed import ConnectionState, FeedBatch
from arplanes.models.flight import FlightRecord, GeoPosition
from arplanes.models.flight_info import FlightStatus
from arplanes.models.tracking import ReconcileResult, TrackedFlight
from arplanes.services.enrichment import EnrichmentService
from arplanes.services.reconciler import TrackReconciler
from arplanes.services.scene import InMemorySceneGraph, SceneGraph

logger = logging.getLogger("arplanes.session")


@dataclass
class LocationEvent:
    location: GeoPosition


@dataclass
class BatchEvent:
    batch: FeedBatch


SessionEvent = Union[LocationEvent, BatchEvent]


class TrackingSession:
    """Serialize viewer locations and telemetry batches onto one timeline.

    Every event goes through one queue and is applied by ``run`` in arrival
    order, so the tracked set is never read and written concurrently.
    Batches that arrive before the first viewer location are held back and
    only the latest one is reconciled once a location is known.
    """

    def __init__(
        self,
        *,
        scene: SceneGraph | None = None,
        reconciler: TrackReconciler | None = None,
        enrichment: EnrichmentService | None = None,
        feed: Any = None,
        move_duration: float | None = None,
    ) -> None:
        self.scene = scene if scene is not None else InMemorySceneGraph()
        self.reconciler = reconciler or TrackReconciler()
        self.enrichment = enrichment or EnrichmentService()
        self.move_duration = (
            settings.move_duration_seconds if move_duration is None else move_duration
        )
        self.viewer: GeoPosition | None = None
        self.connection_state = ConnectionState.DISCONNECTED
        self.last_result: ReconcileResult | None = None
        self.batches_processed = 0
        self.batches_rejected = 0
        self._pending_batch: FeedBatch | None = None
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self.feed = None
        if feed is not None:
            self.attach_feed(feed)

    def attach_feed(self, feed: Any) -> None:
        """Route a feed's batches and state changes into this session."""

        self.feed = feed
        feed.on_batch = self.submit_batch
        feed.on_state_change = self._on_state_change
        if getattr(feed, "location", None) is None and self.viewer is not None:
            feed.location = self.viewer

    @property
    def connectivity_degraded(self) -> bool:
        return self.connection_state != ConnectionState.CONNECTED

    @property
    def has_pending_batch(self) -> bool:
        return self._pending_batch is not None

    async def submit_location(self, location: GeoPosition) -> None:
        await self._queue.put(LocationEvent(location))

    async def submit_batch(self, batch: FeedBatch) -> None:
        await self._queue.put(BatchEvent(batch))

    async def run(self) -> None:
        """Apply queued events until cancelled."""

        while True:
            event = await self._queue.get()
            try:
                await self.process(event)
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.error("Failed to process %s: %s", type(event).__name__, exc, exc_info=True)
            finally:
                self._queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""

        await self._queue.join()

    async def process(self, event: SessionEvent) -> None:
        if isinstance(event, LocationEvent):
            await self._apply_location(event.location)
        elif isinstance(event, BatchEvent):
            self._apply_batch(event.batch)
        else:  # pragma: no cover - guarded by the type union
            logger.warning("Ignoring unknown session event %r", event)

    def tracked(self) -> list[TrackedFlight]:
        return self.reconciler.tracked()

    def record_for_handle(self, handle: str) -> Optional[FlightRecord]:
        key = self.scene.identity_for_handle(handle)
        if key is None:
            key = self.reconciler.key_for_handle(handle)
        return self.reconciler.record_for(key) if key is not None else None

    async def select(self, handle: str) -> Optional[FlightStatus]:
        """Resolve a user selection to the live record and its status card."""

        record = self.record_for_handle(handle)
        if record is None:
            logger.debug("Selection %s does not match a tracked aircraft", handle)
            return None
        return await self.enrichment.fetch_status(record, self.viewer)

    async def select_key(self, key: str, *, wait: bool = True) -> Optional[FlightStatus]:
        record = self.reconciler.record_for(key)
        if record is None:
            return None
        if not wait:
            return self.enrichment.peek_status(record, self.viewer)
        return await self.enrichment.fetch_status(record, self.viewer)

    async def _apply_location(self, location: GeoPosition) -> None:
        self.viewer = location
        if self.feed is not None:
            await self.feed.update_location(location)

        if self._pending_batch is not None:
            batch, self._pending_batch = self._pending_batch, None
            logger.info("Viewer location known; reconciling deferred batch")
            self._reconcile(batch)

    def _apply_batch(self, batch: FeedBatch) -> None:
        if not batch.ok:
            self.batches_rejected += 1
            logger.warning("Keeping tracked set after bad batch: %s", batch.error)
            return

        if self.viewer is None:
            logger.debug("No viewer location yet; deferring batch of %s", len(batch.records))
            self._pending_batch = batch
            return

        self._reconcile(batch)

    def _reconcile(self, batch: FeedBatch) -> None:
        if self.viewer is None:
            logger.warning(
                "Cannot reconcile %s aircraft without a viewer location", len(batch.records)
            )
            return
        result = self.reconciler.reconcile(batch.records, self.viewer)

        for key in result.removed:
            self.scene.remove(key)
            record = result.removed_records.get(key)
            if record is not None:
                self.enrichment.cancel_for(record)

        for intent in result.created:
            handle = self.scene.place(
                intent.key, intent.placement.offset, intent.placement.rotation
            )
            self.reconciler.attach_handle(intent.key, handle)

        for intent in result.moved:
            self.scene.move(intent.key, intent.placement.offset, self.move_duration)

        self.last_result = result
        self.batches_processed += 1
        if result.created or result.removed:
            logger.info(
                "Tracking %s aircraft (%s new, %s gone)",
                len(self.reconciler),
                len(result.created),
                len(result.removed),
            )

    def _on_state_change(self, state: ConnectionState) -> None:
        self.connection_state = state
        if state == ConnectionState.DISCONNECTED:
            logger.warning("Feed disconnected; keeping last known aircraft on screen")
        else:
            logger.info("Feed %s", state.value)


__all__ = ["BatchEvent", "LocationEvent", "TrackingSession"]
