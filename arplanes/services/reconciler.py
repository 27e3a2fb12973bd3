"""Incremental reconciliation of tracked aircraft against telemetry batches."""

from __future__ import annotations

from dataclasses import dataclass
import itertools
import logging
import time
from typing import Callable, Iterable, Optional

from arplanes.config import settings
from arplanes.domain.projection import ProjectionScale, project
from arplanes.models.flight import UNKNOWN_ICAO, FlightRecord, GeoPosition
from arplanes.models.tracking import Placement, PlacementIntent, ReconcileResult, TrackedFlight

logger = logging.getLogger("arplanes.reconciler")


@dataclass
class TrackedEntity:
    """One aircraft currently shown in the scene."""

    key: str
    record: FlightRecord
    placement: Placement
    last_seen: float
    handle: str | None = None

    def to_tracked_flight(self) -> TrackedFlight:
        return TrackedFlight(
            key=self.key, record=self.record, placement=self.placement, handle=self.handle
        )


class TrackReconciler:
    """Own the tracked set and diff each batch into create/move/remove intents.

    Aircraft without a stable identity get a fresh key on every sighting, so
    they are recreated each batch and never matched to an earlier one.
    """

    def __init__(
        self,
        *,
        scale: ProjectionScale | None = None,
        grace_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.scale = scale or ProjectionScale(
            horizontal=settings.horizontal_scale, vertical=settings.vertical_scale
        )
        self.grace_seconds = (
            settings.removal_grace_seconds if grace_seconds is None else grace_seconds
        )
        self._clock = clock
        self._entities: dict[str, TrackedEntity] = {}
        self._handles: dict[str, str] = {}
        self._anonymous = itertools.count(1)

    def reconcile(self, batch: Iterable[FlightRecord], viewer: GeoPosition) -> ReconcileResult:
        """Diff ``batch`` against the tracked set, placing aircraft around ``viewer``."""

        now = self._clock()
        incoming: dict[str, FlightRecord] = {}
        for record in batch:
            if record.has_stable_identity:
                incoming[record.icao] = record
            else:
                incoming[f"{UNKNOWN_ICAO}#{next(self._anonymous)}"] = record

        result = ReconcileResult()

        for key in list(self._entities):
            if key in incoming:
                continue
            entity = self._entities[key]
            if self._expired(entity, now):
                self._drop(key)
                result.removed.append(key)
                result.removed_records[key] = entity.record

        for key, record in incoming.items():
            placement = project(record.position, viewer, record.heading, self.scale)
            entity = self._entities.get(key)
            if entity is None:
                self._entities[key] = TrackedEntity(
                    key=key, record=record, placement=placement, last_seen=now
                )
                result.created.append(
                    PlacementIntent(kind="created", key=key, record=record, placement=placement)
                )
            else:
                entity.record = record
                entity.placement = placement
                entity.last_seen = now
                result.moved.append(
                    PlacementIntent(kind="moved", key=key, record=record, placement=placement)
                )

        logger.debug(
            "Reconciled batch: %s created, %s moved, %s removed",
            len(result.created),
            len(result.moved),
            len(result.removed),
        )
        return result

    def attach_handle(self, key: str, handle: str) -> None:
        entity = self._entities.get(key)
        if entity is None:
            logger.warning("Cannot attach handle %s to untracked %s", handle, key)
            return
        if entity.handle is not None:
            self._handles.pop(entity.handle, None)
        entity.handle = handle
        self._handles[handle] = key

    def entity(self, key: str) -> Optional[TrackedEntity]:
        return self._entities.get(key)

    def record_for(self, key: str) -> Optional[FlightRecord]:
        entity = self._entities.get(key)
        return entity.record if entity else None

    def key_for_handle(self, handle: str) -> Optional[str]:
        return self._handles.get(handle)

    def record_for_handle(self, handle: str) -> Optional[FlightRecord]:
        key = self._handles.get(handle)
        return self.record_for(key) if key is not None else None

    def tracked(self) -> list[TrackedFlight]:
        return [entity.to_tracked_flight() for entity in self._entities.values()]

    def clear(self) -> list[str]:
        keys = list(self._entities)
        self._entities.clear()
        self._handles.clear()
        return keys

    def __contains__(self, key: object) -> bool:
        return key in self._entities

    def __len__(self) -> int:
        return len(self._entities)

    def _expired(self, entity: TrackedEntity, now: float) -> bool:
        if not entity.record.has_stable_identity or self.grace_seconds <= 0:
            return True
        return now - entity.last_seen > self.grace_seconds

    def _drop(self, key: str) -> None:
        entity = self._entities.pop(key)
        if entity.handle is not None:
            self._handles.pop(entity.handle, None)


__all__ = ["TrackReconciler", "TrackedEntity"]
