"""Rate-limited buffering of outbound state updates.

A :class:`StateCoalescer` belongs to one state handler, and so to one
device. Accepted submissions wait in a pending set; a periodic sweep
collapses pending updates that report the same set of fields (newest
wins) and publishes each survivor once it has waited longer than the
dwell time. The result is at most one state report per field-shape per
dwell window.

All methods must be called from the event loop thread. Nothing here is
locked; the MQTT thread never touches the pending set.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import time
import uuid
from collections.abc import Callable, Mapping
from typing import Any

from pyvoicebridge._constants import DEFAULT_DWELL_TIME, DEFAULT_SWEEP_INTERVAL
from pyvoicebridge._redact import redact_for_log
from pyvoicebridge.dedupe import DuplicateFilter
from pyvoicebridge.exceptions import BridgeTransportUnavailableError
from pyvoicebridge.models.state import (
    FieldShape,
    RejectReason,
    SubmitResult,
    field_shape,
    has_delta_field,
    validate_state,
)

_logger = logging.getLogger(__name__)

#: ``(update_id, endpoint_id, payload) -> handed to the transport``
PublishCallback = Callable[[str, str, dict[str, Any]], bool]


@dataclasses.dataclass(frozen=True, slots=True)
class PendingUpdate:
    """One accepted, not yet published state change."""

    update_id: str
    endpoint_id: str
    payload: dict[str, Any]
    enqueued_at: float
    shape: FieldShape


@dataclasses.dataclass(slots=True)
class CoalescerStats:
    """Running counters, for diagnostics."""

    accepted: int = 0
    rejected: int = 0
    duplicates: int = 0
    superseded: int = 0
    published: int = 0
    dropped: int = 0


class StateCoalescer:
    """Buffers state submissions for one device and publishes them rate-limited.

    Parameters
    ----------
    endpoint_id : str
        Device whose state is reported.
    publish : PublishCallback
        Called for every flushed update. Returns ``False`` (or raises
        :class:`BridgeTransportUnavailableError`) when the relay
        connection is down, in which case the update is dropped.
    sweep_interval : float
        Seconds between sweeps once :meth:`start` has been called.
    dwell_time : float
        A pending update is published only once it is strictly older
        than this many seconds.
    clock : Callable[[], float]
        Monotonic time source, injectable for tests.
    duplicate_filter : DuplicateFilter or None
        Filter consulted on submission; a private one is created when
        omitted.
    name : str
        Label used in log lines.
    """

    def __init__(
        self,
        endpoint_id: str,
        publish: PublishCallback,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        dwell_time: float = DEFAULT_DWELL_TIME,
        clock: Callable[[], float] = time.monotonic,
        duplicate_filter: DuplicateFilter | None = None,
        name: str = "",
    ) -> None:
        self._endpoint_id = endpoint_id
        self._publish = publish
        self._sweep_interval = sweep_interval
        self._dwell_time = dwell_time
        self._clock = clock
        self._filter = duplicate_filter if duplicate_filter is not None else DuplicateFilter()
        self._name = name or endpoint_id
        self._pending: dict[str, PendingUpdate] = {}
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.stats = CoalescerStats()

    @property
    def endpoint_id(self) -> str:
        return self._endpoint_id

    @property
    def sweep_interval(self) -> float:
        return self._sweep_interval

    @property
    def dwell_time(self) -> float:
        return self._dwell_time

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def pending(self) -> list[PendingUpdate]:
        """Snapshot of the buffered updates, oldest submission first."""
        return list(self._pending.values())

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        payload: Mapping[str, Any] | None,
        acknowledge: bool | None,
        *,
        from_command: bool = False,
    ) -> SubmitResult:
        """Validate a ``{"state": {...}}`` payload and buffer it.

        ``acknowledge=None`` means the flag was absent from the input.
        ``from_command=True`` marks a payload derived from a voice command;
        those skip duplicate suppression so every command is confirmed.
        """
        result = self._evaluate(payload, acknowledge, from_command=from_command)
        if result.accepted:
            self.stats.accepted += 1
        elif result.reason is RejectReason.DUPLICATE:
            self.stats.duplicates += 1
        else:
            self.stats.rejected += 1
        return result

    def _evaluate(
        self,
        payload: Mapping[str, Any] | None,
        acknowledge: bool | None,
        *,
        from_command: bool,
    ) -> SubmitResult:
        if self._closed:
            return SubmitResult.rejected(RejectReason.HANDLER_CLOSED)
        if not isinstance(payload, Mapping):
            return SubmitResult.rejected(RejectReason.MISSING_PAYLOAD)
        state = payload.get("state")
        if not isinstance(state, Mapping) or not state:
            return SubmitResult.rejected(RejectReason.MISSING_STATE)
        if acknowledge is None:
            return SubmitResult.rejected(RejectReason.MISSING_ACKNOWLEDGE)
        if acknowledge is not True:
            return SubmitResult.rejected(RejectReason.UNACKNOWLEDGED, "acknowledge is not true")

        validation = validate_state(state)
        if not validation.valid or validation.state is None:
            return SubmitResult.rejected(validation.reason or RejectReason.INVALID_FIELD_TYPE, validation.detail)

        normalised = {"state": validation.state}
        if not from_command and self._filter.is_duplicate(self._endpoint_id, normalised):
            return SubmitResult.rejected(RejectReason.DUPLICATE)
        self._filter.record(self._endpoint_id, normalised)

        update = PendingUpdate(
            update_id=uuid.uuid4().hex,
            endpoint_id=self._endpoint_id,
            payload=normalised,
            enqueued_at=self._clock(),
            shape=field_shape(validation.state),
        )
        self._pending[update.update_id] = update
        _logger.debug(
            "%s: buffered state update %s (delta=%s): %s",
            self._name,
            update.update_id,
            has_delta_field(validation.state),
            redact_for_log(normalised),
        )
        return SubmitResult.ok(update.update_id)

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep(self) -> list[PendingUpdate]:
        """Collapse same-shape updates, then flush those past the dwell time.

        Returns the updates that were handed to the publish callback.
        """
        if self._closed or not self._pending:
            return []

        newest: dict[FieldShape, PendingUpdate] = {}
        for update in self._pending.values():
            current = newest.get(update.shape)
            # equal timestamps: the later submission wins
            if current is None or update.enqueued_at >= current.enqueued_at:
                if current is not None:
                    self._supersede(current)
                newest[update.shape] = update
            else:
                self._supersede(update)
        for update_id in [uid for uid, update in self._pending.items() if newest[update.shape] is not update]:
            del self._pending[update_id]

        now = self._clock()
        flushed: list[PendingUpdate] = []
        for update in list(self._pending.values()):
            if now - update.enqueued_at <= self._dwell_time:
                continue
            del self._pending[update.update_id]
            if self._flush(update):
                flushed.append(update)
        return flushed

    def _supersede(self, update: PendingUpdate) -> None:
        self.stats.superseded += 1
        _logger.debug("%s: throttled state update %s", self._name, update.update_id)

    def _flush(self, update: PendingUpdate) -> bool:
        try:
            published = self._publish(update.update_id, update.endpoint_id, update.payload)
        except BridgeTransportUnavailableError:
            published = False
        if published:
            self.stats.published += 1
            return True
        self.stats.dropped += 1
        _logger.warning(
            "%s: relay not connected, dropped state update %s",
            self._name,
            update.update_id,
        )
        return False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._closed:
            raise RuntimeError("coalescer is closed")
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"state-sweep-{self._name}")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception:
                _logger.warning("%s: state sweep failed", self._name, exc_info=True)

    async def close(self) -> None:
        """Stop sweeping and discard everything still buffered."""
        self._closed = True
        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._pending:
            _logger.debug("%s: discarded %d pending state update(s)", self._name, len(self._pending))
        self._pending.clear()
