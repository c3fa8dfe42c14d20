"""BLE heart-rate ingestion with a single ordered consumer.

Heart Rate Measurement notifications (GATT characteristic 0x2A37) are
decoded into :class:`HeartRateMeasurement` values and pushed through a
bounded :class:`asyncio.Queue`. One consumer task owns the session state
(RR buffer and rolling window), so appends, session starts and session
stops are applied strictly in the order they were enqueued.
"""

from __future__ import annotations

import asyncio
import logging
import struct
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from crp.domains.recovery.domain_logic.hrv_pipeline import (
    DEFAULT_WINDOW_SIZE,
    HeartRateWindow,
    HRSessionSummary,
    RRIntervalBuffer,
    summarize_session,
)

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

_FLAG_HR_UINT16 = 0x01
_FLAG_ENERGY_EXPENDED = 0x08
_FLAG_RR_INTERVALS = 0x10
_RR_UNITS_PER_SECOND = 1024


class HeartRateParseError(ValueError):
    """Raised when a heart-rate measurement payload is malformed."""


@dataclass(frozen=True)
class HeartRateMeasurement:
    heart_rate: int                                  # bpm
    rr_intervals: tuple[float, ...] = ()             # ms
    energy_expended: int | None = None               # kJ


def parse_heart_rate_measurement(payload: bytes) -> HeartRateMeasurement:
    """Decode a Heart Rate Measurement characteristic value.

    Layout: one flags byte; heart rate as uint8 or uint16 (flag bit 0);
    optional uint16 energy expended (bit 3); optional uint16 RR intervals in
    1/1024 s units (bit 4), converted here to milliseconds.
    """
    data = bytes(payload)
    if len(data) < 2:
        raise HeartRateParseError(f"Payload too short: {len(data)} bytes")

    flags = data[0]
    offset = 1
    try:
        if flags & _FLAG_HR_UINT16:
            (heart_rate,) = struct.unpack_from("<H", data, offset)
            offset += 2
        else:
            heart_rate = data[offset]
            offset += 1

        energy = None
        if flags & _FLAG_ENERGY_EXPENDED:
            (energy,) = struct.unpack_from("<H", data, offset)
            offset += 2
    except struct.error as exc:
        raise HeartRateParseError(f"Truncated payload: {exc}") from exc

    rr: list[float] = []
    if flags & _FLAG_RR_INTERVALS:
        remainder = data[offset:]
        if len(remainder) % 2:
            raise HeartRateParseError("RR interval field has an odd number of bytes")
        for (raw,) in struct.iter_unpack("<H", remainder):
            rr.append(round(raw * 1000 / _RR_UNITS_PER_SECOND, 1))

    return HeartRateMeasurement(heart_rate=heart_rate, rr_intervals=tuple(rr), energy_expended=energy)


# ---------------------------------------------------------------------------
# Monitor
# ---------------------------------------------------------------------------

@dataclass
class _Command:
    kind: str                                        # 'start' | 'stop' | 'sample'
    measurement: HeartRateMeasurement | None = None
    future: asyncio.Future | None = None


@dataclass
class _Session:
    started_at: float
    heart_rates: list[float] = field(default_factory=list)


class HeartRateMonitor:
    """Single-consumer owner of a heart-rate recording session.

    Producers call :meth:`publish` (typically from a BLE notification
    callback). :meth:`run` must be running as a task for anything to be
    applied. Samples published while no session is active still update the
    live window but are not recorded.
    """

    def __init__(
        self,
        *,
        window_size: int = DEFAULT_WINDOW_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._queue: asyncio.Queue[_Command] = asyncio.Queue(maxsize=queue_size)
        self._window = HeartRateWindow(maxlen=window_size)
        self._rr_buffer = RRIntervalBuffer()
        self._clock = clock
        self._session: _Session | None = None
        self._last: HeartRateMeasurement | None = None

    @property
    def recording(self) -> bool:
        return self._session is not None

    # -- producer side -------------------------------------------------------

    async def publish(self, measurement: HeartRateMeasurement) -> None:
        await self._queue.put(_Command("sample", measurement=measurement))

    async def publish_raw(self, payload: bytes) -> None:
        await self.publish(parse_heart_rate_measurement(payload))

    async def start_session(self) -> None:
        """Start a session; resolves once every earlier event is applied."""
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command("start", future=future))
        await future

    async def stop_session(self) -> HRSessionSummary:
        """Stop the active session and return its summary."""
        future = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command("stop", future=future))
        return await future

    async def join(self) -> None:
        await self._queue.join()

    # -- consumer side -------------------------------------------------------

    async def run(self) -> None:
        """Apply queued events in order until cancelled."""
        while True:
            command = await self._queue.get()
            try:
                self._apply(command)
            except Exception as exc:
                logger.exception("Heart-rate event %s failed", command.kind)
                if command.future is not None and not command.future.done():
                    command.future.set_exception(exc)
            finally:
                self._queue.task_done()

    def _apply(self, command: _Command) -> None:
        if command.kind == "sample":
            self._apply_sample(command.measurement)
        elif command.kind == "start":
            self._rr_buffer.reset()
            self._window.clear()
            self._session = _Session(started_at=self._clock())
            logger.info("Heart-rate session started")
            _resolve(command.future, None)
        elif command.kind == "stop":
            _resolve(command.future, self._finish_session())
        else:
            raise ValueError(f"Unknown command: {command.kind!r}")

    def _apply_sample(self, measurement: HeartRateMeasurement | None) -> None:
        if measurement is None:
            return
        self._last = measurement
        if measurement.heart_rate > 0:
            self._window.append(measurement.heart_rate)
        if self._session is None:
            return
        if measurement.heart_rate > 0:
            self._session.heart_rates.append(measurement.heart_rate)
        self._rr_buffer.extend(measurement.rr_intervals)

    def _finish_session(self) -> HRSessionSummary:
        session = self._session
        if session is None:
            raise RuntimeError("No heart-rate session is active")
        self._session = None
        duration = max(0.0, self._clock() - session.started_at)
        summary = summarize_session(session.heart_rates, self._rr_buffer.snapshot(), duration)
        logger.info(
            "Heart-rate session stopped: %d samples, %d RR intervals, %.0fs",
            summary.sample_count, summary.hrv.count, duration,
        )
        return summary

    # -- live view -----------------------------------------------------------

    def live_status(self) -> dict[str, Any]:
        """Current window stats, zones, rhythm and running HRV."""
        return {
            "recording": self.recording,
            "heart_rate": self._last.heart_rate if self._last else None,
            "window": self._window.stats(),
            "zones": self._window.zone_distribution(),
            "rhythm": self._window.classify_rhythm(),
            "hrv": self._rr_buffer.hrv().to_dict(),
        }


def _resolve(future: asyncio.Future | None, result: Any) -> None:
    if future is not None and not future.done():
        future.set_result(result)
