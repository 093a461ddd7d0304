from __future__ import annotations
import logging, time
from enum import Enum
from typing import Callable, Optional
from outputctl.errors import HardwareWriteError
from outputctl.gpioio import Level, PinHandle, PinRegistry

class Change(Enum):
    UNCHANGED = 'unchanged'
    TRANSITIONED = 'transitioned'
    def __bool__(self) -> bool:
        return self is Change.TRANSITIONED

class DigitalOutput:
    """
    One physical output line with its last transition time.

    The handle is resolved from `identifier` on first use. on()/off() check the
    recorded state *and* the hardware read-back before skipping a write, so a pin
    toggled behind our back (or left stale by a crash) is driven again.
    After the first on()/off() exactly one of on_time/off_time is set.
    """

    def __init__(self, identifier: str, registry: PinRegistry, friendly_name: str = '',
                 clock: Callable[[], float] = time.monotonic):
        self.identifier = identifier or ''
        self.friendly_name = friendly_name
        self.on_time: Optional[float] = None
        self.off_time: Optional[float] = None
        self._registry = registry
        self._handle: Optional[PinHandle] = None
        self.degraded = False
        self._clock = clock
        self._log = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def __repr__(self) -> str:
        return f"DigitalOutput({self.identifier!r}, on_time={self.on_time}, off_time={self.off_time})"

    @property
    def absent(self) -> bool:
        return not self.identifier

    @property
    def is_on(self) -> bool:
        return self.on_time is not None

    @property
    def is_off(self) -> bool:
        return self.off_time is not None

    @property
    def label(self) -> str:
        return self.friendly_name or self.identifier

    def _resolve(self) -> PinHandle:
        if self._handle is None:
            # PinResolutionError propagates: running an actuator blind is not an option
            self._handle = self._registry.resolve(self.identifier)
        return self._handle

    def _write(self, handle: PinHandle, level: Level) -> None:
        try:
            handle.write(level)
        except Exception as e:
            raise HardwareWriteError(self.identifier, f"write {level.name} failed: {e}") from e

    def _drive(self, level: Level) -> None:
        handle = self._resolve()
        self._write(handle, level)
        if handle.read() != level:
            self._write(handle, level)
        if handle.read() == level:
            if self.degraded:
                self._log.info("%s read-back agrees again", self.label)
            self.degraded = False
            return
        # one warning per degraded spell, not one per tick
        if not self.degraded:
            self._log.warning("%s read-back mismatch after retry (wanted %s); continuing degraded",
                              self.label, level.name)
        self.degraded = True

    def on(self) -> Change:
        if self.absent:
            return Change.UNCHANGED
        handle = self._resolve()
        if self.on_time is not None and handle.read() == Level.HIGH:
            return Change.UNCHANGED
        self._drive(Level.HIGH)
        if self.on_time is not None:
            self._log.debug("%s re-driven HIGH, line had dropped", self.label)
        else:
            self._log.info("%s ON", self.label)
        self.on_time = self._clock(); self.off_time = None
        return Change.TRANSITIONED

    def off(self) -> Change:
        if self.absent:
            return Change.UNCHANGED
        handle = self._resolve()
        if self.off_time is not None and handle.read() == Level.LOW:
            return Change.UNCHANGED
        self._drive(Level.LOW)
        now = self._clock()
        if self.off_time is not None:
            self._log.debug("%s re-driven LOW, line had risen", self.label)
        elif self.on_time is not None:
            self._log.info("%s OFF after %.1fs", self.label, now - self.on_time)
        else:
            self._log.info("%s OFF", self.label)
        self.off_time = now; self.on_time = None
        return Change.TRANSITIONED

    def reset(self) -> None:
        """Force a known-off state, (re)resolving the handle first."""
        if not self.absent:
            self._resolve()
        self.off()

    def close(self) -> None:
        """Hand the line back to the registry. Does not drive it."""
        if self._handle is not None:
            self._registry.release(self.identifier)
            self._handle = None

    def rebind(self, identifier: str) -> None:
        identifier = identifier or ''
        if not identifier:
            self.reset()
            return
        if identifier == self.identifier:
            return
        self._log.info("Rebinding %s -> %s", self.identifier or '<absent>', identifier)
        self.reset()
        self.close()
        self.identifier = identifier
        self.on_time = None; self.off_time = None
        self.reset()
