from __future__ import annotations
import logging, re
from enum import IntEnum
from typing import Dict, List, Protocol, Tuple
from outputctl.errors import PinResolutionError

class Level(IntEnum):
    LOW = 0
    HIGH = 1

class PinHandle(Protocol):
    def write(self, level: Level) -> None: ...
    def read(self) -> Level: ...

class PinRegistry(Protocol):
    def resolve(self, identifier: str) -> PinHandle: ...
    def release(self, identifier: str) -> None: ...

# --- RPi.GPIO backend -------------------------------------------------------

_CHANNEL_RE = re.compile(r'^(?:GPIO|BCM)?(\d+)$', re.IGNORECASE)
BCM_CHANNELS = range(0, 28)

def parse_channel(identifier: str) -> int | None:
    m = _CHANNEL_RE.match(identifier.strip())
    if not m:
        return None
    ch = int(m.group(1))
    return ch if ch in BCM_CHANNELS else None

class GpioPin:
    """One BCM output channel. Levels are logical; active_low inverts them on the wire."""
    def __init__(self, gpio, channel: int, active_low: bool = False):
        self._gpio = gpio; self.channel = channel; self.active_low = active_low
    def _physical(self, level: Level):
        on = level == Level.HIGH
        if self.active_low: on = not on
        return self._gpio.HIGH if on else self._gpio.LOW
    def write(self, level: Level) -> None:
        self._gpio.output(self.channel, self._physical(level))
    def read(self) -> Level:
        raw = bool(self._gpio.input(self.channel))
        if self.active_low: raw = not raw
        return Level.HIGH if raw else Level.LOW

class GpioPinRegistry:
    """
    Resolves identifiers such as "17", "GPIO17" or "BCM17" to RPi.GPIO output channels.
    Channels are set up as outputs driven to the logical LOW level.
    """
    def __init__(self, active_low: bool = False, gpio=None):
        if gpio is None:
            import RPi.GPIO as gpio
        self._gpio = gpio
        self.active_low = active_low
        self._pins: Dict[int, GpioPin] = {}
        self._owners: Dict[int, str] = {}
        self._log = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._gpio.setmode(self._gpio.BCM); self._gpio.setwarnings(False)

    def resolve(self, identifier: str) -> GpioPin:
        """Claim the channel behind `identifier`. A claimed channel stays taken until release()."""
        ch = parse_channel(identifier)
        if ch is None:
            raise PinResolutionError(identifier, "no such GPIO line")
        if ch in self._pins:
            raise PinResolutionError(identifier, f"BCM{ch} already claimed as {self._owners[ch]!r}")
        pin = GpioPin(self._gpio, ch, self.active_low)
        try:
            self._gpio.setup(ch, self._gpio.OUT, initial=pin._physical(Level.LOW))
        except Exception as e:
            raise PinResolutionError(identifier, f"cannot claim channel {ch}: {e}") from e
        self._log.info("Resolved %s -> BCM%d (active_low=%s)", identifier, ch, self.active_low)
        self._pins[ch] = pin; self._owners[ch] = identifier
        return pin

    def release(self, identifier: str) -> None:
        ch = parse_channel(identifier)
        pin = self._pins.pop(ch, None) if ch is not None else None
        if pin is not None:
            del self._owners[ch]
            self._gpio.cleanup(pin.channel)
            self._log.info("Released %s", identifier)

    def cleanup(self) -> None:
        self._pins.clear(); self._owners.clear()
        self._gpio.cleanup()

# --- in-memory backend ------------------------------------------------------

class MemoryPin:
    def __init__(self, name: str, journal: List[Tuple[str, str, Level | None]]):
        self.name = name; self.level = Level.LOW; self.writes = 0
        self.stuck: Level | None = None   # when set, writes succeed but the line never moves
        self.fail_writes = False
        self._journal = journal
    def write(self, level: Level) -> None:
        if self.fail_writes:
            raise OSError(f"write to {self.name} failed")
        self.writes += 1
        self._journal.append(('write', self.name, level))
        self.level = level if self.stuck is None else self.stuck
    def read(self) -> Level:
        return self.level

class MemoryPinRegistry:
    """Simulated output lines for `registry.kind: mock` and for tests."""
    def __init__(self, names=('GPIO17', 'GPIO27', 'GPIO22')):
        self.journal: List[Tuple[str, str, Level | None]] = []
        self.pins: Dict[str, MemoryPin] = {n: MemoryPin(n, self.journal) for n in names}
        self.claimed: set[str] = set()
        self._log = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
    def add(self, name: str) -> MemoryPin:
        return self.pins.setdefault(name, MemoryPin(name, self.journal))
    def resolve(self, identifier: str) -> MemoryPin:
        pin = self.pins.get(identifier)
        if pin is None:
            raise PinResolutionError(identifier, "no such simulated line")
        if identifier in self.claimed:
            raise PinResolutionError(identifier, "simulated line already claimed")
        self.claimed.add(identifier)
        self.journal.append(('resolve', identifier, None))
        return pin
    def release(self, identifier: str) -> None:
        if identifier in self.claimed:
            self.claimed.discard(identifier)
            self.journal.append(('release', identifier, None))
    def cleanup(self) -> None:
        self.claimed.clear()
        self._log.debug("Simulated registry cleanup")
