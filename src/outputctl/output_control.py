from __future__ import annotations
import logging, threading, time
from typing import Callable, Optional
from outputctl.digital_output import DigitalOutput
from outputctl.gpioio import PinRegistry
from outputctl.status import ControlSnapshot, take_snapshot

DEFAULT_TICK_S = 0.010

def _off(out: Optional[DigitalOutput]) -> None:
    if out is not None:
        out.off()

class OutputControl:
    """
    Time-proportions a heat and a cool output from a signed duty cycle.

    duty_cycle > 0 drives heat, < 0 drives cool, 0 idles both. Each phase boundary
    is measured from the output's last recorded transition, so a late tick only
    delays that one transition instead of drifting the ratio. The scheme is
    trailing-edge: from off, the first ON comes after a full off budget.

    One thread runs the loop (run/start). Configuration changes from other threads
    go through update_outputs()/set_demand(), which take the same lock as evaluate().
    """

    def __init__(self, registry: PinRegistry, heat_id: str = '', cool_id: str = '', *,
                 name: str = 'output', heat_name: str = '', cool_name: str = '',
                 duty_cycle: int = 0, cycle_time: int = 60,
                 min_on_s: float = 0.0, min_off_s: float = 0.0,
                 cancel: threading.Event | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._registry = registry
        self._clock = clock
        self._lock = threading.RLock()
        self._cancel = cancel if cancel is not None else threading.Event()
        self._stop = threading.Event()
        self._running = False
        self.error: BaseException | None = None
        self._log = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        if heat_id and heat_id == cool_id:
            raise ValueError(f"{name}: heat and cool cannot share output {heat_id!r}")
        self.heat: Optional[DigitalOutput] = self._new_output(heat_id, heat_name)
        self.cool: Optional[DigitalOutput] = self._new_output(cool_id, cool_name)
        self._duty_cycle = 0
        self._cycle_time = 1
        self.min_on_s = 0.0
        self.min_off_s = 0.0
        self.set_demand(duty_cycle, cycle_time)
        self.set_guards(min_on_s, min_off_s)

    def _new_output(self, identifier: str, friendly_name: str | None) -> Optional[DigitalOutput]:
        if not identifier:
            return None
        return DigitalOutput(identifier, self._registry, friendly_name or '', clock=self._clock)

    # --- settings -------------------------------------------------------------

    @property
    def duty_cycle(self) -> int:
        return self._duty_cycle

    @property
    def cycle_time(self) -> int:
        return self._cycle_time

    @property
    def running(self) -> bool:
        return self._running

    @property
    def heat_on(self) -> bool:
        return self.heat is not None and self.heat.is_on

    @property
    def cool_on(self) -> bool:
        return self.cool is not None and self.cool.is_on

    def set_demand(self, duty_cycle: int, cycle_time: int | None = None) -> None:
        """Accept a new duty cycle (and optionally cycle time) from the calculator."""
        duty_cycle = int(duty_cycle)
        if not -100 <= duty_cycle <= 100:
            raise ValueError(f"duty cycle {duty_cycle} outside [-100, 100]")
        if cycle_time is not None:
            cycle_time = int(cycle_time)
            if cycle_time <= 0:
                raise ValueError(f"cycle time must be positive, got {cycle_time}")
        with self._lock:
            if duty_cycle != self._duty_cycle:
                self._log.debug("%s duty cycle %d -> %d", self.name, self._duty_cycle, duty_cycle)
            self._duty_cycle = duty_cycle
            if cycle_time is not None:
                self._cycle_time = cycle_time

    def set_guards(self, min_on_s: float = 0.0, min_off_s: float = 0.0) -> None:
        if min_on_s < 0 or min_off_s < 0:
            raise ValueError("minimum on/off times cannot be negative")
        with self._lock:
            self.min_on_s = float(min_on_s); self.min_off_s = float(min_off_s)

    def update_outputs(self, heat_id: str, cool_id: str,
                       heat_name: str | None = None, cool_name: str | None = None) -> None:
        """Create, rebind or drop each side so it matches the given identifiers."""
        heat_id = heat_id or ''; cool_id = cool_id or ''
        if heat_id and heat_id == cool_id:
            raise ValueError(f"{self.name}: heat and cool cannot share output {heat_id!r}")
        with self._lock:
            crossing = ((heat_id and self.cool is not None and heat_id == self.cool.identifier) or
                        (cool_id and self.heat is not None and cool_id == self.heat.identifier))
            if crossing:
                # a line moving to the other side must be let go before either side claims it
                for out in (self.heat, self.cool):
                    if out is not None:
                        out.reset(); out.close()
                self.heat = None; self.cool = None
            self.heat = self._update_side('heat', self.heat, heat_id, heat_name)
            self.cool = self._update_side('cool', self.cool, cool_id, cool_name)

    def _update_side(self, side: str, out: Optional[DigitalOutput], identifier: str,
                     friendly_name: str | None) -> Optional[DigitalOutput]:
        if not identifier:
            if out is not None:
                out.rebind('')
                out.close()
                self._log.info("%s %s output %s removed", self.name, side, out.identifier)
            return None
        if out is None:
            out = self._new_output(identifier, friendly_name)
            out.reset()
            self._log.info("%s %s output bound to %s", self.name, side, identifier)
            return out
        out.rebind(identifier)
        if friendly_name is not None:
            out.friendly_name = friendly_name
        return out

    # --- control --------------------------------------------------------------

    def reset(self) -> None:
        with self._lock:
            if self.heat is not None:
                self.heat.reset()
            if self.cool is not None:
                self.cool.reset()

    def evaluate(self) -> None:
        """One tick of the PWM state machine."""
        with self._lock:
            now = self._clock()
            duty = self._duty_cycle
            cycle = self._cycle_time
            phase = abs(cycle * duty) / 100
            if duty == 0:
                _off(self.heat); _off(self.cool)
            elif duty > 0:
                _off(self.cool)
                self._modulate(self.heat, duty, cycle, phase, now)
            else:
                _off(self.heat)
                self._modulate(self.cool, duty, cycle, phase, now)

    def _modulate(self, out: Optional[DigitalOutput], duty: int, cycle: int,
                  phase: float, now: float) -> None:
        if out is None:
            return
        if abs(duty) == 100:
            if out.on_time is not None or self._off_long_enough(out, now):
                out.on()
            return
        if out.on_time is not None:
            elapsed = now - out.on_time
            if elapsed > phase and elapsed >= self.min_on_s:
                out.off()
        elif out.off_time is not None:
            if now - out.off_time >= cycle - phase and self._off_long_enough(out, now):
                out.on()
        else:
            # never driven: settle it off and let the next tick start the off budget
            out.off()

    def _off_long_enough(self, out: DigitalOutput, now: float) -> bool:
        return out.off_time is None or now - out.off_time >= self.min_off_s

    # --- loop -----------------------------------------------------------------

    def request_stop(self) -> None:
        self._stop.set()

    def run(self, tick_period: float = DEFAULT_TICK_S) -> None:
        """
        Evaluate every tick_period seconds until the cancel token or request_stop() fires.
        Outputs are reset on entry and again on every exit path. A stop requested
        before the loop starts ends it at once; it is consumed on exit, so the
        controller can be run again afterwards.
        """
        if tick_period <= 0:
            raise ValueError("tick period must be positive")
        if self._running:
            raise RuntimeError(f"output control {self.name} is already running")
        self._log.info("Starting output control %s (tick=%.0fms)", self.name, tick_period * 1000)
        self._running = True
        try:
            self.reset()
            deadline = time.monotonic()
            while not (self._cancel.is_set() or self._stop.is_set()):
                deadline += tick_period
                now = time.monotonic()
                if deadline < now:
                    deadline = now   # fell behind, drop the missed ticks
                if self._stop.wait(deadline - now) or self._cancel.is_set():
                    break
                self.evaluate()
        finally:
            try:
                self.reset()
            finally:
                self._stop.clear()
                self._running = False
                self._log.info("Output control %s stopped, outputs off", self.name)

    def _run_guarded(self, tick_period: float) -> None:
        try:
            self.run(tick_period)
        except Exception as e:
            self.error = e
            self._log.exception("Output control %s aborted: %s", self.name, e)

    def start(self, tick_period: float = DEFAULT_TICK_S) -> threading.Thread:
        """Run the loop on its own thread. A fatal error ends up in `error`."""
        self.error = None
        t = threading.Thread(target=self._run_guarded, args=(tick_period,),
                             name=f"output-control-{self.name}", daemon=True)
        t.start()
        return t

    def snapshot(self) -> ControlSnapshot:
        with self._lock:
            return take_snapshot(self)
