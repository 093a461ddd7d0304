from __future__ import annotations
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from outputctl.digital_output import DigitalOutput
    from outputctl.output_control import OutputControl

@dataclass(frozen=True)
class OutputStatus:
    identifier: str
    friendly_name: str
    on: bool
    since: Optional[float]     # clock value of the last transition, None if never driven
    degraded: bool

@dataclass(frozen=True)
class ControlSnapshot:
    ts: float
    name: str
    duty_cycle: int
    cycle_time: int
    running: bool
    heat: Optional[OutputStatus]
    cool: Optional[OutputStatus]

def output_status(out: Optional[DigitalOutput]) -> Optional[OutputStatus]:
    if out is None:
        return None
    return OutputStatus(
        identifier=out.identifier,
        friendly_name=out.friendly_name,
        on=out.is_on,
        since=out.on_time if out.is_on else out.off_time,
        degraded=out.degraded,
    )

def take_snapshot(ctrl: OutputControl) -> ControlSnapshot:
    return ControlSnapshot(
        ts=time.time(),
        name=ctrl.name,
        duty_cycle=ctrl.duty_cycle,
        cycle_time=ctrl.cycle_time,
        running=ctrl.running,
        heat=output_status(ctrl.heat),
        cool=output_status(ctrl.cool),
    )
