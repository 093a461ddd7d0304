from __future__ import annotations
import logging, os, threading
from typing import Dict, List
import yaml
from outputctl.config import AppConfig, ControllerRecord, OutputRecord
from outputctl.gpioio import GpioPinRegistry, MemoryPinRegistry
from outputctl.output_control import OutputControl

CONFIG_PATHS = ['config/config.yaml', 'config.yaml']

def find_config(path: str | None = None) -> str | None:
    for p in ([path] if path else []) + CONFIG_PATHS:
        if p and os.path.exists(p):
            return p
    return None

def load_config(path: str | None = None) -> AppConfig:
    p = find_config(path)
    if p is None:
        if path:
            raise FileNotFoundError(path)
        return AppConfig()
    with open(p, 'r') as f:
        return AppConfig.model_validate(yaml.safe_load(f) or {})

def save_config(path: str, cfg: AppConfig) -> None:
    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    with open(path, 'w') as f:
        yaml.safe_dump(cfg.model_dump(), f, sort_keys=False)

def build_registry(cfg: AppConfig):
    if cfg.registry.kind == 'gpio':
        return GpioPinRegistry(active_low=cfg.registry.active_low)
    return MemoryPinRegistry()

# --- record <-> domain mapping ----------------------------------------------

def controller_from_record(rec: ControllerRecord, registry, cancel: threading.Event) -> OutputControl:
    return OutputControl(
        registry, rec.heat.identifier, rec.cool.identifier,
        name=rec.name, heat_name=rec.heat.friendly_name, cool_name=rec.cool.friendly_name,
        duty_cycle=rec.duty_cycle, cycle_time=rec.cycle_time_s,
        min_on_s=rec.min_on_s, min_off_s=rec.min_off_s, cancel=cancel,
    )

def record_from_controller(ctrl: OutputControl) -> ControllerRecord:
    """The persisted view. Duty cycle is live state and is stored as 0."""
    def out_rec(out) -> OutputRecord:
        if out is None:
            return OutputRecord()
        return OutputRecord(identifier=out.identifier, friendly_name=out.friendly_name)
    return ControllerRecord(
        name=ctrl.name, heat=out_rec(ctrl.heat), cool=out_rec(ctrl.cool),
        cycle_time_s=ctrl.cycle_time, duty_cycle=0,
        min_on_s=ctrl.min_on_s, min_off_s=ctrl.min_off_s,
    )

def _kept(out, rec: OutputRecord) -> str:
    cur = out.identifier if out is not None else ''
    return cur if cur == rec.identifier else ''

def apply_record(ctrl: OutputControl, rec: ControllerRecord) -> None:
    """Push a changed record into a running controller."""
    ctrl.update_outputs(rec.heat.identifier, rec.cool.identifier,
                        rec.heat.friendly_name, rec.cool.friendly_name)
    ctrl.set_demand(rec.duty_cycle, rec.cycle_time_s)
    ctrl.set_guards(rec.min_on_s, rec.min_off_s)

class Runtime:
    """The set of running controllers built from one config, sharing one cancel token."""

    def __init__(self, cfg: AppConfig, registry=None, cancel: threading.Event | None = None):
        self.cfg = cfg
        self.registry = registry if registry is not None else build_registry(cfg)
        self.cancel = cancel if cancel is not None else threading.Event()
        self.controllers: Dict[str, OutputControl] = {
            rec.name: controller_from_record(rec, self.registry, self.cancel) for rec in cfg.controllers
        }
        self.threads: List[threading.Thread] = []
        self._log = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def tick_s(self) -> float:
        return self.cfg.loop.tick_ms / 1000.0

    def start(self) -> None:
        for ctrl in self.controllers.values():
            self.threads.append(ctrl.start(self.tick_s))
        self._log.info("Started %d controller(s)", len(self.controllers))

    def failed(self) -> List[OutputControl]:
        return [c for c in self.controllers.values() if c.error is not None]

    def apply(self, cfg: AppConfig) -> None:
        """Apply a reloaded config: rebinds, demand and guard changes. Adding or removing controllers needs a restart."""
        known = set(self.controllers)
        wanted = {rec.name for rec in cfg.controllers}
        if known != wanted:
            self._log.warning("Controller set changed (%s -> %s); restart to apply",
                              sorted(known), sorted(wanted))
        if cfg.registry != self.cfg.registry or cfg.loop.tick_ms != self.cfg.loop.tick_ms:
            self._log.warning("Registry or tick changes need a restart")
        recs = [(self.controllers[rec.name], rec) for rec in cfg.controllers if rec.name in self.controllers]
        # free every line that changes hands first; a line may move between controllers
        for ctrl, rec in recs:
            ctrl.update_outputs(_kept(ctrl.heat, rec.heat), _kept(ctrl.cool, rec.cool))
        for ctrl, rec in recs:
            apply_record(ctrl, rec)
        self.cfg = cfg

    def stop(self, timeout: float = 5.0) -> None:
        self.cancel.set()
        for ctrl in self.controllers.values():
            ctrl.request_stop()
        for t in self.threads:
            t.join(timeout)
            if t.is_alive():
                self._log.error("%s did not stop within %.1fs", t.name, timeout)

    def cleanup(self) -> None:
        cleanup = getattr(self.registry, 'cleanup', None)
        if cleanup is not None:
            cleanup()
