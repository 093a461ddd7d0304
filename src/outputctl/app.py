from __future__ import annotations
import argparse, logging, os, signal, sys, time
import yaml
from pydantic import ValidationError
from outputctl.errors import OutputError
from outputctl.logging_config import resolve_logging, setup_logging
from outputctl.runtime import Runtime, find_config, load_config

POLL_S = 0.25
log = logging.getLogger(__name__)

def _mtime(path: str | None) -> float | None:
    if path is None:
        return None
    try:
        return os.path.getmtime(path)
    except OSError:
        return None

def serve(rt: Runtime, path: str | None) -> None:
    """Watch the controllers and the config file until cancelled or a loop dies."""
    mtime = _mtime(path)
    next_check = time.monotonic() + rt.cfg.loop.reload_s
    while not rt.cancel.wait(POLL_S):
        failed = rt.failed()
        if failed:
            log.critical("Shutting down: %s", ", ".join(f"{c.name}: {c.error}" for c in failed))
            return
        if time.monotonic() < next_check:
            continue
        next_check = time.monotonic() + rt.cfg.loop.reload_s
        m = _mtime(path)
        if m is None or m == mtime:
            continue
        mtime = m
        try:
            cfg = load_config(path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            log.error("Ignoring unreadable config %s: %s", path, e)
            continue
        log.info("Config %s changed, applying", path)
        rt.apply(cfg)

def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog='outputctl', description='Time-proportioned heat/cool output driver')
    p.add_argument('--config', help='YAML config (default: config/config.yaml, then config.yaml)')
    a = p.parse_args(argv)

    try:
        cfg = load_config(a.config)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        print(f"[APP] Cannot load config: {e}", file=sys.stderr)
        return 2
    enabled, level, log_file = resolve_logging(cfg)
    setup_logging(enabled=enabled, level=level, log_file=log_file)
    path = find_config(a.config)
    if not cfg.controllers:
        log.warning("No controllers configured in %s", path or '<defaults>')

    try:
        rt = Runtime(cfg)
    except (OutputError, ValueError, ImportError) as e:
        log.critical("Cannot build runtime: %s", e)
        return 2

    def handle_sig(sig, frame):
        log.info("Signal %d, stopping", sig)
        rt.cancel.set()
    signal.signal(signal.SIGINT, handle_sig); signal.signal(signal.SIGTERM, handle_sig)

    log.info("Starting %d output control loop(s), registry=%s", len(rt.controllers), cfg.registry.kind)
    rt.start()
    try:
        serve(rt, path)
    except OutputError as e:
        log.critical("Fatal output error while applying config: %s", e)
        return 2
    finally:
        log.info("Shutting down, outputs safe-off.")
        try:
            rt.stop()
        finally:
            rt.cleanup()
    return 1 if rt.failed() else 0

if __name__ == "__main__":
    sys.exit(main())
