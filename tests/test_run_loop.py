import threading, time
import pytest
from outputctl.errors import HardwareWriteError, PinResolutionError
from outputctl.gpioio import Level, MemoryPinRegistry
from outputctl.output_control import OutputControl

def wait_for(pred, timeout=2.0):
    end = time.monotonic() + timeout
    while time.monotonic() < end:
        if pred():
            return True
        time.sleep(0.002)
    return pred()

@pytest.mark.parametrize('duty', [100, -100])
def test_stop_leaves_outputs_off(registry, duty):
    ctrl = OutputControl(registry, 'HEAT', 'COOL', duty_cycle=duty, cycle_time=60)
    t = ctrl.start(tick_period=0.001)
    assert wait_for(lambda: ctrl.heat_on or ctrl.cool_on)
    ctrl.request_stop()
    t.join(2)
    assert not t.is_alive()
    assert not ctrl.heat_on and not ctrl.cool_on
    assert registry.pins['HEAT'].level == Level.LOW and registry.pins['COOL'].level == Level.LOW
    assert ctrl.error is None and not ctrl.running

def test_shared_cancel_stops_every_loop():
    reg = MemoryPinRegistry(names=('H1', 'C1', 'H2', 'C2'))
    cancel = threading.Event()
    a = OutputControl(reg, 'H1', 'C1', name='a', duty_cycle=100, cancel=cancel)
    b = OutputControl(reg, 'H2', 'C2', name='b', duty_cycle=-100, cancel=cancel)
    threads = [a.start(0.001), b.start(0.001)]
    assert wait_for(lambda: a.heat_on and b.cool_on)
    cancel.set()
    for t in threads:
        t.join(2)
        assert not t.is_alive()
    assert all(p.level == Level.LOW for p in reg.pins.values())

def test_stop_mid_phase():
    reg = MemoryPinRegistry(names=('HEAT',))
    ctrl = OutputControl(reg, 'HEAT', duty_cycle=50, cycle_time=1)
    t = ctrl.start(0.001)
    assert wait_for(lambda: ctrl.heat_on)
    ctrl.request_stop()
    t.join(2)
    assert reg.pins['HEAT'].level == Level.LOW

def test_stop_requested_before_run(registry):
    ctrl = OutputControl(registry, 'HEAT', 'COOL', duty_cycle=100)
    ctrl.request_stop()
    ctrl.run(0.001)
    assert not ctrl.heat_on
    assert ctrl.heat.is_off and ctrl.cool.is_off

def test_unresolvable_output_aborts_loop(registry):
    ctrl = OutputControl(registry, 'HEAT', 'MISSING', duty_cycle=100)
    t = ctrl.start(0.001)
    t.join(2)
    assert not t.is_alive()
    assert isinstance(ctrl.error, PinResolutionError)
    assert ctrl.error.identifier == 'MISSING'
    assert registry.pins['HEAT'].level == Level.LOW

def test_write_fault_aborts_loop(registry):
    ctrl = OutputControl(registry, 'HEAT', 'COOL', duty_cycle=100)
    t = ctrl.start(0.001)
    assert wait_for(lambda: ctrl.heat_on)
    registry.pins['HEAT'].fail_writes = True
    ctrl.set_demand(0)
    t.join(2)
    assert not t.is_alive()
    assert isinstance(ctrl.error, HardwareWriteError)

def test_run_rejects_bad_tick(registry):
    with pytest.raises(ValueError):
        OutputControl(registry, 'HEAT').run(0)

def test_restart_after_stop(registry):
    ctrl = OutputControl(registry, 'HEAT', 'COOL', duty_cycle=100)
    t = ctrl.start(0.001)
    assert wait_for(lambda: ctrl.heat_on)
    ctrl.request_stop()
    t.join(2)
    assert not ctrl.heat_on
    t = ctrl.start(0.001)
    assert wait_for(lambda: ctrl.heat_on)
    assert t.is_alive() and ctrl.running
    ctrl.request_stop()
    t.join(2)
    assert not t.is_alive()
    assert registry.pins['HEAT'].level == Level.LOW

def test_second_concurrent_run_refused(registry):
    ctrl = OutputControl(registry, 'HEAT', 'COOL')
    t = ctrl.start(0.001)
    assert wait_for(lambda: ctrl.running)
    with pytest.raises(RuntimeError):
        ctrl.run(0.001)
    ctrl.request_stop()
    t.join(2)
    assert not t.is_alive()
