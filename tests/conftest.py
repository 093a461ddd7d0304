import pytest
from outputctl.gpioio import MemoryPinRegistry

class ManualClock:
    def __init__(self, t: float = 1000.0): self.t = t
    def __call__(self) -> float: return self.t
    def advance(self, s: float) -> None: self.t += s

@pytest.fixture
def clock():
    return ManualClock()

@pytest.fixture
def registry():
    return MemoryPinRegistry(names=('HEAT', 'COOL', 'A', 'B'))
