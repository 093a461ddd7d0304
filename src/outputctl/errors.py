class OutputError(Exception):
    """Base class for output-driver failures that must stop a control loop."""
    def __init__(self, identifier: str, message: str):
        super().__init__(f"{identifier}: {message}")
        self.identifier = identifier

class PinResolutionError(OutputError):
    """A configured identifier does not name a usable output line."""

class HardwareWriteError(OutputError):
    """The write primitive itself failed (not a read-back mismatch)."""
