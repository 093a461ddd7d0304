"""Time-proportioned (slow PWM) heat/cool output driver for thermostatic controllers."""
from outputctl.digital_output import Change, DigitalOutput
from outputctl.errors import HardwareWriteError, OutputError, PinResolutionError
from outputctl.gpioio import Level
from outputctl.output_control import OutputControl

__all__ = ["Change", "DigitalOutput", "HardwareWriteError", "Level", "OutputControl",
           "OutputError", "PinResolutionError", "__version__"]
__version__ = "0.1.0"
