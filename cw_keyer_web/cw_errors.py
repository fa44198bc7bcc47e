"""
Exceptions raised by the CW keyer server
"""


class CWKeyerError(Exception):
    """Base class for keyer errors"""


class PinConfigError(CWKeyerError):
    """Input pin could not be configured - fatal at start-up"""

    def __init__(self, pin, reason):
        self.pin = pin
        self.reason = reason
        super().__init__(f"Pin {pin}: {reason}")


class ConfigError(CWKeyerError):
    """Invalid configuration value"""
