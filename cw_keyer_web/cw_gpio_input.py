"""
CW Key Inputs - read key/paddle contacts as level-change events

All inputs follow the same wiring convention: the contact pulls the line to
ground, so level 0 (LOW) means closed/pressed and level 1 (HIGH) means open.

Backends:
    GPIOInputPin      - Raspberry Pi GPIO with internal pull-up (RPi.GPIO)
    SerialLinePin     - USB serial adapter modem status line (pyserial)
    SimulatedInputPin - no hardware; driven by code (tests, development)

Every backend delivers level changes on the asyncio loop thread. RPi.GPIO
calls its edge callbacks from its own thread, so GPIOInputPin hands each
edge to the loop with call_soon_threadsafe() instead of calling the listener
directly. The keyer's flags are plain booleans and must never be touched
from that thread.

Serial pin assignments (DB9):
    CTS (pin 8) -> Straight key / Dit paddle
    DSR (pin 6) -> Dah paddle
    DCD (pin 1) -> Straight key when paddles use CTS/DSR
    GND (pin 5) -> Common
"""

import asyncio

import serial
import serial.tools.list_ports

from .cw_errors import PinConfigError

# GPIO support (Raspberry Pi)
try:
    import RPi.GPIO as GPIO
    GPIO_AVAILABLE = True
except ImportError:
    GPIO = None
    GPIO_AVAILABLE = False

LOW = 0
HIGH = 1

SERIAL_LINES = ('cts', 'dsr', 'cd', 'ri')
SERIAL_POLL_S = 0.001  # 1 kHz polling


class GPIOInputPin:
    """Raspberry Pi GPIO input with pull-up, edge events on both edges"""

    def __init__(self, pin, loop=None, debug=False):
        """
        Args:
            pin: BCM GPIO pin number
            loop: asyncio loop that receives edge notifications
            debug: Print raw edges
        """
        self.pin = pin
        self.loop = loop
        self.debug = debug
        self.name = f"GPIO{pin}"
        self._callback = None
        self._configured = False

    def setup(self):
        """Configure as input with pull-up. Raises PinConfigError on failure."""
        if not GPIO_AVAILABLE:
            raise PinConfigError(self.pin, "RPi.GPIO not available (pip3 install RPi.GPIO)")
        try:
            GPIO.setmode(GPIO.BCM)
            GPIO.setwarnings(False)
            GPIO.setup(self.pin, GPIO.IN, pull_up_down=GPIO.PUD_UP)
        except (RuntimeError, ValueError) as e:
            raise PinConfigError(self.pin, f"pull-up configuration failed: {e}") from e
        self._configured = True

    def read(self):
        return LOW if GPIO.input(self.pin) == GPIO.LOW else HIGH

    def start(self, callback):
        """Attach edge listener. setup() must have succeeded first."""
        if not self._configured:
            raise PinConfigError(self.pin, "edge listener attached before pin was configured")
        if self.loop is None:
            self.loop = asyncio.get_running_loop()
        self._callback = callback
        try:
            GPIO.add_event_detect(self.pin, GPIO.BOTH, callback=self._on_edge)
        except RuntimeError as e:
            raise PinConfigError(self.pin, f"edge detection failed: {e}") from e

    def _on_edge(self, channel):
        # Runs on the RPi.GPIO callback thread
        level = self.read()
        if self.debug:
            print(f"[GPIO] pin {channel} -> {level}")
        self.loop.call_soon_threadsafe(self._callback, level)

    def close(self):
        if not self._configured:
            return
        try:
            GPIO.remove_event_detect(self.pin)
            GPIO.cleanup(self.pin)
        except RuntimeError as e:
            print(f"Warning: GPIO cleanup error on pin {self.pin}: {e}")
        self._configured = False


class SerialKeyPort:
    """
    USB serial adapter used as a key interface

    The modem status lines are sampled from an asyncio task; each line can
    be wrapped as a SerialLinePin.
    """

    def __init__(self, port=None, baudrate=9600, debug=False):
        self.port = port
        self.baudrate = baudrate
        self.debug = debug
        self.ser = None
        self._lines = {}
        self._task = None

    def open(self):
        if self.ser is not None:
            return
        port = self.port or auto_detect_port()
        try:
            self.ser = serial.Serial(
                port=port,
                baudrate=self.baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0.001  # Non-blocking
            )
        except (serial.SerialException, ValueError) as e:
            raise PinConfigError(port, f"failed to open serial port: {e}") from e
        self.port = port
        print(f"✓ Serial port {port} opened")

    def line(self, name):
        """Get (or create) the pin wrapper for one status line"""
        if name not in SERIAL_LINES:
            raise PinConfigError(name, f"unknown serial line (choose from {', '.join(SERIAL_LINES)})")
        if name not in self._lines:
            self._lines[name] = SerialLinePin(self, name)
        return self._lines[name]

    def read_line(self, name):
        # pyserial reports True when the line is asserted (contact closed)
        return LOW if getattr(self.ser, name) else HIGH

    def poll_once(self):
        """Sample all listening lines once and dispatch changes"""
        for pin in self._lines.values():
            if pin.callback is None:
                continue
            level = self.read_line(pin.line_name)
            if level != pin.last_level:
                pin.last_level = level
                if self.debug:
                    print(f"[SERIAL] {pin.name} -> {level}")
                pin.callback(level)

    def ensure_polling(self):
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def _poll_loop(self):
        while True:
            try:
                self.poll_once()
            except (serial.SerialException, OSError) as e:
                print(f"\n✗ Serial polling error: {e}")
                break
            await asyncio.sleep(SERIAL_POLL_S)

    def close(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self.ser is not None:
            try:
                self.ser.close()
            except (serial.SerialException, OSError) as e:
                print(f"Warning: Serial port close error: {e}")
            self.ser = None


class SerialLinePin:
    """One modem status line of a SerialKeyPort"""

    def __init__(self, port, line_name):
        self.port = port
        self.line_name = line_name
        self.name = line_name.upper()
        self.callback = None
        self.last_level = HIGH

    def setup(self):
        self.port.open()

    def read(self):
        return self.port.read_line(self.line_name)

    def start(self, callback):
        if self.port.ser is None:
            raise PinConfigError(self.name, "edge listener attached before port was opened")
        self.last_level = self.read()
        self.callback = callback
        self.port.ensure_polling()

    def close(self):
        self.callback = None


class SimulatedInputPin:
    """Input driven from code instead of hardware"""

    def __init__(self, name='SIM', level=HIGH, fail_setup=None):
        """
        Args:
            name: Label used in messages
            level: Initial level (HIGH = open)
            fail_setup: Reason string to make setup() fail
        """
        self.name = name
        self.level = level
        self.fail_setup = fail_setup
        self.configured = False
        self.callback = None

    def setup(self):
        if self.fail_setup:
            raise PinConfigError(self.name, self.fail_setup)
        self.configured = True

    def read(self):
        return self.level

    def start(self, callback):
        if not self.configured:
            raise PinConfigError(self.name, "edge listener attached before pin was configured")
        self.callback = callback

    def set_level(self, level):
        """Simulate an edge (also re-sends an unchanged level, like a bouncing contact)"""
        self.level = level
        if self.callback is not None:
            self.callback(level)

    def press(self):
        self.set_level(LOW)

    def release(self):
        self.set_level(HIGH)

    def close(self):
        self.callback = None
        self.configured = False


def list_serial_ports():
    """List available serial ports"""
    ports = serial.tools.list_ports.comports()
    if not ports:
        print("No serial ports found!")
        return []

    print("\nAvailable serial ports:")
    for i, port in enumerate(ports):
        print(f"  [{i}] {port.device}")
        print(f"      {port.description}")
        if port.hwid:
            print(f"      {port.hwid}")
    return ports


def auto_detect_port():
    """Pick the only serial port present; anything else needs --serial-port"""
    ports = list(serial.tools.list_ports.comports())
    if len(ports) == 1:
        print(f"✓ Auto-detected serial port: {ports[0].device}")
        return ports[0].device
    if not ports:
        raise PinConfigError('serial', "no serial ports found")
    devices = ', '.join(p.device for p in ports)
    raise PinConfigError('serial', f"several serial ports found ({devices}), choose one with --serial-port")
