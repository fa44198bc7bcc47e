#!/usr/bin/env python3
"""
CW Keyer Web Server - stream a straight key or iambic paddles to browsers

Reads the key/paddles from Raspberry Pi GPIO (or a USB serial adapter),
lights feedback LEDs, and pushes every key-down/up and dit/dah to browser
clients over Server-Sent Events. Browsers render the events as a tone.

Usage:
    python3 -m cw_keyer_web.cw_keyer_server [options]

Examples:
    # Iambic paddles on GPIO 27 (dit) / 22 (dah), 20 WPM, port 80
    sudo cw-keyer-web

    # Straight key on GPIO 17, 25 WPM, unprivileged port
    cw-keyer-web --mode straight --port 8080

    # Paddles on a USB serial adapter (CTS=dit, DSR=dah), no LEDs
    cw-keyer-web --input serial --serial-port /dev/ttyUSB0 --leds none

    # Also forward to a WebSocket relay
    cw-keyer-web --relay wss://cw-relay.workers.dev --callsign SM5ABC
"""

import argparse
import asyncio
import signal
import sys
import time

from .cw_broadcaster import EventBroadcaster
from .cw_config import (
    INPUT_BACKENDS, LED_BACKENDS, MODES,
    load_config, settings_from_config,
)
from .cw_debounce import Debouncer
from .cw_errors import CWKeyerError
from .cw_gpio_input import (
    GPIOInputPin, SerialKeyPort, SimulatedInputPin, list_serial_ports,
)
from .cw_gpio_output import ConsoleLed, GPIOLed, LedGroup, NullLed
from .cw_iambic_keyer import IambicKeyer
from .cw_relay import WebRelay
from .cw_scheduler import AsyncioScheduler
from .cw_sidetone import SidetoneGenerator
from .cw_straight_key import StraightKeyMonitor
from .cw_timing import TimingConfig
from .cw_web_server import CWWebServer


class CWKeyerServer:
    """Wires inputs, keyer, LEDs, broadcaster and web server together"""

    def __init__(self, settings):
        self.settings = settings.validate()
        self.timing = TimingConfig(settings.wpm)
        self.broadcaster = EventBroadcaster(debug=settings.debug)

        self.scheduler = None
        self.web = None
        self.relay = None
        self.keyer = None
        self.straight = None
        self.paddles = []
        self.serial_port = None
        self.sidetone = None
        self.leds = []

        self._relay_task = None
        self._stop_event = None
        self.start_time = None

    @property
    def uses_straight_key(self):
        return self.settings.mode in ('straight', 'both')

    @property
    def uses_paddles(self):
        return self.settings.mode in ('iambic', 'both')

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def _make_led(self, pin, name):
        backend = self.settings.led_backend
        if backend == 'gpio':
            led = GPIOLed(pin)
        elif backend == 'console':
            led = ConsoleLed(name)
        else:
            led = NullLed()
        self.leds.append(led)
        if self.sidetone is not None:
            return LedGroup(led, self.sidetone)
        return led

    def _make_pins(self, loop):
        """
        Input pins for the configured backend

        Returns:
            dict with 'straight', 'dit', 'dah' (None where unused)
        """
        s = self.settings
        backend = s.input_backend
        pins = {'straight': None, 'dit': None, 'dah': None}

        if backend == 'gpio':
            if self.uses_straight_key:
                pins['straight'] = GPIOInputPin(s.straight_pin, loop, debug=s.debug)
            if self.uses_paddles:
                pins['dit'] = GPIOInputPin(s.dit_pin, loop, debug=s.debug)
                pins['dah'] = GPIOInputPin(s.dah_pin, loop, debug=s.debug)
        elif backend == 'serial':
            self.serial_port = SerialKeyPort(s.serial_port, debug=s.debug)
            if self.uses_paddles:
                pins['dit'] = self.serial_port.line('cts')
                pins['dah'] = self.serial_port.line('dsr')
            if self.uses_straight_key:
                pins['straight'] = self.serial_port.line('cd' if self.uses_paddles else 'cts')
        else:
            if self.uses_straight_key:
                pins['straight'] = SimulatedInputPin('STRAIGHT')
            if self.uses_paddles:
                pins['dit'] = SimulatedInputPin('DIT')
                pins['dah'] = SimulatedInputPin('DAH')
        return pins

    def _start_inputs(self, loop):
        """Configure every pin; PinConfigError aborts start-up"""
        s = self.settings
        pins = self._make_pins(loop)

        if self.uses_straight_key:
            self.straight = StraightKeyMonitor(
                pins['straight'], self._make_led(s.key_led_pin, 'KEY'),
                self.broadcaster.publish, debug=s.debug, visual=s.visual)
            self.straight.start()

        if self.uses_paddles:
            self.keyer = IambicKeyer(
                self.scheduler, self.broadcaster.publish, timing=self.timing,
                dit_led=self._make_led(s.dit_led_pin, 'DIT'),
                dah_led=self._make_led(s.dah_led_pin, 'DAH'),
                debug=s.debug, visual=s.visual)
            dit = Debouncer(pins['dit'], self.scheduler, s.debounce_ms, name='DIT', debug=s.debug)
            dah = Debouncer(pins['dah'], self.scheduler, s.debounce_ms, name='DAH', debug=s.debug)
            self.paddles = [dit, dah]
            for paddle in self.paddles:
                paddle.start()
            self.keyer.attach(dit, dah)
            print(f"✓ Iambic keyer ready on {dit.pin.name}/{dah.pin.name} ({self.timing})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def run(self):
        """Run until stop() or SIGINT/SIGTERM"""
        loop = asyncio.get_running_loop()
        s = self.settings
        self.scheduler = AsyncioScheduler(loop)
        self._stop_event = asyncio.Event()
        self.start_time = time.time()

        try:
            if s.sidetone:
                self.sidetone = SidetoneGenerator(frequency=s.sidetone_freq)
            self._start_inputs(loop)

            self.web = CWWebServer(self.broadcaster, host=s.host, port=s.port,
                                   public_dir=s.public_dir, debug=s.debug)
            await self.web.start()

            if s.relay_url:
                self.relay = WebRelay(s.relay_url, s.callsign, room_id=s.room, debug=s.debug)
                self.broadcaster.add_listener(self.relay.forward)
                self._relay_task = asyncio.create_task(self.relay.run())

            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, self.stop)
                except (NotImplementedError, RuntimeError):
                    # Windows: KeyboardInterrupt still ends asyncio.run()
                    pass

            print("✓ Ready - press the key to send CW")
            print("  (Ctrl+C to quit)")
            await self._stop_event.wait()
        finally:
            await self._shutdown()

    def stop(self):
        """Request graceful shutdown (safe to call more than once)"""
        if self._stop_event is not None and not self._stop_event.is_set():
            print("\n\nShutting down...")
            self._stop_event.set()

    async def _shutdown(self):
        # Pending keyer timers are left to die with the loop
        if self.web is not None:
            await self.web.stop()
        if self.relay is not None:
            self.broadcaster.remove_listener(self.relay.forward)
            await self.relay.stop()
        if self._relay_task is not None:
            self._relay_task.cancel()
            await asyncio.gather(self._relay_task, return_exceptions=True)

        for paddle in self.paddles:
            paddle.stop()
        if self.straight is not None:
            self.straight.stop()
        if self.serial_port is not None:
            self.serial_port.close()
        for led in self.leds:
            led.cleanup()
        if self.sidetone is not None:
            self.sidetone.cleanup()

        self.print_statistics()

    def print_statistics(self):
        if not self.start_time:
            return
        duration = time.time() - self.start_time
        print("\n--- Statistics ---")
        print(f"Duration: {duration:.1f}s")
        print(f"Events published: {self.broadcaster.events_published}")
        if self.keyer is not None:
            print(f"Elements keyed: {self.keyer.elements_sent}")
        print(f"Client connections: {self.broadcaster.total_connections}")
        if self.relay is not None:
            print(f"Relay events sent: {self.relay.events_sent} (dropped: {self.relay.events_dropped})")


def build_parser(defaults):
    parser = argparse.ArgumentParser(
        description='CW Keyer Web Server - stream a straight key or iambic paddles to browsers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Config file locations (in order of precedence):
  1. ~/.cw_keyer_web.ini (user home)
  2. ./cw_keyer_web.ini (working directory)
        """
    )
    parser.add_argument('--mode', choices=MODES, default=defaults.mode,
                        help=f"Key type (default: {defaults.mode})")
    parser.add_argument('--wpm', type=int, default=defaults.wpm,
                        help=f"Keyer speed in WPM (default: {defaults.wpm})")
    parser.add_argument('--debounce', type=float, default=defaults.debounce_ms,
                        help=f"Paddle debounce in ms, 0 = off (default: {defaults.debounce_ms})")
    parser.add_argument('--input', choices=INPUT_BACKENDS, default=defaults.input_backend,
                        help=f"Key interface (default: {defaults.input_backend})")
    parser.add_argument('--straight-pin', type=int, default=defaults.straight_pin,
                        help=f"BCM pin of the straight key (default: {defaults.straight_pin})")
    parser.add_argument('--dit-pin', type=int, default=defaults.dit_pin,
                        help=f"BCM pin of the dit paddle (default: {defaults.dit_pin})")
    parser.add_argument('--dah-pin', type=int, default=defaults.dah_pin,
                        help=f"BCM pin of the dah paddle (default: {defaults.dah_pin})")
    parser.add_argument('--serial-port', default=defaults.serial_port,
                        help='Serial port for --input serial (auto-detected if only one)')
    parser.add_argument('--list-ports', action='store_true',
                        help='List serial ports and exit')
    parser.add_argument('--leds', choices=LED_BACKENDS, default=defaults.led_backend,
                        help=f"Feedback LEDs (default: {defaults.led_backend})")
    parser.add_argument('--host', default=defaults.host,
                        help=f"Interface to bind (default: {defaults.host})")
    parser.add_argument('--port', type=int, default=defaults.port,
                        help=f"HTTP port (default: {defaults.port})")
    parser.add_argument('--public-dir', default=defaults.public_dir,
                        help='Static asset directory (default: bundled web client)')
    parser.add_argument('--relay', default=defaults.relay_url,
                        help='WebSocket relay URL (e.g., wss://cw-relay.workers.dev)')
    parser.add_argument('--callsign', default=defaults.callsign,
                        help='Callsign used on the relay')
    parser.add_argument('--room', default=defaults.room,
                        help=f"Relay room ID (default: {defaults.room})")
    parser.add_argument('--sidetone', action='store_true', default=defaults.sidetone,
                        help='Play a local sidetone (needs pyaudio)')
    parser.add_argument('--sidetone-freq', type=int, default=defaults.sidetone_freq,
                        help=f"Sidetone frequency in Hz (default: {defaults.sidetone_freq})")
    parser.add_argument('--visual', action='store_true',
                        help='Print ▄/▀ and ▪/▬ as keys/elements are sent')
    parser.add_argument('--debug', action='store_true', default=defaults.debug,
                        help='Enable debug output')
    return parser


def apply_args(settings, args):
    settings.mode = args.mode
    settings.wpm = args.wpm
    settings.debounce_ms = args.debounce
    settings.input_backend = args.input
    settings.straight_pin = args.straight_pin
    settings.dit_pin = args.dit_pin
    settings.dah_pin = args.dah_pin
    settings.serial_port = args.serial_port
    settings.led_backend = args.leds
    settings.host = args.host
    settings.port = args.port
    settings.public_dir = args.public_dir
    settings.relay_url = args.relay
    settings.callsign = args.callsign
    settings.room = args.room
    settings.sidetone = args.sidetone
    settings.sidetone_freq = args.sidetone_freq
    settings.visual = args.visual
    settings.debug = args.debug
    return settings


def main(argv=None):
    try:
        config, config_path = load_config()
        settings = settings_from_config(config)
    except CWKeyerError as e:
        print(f"✗ Config error: {e}")
        sys.exit(1)

    args = build_parser(settings).parse_args(argv)
    if args.list_ports:
        list_serial_ports()
        return
    settings = apply_args(settings, args)

    if config_path:
        print(f"✓ Loaded config from: {config_path}")

    print("=" * 60)
    print("CW Keyer Web Server")
    print("=" * 60)
    print(f"Mode: {settings.mode.upper()}", end='')
    if settings.mode != 'straight':
        print(f" - {settings.wpm} WPM", end='')
    print()
    print(f"Input: {settings.input_backend}, LEDs: {settings.led_backend}")
    print(f"HTTP port: {settings.port}")
    if settings.relay_url:
        print(f"Relay: {settings.relay_url} as {settings.callsign}")
    print("=" * 60)

    try:
        server = CWKeyerServer(settings)
        asyncio.run(server.run())
    except CWKeyerError as e:
        print(f"✗ {e}")
        sys.exit(1)
    except OSError as e:
        print(f"✗ Failed to start web server: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    print("73!")


if __name__ == '__main__':
    main()
