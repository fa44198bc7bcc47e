"""
Configuration - INI file defaults for the keyer server

Config file locations (first found wins):
    1. ~/.cw_keyer_web.ini (user home)
    2. ./cw_keyer_web.ini  (working directory)

Example:
    [keyer]
    wpm = 20
    debounce_ms = 10
    mode = iambic

    [input]
    backend = gpio
    straight_pin = 17
    dit_pin = 27
    dah_pin = 22

    [leds]
    backend = gpio
    key_led_pin = 5
    dit_led_pin = 6
    dah_led_pin = 13

    [server]
    host = 0.0.0.0
    port = 80

    [relay]
    url = wss://cw-relay.workers.dev
    callsign = SM5ABC
    room = main

    [audio]
    sidetone = false
    frequency = 600

    [debug]
    verbose = false
"""

import configparser
import os

from .cw_errors import ConfigError
from .cw_timing import DEFAULT_WPM, DEBOUNCE_MS, MIN_WPM, MAX_WPM

CONFIG_PATHS = [
    os.path.expanduser('~/.cw_keyer_web.ini'),
    os.path.join(os.getcwd(), 'cw_keyer_web.ini'),
]

MODES = ('straight', 'iambic', 'both')
INPUT_BACKENDS = ('gpio', 'serial', 'simulated')
LED_BACKENDS = ('gpio', 'console', 'none')


class KeyerSettings:
    """All start-up settings; fixed once the server runs"""

    def __init__(self):
        # Keyer
        self.wpm = DEFAULT_WPM
        self.debounce_ms = DEBOUNCE_MS
        self.mode = 'iambic'

        # Inputs (BCM pins, or serial status lines)
        self.input_backend = 'gpio'
        self.straight_pin = 17
        self.dit_pin = 27
        self.dah_pin = 22
        self.serial_port = None

        # Feedback LEDs
        self.led_backend = 'gpio'
        self.key_led_pin = 5
        self.dit_led_pin = 6
        self.dah_led_pin = 13

        # Web server
        self.host = '0.0.0.0'
        self.port = 80
        self.public_dir = None

        # Relay (disabled without url)
        self.relay_url = None
        self.callsign = None
        self.room = 'main'

        # Local sidetone
        self.sidetone = False
        self.sidetone_freq = 600

        self.debug = False
        self.visual = False

    def validate(self):
        """Raise ConfigError on the first invalid value"""
        if not MIN_WPM <= self.wpm <= MAX_WPM:
            raise ConfigError(f"wpm must be between {MIN_WPM} and {MAX_WPM}, got {self.wpm}")
        if self.debounce_ms < 0:
            raise ConfigError(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.mode not in MODES:
            raise ConfigError(f"mode must be one of {', '.join(MODES)}, got {self.mode!r}")
        if self.input_backend not in INPUT_BACKENDS:
            raise ConfigError(f"input backend must be one of {', '.join(INPUT_BACKENDS)}, "
                              f"got {self.input_backend!r}")
        if self.led_backend not in LED_BACKENDS:
            raise ConfigError(f"led backend must be one of {', '.join(LED_BACKENDS)}, "
                              f"got {self.led_backend!r}")
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"port out of range: {self.port}")
        if self.relay_url and not self.callsign:
            raise ConfigError("relay needs a callsign")
        return self

    def __repr__(self):
        return f"KeyerSettings({vars(self)})"


def load_config(paths=None):
    """
    Load configuration from file with precedence: user home > working dir

    Returns:
        (ConfigParser, path of the loaded file or None)
    """
    config = configparser.ConfigParser()
    for path in paths or CONFIG_PATHS:
        if os.path.exists(path):
            try:
                config.read(path)
            except configparser.Error as e:
                raise ConfigError(f"{path}: {e}") from e
            return config, path
    return config, None


def settings_from_config(config):
    """Build KeyerSettings from a ConfigParser (missing values keep defaults)"""
    settings = KeyerSettings()
    try:
        if config.has_section('keyer'):
            settings.wpm = config.getint('keyer', 'wpm', fallback=settings.wpm)
            settings.debounce_ms = config.getfloat('keyer', 'debounce_ms', fallback=settings.debounce_ms)
            settings.mode = config.get('keyer', 'mode', fallback=settings.mode)

        if config.has_section('input'):
            settings.input_backend = config.get('input', 'backend', fallback=settings.input_backend)
            settings.straight_pin = config.getint('input', 'straight_pin', fallback=settings.straight_pin)
            settings.dit_pin = config.getint('input', 'dit_pin', fallback=settings.dit_pin)
            settings.dah_pin = config.getint('input', 'dah_pin', fallback=settings.dah_pin)
            settings.serial_port = config.get('input', 'serial_port', fallback=None) or None

        if config.has_section('leds'):
            settings.led_backend = config.get('leds', 'backend', fallback=settings.led_backend)
            settings.key_led_pin = config.getint('leds', 'key_led_pin', fallback=settings.key_led_pin)
            settings.dit_led_pin = config.getint('leds', 'dit_led_pin', fallback=settings.dit_led_pin)
            settings.dah_led_pin = config.getint('leds', 'dah_led_pin', fallback=settings.dah_led_pin)

        if config.has_section('server'):
            settings.host = config.get('server', 'host', fallback=settings.host)
            settings.port = config.getint('server', 'port', fallback=settings.port)
            settings.public_dir = config.get('server', 'public_dir', fallback=None) or None

        if config.has_section('relay'):
            settings.relay_url = config.get('relay', 'url', fallback=None) or None
            settings.callsign = config.get('relay', 'callsign', fallback=None) or None
            settings.room = config.get('relay', 'room', fallback=settings.room)

        if config.has_section('audio'):
            settings.sidetone = config.getboolean('audio', 'sidetone', fallback=settings.sidetone)
            settings.sidetone_freq = config.getint('audio', 'frequency', fallback=settings.sidetone_freq)

        if config.has_section('debug'):
            settings.debug = config.getboolean('debug', 'verbose', fallback=False)
    except ValueError as e:
        raise ConfigError(f"invalid config value: {e}") from e
    return settings
