"""
CW Events - JSON messages pushed to browser clients

Message types (Server -> Client, one JSON object per SSE frame):
    Connection ack:   {"type": "connected", "timestamp": <epoch-ms>}
    Straight key:     {"keyDown": <bool>, "timestamp": <epoch-ms>}
    Paddle element:   {"type": "dit"|"dah", "duration": <ms>, "timestamp": <epoch-ms>}

SSE framing:
    data: <json>\\n\\n
"""

import json
import time

DIT = 'dit'
DAH = 'dah'
CONNECTED = 'connected'


def now_ms():
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def _ms(value):
    # Whole milliseconds go out as JSON integers (60, not 60.0)
    if float(value).is_integer():
        return int(value)
    return round(value, 3)


def key_event(key_down, timestamp=None):
    """Straight key transition"""
    return {
        'keyDown': bool(key_down),
        'timestamp': now_ms() if timestamp is None else timestamp,
    }


def element_event(element, duration_ms, timestamp=None):
    """
    Start of a paddle element

    Args:
        element: DIT or DAH
        duration_ms: Full element length, so clients can schedule tone-off
        timestamp: Epoch ms (default: now)
    """
    if element not in (DIT, DAH):
        raise ValueError(f"Unknown element: {element!r}")
    return {
        'type': element,
        'duration': _ms(duration_ms),
        'timestamp': now_ms() if timestamp is None else timestamp,
    }


def connected_event(timestamp=None):
    return {
        'type': CONNECTED,
        'timestamp': now_ms() if timestamp is None else timestamp,
    }


def encode_json(event):
    return json.dumps(event, separators=(',', ':'))


def sse_frame(event):
    """Serialize an event into one SSE text frame"""
    return f"data: {encode_json(event)}\n\n"


def parse_sse_frame(frame):
    """
    Parse one SSE frame back into an event dict

    Returns:
        Event dict, or None if the frame has no data line or invalid JSON
    """
    for line in frame.splitlines():
        if line.startswith('data:'):
            try:
                return json.loads(line[5:].strip())
            except json.JSONDecodeError:
                return None
    return None


def describe(event):
    """Short human-readable form used in debug traces"""
    if 'keyDown' in event:
        return "KEY DOWN" if event['keyDown'] else "KEY UP"
    if event.get('type') in (DIT, DAH):
        return f"{event['type'].upper()} {event['duration']}ms"
    return event.get('type', '?')
