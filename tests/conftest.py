"""
Pytest configuration and shared fixtures.
"""

import pytest

from cw_keyer_web.cw_broadcaster import EventBroadcaster
from cw_keyer_web.cw_events import parse_sse_frame
from cw_keyer_web.cw_scheduler import ManualScheduler


class RecordingLed:
    """LED that remembers every state it was set to."""

    def __init__(self):
        self.is_on = False
        self.history = []

    def set(self, on):
        self.is_on = on
        self.history.append(on)

    def on(self):
        self.set(True)

    def off(self):
        self.set(False)

    def cleanup(self):
        self.is_on = False


class RecordingSubscriber:
    """Broadcaster subscriber that keeps the frames it receives."""

    def __init__(self, fail=False):
        self.frames = []
        self.closed = False
        self.fail = fail

    def send(self, frame):
        if self.fail:
            raise ConnectionResetError("peer reset")
        self.frames.append(frame)

    def close(self):
        self.closed = True

    @property
    def events(self):
        return [parse_sse_frame(f) for f in self.frames]


class EventLog:
    """Publish target recording (scheduler time, event)."""

    def __init__(self, scheduler):
        self.scheduler = scheduler
        self.entries = []

    def __call__(self, event):
        self.entries.append((self.scheduler.now(), event))

    @property
    def events(self):
        return [e for _, e in self.entries]

    @property
    def elements(self):
        return [e['type'] for _, e in self.entries]

    @property
    def times(self):
        return [t for t, _ in self.entries]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def event_log(scheduler):
    return EventLog(scheduler)


@pytest.fixture
def led():
    return RecordingLed()


@pytest.fixture
def make_led():
    return RecordingLed


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def make_subscriber():
    return RecordingSubscriber
