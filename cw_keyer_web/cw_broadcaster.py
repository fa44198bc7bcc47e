"""
Event Broadcaster - fan-out of key/keyer events to connected clients

Best-effort delivery: each event is serialized once and written to every
open subscriber. A subscriber that is closed or fails to write is dropped;
the error never reaches the keyer. Nothing is buffered for clients that are
not connected.

Listeners registered with add_listener() get the event dict itself (no
SSE framing), after the subscribers; the relay forwards events this way.

A subscriber is any object with:
    send(frame)  - write one SSE text frame, raise on failure
    closed       - True once the transport has gone away
    close()
"""

from .cw_events import sse_frame, connected_event


class EventBroadcaster:
    """Ordered set of subscribers plus publish()"""

    def __init__(self, debug=False):
        self.debug = debug
        self._subscribers = []
        self._listeners = []

        # Statistics
        self.events_published = 0
        self.total_connections = 0
        self.dropped = 0

    @property
    def subscribers(self):
        return list(self._subscribers)

    def __len__(self):
        return len(self._subscribers)

    def add_listener(self, callback):
        """callback(event) is called for every published event"""
        self._listeners.append(callback)

    def remove_listener(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def subscribe(self, subscriber):
        """
        Register a subscriber and send it the connection ack

        The ack goes to this subscriber only and is always its first frame.
        """
        self._subscribers.append(subscriber)
        self.total_connections += 1
        print(f"[SSE] Client connected. Total clients: {len(self._subscribers)}")
        self._deliver(subscriber, sse_frame(connected_event()))

    def unsubscribe(self, subscriber):
        """
        Remove a subscriber; safe to call for one already removed

        Returns:
            True if the subscriber was registered
        """
        try:
            self._subscribers.remove(subscriber)
        except ValueError:
            return False
        print(f"[SSE] Client disconnected. Total clients: {len(self._subscribers)}")
        return True

    def publish(self, event):
        """Serialize once, write to every open subscriber"""
        frame = sse_frame(event)
        self.events_published += 1
        # Snapshot: subscribers may be removed while we iterate
        for subscriber in list(self._subscribers):
            self._deliver(subscriber, frame)
        for callback in list(self._listeners):
            callback(event)

    def _deliver(self, subscriber, frame):
        if subscriber.closed:
            self._drop(subscriber, "closed")
            return
        try:
            subscriber.send(frame)
        except Exception as e:
            self._drop(subscriber, e)

    def _drop(self, subscriber, reason):
        self.dropped += 1
        if self.debug:
            print(f"[SSE] Dropping client: {reason}")
        self.unsubscribe(subscriber)
        try:
            subscriber.close()
        except OSError:
            pass

    def close_all(self):
        """Close every subscriber (server shutdown)"""
        for subscriber in list(self._subscribers):
            self.unsubscribe(subscriber)
            try:
                subscriber.close()
            except OSError as e:
                print(f"Warning: Error closing client: {e}")
