"""
WebSocket Relay - forward keyer events to a remote relay server

Optional. Registered as a broadcaster listener, so it sees every key/element
event as a dict and pushes it to a WebSocket relay (e.g.
wss://cw-relay.workers.dev) so listeners outside the LAN can hear the
operator.

Relay protocol (JSON text messages):
    -> {"type": "join", "roomId": "main", "callsign": "SM5ABC"}
    <- {"type": "joined"} or {"type": "echo"}
    -> {"type": "keyer_event", "callsign": ..., "sequence": 0-255, "event": {...}}
    -> {"type": "keepalive"}   every 15s
    <- {"type": "keepalive_ack"}

The relay never blocks or fails the keyer: events are queued and dropped
when the queue is full or the relay is unreachable.
"""

import asyncio
import json

import websockets

KEEPALIVE_S = 15
JOIN_TIMEOUT_S = 5.0
QUEUE_SIZE = 256
MAX_BACKOFF_S = 30


class WebRelay:
    """Broadcaster listener forwarding events over WebSocket"""

    def __init__(self, server_url, callsign, room_id="main", debug=False):
        self.server_url = server_url
        self.callsign = callsign
        self.room_id = room_id
        self.debug = debug

        self.ws = None
        self.connected = False
        self.running = False
        self.queue = asyncio.Queue(maxsize=QUEUE_SIZE)
        self.sequence_number = 0

        # Statistics
        self.events_sent = 0
        self.events_dropped = 0

    def forward(self, event):
        """Queue one published event (broadcaster listener, never raises)"""
        if not self.connected:
            self.events_dropped += 1
            return
        message = {
            'type': 'keyer_event',
            'callsign': self.callsign,
            'sequence': self.sequence_number,
            'event': event,
        }
        self.sequence_number = (self.sequence_number + 1) % 256
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.events_dropped += 1

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------
    async def connect(self):
        """
        Open the socket and join the room

        Returns:
            True once the relay accepted the join, False if it refused

        Network errors propagate; run() retries them.
        """
        # Manual keepalive instead of pings (Cloudflare Workers requirement)
        self.ws = await websockets.connect(self.server_url, ping_interval=None, ping_timeout=None)
        await self.ws.send(json.dumps({
            'type': 'join',
            'roomId': self.room_id,
            'callsign': self.callsign,
        }))
        reply = json.loads(await asyncio.wait_for(self.ws.recv(), timeout=JOIN_TIMEOUT_S))
        if reply.get('type') not in ('joined', 'echo'):
            print(f"✗ Relay refused join: {reply}")
            await self.ws.close()
            return False
        self.connected = True
        print(f"✓ Relay connected as {self.callsign} in room '{self.room_id}'")
        return True

    async def keepalive_loop(self):
        while self.connected:
            await asyncio.sleep(KEEPALIVE_S)
            await self.ws.send(json.dumps({'type': 'keepalive'}))
            if self.debug:
                print("[RELAY] Keepalive sent")

    async def send_loop(self):
        while self.connected:
            message = await self.queue.get()
            await self.ws.send(json.dumps(message))
            self.events_sent += 1
            if self.debug:
                print(f"[RELAY] Sent #{message['sequence']}")

    async def receive_loop(self):
        """Drain server messages (keepalive acks, room notices)"""
        async for raw in self.ws:
            if self.debug:
                print(f"[RELAY] Received: {raw}")

    async def _session(self):
        tasks = [
            asyncio.create_task(self.keepalive_loop()),
            asyncio.create_task(self.send_loop()),
            asyncio.create_task(self.receive_loop()),
        ]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if not task.cancelled() and task.exception() is not None:
                    print(f"\n✗ Relay connection lost: {task.exception()}")
        finally:
            self.connected = False
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.ws.close()

    async def run(self):
        """Keep a relay connection up until stop(), backing off 1s, 2s, 4s... 30s"""
        self.running = True
        delay = 1
        while self.running:
            try:
                joined = await self.connect()
            except (OSError, asyncio.TimeoutError, ValueError,
                    websockets.exceptions.WebSocketException) as e:
                # ValueError: reply was not JSON
                print(f"✗ Relay connection failed: {e}")
                joined = False
            if joined:
                delay = 1
                await self._session()
                continue
            if self.running:
                print(f"  Retrying in {delay}s...")
                await asyncio.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_S)

    async def stop(self):
        self.running = False
        self.connected = False
        if self.ws is not None:
            await self.ws.close()
