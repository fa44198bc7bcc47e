"""
CW Web Server - HTTP endpoint for browser clients

Routes:
    GET /events  - Server-Sent Events stream (text/event-stream)
    GET /        - public/index.html
    GET /<path>  - static file from the public directory, 404 if missing

FastAPI app served by uvicorn inside the keyer's event loop. Each SSE
connection is a broadcaster subscriber backed by its own frame queue; the
streaming response drains that queue until the subscriber is closed or the
client goes away.
"""

import asyncio
import contextlib
import socket
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.responses import FileResponse, PlainTextResponse, StreamingResponse

PUBLIC_DIR = Path(__file__).resolve().parent / 'public'

CONTENT_TYPES = {
    '.html': 'text/html',
    '.js': 'application/javascript',
    '.css': 'text/css',
}

MAX_QUEUED_FRAMES = 256  # stalled SSE client gets dropped past this
KEEPALIVE_S = 15
KEEPALIVE_FRAME = ": keepalive\n\n"

SSE_HEADERS = {
    'Cache-Control': 'no-cache',
    'Connection': 'keep-alive',
    'X-Accel-Buffering': 'no',
}


class SSESubscriber:
    """Broadcaster subscriber queueing SSE frames for one HTTP connection"""

    def __init__(self, maxsize=MAX_QUEUED_FRAMES):
        self.queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def send(self, frame):
        if self.closed:
            raise ConnectionError("client connection closed")
        try:
            self.queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise ConnectionError("client not reading") from None

    def close(self):
        """Mark closed and wake the stream so it ends"""
        if self.closed:
            return
        self.closed = True
        # None ends the stream; make room for it if the client stalled
        while True:
            try:
                self.queue.put_nowait(None)
                return
            except asyncio.QueueFull:
                self.queue.get_nowait()


def content_type_for(path):
    return CONTENT_TYPES.get(Path(path).suffix, 'text/plain')


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to the keyer process"""

    def install_signal_handlers(self):
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class CWWebServer:
    """HTTP + SSE server bound to an EventBroadcaster"""

    def __init__(self, broadcaster, host='0.0.0.0', port=80, public_dir=None, debug=False):
        """
        Args:
            broadcaster: EventBroadcaster receiving SSE subscribers
            host: Interface to bind (0.0.0.0 = all interfaces)
            port: TCP port (0 = pick a free port)
            public_dir: Static asset root (default: bundled public/)
            debug: Print every request
        """
        self.broadcaster = broadcaster
        self.host = host
        self.port = port
        self.public_dir = Path(public_dir).resolve() if public_dir else PUBLIC_DIR
        self.debug = debug
        self.app = self._create_app()

        self.server = None
        self._task = None

    # ------------------------------------------------------------------
    # Routes
    # ------------------------------------------------------------------
    def _create_app(self):
        app = FastAPI(title="CW Keyer Web", docs_url=None, redoc_url=None, openapi_url=None)

        @app.get("/events")
        async def events():
            subscriber = SSESubscriber()
            return StreamingResponse(self._stream(subscriber),
                                     media_type='text/event-stream', headers=SSE_HEADERS)

        @app.api_route("/{path:path}", methods=["GET", "HEAD"])
        async def static(path: str):
            file_path = self._resolve(path or 'index.html')
            if file_path is None:
                return PlainTextResponse("Not Found", status_code=404)
            return FileResponse(file_path, media_type=content_type_for(file_path))

        return app

    async def _stream(self, subscriber):
        """Frames for one SSE client; connected ack first, then every event"""
        self.broadcaster.subscribe(subscriber)
        try:
            while True:
                try:
                    frame = await asyncio.wait_for(subscriber.queue.get(), timeout=KEEPALIVE_S)
                except asyncio.TimeoutError:
                    # Comment line; a dead client fails this write
                    yield KEEPALIVE_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            self.broadcaster.unsubscribe(subscriber)
            subscriber.close()

    def _resolve(self, path):
        """Map a URL path into the public directory, None if outside or missing"""
        try:
            candidate = (self.public_dir / path.lstrip('/')).resolve()
            if candidate != self.public_dir and self.public_dir not in candidate.parents:
                return None
            if not candidate.is_file():
                return None
        except (ValueError, OSError):
            # ValueError: embedded null byte
            return None
        return candidate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def started(self):
        return self.server is not None and self.server.started

    def _bind(self):
        family = socket.AF_INET6 if ':' in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            raise
        return sock

    async def start(self):
        """Start listening. OSError (port in use, no permission) propagates."""
        sock = self._bind()
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            lifespan='off',
            log_level='info' if self.debug else 'warning',
            access_log=self.debug,
            timeout_graceful_shutdown=2,
        )
        self.server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self.server.serve(sockets=[sock]))

        while not self.server.started:
            if self._task.done():
                self._task.result()
                raise OSError(f"web server on port {self.port} exited during start-up")
            await asyncio.sleep(0.01)
        print(f"✓ Web server listening on http://{self.host}:{self.port}")

    async def stop(self):
        """End all event streams, then stop accepting connections"""
        if self.server is None:
            return
        self.broadcaster.close_all()
        self.server.should_exit = True
        await self._task
        self.server = None
        self._task = None
        print("[HTTP] Server stopped")
