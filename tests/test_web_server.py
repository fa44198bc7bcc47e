"""
Tests for the HTTP/SSE server.

Static routes go through Starlette's TestClient; the event stream runs
against a real uvicorn server on a loopback port.
"""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from cw_keyer_web.cw_events import element_event
from cw_keyer_web.cw_web_server import CWWebServer, SSESubscriber, content_type_for


@pytest.fixture
def public_dir(tmp_path):
    public = tmp_path / 'public'
    public.mkdir()
    (public / 'index.html').write_text('<html>keyer</html>')
    (public / 'app.js').write_text('console.log(1);')
    (public / 'style.css').write_text('body {}')
    (public / 'notes.txt').write_text('73')
    (tmp_path / 'secret.txt').write_text('do not serve')
    return public


@pytest.fixture
def web(broadcaster, public_dir):
    return CWWebServer(broadcaster, host='127.0.0.1', port=0, public_dir=public_dir)


@pytest.fixture
def client(web):
    return TestClient(web.app)


@pytest.fixture
async def running(web):
    await web.start()
    yield web
    await web.stop()


def media_type(response):
    return response.headers['content-type'].split(';')[0].strip()


async def next_event(lines):
    """Next data line of an SSE stream, parsed"""
    while True:
        line = await asyncio.wait_for(lines.__anext__(), timeout=5.0)
        if line.startswith('data:'):
            return json.loads(line[len('data:'):])


async def wait_for(predicate, timeout=3.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.02)


class TestContentTypes:
    """Tests for extension mapping."""

    def test_known_extensions(self):
        assert content_type_for('index.html') == 'text/html'
        assert content_type_for('app.js') == 'application/javascript'
        assert content_type_for('style.css') == 'text/css'

    def test_everything_else_is_plain_text(self):
        assert content_type_for('notes.txt') == 'text/plain'
        assert content_type_for('logo.png') == 'text/plain'
        assert content_type_for('README') == 'text/plain'


class TestStaticFiles:
    """Tests for static file serving."""

    def test_root_serves_index(self, client):
        response = client.get('/')
        assert response.status_code == 200
        assert media_type(response) == 'text/html'
        assert response.text == '<html>keyer</html>'

    @pytest.mark.parametrize("path, expected", [
        ('/app.js', 'application/javascript'),
        ('/style.css', 'text/css'),
        ('/notes.txt', 'text/plain'),
    ])
    def test_content_type_by_extension(self, client, path, expected):
        response = client.get(path)
        assert response.status_code == 200
        assert media_type(response) == expected

    def test_missing_file_is_404(self, client):
        response = client.get('/nope.html')
        assert response.status_code == 404
        assert response.text == 'Not Found'

    @pytest.mark.parametrize("path", ['/../secret.txt', '/%2e%2e/secret.txt', '/a/../../secret.txt'])
    def test_traversal_outside_public_is_404(self, client, path):
        response = client.get(path)
        assert response.status_code == 404
        assert 'do not serve' not in response.text

    def test_null_byte_in_path_is_404(self, client):
        response = client.get('/%00')
        assert response.status_code == 404

    def test_resolve_rejects_escapes(self, web):
        assert web._resolve('../secret.txt') is None
        assert web._resolve('/\x00') is None
        assert web._resolve('app.js') == web.public_dir / 'app.js'

    def test_head_has_no_body(self, client):
        response = client.head('/app.js')
        assert response.status_code == 200
        assert response.headers['content-length'] == str(len('console.log(1);'))
        assert response.content == b''

    def test_post_not_allowed(self, client):
        response = client.post('/events')
        assert response.status_code == 405
        allowed = {m.strip() for m in response.headers['allow'].split(',')}
        assert 'GET' in allowed
        assert 'POST' not in allowed

    def test_put_on_static_path_not_allowed(self, client):
        assert client.put('/index.html', content=b'x').status_code == 405

    def test_query_string_ignored(self, client):
        response = client.get('/index.html?v=2')
        assert response.status_code == 200
        assert response.text == '<html>keyer</html>'


class TestSSESubscriber:
    """Tests for the per-connection frame queue."""

    def test_full_queue_raises(self):
        sub = SSESubscriber(maxsize=2)
        sub.send('a')
        sub.send('b')
        with pytest.raises(ConnectionError):
            sub.send('c')

    def test_close_ends_stream_even_when_full(self):
        sub = SSESubscriber(maxsize=1)
        sub.send('a')
        sub.close()
        assert sub.closed
        assert sub.queue.get_nowait() is None
        with pytest.raises(ConnectionError):
            sub.send('b')

    def test_stalled_client_dropped_by_broadcaster(self, broadcaster):
        sub = SSESubscriber(maxsize=2)
        broadcaster.subscribe(sub)
        for i in range(3):
            broadcaster.publish({'keyDown': True, 'timestamp': i})
        assert len(broadcaster) == 0
        assert sub.closed


class TestEventStream:
    """Tests for the /events SSE endpoint on a live server."""

    async def test_stream_headers_and_connected_first(self, running):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            async with http.stream('GET', '/events') as response:
                assert response.status_code == 200
                assert media_type(response) == 'text/event-stream'
                assert response.headers['cache-control'] == 'no-cache'
                event = await next_event(response.aiter_lines())
                assert event['type'] == 'connected'

    async def test_published_events_are_streamed(self, running, broadcaster):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            async with http.stream('GET', '/events') as response:
                lines = response.aiter_lines()
                await next_event(lines)

                broadcaster.publish(element_event('dit', 60, timestamp=42))
                broadcaster.publish({'keyDown': True, 'timestamp': 43})
                assert await next_event(lines) == {'type': 'dit', 'duration': 60, 'timestamp': 42}
                assert await next_event(lines) == {'keyDown': True, 'timestamp': 43}

    async def test_two_clients_each_get_one_ack(self, running, broadcaster):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            async with http.stream('GET', '/events') as r1, http.stream('GET', '/events') as r2:
                lines1, lines2 = r1.aiter_lines(), r2.aiter_lines()
                assert (await next_event(lines1))['type'] == 'connected'
                assert (await next_event(lines2))['type'] == 'connected'

                broadcaster.publish({'keyDown': True, 'timestamp': 9})
                assert (await next_event(lines1))['timestamp'] == 9
                assert (await next_event(lines2))['timestamp'] == 9

    async def test_client_disconnect_unsubscribes(self, running, broadcaster):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            async with http.stream('GET', '/events') as response:
                await next_event(response.aiter_lines())
                assert len(broadcaster) == 1

        def gone():
            # A write to the dead connection also ends the stream
            broadcaster.publish({'keyDown': False, 'timestamp': 1})
            return len(broadcaster) == 0

        await wait_for(gone)

    async def test_static_file_over_http(self, running):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            response = await http.get('/style.css')
        assert response.status_code == 200
        assert media_type(response) == 'text/css'

    async def test_stop_ends_streams(self, running, broadcaster):
        async with httpx.AsyncClient(base_url=f"http://127.0.0.1:{running.port}") as http:
            async with http.stream('GET', '/events') as response:
                lines = response.aiter_lines()
                await next_event(lines)
                await asyncio.wait_for(running.stop(), timeout=5.0)
                assert len(broadcaster) == 0
                remaining = [line async for line in lines]
                assert not any(line.startswith('data:') for line in remaining)

    async def test_port_in_use(self, running, broadcaster):
        other = CWWebServer(broadcaster, host='127.0.0.1', port=running.port)
        with pytest.raises(OSError):
            await other.start()
