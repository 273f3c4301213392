import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from notifier import BarkNotifier, DispatchFailure


class PushHandler(BaseHTTPRequestHandler):
    received = []

    def do_POST(self):
        length = int(self.headers.get("Content-Length", "0"))
        payload = json.loads(self.rfile.read(length) or b"{}")
        if self.path == "/slow":
            time.sleep(3)
        if self.path == "/fail":
            self._reply(500, b'{"code": 500}')
            return
        self.received.append(payload)
        self._reply(200, b'{"code": 200}')

    def _reply(self, status, body):
        try:
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)
        except OSError:
            # client gave up waiting
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture()
def push_server():
    PushHandler.received = []
    server = ThreadingHTTPServer(("127.0.0.1", 0), PushHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def test_send_posts_title_and_body(push_server):
    BarkNotifier(timeout=1).send(f"{push_server}/ok", "Rent due", "Pay 950.00")
    assert PushHandler.received == [{"title": "Rent due", "body": "Pay 950.00"}]


def test_error_status_raises_dispatch_failure(push_server):
    with pytest.raises(DispatchFailure) as exc_info:
        BarkNotifier(timeout=1).send(f"{push_server}/fail", "Rent due", "Pay")
    assert "500" in str(exc_info.value)


def test_slow_endpoint_is_cut_off_by_timeout(push_server):
    started = time.monotonic()
    with pytest.raises(DispatchFailure):
        BarkNotifier(timeout=1).send(f"{push_server}/slow", "Rent due", "Pay")
    assert time.monotonic() - started < 2.5


def test_unreachable_or_empty_url_raises_dispatch_failure():
    with pytest.raises(DispatchFailure):
        BarkNotifier(timeout=1).send("  ", "title", "body")
    with pytest.raises(DispatchFailure):
        BarkNotifier(timeout=1).send("not a url", "title", "body")
