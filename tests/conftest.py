"""Pytest configuration and fixtures."""

import http.server
import json
import socketserver
import threading
import time
from urllib.parse import parse_qsl, urlsplit

import pytest


class ServiceServer:
    """Routes served by the local service server.

    Attributes:
        port (int): The port the server is listening on
        url (str): Base URL of the server
        requests (list): (path, query) of every request received
    """

    def __init__(self, port):
        self.port = port
        self.requests = []
        self._routes = []

    @property
    def url(self):
        return f"http://127.0.0.1:{self.port}"

    def add_bytes(self, path, body, content_type="application/octet-stream", query=None, status=200, delay=0):
        """
        Serve a response for GET requests on a path.

        Args:
            path: Request path
            body: Response body
            content_type: Content type header
            query: Query parameters the request must contain (keys are case-insensitive)
            status: HTTP status
            delay: Seconds to wait before answering
        """
        query = {k.lower(): v for k, v in (query or {}).items()}
        # Later routes take precedence
        self._routes.insert(0, (path, query, status, body, content_type, delay))

    def add_text(self, path, body, content_type="text/plain", query=None, status=200, delay=0):
        self.add_bytes(path, body.encode("utf-8"), content_type, query, status, delay)

    def add_json(self, path, data, query=None, status=200, delay=0):
        self.add_text(path, json.dumps(data), "application/json", query, status, delay)

    def add_xml(self, path, body, query=None, status=200):
        self.add_text(path, body, "text/xml", query, status)

    def count(self, path):
        """Number of requests received for a path."""
        return sum(1 for p, _ in self.requests if p == path)

    def find(self, path, params):
        for route_path, query, status, body, content_type, delay in self._routes:
            if route_path == path and all(params.get(k) == v for k, v in query.items()):
                return status, body, content_type, delay
        return None


@pytest.fixture
def service_server():
    """
    Fixture for a local HTTP server answering with canned service metadata.

    Usage:
        def test_service(service_server):
            service_server.add_json("/MapServer", {"layers": []}, query={"f": "json"})
            url = f"{service_server.url}/MapServer"
            ...

    Requests without a matching route get a 404.
    """
    server_state = ServiceServer(0)

    class ServiceRequestHandler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):
            parts = urlsplit(self.path)
            params = {k.lower(): v for k, v in parse_qsl(parts.query, keep_blank_values=True)}
            server_state.requests.append((parts.path, params))

            route = server_state.find(parts.path, params)
            if route is None:
                status, body, content_type, delay = 404, b"Not found", "text/plain", 0
            else:
                status, body, content_type, delay = route

            if delay:
                time.sleep(delay)
            try:
                self.send_response(status)
                self.send_header("Content-Type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)
            except (BrokenPipeError, ConnectionResetError):
                pass  # Client gave up (timeout and cancellation tests)

        def log_message(self, format, *args):
            pass  # Suppress logging during tests

    class ThreadedServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
        daemon_threads = True

    # Start server on auto-assigned port
    server = ThreadedServer(("127.0.0.1", 0), ServiceRequestHandler)
    server_state.port = server.server_address[1]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield server_state

    # Cleanup: shutdown server
    server.shutdown()
    server.server_close()
    thread.join(timeout=1.0)
