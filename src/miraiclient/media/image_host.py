"""
miraiclient/media/image_host.py — Local Image Host for Legacy Gateways

mirai-api-http 1.7.0 and earlier have no /uploadImage. An Image element
there carries only a URL and the gateway downloads the picture itself, so
the client serves registered images from a small HTTP server:

    GET /fetch?guid=<hex>   → the image bytes

Images stay registered until close(). Uses Python's built-in http.server on
a daemon thread.
"""

from __future__ import annotations

import threading
import uuid
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from miraiclient.observability.logger import get_logger

log = get_logger(__name__)


class _ImageHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    image_host: "ImageHost"


class _ImageRequestHandler(BaseHTTPRequestHandler):
    server: _ImageHTTPServer

    def do_GET(self):
        url = urlsplit(self.path)
        guid = parse_qs(url.query).get("guid", [""])[0]
        image = self.server.image_host.lookup(guid) if url.path == "/fetch" else None
        if image is None:
            self.send_error(HTTPStatus.NOT_FOUND)
            return

        content, content_type = image
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def log_message(self, format, *args):
        log.debug("image_host.request", client=self.address_string(), line=format % args)


class ImageHost:
    """
    Serves images to the gateway over HTTP.

    `host`/`port` is the bind address (port 0 picks a free one);
    `public_host` is the name the gateway should use to reach this machine.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        public_host: Optional[str] = None,
    ) -> None:
        self._bind = (host, port)
        self._public_host = public_host or host
        self._images: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()
        self._httpd: Optional[_ImageHTTPServer] = None

    def __len__(self) -> int:
        return len(self._images)

    @property
    def running(self) -> bool:
        return self._httpd is not None

    @property
    def port(self) -> Optional[int]:
        httpd = self._httpd
        return httpd.server_address[1] if httpd is not None else None

    def start(self) -> None:
        """Bind and start serving. No-op if already running."""
        with self._lock:
            if self._httpd is not None:
                return
            httpd = _ImageHTTPServer(self._bind, _ImageRequestHandler)
            httpd.image_host = self
            threading.Thread(
                target=httpd.serve_forever,
                name="mirai-image-host",
                daemon=True,
            ).start()
            self._httpd = httpd
        log.info("image_host.started", host=self._bind[0], port=self.port)

    def register(self, content: bytes, content_type: str) -> str:
        """Keep `content` available and return the URL the gateway should fetch."""
        self.start()
        guid = uuid.uuid4().hex
        with self._lock:
            self._images[guid] = (content, content_type)
        return f"http://{self._public_host}:{self.port}/fetch?guid={guid}"

    def lookup(self, guid: str) -> Optional[tuple[bytes, str]]:
        with self._lock:
            return self._images.get(guid)

    def close(self) -> None:
        """Stop the server and forget every image. Blocks until the server thread exits."""
        with self._lock:
            httpd, self._httpd = self._httpd, None
            self._images.clear()
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        log.info("image_host.stopped")
