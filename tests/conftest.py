import socket
import threading

import pytest

from client import parse_response, recv_all
from http_utils import Limits
from server import handle, open_listener, serve

FAST = Limits(socket_timeout=2.0, poll_interval=0.05)


@pytest.fixture
def docroot(tmp_path):
    root = tmp_path / "www"
    root.mkdir()
    (root / "index.html").write_text("<h1>home</h1>\n", encoding="utf-8")
    (root / "style.css").write_text("body { color: red; }\n", encoding="utf-8")
    (root / "empty.txt").write_bytes(b"")
    (root / "file.xyz").write_bytes(b"\x00\x01\x02mystery")
    (root / "docs").mkdir()
    (root / "docs" / "index.html").write_text("<h1>docs</h1>\n", encoding="utf-8")
    (root / "docs" / "guide.json").write_text('{"ok": true}\n', encoding="utf-8")
    return root


def exchange(root, payload: bytes, limits: Limits = FAST) -> bytes:
    """Run one request through ``handle`` over a socketpair and return the raw reply."""
    client, conn = socket.socketpair()
    with client:
        if payload:
            client.sendall(payload)
        else:
            client.shutdown(socket.SHUT_WR)
        handle(conn, str(root), limits)
        return recv_all(client)


@pytest.fixture
def ask(docroot):
    def _ask(payload: bytes):
        return parse_response(exchange(docroot, payload))
    return _ask


@pytest.fixture
def live_server(docroot):
    listener = open_listener("127.0.0.1", 0)
    shutdown = threading.Event()
    t = threading.Thread(target=serve, args=(listener, str(docroot), shutdown, FAST), daemon=True)
    t.start()
    try:
        yield listener.getsockname()[1]
    finally:
        shutdown.set()
        t.join(timeout=5)
        listener.close()
