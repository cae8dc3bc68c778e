import argparse
import errno
import logging
import os
import signal
import socket
import stat
import sys
import threading
from typing import Optional, Sequence

from http_utils import (
    DEFAULT_LIMITS,
    HttpError,
    Limits,
    NotFound,
    OpenDenied,
    PathTooLong,
    UnsupportedMethod,
    guess_mime,
    http_date_now,
    parse_request_line,
    resolve_path,
    split_request_line,
)

HOST = os.environ.get("HTTPD_HOST", "0.0.0.0")
PORT = 8080
DOC_ROOT = os.environ.get("HTTPD_ROOT", "www")
SERVER_NAME = "tinyhttpd/1.0"
ALLOWED_METHODS = ("GET", "HEAD")

DEFAULT_INDEX = (
    "<!DOCTYPE html>\n"
    "<html><head><title>tinyhttpd</title></head>\n"
    "<body><h1>It works!</h1><p>Put your files in this directory.</p></body></html>\n"
)

logger = logging.getLogger(__name__)


def respond_head(status_code: int, reason: str, mime: str, length: int) -> bytes:
    return (
        f"HTTP/1.1 {status_code} {reason}\r\n"
        f"Date: {http_date_now()}\r\n"
        f"Server: {SERVER_NAME}\r\n"
        f"Content-Type: {mime}\r\n"
        f"Content-Length: {length}\r\n"
        "Connection: close\r\n\r\n"
    ).encode()


def respond_error(code: int, msg: str, with_body: bool = True) -> bytes:
    body = (
        f"<html><head><title>{code} {msg}</title></head>"
        f"<body><h1>{code} {msg}</h1></body></html>\n"
    ).encode()
    head = respond_head(code, msg, "text/html; charset=utf-8", len(body))
    return head + body if with_body else head


def stream_file(conn: socket.socket, f, chunk_size: int) -> int:
    """Copy ``f`` to ``conn`` chunk by chunk; returns bytes sent."""
    sent = 0
    while True:
        try:
            chunk = f.read(chunk_size)
        except OSError as e:
            logger.warning("read failed after %d bytes: %s", sent, e)
            break
        if not chunk:
            break
        try:
            conn.sendall(chunk)
        except OSError as e:
            logger.warning("client went away after %d bytes: %s", sent, e)
            break
        sent += len(chunk)
    return sent


def open_regular_file(fs_path: str):
    try:
        st = os.lstat(fs_path)
    except OSError as e:
        if e.errno == errno.ENAMETOOLONG:
            raise PathTooLong(fs_path) from e
        raise NotFound(fs_path) from e
    except ValueError:
        raise NotFound(fs_path)
    if not stat.S_ISREG(st.st_mode):
        raise NotFound(fs_path)
    try:
        f = open(fs_path, "rb")
    except OSError as e:
        raise OpenDenied(fs_path) from e
    return f, st.st_size


def handle(conn: socket.socket, root: str, limits: Limits = DEFAULT_LIMITS, addr=None):
    method = target = None
    try:
        conn.settimeout(limits.socket_timeout)
        try:
            data = conn.recv(limits.recv_buffer)
        except OSError as e:
            logger.warning("read from %s failed: %s", addr, e)
            return
        if not data:
            logger.debug("%s closed without sending a request", addr)
            return

        try:
            method, target, _version = parse_request_line(split_request_line(data), limits)
            if method not in ALLOWED_METHODS:
                raise UnsupportedMethod(method)
            fs_path = resolve_path(root, target, limits)
            f, size = open_regular_file(fs_path)
        except HttpError as e:
            logger.info("%s %s %d", method, target, e.status)
            try:
                conn.sendall(respond_error(e.status, e.reason, with_body=method != "HEAD"))
            except OSError as err:
                logger.warning("could not send %d to %s: %s", e.status, addr, err)
            return

        with f:
            logger.info("%s %s 200 (%d bytes)", method, target, size)
            try:
                conn.sendall(respond_head(200, "OK", guess_mime(fs_path), size))
            except OSError as e:
                logger.warning("could not send headers to %s: %s", addr, e)
                return
            if method == "GET":
                stream_file(conn, f, limits.chunk_size)
    finally:
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        conn.close()


def ensure_docroot(root: str) -> None:
    """Create ``root`` with a placeholder index page if it does not exist."""
    if os.path.isdir(root):
        return
    os.makedirs(root)
    with open(os.path.join(root, "index.html"), "w", encoding="utf-8") as f:
        f.write(DEFAULT_INDEX)
    logger.info("Created document root %s with a default index.html", root)


def open_listener(host: str, port: int, backlog: int = 16) -> socket.socket:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind((host, port))
        s.listen(backlog)
    except OSError:
        s.close()
        raise
    return s


def serve(listener: socket.socket, root: str, shutdown: threading.Event,
          limits: Limits = DEFAULT_LIMITS) -> None:
    """Accept and fully service one connection at a time until ``shutdown`` is set."""
    listener.settimeout(limits.poll_interval)
    while not shutdown.is_set():
        try:
            conn, addr = listener.accept()
        except socket.timeout:
            continue
        except OSError as e:
            if shutdown.is_set():
                break
            logger.warning("accept failed: %s", e)
            continue
        logger.debug("Connection from %s", addr)
        handle(conn, root, limits, addr)


def install_signal_handlers(shutdown: threading.Event) -> None:
    def _stop(signum, frame):
        logger.info("Received signal %d, shutting down after the current connection", signum)
        shutdown.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)


def port_number(value: str) -> int:
    try:
        port = int(value, 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def main(argv: Optional[Sequence[str]] = None, shutdown: Optional[threading.Event] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve static files over HTTP/1.1 (GET and HEAD only).")
    parser.add_argument("port", nargs="?", type=port_number, default=PORT, help=f"TCP port (default {PORT})")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root = os.path.abspath(DOC_ROOT)
    try:
        ensure_docroot(root)
    except OSError as e:
        logger.error("cannot set up document root %s: %s", root, e)
        return 1

    try:
        listener = open_listener(HOST, args.port)
    except OSError as e:
        logger.error("cannot listen on %s:%d: %s", HOST, args.port, e)
        return 1

    if shutdown is None:
        shutdown = threading.Event()
        install_signal_handlers(shutdown)

    with listener:
        logger.info("Serving '%s' on http://%s:%d", root, HOST, listener.getsockname()[1])
        serve(listener, root, shutdown)
    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
