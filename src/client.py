import os
import socket
import sys
from typing import Dict, Tuple

Response = Tuple[str, Dict[str, str], bytes]


def recv_all(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        data = sock.recv(4096)
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def send_raw(host: str, port: int, payload: bytes, timeout: float = 10.0) -> bytes:
    with socket.create_connection((host, port), timeout=timeout) as sock:
        sock.sendall(payload)
        sock.shutdown(socket.SHUT_WR)
        return recv_all(sock)


def parse_response(raw: bytes) -> Response:
    sep = b"\r\n\r\n"
    idx = raw.find(sep)
    if idx == -1:
        raise ValueError("Invalid response (no headers/body separator)")

    header_bytes, body = raw[:idx], raw[idx+4:]
    lines = header_bytes.decode("iso-8859-1", errors="replace").split("\r\n")

    parts = lines[0].split(None, 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise ValueError(f"Invalid status line: {lines[0]!r}")

    headers = {}
    for h in lines[1:]:
        name, _, value = h.partition(":")
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers, body


def fetch(host: str, port: int, url_path: str, method: str = "GET") -> Response:
    req = (
        f"{method} {url_path} HTTP/1.1\r\n"
        f"Host: {host}\r\n"
        "Connection: close\r\n"
        "\r\n"
    ).encode("iso-8859-1")
    return parse_response(send_raw(host, port, req))


def main():
    if len(sys.argv) != 5:
        print("Usage: python client.py server_host server_port url_path directory")
        sys.exit(1)

    host = sys.argv[1]
    port = int(sys.argv[2])
    url_path = sys.argv[3]
    outdir = sys.argv[4]

    status_line, headers, body = fetch(host, port, url_path)
    print(f"[client] {status_line}")

    if status_line.split()[1] != "200":
        print(body.decode("utf-8", errors="replace"))
        sys.exit(0)

    content_type = headers.get("content-type", "")
    if content_type.startswith("text/"):
        print(body.decode("utf-8", errors="replace"))
        return

    os.makedirs(outdir, exist_ok=True)
    fname = os.path.basename(url_path.rstrip("/")) or "index.html"
    path = os.path.join(outdir, fname)
    with open(path, "wb") as f:
        f.write(body)
    print(f"[client] saved {content_type or 'body'} -> {path}")


if __name__ == "__main__":
    main()
