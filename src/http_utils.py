import email.utils
import os
from dataclasses import dataclass
from typing import Tuple

ALLOWED_MIME = {
    ".html": "text/html; charset=utf-8",
    ".htm":  "text/html; charset=utf-8",
    ".css":  "text/css; charset=utf-8",
    ".js":   "application/javascript; charset=utf-8",
    ".json": "application/json; charset=utf-8",
    ".png":  "image/png",
    ".jpg":  "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif":  "image/gif",
    ".svg":  "image/svg+xml",
    ".txt":  "text/plain; charset=utf-8",
}
DEFAULT_MIME = "application/octet-stream"
INDEX_FILE = "index.html"


@dataclass(frozen=True)
class Limits:
    """Size and timing bounds for one connection."""
    recv_buffer: int = 8192
    max_method: int = 7
    max_target: int = 2047
    max_version: int = 15
    max_path: int = 4096
    chunk_size: int = 8192
    socket_timeout: float = 5.0
    poll_interval: float = 0.5


DEFAULT_LIMITS = Limits()


class HttpError(Exception):
    status = 500
    reason = "Internal Server Error"


class MalformedRequest(HttpError):
    status, reason = 400, "Bad Request"


class InvalidPath(HttpError):
    status, reason = 400, "Bad Request"


class PathTooLong(HttpError):
    status, reason = 400, "Bad Request"


class UnsupportedMethod(HttpError):
    status, reason = 405, "Method Not Allowed"


class NotFound(HttpError):
    status, reason = 404, "Not Found"


class OpenDenied(HttpError):
    status, reason = 403, "Forbidden"


def http_date_now() -> str:
    return email.utils.formatdate(usegmt=True)


def split_request_line(raw: bytes) -> bytes:
    idx = raw.find(b"\r\n")
    if idx == -1:
        raise MalformedRequest("no line terminator")
    return raw[:idx]


def parse_request_line(line: bytes, limits: Limits = DEFAULT_LIMITS) -> Tuple[str, str, str]:
    """Split ``METHOD target VERSION``; tokens past the third are ignored.

    Splitting happens on ASCII whitespace and limits count bytes. Tokens are
    decoded with ``os.fsdecode`` so the target maps back to the same bytes on disk.
    """
    parts = line.split()
    if len(parts) < 3:
        raise MalformedRequest(f"expected 3 tokens, got {len(parts)}")
    method, target, version = parts[:3]
    if (len(method) > limits.max_method
            or len(target) > limits.max_target
            or len(version) > limits.max_version):
        raise MalformedRequest("request line token too long")
    return os.fsdecode(method), os.fsdecode(target), os.fsdecode(version)


def resolve_path(root: str, target: str, limits: Limits = DEFAULT_LIMITS) -> str:
    """Map a raw request target onto a path under ``root``.

    This is a lexical filter: any ``..`` substring is refused outright, and
    nothing is percent-decoded or symlink-resolved. Callers needing strict
    isolation must add their own canonical containment check.
    """
    if ".." in target:
        raise InvalidPath(target)

    rel = target.lstrip("/")
    if not rel or rel.endswith("/"):
        rel += INDEX_FILE

    path = os.path.join(root, rel)
    size = len(os.fsencode(path))
    if size >= limits.max_path:
        raise PathTooLong(f"{size} bytes")
    return path


def guess_mime(path: str) -> str:
    for ext, mime in ALLOWED_MIME.items():
        if path.endswith(ext):
            return mime
    return DEFAULT_MIME
