import socket

import pytest

LOCALHOST = "127.0.0.1"
TIMEOUT = 5


def _pick_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOCALHOST, 0))
        return int(s.getsockname()[1])


def _http_get(port: int, path: str = "/") -> str:
    """Send one GET and read until the fixture closes the connection."""
    with socket.create_connection((LOCALHOST, port), timeout=TIMEOUT) as sock:
        sock.sendall(f"GET {path} HTTP/1.1\r\nHost: localhost\r\n\r\n".encode())
        chunks = []
        while True:
            data = sock.recv(1024)
            if not data:
                break
            chunks.append(data)
    return b"".join(chunks).decode("utf-8", errors="replace")


@pytest.fixture
def free_port():
    return _pick_free_port


@pytest.fixture
def http_get():
    return _http_get
