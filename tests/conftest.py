import socket
import struct
import threading

import pytest


class LoopbackServer:
    """Accepts connections on 127.0.0.1 and optionally greets each client."""

    def __init__(self, greeting=b"", close_after_greeting=False, port=0, reset=False):
        self.greeting = greeting
        self.close_after_greeting = close_after_greeting
        self.reset = reset
        self.accepted = 0
        self._conns = []
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self._sock.bind(("127.0.0.1", port))
        except OSError:
            self._sock.close()
            raise
        self._sock.listen(128)
        self._sock.settimeout(0.1)
        self.port = self._sock.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self._sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            self.accepted += 1
            try:
                if self.greeting:
                    conn.sendall(self.greeting)
            except OSError:
                pass
            if self.reset:
                # Zero linger turns close() into a TCP reset
                conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
                conn.close()
            elif self.close_after_greeting:
                conn.close()
            else:
                self._conns.append(conn)

    def stop(self):
        self._stop.set()
        self._thread.join(timeout=2)
        self._sock.close()
        for conn in self._conns:
            conn.close()


@pytest.fixture
def tcp_server():
    servers = []

    def start(greeting=b"", close_after_greeting=False, port=0, reset=False):
        server = LoopbackServer(greeting, close_after_greeting, port, reset)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
