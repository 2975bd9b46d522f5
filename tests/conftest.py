import logging
import socket
import threading

import pytest


class FakeSocket:
    """
    Stands in for a connected socket. ``replies`` are handed out one per
    recv(); an exception instance is raised instead of returned. Once the
    replies run out, recv() times out.
    """

    def __init__(self, replies=(), on_close=None):
        self.replies = list(replies)
        self.sent = []
        self.timeouts = []
        self.recv_sizes = []
        self.closed = False
        self.on_close = on_close

    def settimeout(self, value):
        self.timeouts.append(value)

    def recv(self, n):
        self.recv_sizes.append(n)
        if not self.replies:
            raise socket.timeout("timed out")
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item[:n]

    def sendall(self, data):
        self.sent.append(data)

    def close(self):
        if not self.closed and self.on_close:
            self.on_close()
        self.closed = True


class LoopbackServer:
    """Tiny TCP listener on 127.0.0.1 running ``handler(conn)`` per client."""

    def __init__(self, handler):
        self.handler = handler
        self._stop = threading.Event()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.listen(16)
        self.sock.settimeout(0.2)
        self.port = self.sock.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn):
        try:
            self.handler(conn)
        except OSError:
            pass
        finally:
            conn.close()

    def close(self):
        self._stop.set()
        self.thread.join(timeout=2)
        self.sock.close()


@pytest.fixture
def loopback():
    servers = []

    def start(handler):
        srv = LoopbackServer(handler)
        servers.append(srv)
        return srv

    yield start
    for srv in servers:
        srv.close()


@pytest.fixture
def unused_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


@pytest.fixture(autouse=True)
def reset_scanner_logger():
    yield
    logger = logging.getLogger("PortScanner")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
