"""Test doubles for PyMySQL objects, the SSH agent and an SSH jump host."""

from __future__ import annotations

import socket
import struct
import threading

import paramiko
from pymysql.constants import CLIENT, COMMAND


class FakeCursor:
    """Unbuffered cursor stand-in yielding preset rows one at a time."""

    def __init__(self, columns=None, rows=None, execute_error=None, fetch_error=None,
                 fetch_error_at=0, close_error=None, rowcount=0):
        self.description = None
        self._columns = columns
        self._rows = list(rows or [])
        self._execute_error = execute_error
        self._fetch_error = fetch_error
        self._fetch_error_at = fetch_error_at
        self._close_error = close_error
        self.rowcount = rowcount
        self.executed = []
        self.fetched = 0
        self.closed = False

    def execute(self, query):
        self.executed.append(query)
        if self._execute_error is not None:
            raise self._execute_error
        if self._columns is not None:
            self.description = tuple((name, 253, None, None, None, None, True) for name in self._columns)

    def fetchone(self):
        if self._fetch_error is not None and self.fetched == self._fetch_error_at:
            raise self._fetch_error
        if not self._rows:
            return None
        self.fetched += 1
        return self._rows.pop(0)

    def close(self):
        self.closed = True
        if self._close_error is not None:
            raise self._close_error


class FakeConnection:
    def __init__(self, cursor: FakeCursor, close_error=None):
        self._cursor = cursor
        self._close_error = close_error
        self.cursor_classes = []
        self.closed = False

    def cursor(self, cursor_class=None):
        self.cursor_classes.append(cursor_class)
        return self._cursor

    def close(self):
        self.closed = True
        if self._close_error is not None:
            raise self._close_error


class FakeAgent:
    def __init__(self, keys):
        self.keys = tuple(keys)
        self.closed = False

    def get_keys(self):
        return self.keys

    def close(self):
        self.closed = True


class JumpHostServer(paramiko.ServerInterface):
    """Accepts one agent key and/or one password, and direct-tcpip to listed targets."""

    def __init__(self, accepted_key=None, password=None, reachable=()):
        self.accepted_key = accepted_key
        self.password = password
        self.reachable = set(reachable)
        self.password_attempts = 0
        self.publickey_attempts = 0
        self.destinations = []

    def get_allowed_auths(self, username):
        return "publickey,password"

    def check_auth_publickey(self, username, key):
        self.publickey_attempts += 1
        if self.accepted_key is not None and key == self.accepted_key:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_auth_password(self, username, password):
        self.password_attempts += 1
        if self.password and password == self.password:
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind, chanid):
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_direct_tcpip_request(self, chanid, origin, destination):
        self.destinations.append(tuple(destination))
        if tuple(destination) in self.reachable:
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_CONNECT_FAILED


class JumpHost:
    """Listens on 127.0.0.1, serves one SSH session and hands every opened channel to a handler.

    The default handler echoes the first chunk it receives.
    """

    def __init__(self, host_key, server: JumpHostServer, handler=None):
        self.host_key = host_key
        self.server = server
        self.handler = handler or echo_once
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.port = self.listener.getsockname()[1]
        self.transport = None
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        self.transport = paramiko.Transport(conn)
        self.transport.add_server_key(self.host_key)
        try:
            self.transport.start_server(server=self.server)
        except (paramiko.SSHException, EOFError):
            return
        while self.transport.is_active():
            channel = self.transport.accept(timeout=1)
            if channel is None:
                continue
            self.handler(channel)

    def close(self):
        self.listener.close()
        if self.transport is not None:
            self.transport.close()


def echo_once(channel):
    data = channel.recv(1024)
    channel.sendall(data)
    channel.close()


BINARY_CHARSET = 63
UTF8MB4_CHARSET = 45

SERVER_CAPABILITIES = (
    CLIENT.LONG_PASSWORD | CLIENT.PROTOCOL_41 | CLIENT.SECURE_CONNECTION | CLIENT.PLUGIN_AUTH
)
OK_PACKET = b"\x00\x00\x00\x02\x00\x00\x00"
EOF_PACKET = b"\xfe\x00\x00\x00\x00"


def _recv_exact(channel, size):
    data = b""
    while len(data) < size:
        chunk = channel.recv(size - len(data))
        if not chunk:
            return None
        data += chunk
    return data


def _lenenc_str(value):
    if value is None:
        return b"\xfb"
    if isinstance(value, str):
        value = value.encode("utf-8")
    assert len(value) < 251
    return bytes([len(value)]) + value


class FakeMySQLServer:
    """Speaks enough of the MySQL text protocol for canned queries.

    ``results`` maps query text to ``(columns, rows)``; a column is
    ``(name, field_type, charset)``. ``errors`` maps query text to
    ``(errno, message)``. Any other query gets an OK packet.
    """

    def __init__(self, results=None, errors=None):
        self.results = dict(results or {})
        self.errors = dict(errors or {})
        self.queries = []
        self.logins = 0
        self.quit_received = False

    def serve(self, channel):
        channel.sendall(self._packet(0, self._greeting()))
        seq, payload = self._read_packet(channel)
        if payload is None:
            channel.close()
            return
        self.logins += 1
        channel.sendall(self._packet(seq + 1, OK_PACKET))

        while True:
            seq, payload = self._read_packet(channel)
            if payload is None:
                break
            command = payload[0]
            if command == COMMAND.COM_QUIT:
                self.quit_received = True
                break
            if command == COMMAND.COM_QUERY:
                query = payload[1:].decode("utf-8")
                self.queries.append(query)
                packets = self._answer(query)
            else:
                packets = [OK_PACKET]
            channel.sendall(b"".join(
                self._packet((seq + 1 + i) % 256, p) for i, p in enumerate(packets)
            ))
        channel.close()

    def _answer(self, query):
        if query in self.errors:
            errno, message = self.errors[query]
            return [b"\xff" + struct.pack("<H", errno) + b"#42S02" + message.encode("utf-8")]
        if query not in self.results:
            return [OK_PACKET]

        columns, rows = self.results[query]
        packets = [bytes([len(columns)])]
        for name, field_type, charset in columns:
            packets.append(
                _lenenc_str("def") + _lenenc_str("test") + _lenenc_str("t") + _lenenc_str("t")
                + _lenenc_str(name) + _lenenc_str(name)
                + b"\x0c" + struct.pack("<HIBHB", charset, 255, field_type, 0, 0) + b"\x00\x00"
            )
        packets.append(EOF_PACKET)
        for row in rows:
            packets.append(b"".join(_lenenc_str(v) for v in row))
        packets.append(EOF_PACKET)
        return packets

    @staticmethod
    def _greeting():
        salt = b"abcdefghijklmnopqrst"
        return (
            b"\x0a" + b"5.7.99-fake\x00"
            + struct.pack("<I", 1)
            + salt[:8] + b"\x00"
            + struct.pack("<H", SERVER_CAPABILITIES & 0xFFFF)
            + struct.pack("<BHHB", UTF8MB4_CHARSET, 0, SERVER_CAPABILITIES >> 16, len(salt) + 1)
            + b"\x00" * 10
            + salt[8:] + b"\x00"
            + b"mysql_native_password\x00"
        )

    @staticmethod
    def _packet(seq, payload):
        return struct.pack("<I", len(payload))[:3] + bytes([seq]) + payload

    @staticmethod
    def _read_packet(channel):
        header = _recv_exact(channel, 4)
        if header is None:
            return None, None
        length = header[0] | header[1] << 8 | header[2] << 16
        payload = _recv_exact(channel, length) if length else b""
        return header[3], payload
