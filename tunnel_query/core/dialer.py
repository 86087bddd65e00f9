"""
隧道拨号模块 - 通过已认证的SSH连接打开到目标地址的通道
"""

import logging
import threading
from typing import Tuple, Union

import paramiko

from ..config import DEFAULT_DB_PORT, parse_host_port
from .exceptions import TunnelDialError

logger = logging.getLogger(__name__)

Address = Union[str, Tuple[str, int]]

# direct-tcpip 通道要求提供源地址，服务端一般只用于日志
ORIGINATOR = ("127.0.0.1", 0)


class SSHDialer:
    """
    隧道拨号器，相当于从跳板机发起的TCP连接

    只持有SSH传输的引用，不负责关闭它；传输关闭后不能再拨号。
    """

    def __init__(self, transport: paramiko.Transport):
        self.transport = transport
        # paramiko不保证多线程同时开通道的安全
        self._lock = threading.Lock()

    def dial(self, address: Address) -> paramiko.Channel:
        """
        打开一个新的 direct-tcpip 通道

        Args:
            address: "host:port" 字符串或 (host, port) 元组

        Returns:
            paramiko.Channel，可以像socket一样读写

        Raises:
            TunnelDialError: 传输已关闭或跳板机无法连接目标
        """
        if isinstance(address, str):
            host, port = parse_host_port(address, DEFAULT_DB_PORT)
        else:
            host, port = address
        target = f"{host}:{port}"

        with self._lock:
            if not self.transport.is_active():
                raise TunnelDialError(target, "SSH transport is closed")

            logger.debug(f"Opening direct-tcpip channel to {target}")
            try:
                channel = self.transport.open_channel(
                    "direct-tcpip",
                    dest_addr=(host, port),
                    src_addr=ORIGINATOR,
                )
            except paramiko.ChannelException as e:
                # 服务端拒绝打开通道，e.text 包含原因（如 Connection refused）
                raise TunnelDialError(target, f"{e.text} (code {e.code})")
            except (paramiko.SSHException, EOFError, OSError) as e:
                raise TunnelDialError(target, str(e) or type(e).__name__)

        logger.info(f"Tunnel opened to {target}")
        return channel

    def __repr__(self) -> str:
        return f"SSHDialer(transport={self.transport!r})"
