"""
SSH客户端模块 - 连接跳板机并完成认证
"""

import os
import socket
from typing import Optional, Tuple
import logging

import paramiko

from ..config import format_host_port
from .dialer import SSHDialer
from .exceptions import HostKeyVerificationError, SSHConnectionError

logger = logging.getLogger(__name__)

DEFAULT_KNOWN_HOSTS = "~/.ssh/known_hosts"


class AgentAuth:
    """使用本地SSH代理提供的密钥认证"""

    name = "publickey (agent)"

    def __init__(self, keys):
        self.keys = list(keys)

    def authenticate(self, transport: paramiko.Transport, username: str) -> bool:
        for key in self.keys:
            try:
                transport.auth_publickey(username, key)
            except paramiko.AuthenticationException as e:
                logger.debug(f"Agent key {key.get_name()} rejected: {e}")
                continue
            if transport.is_authenticated():
                return True
        return False


class PasswordAuth:
    """使用显式提供的密码认证"""

    name = "password"

    def __init__(self, password: str):
        self.password = password

    def authenticate(self, transport: paramiko.Transport, username: str) -> bool:
        try:
            transport.auth_password(username, self.password)
        except paramiko.AuthenticationException as e:
            logger.debug(f"Password rejected: {e}")
            return False
        return transport.is_authenticated()

    def __repr__(self) -> str:
        return "PasswordAuth(password=***)"


def build_auth_methods(password: Optional[str], agent: Optional[paramiko.Agent]) -> list:
    """
    按优先级构造认证方式列表

    代理中有可用密钥时排在最前，非空密码作为后备追加在后面，
    两者可以同时存在。认证时按顺序尝试，第一个被接受的即成功。

    Args:
        password: SSH密码，空字符串或None表示不使用密码
        agent: 已连接的paramiko.Agent，None表示没有代理

    Returns:
        认证方式列表
    """
    methods = []
    if agent is not None:
        keys = agent.get_keys()
        if keys:
            methods.append(AgentAuth(keys))
        else:
            logger.debug("SSH agent offers no identities")
    if password:
        methods.append(PasswordAuth(password))
    return methods


def open_agent() -> Optional[paramiko.Agent]:
    """
    连接本地SSH代理（通过 SSH_AUTH_SOCK 环境变量）

    Returns:
        paramiko.Agent，代理不可用时返回None
    """
    if not os.environ.get("SSH_AUTH_SOCK"):
        logger.debug("SSH_AUTH_SOCK not set, skipping agent")
        return None
    try:
        agent = paramiko.Agent()
    except paramiko.SSHException as e:
        logger.warning(f"SSH agent unavailable: {e}")
        return None
    logger.debug(f"SSH agent offers {len(agent.get_keys())} key(s)")
    return agent


class SSHClient:
    """SSH客户端，连接跳板机并提供隧道拨号器"""

    def __init__(self, host: str, port: int = 22, username: str = "",
                 password: Optional[str] = None,
                 verify_host_key: bool = True,
                 known_hosts: Optional[str] = None,
                 timeout: Optional[float] = None):
        """
        初始化SSH客户端

        Args:
            host: 跳板机地址
            port: SSH端口，默认22
            username: 用户名
            password: 密码（只使用代理认证时可以为None）
            verify_host_key: 是否校验主机密钥，False时接受任意密钥
            known_hosts: known_hosts文件路径，默认 ~/.ssh/known_hosts
            timeout: 连接超时时间（秒），None表示使用系统默认
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.verify_host_key = verify_host_key
        self.known_hosts = known_hosts or DEFAULT_KNOWN_HOSTS
        self.timeout = timeout
        self.transport: Optional[paramiko.Transport] = None
        self.agent: Optional[paramiko.Agent] = None

    @property
    def address(self) -> str:
        return format_host_port(self.host, self.port)

    def connect(self) -> Tuple[bool, str]:
        """
        连接到SSH服务器

        Returns:
            (success, error_message) 元组
            - success: True if connection successful, False otherwise
            - error_message: 详细的错误信息（如果失败）
        """
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except socket.timeout:
            error_msg = (
                f"连接超时\n\n"
                f"服务器: {self.address}\n"
                f"超时时间: {self.timeout}秒\n\n"
                f"可能的原因：\n"
                f"1. 服务器地址或端口不正确\n"
                f"2. 网络连接问题\n"
                f"3. 防火墙阻止连接"
            )
            logger.error(f"Connection timeout to {self.address}")
            return False, error_msg
        except socket.gaierror as e:
            error_msg = (
                f"无法解析主机名\n\n"
                f"主机: {self.host}\n\n"
                f"错误详情: {str(e)}"
            )
            logger.error(f"DNS resolution failed for {self.host}: {e}")
            return False, error_msg
        except ConnectionRefusedError as e:
            error_msg = (
                f"连接被拒绝\n\n"
                f"服务器: {self.address}\n\n"
                f"可能的原因：\n"
                f"1. 端口不正确\n"
                f"2. SSH服务未在该端口运行\n\n"
                f"错误详情: {str(e)}"
            )
            logger.error(f"Connection refused to {self.address}: {e}")
            return False, error_msg
        except OSError as e:
            error_msg = (
                f"网络错误\n\n"
                f"服务器: {self.address}\n\n"
                f"错误详情: {str(e)}"
            )
            logger.error(f"Network error connecting to {self.address}: {e}")
            return False, error_msg

        transport = paramiko.Transport(sock)
        try:
            transport.start_client(timeout=self.timeout)
            self._check_host_key(transport.get_remote_server_key())

            self.agent = open_agent()
            methods = build_auth_methods(self.password, self.agent)
            if not methods:
                transport.close()
                error_msg = (
                    f"缺少认证信息\n\n"
                    f"服务器: {self.address}\n"
                    f"用户名: {self.username}\n\n"
                    f"请启动SSH代理（SSH_AUTH_SOCK）或提供密码"
                )
                logger.error("No SSH agent identities or password provided")
                return False, error_msg

            for method in methods:
                logger.debug(f"Trying {method.name} authentication for {self.username}@{self.address}")
                if method.authenticate(transport, self.username):
                    self.transport = transport
                    logger.info(f"Connected to {self.address} using {method.name}")
                    return True, ""

            transport.close()
            tried = ", ".join(m.name for m in methods)
            error_msg = (
                f"认证失败\n\n"
                f"服务器: {self.address}\n"
                f"用户名: {self.username}\n"
                f"已尝试: {tried}"
            )
            logger.error(f"Authentication failed for {self.username}@{self.address}")
            return False, error_msg
        except HostKeyVerificationError as e:
            transport.close()
            error_msg = (
                f"主机密钥校验失败\n\n"
                f"服务器: {self.address}\n"
                f"known_hosts: {self.known_hosts}\n\n"
                f"错误详情: {e.reason}\n\n"
                f"如果确认跳板机可信，可以使用 --insecure-skip-host-verify"
            )
            logger.error(str(e))
            return False, error_msg
        except (paramiko.SSHException, EOFError, OSError) as e:
            transport.close()
            error_msg = (
                f"SSH连接错误\n\n"
                f"服务器: {self.address}\n\n"
                f"错误详情: {str(e) or type(e).__name__}"
            )
            logger.error(f"SSH error connecting to {self.address}: {e}")
            return False, error_msg

    def _check_host_key(self, key: paramiko.PKey):
        """
        按 known_hosts 校验服务器主机密钥

        Raises:
            HostKeyVerificationError: 文件不存在、主机未知或密钥不匹配
        """
        fingerprint = f"{key.get_name()} {key.get_fingerprint().hex()}"
        if not self.verify_host_key:
            logger.warning(f"Host key verification disabled, accepting {fingerprint} for {self.address}")
            return

        path = os.path.expanduser(self.known_hosts)
        host_keys = paramiko.HostKeys()
        try:
            host_keys.load(path)
        except IOError as e:
            raise HostKeyVerificationError(self.address, f"cannot read {path}: {e}")

        lookup_name = self.host if self.port == 22 else f"[{self.host}]:{self.port}"
        entry = host_keys.lookup(lookup_name)
        if entry is None or key.get_name() not in entry:
            raise HostKeyVerificationError(self.address, f"unknown host key {fingerprint}")
        if entry[key.get_name()] != key:
            raise HostKeyVerificationError(self.address, f"host key mismatch, server offered {fingerprint}")
        logger.debug(f"Host key {fingerprint} verified")

    def open_dialer(self) -> SSHDialer:
        """返回基于当前SSH连接的隧道拨号器"""
        if not self.transport or not self.transport.is_active():
            raise SSHConnectionError("Not connected. Call connect() first.")
        return SSHDialer(self.transport)

    def close(self):
        """关闭SSH连接和代理连接"""
        if self.transport:
            self.transport.close()
            self.transport = None
            logger.info("SSH connection closed")

        if self.agent:
            self.agent.close()
            self.agent = None

    def __enter__(self):
        """上下文管理器入口"""
        success, error_msg = self.connect()
        if not success:
            self.close()
            raise SSHConnectionError(f"error when connecting SSH server {self.address}: {error_msg}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """上下文管理器出口"""
        self.close()

    def __repr__(self) -> str:
        return f"SSHClient(host={self.host}, port={self.port}, username={self.username})"
