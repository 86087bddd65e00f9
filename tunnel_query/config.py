"""
配置模块 - 将命令行参数转换为不可变的连接配置
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from .core.exceptions import ConfigError

DEFAULT_SSH_PORT = 22
DEFAULT_DB_PORT = 3306
DEFAULT_DB_HOST = f"127.0.0.1:{DEFAULT_DB_PORT}"


def parse_host_port(value: str, default_port: int) -> Tuple[str, int]:
    """
    解析 "host:port" 格式的地址

    支持格式：
    - "db.internal:3306"
    - "db.internal"（使用默认端口）
    - "[::1]:3306"、"[::1]"（IPv6）

    Args:
        value: 地址字符串
        default_port: 未指定端口时使用的端口

    Returns:
        (host, port) 元组

    Raises:
        ConfigError: 主机为空或端口不合法
    """
    value = value.strip()
    port_str = ""

    if value.startswith("["):
        end = value.find("]")
        if end == -1:
            raise ConfigError(f"Invalid address {value!r}: missing ']'")
        host = value[1:end]
        rest = value[end + 1:]
        if rest:
            if not rest.startswith(":"):
                raise ConfigError(f"Invalid address {value!r}")
            port_str = rest[1:]
    elif value.count(":") == 1:
        host, port_str = value.split(":")
    else:
        # 无端口，或未加方括号的IPv6地址
        host = value

    if not host:
        raise ConfigError(f"Invalid address {value!r}: empty host")

    if not port_str:
        return host, default_port

    try:
        port = int(port_str)
    except ValueError:
        raise ConfigError(f"Invalid port in address {value!r}: {port_str!r}")
    if not 0 < port < 65536:
        raise ConfigError(f"Port out of range in address {value!r}: {port}")
    return host, port


def format_host_port(host: str, port: int) -> str:
    """拼接 "host:port"，IPv6地址加方括号"""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


@dataclass(frozen=True)
class ConnectionConfig:
    """
    一次运行所需的全部连接参数

    启动时构造一次，之后只读，显式传递给各组件。
    """
    ssh_host: str = ""
    ssh_port: int = DEFAULT_SSH_PORT
    ssh_user: str = ""
    ssh_password: str = ""
    db_user: str = ""
    db_password: str = ""
    db_host: str = DEFAULT_DB_HOST
    db_name: str = ""
    db_query: str = ""
    insecure_skip_host_verify: bool = False
    known_hosts: Optional[str] = None

    @classmethod
    def from_args(cls, args) -> "ConnectionConfig":
        """从argparse解析结果构造配置"""
        if not 0 < args.ssh_port < 65536:
            raise ConfigError(f"SSH port out of range: {args.ssh_port}")

        config = cls(
            ssh_host=args.ssh_host,
            ssh_port=args.ssh_port,
            ssh_user=args.ssh_user,
            ssh_password=args.ssh_password,
            db_user=args.db_user,
            db_password=args.db_password,
            db_host=args.db_host,
            db_name=args.db_name,
            db_query=args.db_query,
            insecure_skip_host_verify=args.insecure_skip_host_verify,
            known_hosts=args.known_hosts,
        )
        # 提前校验，避免SSH连接建立后才发现地址错误
        parse_host_port(config.db_host, DEFAULT_DB_PORT)
        return config

    @property
    def ssh_address(self) -> str:
        return format_host_port(self.ssh_host, self.ssh_port)

    @property
    def db_address(self) -> Tuple[str, int]:
        return parse_host_port(self.db_host, DEFAULT_DB_PORT)

    def __repr__(self) -> str:
        return (
            f"ConnectionConfig(ssh={self.ssh_user}@{self.ssh_address}, "
            f"db={self.db_user}@{self.db_host}/{self.db_name})"
        )
