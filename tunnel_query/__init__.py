"""
数据库查询工具 - 通过SSH跳板机隧道连接MySQL，执行一条查询并以表格输出

模块化设计，可以独立使用或集成到其他应用。
"""

__version__ = "0.1.0"

from .config import ConnectionConfig
from .core.ssh_client import SSHClient
from .core.dialer import SSHDialer
from .core.db_query import MySQLConnector, QueryExecutor
from .core.table_writer import TableWriter, coerce_value

__all__ = [
    "ConnectionConfig",
    "SSHClient",
    "SSHDialer",
    "MySQLConnector",
    "QueryExecutor",
    "TableWriter",
    "coerce_value",
]
