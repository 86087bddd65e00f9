#!/usr/bin/env python3
"""
命令行接口 - 通过SSH跳板机执行一条数据库查询
"""

import argparse
import sys
from typing import Optional, TextIO
import logging

from .config import DEFAULT_DB_HOST, DEFAULT_SSH_PORT, ConnectionConfig
from .core.db_query import MySQLConnector, QueryExecutor
from .core.exceptions import TunnelQueryError
from .core.ssh_client import SSHClient
from .core.table_writer import TableWriter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tunnel-query",
        description="数据库查询工具 - 通过SSH跳板机连接MySQL并以表格输出查询结果",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例:
  # 使用SSH代理认证
  %(prog)s --ssh-host jump.example --ssh-user alice --db-name test --db-query "SELECT 1 AS x"

  # 使用密码认证，数据库在跳板机所在内网
  %(prog)s --ssh-host 192.168.1.100 --ssh-user root --ssh-password secret \\
      --db-host 10.0.0.5:3306 --db-user app --db-password pw --db-name shop \\
      --db-query "SELECT id, name FROM users LIMIT 10"
        """
    )

    # SSH连接参数
    parser.add_argument("--ssh-host", default="", help="SSH跳板机地址")
    parser.add_argument("--ssh-port", type=int, default=DEFAULT_SSH_PORT,
                        help=f"SSH端口 (默认: {DEFAULT_SSH_PORT})")
    parser.add_argument("--ssh-user", default="", help="SSH用户名")
    parser.add_argument("--ssh-password", default="",
                        help="SSH密码 (不指定时只使用SSH代理认证)")
    parser.add_argument("--insecure-skip-host-verify", action="store_true",
                        help="跳过主机密钥校验，接受任意主机密钥 (仅用于可信的跳板机)")
    parser.add_argument("--known-hosts", default=None,
                        help="known_hosts文件路径 (默认: ~/.ssh/known_hosts)")

    # 数据库参数
    parser.add_argument("--db-user", default="", help="数据库用户名")
    parser.add_argument("--db-password", default="", help="数据库密码")
    parser.add_argument("--db-host", default=DEFAULT_DB_HOST,
                        help=f"数据库地址，包含端口 (默认: {DEFAULT_DB_HOST})")
    parser.add_argument("--db-name", default="", help="数据库名")
    parser.add_argument("--db-query", default="", help="要执行的SQL语句")

    parser.add_argument("-v", "--verbose", action="store_true", help="详细输出")
    return parser


def run(config: ConnectionConfig, stream: Optional[TextIO] = None) -> int:
    """
    执行完整流程：SSH认证 -> 隧道 -> 数据库连接 -> 查询 -> 输出 -> 关闭

    关闭顺序：结果集 -> 数据库连接 -> SSH连接。

    Args:
        config: 连接配置
        stream: 表格输出流，默认标准输出

    Returns:
        输出的数据行数

    Raises:
        TunnelQueryError: 任一步骤失败
    """
    logger.info(f"连接SSH服务器: {config.ssh_user}@{config.ssh_address}")

    with SSHClient(
        host=config.ssh_host,
        port=config.ssh_port,
        username=config.ssh_user,
        password=config.ssh_password,
        verify_host_key=not config.insecure_skip_host_verify,
        known_hosts=config.known_hosts,
    ) as ssh:
        connector = MySQLConnector(
            dialer=ssh.open_dialer(),
            user=config.db_user,
            password=config.db_password,
            address=config.db_address,
            database=config.db_name,
        )
        connection = connector.connect()

        try:
            row_count = QueryExecutor(connection).run(config.db_query, TableWriter(stream))
        except Exception:
            try:
                connector.close(connection)
            except TunnelQueryError as e:
                logger.warning(f"Ignoring close failure after query error: {e}")
            raise

        connector.close(connection)
        return row_count


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = ConnectionConfig.from_args(args)
        logger.debug(f"Using {config!r}")
        run(config)
    except KeyboardInterrupt:
        logger.info("用户中断")
        sys.exit(1)
    except Exception as e:
        logger.error(f"错误: {e}", exc_info=args.verbose)
        sys.exit(1)


if __name__ == "__main__":
    main()
