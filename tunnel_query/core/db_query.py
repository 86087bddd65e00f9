"""
数据库查询模块 - 通过SSH隧道连接MySQL并执行查询
"""

from typing import Optional, Tuple
import logging

import pymysql
import pymysql.cursors
from pymysql import converters

from .exceptions import (
    DatabaseConnectionError,
    QueryExecutionError,
    ResourceReleaseError,
    ResultScanError,
    TunnelQueryError,
)
from .table_writer import TableWriter, coerce_value

logger = logging.getLogger(__name__)

# 只保留参数编码器，去掉结果解码器：列值保持文本协议原样（str 或 bytes）
RAW_CONVERSIONS = {k: v for k, v in converters.conversions.items() if not isinstance(k, int)}


class MySQLConnector:
    """
    MySQL连接器，底层连接由注入的拨号器提供

    拨号器只需实现 dial(address) 并返回类socket对象，
    通常是 SSHDialer，也可以是测试用的替身。
    """

    def __init__(self, dialer, user: str, password: str,
                 address: Tuple[str, int], database: Optional[str] = None,
                 charset: str = "utf8mb4"):
        """
        初始化连接器

        Args:
            dialer: 隧道拨号器
            user: 数据库用户名
            password: 数据库密码
            address: 数据库地址 (host, port)，从跳板机的网络视角解析
            database: 数据库名，为空时不选择数据库
            charset: 连接字符集
        """
        self.dialer = dialer
        self.user = user
        self.password = password
        self.address = address
        self.database = database or None
        self.charset = charset

    @property
    def target(self) -> str:
        host, port = self.address
        return f"{host}:{port}"

    def connect(self) -> pymysql.connections.Connection:
        """
        通过隧道建立数据库连接

        Returns:
            已完成握手的 pymysql 连接

        Raises:
            TunnelDialError: 跳板机无法连接数据库地址
            DatabaseConnectionError: 握手或登录失败
        """
        host, port = self.address
        connection = pymysql.connect(
            host=host,
            port=port,
            user=self.user,
            password=self.password,
            database=self.database,
            charset=self.charset,
            conv=RAW_CONVERSIONS,
            defer_connect=True,
        )

        channel = self.dialer.dial(self.address)
        try:
            # pymysql 在握手失败时会自行关闭传入的 sock
            connection.connect(sock=channel)
        except pymysql.MySQLError as e:
            logger.error(f"Database handshake with {self.target} failed: {e}")
            raise DatabaseConnectionError(f"error when connecting to DB server '{self.target}': {e}")

        logger.info(f"Successfully connected to the db {self.target}")
        return connection

    def close(self, connection: pymysql.connections.Connection):
        """
        关闭数据库连接

        Raises:
            ResourceReleaseError: 关闭失败
        """
        try:
            connection.close()
        except pymysql.MySQLError as e:
            raise ResourceReleaseError(f"error when closing database connection: {e}")
        logger.debug(f"Database connection to {self.target} closed")

    def __repr__(self) -> str:
        return f"MySQLConnector(user={self.user}, target={self.target}, database={self.database})"


class QueryExecutor:
    """执行单条查询并将结果流式写入表格"""

    def __init__(self, connection: pymysql.connections.Connection):
        self.connection = connection

    def run(self, query: str, writer: TableWriter) -> int:
        """
        执行查询并渲染结果

        使用非缓冲游标逐行读取，结果集只能向前读取一次。

        Args:
            query: SQL语句
            writer: 表格输出器

        Returns:
            输出的数据行数
        """
        cursor = self.connection.cursor(pymysql.cursors.SSCursor)
        try:
            row_count = self._stream(cursor, query, writer)
        except TunnelQueryError:
            try:
                cursor.close()
            except pymysql.MySQLError as e:
                logger.warning(f"Failed to close result set after error: {e}")
            raise

        try:
            cursor.close()
        except pymysql.MySQLError as e:
            raise ResourceReleaseError(f"error when closing dataset: {e}")
        return row_count

    def _stream(self, cursor, query: str, writer: TableWriter) -> int:
        logger.debug(f"Executing query: {query}")
        try:
            cursor.execute(query)
        except pymysql.MySQLError as e:
            raise QueryExecutionError(f"error when running query\n'{query}'\n{e}")

        if cursor.description is None:
            logger.info(f"Query OK, {cursor.rowcount} row(s) affected")
            return 0

        columns = [d[0] for d in cursor.description]
        writer.write_header(columns)

        row_count = 0
        while True:
            try:
                row = cursor.fetchone()
            except pymysql.MySQLError as e:
                raise ResultScanError(f"error when reading row {row_count + 1}: {e}")
            if row is None:
                break
            writer.write_row([coerce_value(v) for v in row])
            row_count += 1

        writer.flush()
        logger.info(f"Query returned {row_count} row(s)")
        return row_count
