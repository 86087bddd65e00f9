"""
异常定义 - 每一类致命错误对应一个异常类型
"""


class TunnelQueryError(Exception):
    """所有错误的基类，CLI统一捕获后退出"""


class ConfigError(TunnelQueryError):
    """命令行参数不合法"""


class SSHConnectionError(TunnelQueryError):
    """SSH连接、握手或认证失败"""


class HostKeyVerificationError(SSHConnectionError):
    """主机密钥未知或不匹配"""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Host key verification failed for {host}: {reason}")


class TunnelDialError(TunnelQueryError):
    """跳板机无法连接目标地址"""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to dial {address} through SSH tunnel: {reason}")


class DatabaseConnectionError(TunnelQueryError):
    """数据库握手或登录失败"""


class QueryExecutionError(TunnelQueryError):
    """数据库拒绝执行查询"""


class ResultScanError(TunnelQueryError):
    """读取结果行失败"""


class ValueCoercionError(ResultScanError):
    """列值类型无法转换为文本"""

    def __init__(self, value_type: type):
        self.value_type = value_type
        super().__init__(f"unknown type {value_type.__name__}")


class ResourceReleaseError(TunnelQueryError):
    """关闭结果集或连接失败"""
