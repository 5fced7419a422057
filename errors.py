"""异常分类：派生、校验、资金、网络、协议与配置错误。"""


class WalletError(Exception):
    """所有核心错误的基类。"""


class ConfigError(WalletError):
    """启动配置缺失或非法（如 RPC 端点未设置）。"""


class DerivationError(WalletError):
    """助记词或种子缺失，无法派生密钥。"""


class ValidationError(WalletError):
    """用户输入不合法，未产生任何副作用。"""


class InsufficientFundsError(WalletError):
    """预检余额不足，未发起任何链上操作。"""

    def __init__(self, required: int, available: int, message: str = "") -> None:
        self.required = required
        self.available = available
        super().__init__(
            message
            or f"余额不足：至少需要 {required} lamports（租金 + 手续费），当前仅 {available} lamports"
        )

    @property
    def shortfall(self) -> int:
        return max(self.required - self.available, 0)


class NetworkError(WalletError):
    """暂时性网络错误，调用方可重新发起同一操作。"""


class ProtocolError(WalletError):
    """响应格式错误或不符合预期，不自动重试。"""


class FundingError(WalletError):
    """测试币请求被拒绝或确认超时。"""


class StorageError(WalletError):
    """本地状态文件无法读取或已损坏，为保护助记词拒绝覆盖。"""
