"""数据模型定义，包含钱包、代币记录与代币余额。"""

import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional

from config import ChainType


class SyncStatus(str, Enum):
    """钱包同步状态，仅反映余额同步的健康度。"""

    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"


class AirdropStatus(str, Enum):
    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DerivedKeypair:
    """派生结果：链标签、路径、公开标识与十六进制私钥材料。"""

    chain_type: ChainType
    index: int
    derivation_path: str
    address: str
    private_key: str = field(repr=False)


@dataclass
class Wallet:
    """单个派生钱包。私钥只由 (助记词, 链, index) 决定，不会被单独重置。"""

    id: str
    index: int
    chain_type: ChainType
    address: str
    derivation_path: str
    private_key: str = field(repr=False)
    balance: float = 0.0
    transaction_count: int = 0
    sync_status: SyncStatus = SyncStatus.IDLE
    last_error: Optional[str] = None
    last_updated: float = field(default_factory=time.time)

    def is_solana(self) -> bool:
        """是否为 Solana 链钱包。"""
        return self.chain_type is ChainType.SOLANA

    def to_dict(self) -> dict:
        data = asdict(self)
        data["chain_type"] = self.chain_type.value
        data["sync_status"] = self.sync_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Wallet":
        data = dict(data)
        data["chain_type"] = ChainType(data["chain_type"])
        data["sync_status"] = SyncStatus(data.get("sync_status", SyncStatus.IDLE.value))
        return cls(**data)


@dataclass
class CreateTokenParams:
    """代币发行参数，initial_supply 以整币为单位。"""

    name: str
    symbol: str
    decimals: int
    initial_supply: int = 0
    freeze_authority: bool = False
    mint_authority: bool = True


@dataclass
class TokenRecord:
    """
    已发行代币记录。

    supply 以最小单位的十进制字符串保存，避免大整数在 JSON 中丢精度；
    除 supply 可被追加铸造外，其余字段创建后不再变化。
    """

    mint_address: str
    name: str
    symbol: str
    decimals: int
    supply: str
    freeze_authority: Optional[str]
    mint_authority: Optional[str]
    created_at: float = field(default_factory=time.time)

    def add_supply(self, amount: int) -> None:
        self.supply = str(int(self.supply) + amount)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TokenRecord":
        return cls(**data)


@dataclass
class UserTokenBalance:
    """钱包持有的某个代币账户余额，raw_balance 为最小单位字符串。"""

    mint_address: str
    token_account: str
    raw_balance: str
    decimals: int
    name: Optional[str] = None
    symbol: Optional[str] = None

    @property
    def ui_amount(self) -> float:
        return int(self.raw_balance) / (10**self.decimals)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "UserTokenBalance":
        return cls(**data)


@dataclass
class AirdropRequest:
    wallet_id: str
    address: str
    amount_sol: float
    status: AirdropStatus = AirdropStatus.PENDING
    signature: Optional[str] = None
    new_balance: Optional[float] = None
    error: Optional[str] = None
