"""按链维护的有序钱包集合，负责 index 分配与按 id 打补丁。"""

import logging
import time
import uuid
from typing import Callable, Dict, List, Optional

from config import ChainType
from models import SyncStatus, Wallet
from wallet_service import derive_from_mnemonic

logger = logging.getLogger(__name__)


class WalletRegistry:
    """
    单条链的钱包登记表。

    index 从 0 开始严格递增，同一助记词周期内不复用；已有钱包不会被重新编号。
    所有修改都是同步完成的，不跨越 await，因此在单线程事件循环里天然原子。
    """

    def __init__(self, chain: ChainType, on_change: Optional[Callable[[], None]] = None) -> None:
        self.chain = chain
        self._wallets: List[Wallet] = []
        self._next_index = 0
        self._on_change = on_change

    def __len__(self) -> int:
        return len(self._wallets)

    def __iter__(self):
        return iter(list(self._wallets))

    @property
    def next_index(self) -> int:
        return self._next_index

    def _changed(self) -> None:
        if self._on_change:
            self._on_change()

    def _new_id(self, index: int) -> str:
        return f"{self.chain.value}-{index}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

    # ------------------------- 创建与查询 ------------------------- #
    def create_next(self, mnemonic: str) -> Wallet:
        """派生下一个 index 的钱包并登记，初始状态为 LOADING。"""
        index = self._next_index
        keypair = derive_from_mnemonic(mnemonic, self.chain, index)
        # 派生成功后才占用 index，失败时计数器保持不变
        self._next_index = index + 1

        wallet = Wallet(
            id=self._new_id(index),
            index=index,
            chain_type=self.chain,
            address=keypair.address,
            derivation_path=keypair.derivation_path,
            private_key=keypair.private_key,
            sync_status=SyncStatus.LOADING,
        )
        self._wallets.append(wallet)
        logger.info("created %s wallet #%d %s", self.chain.value, index, wallet.address)
        self._changed()
        return wallet

    def get(self, wallet_id: str) -> Optional[Wallet]:
        for w in self._wallets:
            if w.id == wallet_id:
                return w
        return None

    def wallets(self) -> List[Wallet]:
        return list(self._wallets)

    # ------------------------- 按 id 打补丁 ------------------------- #
    # 目标 id 不存在时静默忽略：钱包可能已被并发的重置清除

    def update_balance(self, wallet_id: str, value: float) -> bool:
        wallet = self.get(wallet_id)
        if wallet is None:
            return False
        wallet.balance = value
        wallet.last_updated = time.time()
        self._changed()
        return True

    def update_transaction_count(self, wallet_id: str, value: int) -> bool:
        wallet = self.get(wallet_id)
        if wallet is None:
            return False
        wallet.transaction_count = value
        wallet.last_updated = time.time()
        self._changed()
        return True

    def mark_sync_status(self, wallet_id: str, status: SyncStatus, error: Optional[str] = None) -> bool:
        wallet = self.get(wallet_id)
        if wallet is None:
            return False
        wallet.sync_status = status
        if status is SyncStatus.ERROR:
            wallet.last_error = error
        elif status is SyncStatus.IDLE:
            wallet.last_error = None
        wallet.last_updated = time.time()
        self._changed()
        return True

    # ------------------------- 生命周期 ------------------------- #
    def reset(self) -> None:
        """清空钱包与 index 计数器。"""
        self._wallets = []
        self._next_index = 0
        logger.info("reset %s registry", self.chain.value)
        self._changed()

    def to_dict(self) -> Dict:
        return {
            "next_index": self._next_index,
            "wallets": [w.to_dict() for w in self._wallets],
        }

    def load_dict(self, data: Dict) -> None:
        """整体替换内容，用于启动时从持久化状态还原。"""
        self._wallets = [Wallet.from_dict(w) for w in data.get("wallets", [])]
        recorded = int(data.get("next_index", 0))
        highest = max((w.index for w in self._wallets), default=-1)
        self._next_index = max(recorded, highest + 1)
