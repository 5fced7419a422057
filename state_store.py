"""状态持久化：JSON 文件键值存储与显式的应用状态对象。"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import STATE_FILE, STATE_NAMESPACE, ChainType
from errors import StorageError, ValidationError
from models import TokenRecord, UserTokenBalance, Wallet
from registry import WalletRegistry
from wallet_service import generate_mnemonic

logger = logging.getLogger(__name__)


class JsonFileStore:
    """键 -> JSON 值 的本地存储，整个文件一次读写，内容对存储层不透明。"""

    def __init__(self, path: Path = STATE_FILE) -> None:
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        """文件不存在时视为空；损坏时拒绝读写，避免覆盖唯一的助记词记录。"""
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            logger.error("state file %s unreadable: %s", self.path, exc)
            raise StorageError(f"状态文件 {self.path} 无法读取或已损坏，请手动检查后再试") from exc
        if not isinstance(data, dict):
            raise StorageError(f"状态文件 {self.path} 内容不是 JSON 对象")
        return data

    def _write_all(self, data: Dict[str, Any]) -> None:
        # 先写同目录临时文件再原子替换，中途失败时原文件保持不变
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)


class MemoryStore:
    """进程内存储，接口与 JsonFileStore 相同，测试与一次性会话使用。"""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class AppState:
    """
    应用状态：当前助记词、两条链的钱包登记表与代币记录。

    所有组件都显式接收该对象；任何状态变化后立即整体写入存储。
    """

    def __init__(self, store=None) -> None:
        self.store = store if store is not None else MemoryStore()
        self.mnemonic: str = ""
        self.selected_chain: ChainType = ChainType.SOLANA
        self.error: Optional[str] = None
        self.created_tokens: List[TokenRecord] = []
        self.token_balances: List[UserTokenBalance] = []
        self.registries: Dict[ChainType, WalletRegistry] = {
            chain: WalletRegistry(chain, on_change=self.persist) for chain in ChainType
        }
        self._loading = False

    # ------------------------- 查询 ------------------------- #
    def registry(self, chain: ChainType) -> WalletRegistry:
        return self.registries[chain]

    def find_wallet(self, wallet_id: str) -> Optional[Wallet]:
        for reg in self.registries.values():
            wallet = reg.get(wallet_id)
            if wallet is not None:
                return wallet
        return None

    def registry_for(self, wallet_id: str) -> Optional[WalletRegistry]:
        for reg in self.registries.values():
            if reg.get(wallet_id) is not None:
                return reg
        return None

    def find_token(self, mint_address: str) -> Optional[TokenRecord]:
        for token in self.created_tokens:
            if token.mint_address == mint_address:
                return token
        return None

    # ------------------------- 生命周期 ------------------------- #
    def generate_new_mnemonic(self, num_words: int = 12) -> str:
        """生成新助记词并整体替换，同时清空两条链的钱包与计数器。"""
        mnemonic = generate_mnemonic(num_words)
        self._loading = True
        try:
            self.mnemonic = mnemonic
            for reg in self.registries.values():
                reg.reset()
            self.error = None
        finally:
            self._loading = False
        self.persist()
        logger.info("generated new mnemonic, wallets reset")
        return mnemonic

    def reset(self) -> None:
        """清除助记词与全部钱包。"""
        self._loading = True
        try:
            self.mnemonic = ""
            for reg in self.registries.values():
                reg.reset()
            self.error = None
        finally:
            self._loading = False
        self.persist()

    def reset_wallets(self, chain: Optional[ChainType] = None) -> None:
        """清空指定链（缺省为两条链）的钱包与计数器，助记词保留。"""
        targets = [chain] if chain is not None else list(ChainType)
        for c in targets:
            self.registries[c].reset()

    def create_wallet(self, chain: ChainType) -> Wallet:
        if not self.mnemonic:
            raise ValidationError("请先生成助记词")
        return self.registries[chain].create_next(self.mnemonic)

    def select_chain(self, chain: ChainType) -> None:
        self.selected_chain = chain
        self.persist()

    def set_error(self, message: Optional[str]) -> None:
        self.error = message
        self.persist()

    def clear_error(self) -> None:
        self.set_error(None)

    def add_token(self, token: TokenRecord) -> None:
        self.created_tokens.append(token)
        self.persist()

    def set_token_balances(self, balances: List[UserTokenBalance]) -> None:
        self.token_balances = list(balances)
        self.persist()

    def set_token_metadata(self, mint_address: str, name: str, symbol: str) -> bool:
        for balance in self.token_balances:
            if balance.mint_address == mint_address:
                balance.name = name
                balance.symbol = symbol
                self.persist()
                return True
        return False

    # ------------------------- 序列化 ------------------------- #
    def to_dict(self) -> Dict[str, Any]:
        return {
            "mnemonic": self.mnemonic,
            "selected_chain": self.selected_chain.value,
            "error": self.error,
            "wallets": {chain.value: reg.to_dict() for chain, reg in self.registries.items()},
            "created_tokens": [t.to_dict() for t in self.created_tokens],
            "token_balances": [b.to_dict() for b in self.token_balances],
        }

    def load_dict(self, data: Dict[str, Any]) -> None:
        self._loading = True
        try:
            self.mnemonic = data.get("mnemonic", "")
            self.selected_chain = ChainType(data.get("selected_chain", ChainType.SOLANA.value))
            self.error = data.get("error")
            wallets = data.get("wallets", {})
            for chain, reg in self.registries.items():
                reg.load_dict(wallets.get(chain.value, {}))
            self.created_tokens = [TokenRecord.from_dict(t) for t in data.get("created_tokens", [])]
            self.token_balances = [UserTokenBalance.from_dict(b) for b in data.get("token_balances", [])]
        finally:
            self._loading = False

    def persist(self) -> None:
        if self._loading:
            return
        self.store.set(STATE_NAMESPACE, self.to_dict())

    @classmethod
    def load(cls, store) -> "AppState":
        """从存储中原样还原状态；没有记录时返回空状态。"""
        state = cls(store)
        data = store.get(STATE_NAMESPACE)
        if data:
            state.load_dict(data)
            logger.info(
                "restored state: %d solana / %d ethereum wallets, %d tokens",
                len(state.registries[ChainType.SOLANA]),
                len(state.registries[ChainType.ETHEREUM]),
                len(state.created_tokens),
            )
        return state
