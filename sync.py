"""钱包余额与交易数的异步同步协调器。"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from config import ChainType
from errors import WalletError
from gateway import ChainGateway
from models import SyncStatus, Wallet
from registry import WalletRegistry
from state_store import AppState

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    wallet_id: str
    balance_error: Optional[str] = None
    transaction_count_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.balance_error is None and self.transaction_count_error is None


class WalletSyncCoordinator:
    """
    为每个钱包并发发起一次余额请求和一次交易数请求，结果按 id 写回登记表。

    两个请求互不影响：余额失败不阻止交易数更新，反之亦然。sync_status
    只反映余额同步结果。同一钱包的重叠刷新不做版本校验，最后完成的写入生效。
    """

    def __init__(self, state: AppState, gateways: Dict[ChainType, ChainGateway]) -> None:
        self.state = state
        self.gateways = gateways
        self._background: Set[asyncio.Task] = set()

    def _gateway(self, chain: ChainType) -> ChainGateway:
        try:
            return self.gateways[chain]
        except KeyError:
            raise ValueError(f"未配置 {chain.value} 网关") from None

    async def _sync_balance(self, registry: WalletRegistry, wallet_id: str, address: str, outcome: SyncOutcome) -> None:
        try:
            balance = await self._gateway(registry.chain).get_balance(address)
        except WalletError as exc:
            outcome.balance_error = str(exc)
            logger.warning("balance sync failed for %s: %s", wallet_id, exc)
            registry.mark_sync_status(wallet_id, SyncStatus.ERROR, str(exc))
            return
        except Exception as exc:
            # 未归类的异常照常上抛，但钱包必须先离开 LOADING
            outcome.balance_error = repr(exc)
            registry.mark_sync_status(wallet_id, SyncStatus.ERROR, repr(exc))
            raise
        if registry.update_balance(wallet_id, balance):
            registry.mark_sync_status(wallet_id, SyncStatus.IDLE)
        else:
            logger.debug("dropping balance for vanished wallet %s", wallet_id)

    async def _sync_transaction_count(
        self, registry: WalletRegistry, wallet_id: str, address: str, outcome: SyncOutcome
    ) -> None:
        try:
            count = await self._gateway(registry.chain).get_transaction_count(address)
        except WalletError as exc:
            outcome.transaction_count_error = str(exc)
            logger.warning("transaction count sync failed for %s: %s", wallet_id, exc)
            return
        if not registry.update_transaction_count(wallet_id, count):
            logger.debug("dropping transaction count for vanished wallet %s", wallet_id)

    async def sync_wallet(self, wallet_id: str) -> SyncOutcome:
        """刷新单个钱包；钱包不存在时直接返回。"""
        outcome = SyncOutcome(wallet_id)
        registry = self.state.registry_for(wallet_id)
        if registry is None:
            return outcome
        wallet = registry.get(wallet_id)
        registry.mark_sync_status(wallet_id, SyncStatus.LOADING)

        # 两个请求都结束后再上抛未归类的异常
        results = await asyncio.gather(
            self._sync_balance(registry, wallet_id, wallet.address, outcome),
            self._sync_transaction_count(registry, wallet_id, wallet.address, outcome),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return outcome

    async def _sync_many(self, wallet_ids: List[str]) -> List[SyncOutcome]:
        """并行刷新多个钱包，单个钱包的异常不影响其他钱包的结果。"""
        results = await asyncio.gather(*(self.sync_wallet(wid) for wid in wallet_ids), return_exceptions=True)
        outcomes: List[SyncOutcome] = []
        for wallet_id, result in zip(wallet_ids, results):
            if isinstance(result, Exception):
                logger.error("sync crashed for %s: %r", wallet_id, result)
                result = SyncOutcome(wallet_id, balance_error=repr(result))
            elif isinstance(result, BaseException):
                raise result
            outcomes.append(result)
        return outcomes

    async def sync_pending(self) -> List[SyncOutcome]:
        """并行刷新所有处于 LOADING 的钱包，钱包之间不保证顺序。"""
        pending = [
            w.id
            for reg in self.state.registries.values()
            for w in reg
            if w.sync_status is SyncStatus.LOADING
        ]
        return await self._sync_many(pending)

    async def sync_all(self) -> List[SyncOutcome]:
        wallet_ids = [w.id for reg in self.state.registries.values() for w in reg]
        return await self._sync_many(wallet_ids)

    async def create_and_sync(self, chain: ChainType) -> Wallet:
        """派生下一个钱包并立即发起首次同步。"""
        wallet = self.state.create_wallet(chain)
        await self.sync_wallet(wallet.id)
        return self.state.find_wallet(wallet.id) or wallet

    def schedule_refresh(self, wallet_id: str, delay: float = 0.0) -> asyncio.Task:
        """延迟后在后台刷新一次，尽力而为，不与任何链上确认挂钩。"""

        async def _later() -> None:
            if delay > 0:
                await asyncio.sleep(delay)
            try:
                await self.sync_wallet(wallet_id)
            except Exception:
                logger.exception("background refresh of %s failed", wallet_id)

        task = asyncio.get_running_loop().create_task(_later())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def drain(self) -> None:
        """等待所有后台刷新结束。"""
        if self._background:
            await asyncio.gather(*list(self._background))
