"""代币发行、追加铸造、空投与代币持仓刷新。"""

import logging
from typing import List, Optional

from config import AIRDROP_SETTLE_DELAY, DEFAULT_AIRDROP_SOL
from errors import ValidationError, WalletError
from gateway import SolanaGateway, keypair_from_hex
from models import AirdropRequest, AirdropStatus, CreateTokenParams, TokenRecord, UserTokenBalance, Wallet
from state_store import AppState
from sync import WalletSyncCoordinator
from token_workflow import TokenWorkflow, base_units

logger = logging.getLogger(__name__)


class TokenWorkflowEngine:
    """
    在 Solana 测试网上驱动代币相关操作。

    成功发行后将 TokenRecord 追加进应用状态；失败时把可读的失败原因
    （包括未回滚的链上残留）写入 state.error 并原样抛出类型化异常。
    """

    def __init__(
        self,
        state: AppState,
        gateway: SolanaGateway,
        sync: Optional[WalletSyncCoordinator] = None,
        settle_delay: float = AIRDROP_SETTLE_DELAY,
    ) -> None:
        self.state = state
        self.gateway = gateway
        self.sync = sync
        self.settle_delay = settle_delay
        self.last_workflow: Optional[TokenWorkflow] = None
        self.last_airdrop: Optional[AirdropRequest] = None
        self.is_creating_token = False
        self.is_fetching_balances = False
        self.is_requesting_airdrop = False

    def _solana_wallet(self, wallet_id: str) -> Optional[Wallet]:
        wallet = self.state.find_wallet(wallet_id)
        return wallet if wallet is not None and wallet.is_solana() else None

    def _require_wallet(self, wallet_id: str) -> Wallet:
        wallet = self._solana_wallet(wallet_id)
        if wallet is None:
            raise ValidationError("未找到所选的 Solana 钱包")
        return wallet

    # ------------------------- 发行 ------------------------- #
    async def create_token(self, wallet_id: Optional[str], params: CreateTokenParams) -> TokenRecord:
        wallet = self._solana_wallet(wallet_id) if wallet_id else None
        workflow = TokenWorkflow(self.gateway, None, params)
        self.last_workflow = workflow

        self.is_creating_token = True
        self.state.clear_error()
        try:
            if wallet is not None:
                try:
                    workflow.payer = keypair_from_hex(wallet.private_key)
                except ValidationError as exc:
                    workflow.fail(str(exc))
                    raise
            record = await self.gateway.create_token(workflow.payer, params, workflow=workflow)
        except WalletError as exc:
            self.state.set_error(workflow.failure_reason or str(exc))
            raise
        finally:
            self.is_creating_token = False

        self.state.add_token(record)
        logger.info("token %s (%s) created, supply=%s", record.symbol, record.mint_address, record.supply)
        return record

    async def mint_more(
        self, wallet_id: str, mint_address: str, amount: int, recipient: Optional[str] = None
    ) -> int:
        """向接收者（缺省为源钱包）的关联账户追加铸造，返回铸造的最小单位数量。"""
        if amount <= 0:
            raise ValidationError("追加铸造数量必须为正整数")
        wallet = self._require_wallet(wallet_id)

        try:
            payer = keypair_from_hex(wallet.private_key)
            decimals = await self.gateway.get_mint_decimals(payer, mint_address)
            account = await self.gateway.get_or_create_associated_account(
                payer, mint_address, recipient or wallet.address
            )
            minted = base_units(amount, decimals)
            await self.gateway.mint_to(payer, mint_address, account, minted)
        except WalletError as exc:
            self.state.set_error(f"追加铸造失败：{exc}")
            raise

        token = self.state.find_token(mint_address)
        if token is not None:
            token.add_supply(minted)
            self.state.persist()
        logger.info("minted %d more base units of %s", minted, mint_address)
        return minted

    # ------------------------- 空投 ------------------------- #
    async def request_airdrop(self, wallet_id: str, amount: float = DEFAULT_AIRDROP_SOL) -> AirdropRequest:
        """
        申请测试币。成功后在固定的等待时间后后台刷新一次钱包余额，
        该刷新与空投确认无关，只是尽力而为。
        """
        wallet = self._require_wallet(wallet_id)
        request = AirdropRequest(wallet_id=wallet.id, address=wallet.address, amount_sol=amount)
        self.last_airdrop = request

        self.is_requesting_airdrop = True
        self.state.clear_error()
        try:
            result = await self.gateway.request_test_funds(wallet.address, amount)
        except WalletError as exc:
            request.status = AirdropStatus.REJECTED
            request.error = str(exc)
            self.state.set_error(f"空投失败：{exc}")
            raise
        finally:
            self.is_requesting_airdrop = False

        request.status = AirdropStatus.FULFILLED
        request.signature = result.signature
        request.new_balance = result.confirmed_balance
        if self.sync is not None:
            self.sync.schedule_refresh(wallet.id, delay=self.settle_delay)
        return request

    # ------------------------- 持仓 ------------------------- #
    async def refresh_portfolio(self, wallet_id: str) -> List[UserTokenBalance]:
        """整体重算代币持仓，再用本地已知的代币记录回填名称与符号。"""
        wallet = self._require_wallet(wallet_id)
        self.is_fetching_balances = True
        try:
            balances = await self.gateway.fetch_owned_token_accounts(wallet.address)
        except WalletError as exc:
            self.state.set_error(f"获取代币余额失败：{exc}")
            raise
        finally:
            self.is_fetching_balances = False

        self.state.set_token_balances(balances)
        for token in self.state.created_tokens:
            self.state.set_token_metadata(token.mint_address, token.name, token.symbol)
        return list(self.state.token_balances)
