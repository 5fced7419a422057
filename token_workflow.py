"""SPL 代币发行流程的线性状态机。

状态顺序为 VALIDATING -> FUNDING_CHECK -> MINT_CREATION ->
(ACCOUNT_CREATION -> MINTING)? -> DONE，任一步骤都可能进入 FAILED。
失败不做补偿：已在链上创建的 mint 不会回滚，残留状态写入 failure_reason。
"""

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from config import FEE_BUFFER_LAMPORTS, LAMPORTS_PER_SOL, MAX_TOKEN_DECIMALS
from errors import InsufficientFundsError, ProtocolError, ValidationError, WalletError
from models import CreateTokenParams, TokenRecord

logger = logging.getLogger(__name__)


class WorkflowState(str, Enum):
    VALIDATING = "validating"
    FUNDING_CHECK = "funding_check"
    MINT_CREATION = "mint_creation"
    ACCOUNT_CREATION = "account_creation"
    MINTING = "minting"
    DONE = "done"
    FAILED = "failed"


def required_lamports(
    mint_rent: int, account_rent: int, initial_supply: int, fee_buffer: int = FEE_BUFFER_LAMPORTS
) -> int:
    """mint 租金 + （有初始供应时）代币账户租金 + 手续费缓冲。"""
    return mint_rent + (account_rent if initial_supply > 0 else 0) + fee_buffer


def check_funding(balance: int, required: int) -> None:
    if balance < required:
        raise InsufficientFundsError(
            required,
            balance,
            f"SOL 余额不足：至少需要 {required / LAMPORTS_PER_SOL} SOL（租金 + 手续费），"
            f"当前仅 {balance / LAMPORTS_PER_SOL} SOL",
        )


def validate_params(params: CreateTokenParams) -> None:
    if not params.name or not params.name.strip():
        raise ValidationError("代币名称不能为空")
    if not params.symbol or not params.symbol.strip():
        raise ValidationError("代币符号不能为空")
    if not isinstance(params.decimals, int) or not 0 <= params.decimals <= MAX_TOKEN_DECIMALS:
        raise ValidationError(f"小数位必须在 0 到 {MAX_TOKEN_DECIMALS} 之间")
    if params.initial_supply < 0:
        raise ValidationError("初始供应量不能为负数")


def base_units(amount: int, decimals: int) -> int:
    return int(amount) * 10**decimals


def _looks_like_insufficient_funds(exc: Exception) -> bool:
    text = str(exc).lower()
    return "insufficient funds" in text or "insufficient lamports" in text or "simulation failed" in text


class TokenWorkflow:
    """
    单次发行请求的状态机。

    gateway 需提供 get_balance_lamports、minimum_rent_for_mint、
    minimum_rent_for_token_account、create_mint、
    get_or_create_associated_account 与 mint_to 几个异步原语。

    :param gateway: Solana 网关
    :param payer: 源钱包的签名密钥对，None 表示未选择钱包
    :param params: 发行参数
    :param on_transition: 状态变化回调
    """

    def __init__(
        self,
        gateway,
        payer,
        params: CreateTokenParams,
        on_transition: Optional[Callable[[WorkflowState], None]] = None,
    ) -> None:
        self.gateway = gateway
        self.payer = payer
        self.params = params
        self.on_transition = on_transition
        self.state = WorkflowState.VALIDATING
        self.history: List[WorkflowState] = [WorkflowState.VALIDATING]
        self.failure_reason: Optional[str] = None
        self.failed_at: Optional[WorkflowState] = None
        self.required: Optional[int] = None
        self.mint_address: Optional[str] = None
        self.token_account: Optional[str] = None

    def _enter(self, state: WorkflowState) -> None:
        self.state = state
        self.history.append(state)
        logger.debug("token workflow -> %s", state.value)
        if self.on_transition:
            self.on_transition(state)

    def fail(self, reason: str) -> None:
        self.failed_at = self.state
        self.failure_reason = reason
        self._enter(WorkflowState.FAILED)
        logger.error("token workflow failed at %s: %s", self.failed_at.value, reason)

    async def run(self) -> TokenRecord:
        params = self.params

        # 1. 参数校验，不发起任何网络请求
        try:
            validate_params(params)
            if self.payer is None:
                raise ValidationError("请选择一个有效的源钱包")
        except ValidationError as exc:
            self.fail(str(exc))
            raise

        payer_address = str(self.payer.pubkey())

        # 2. 资金预检，不足时链上无任何改动
        self._enter(WorkflowState.FUNDING_CHECK)
        try:
            mint_rent = await self.gateway.minimum_rent_for_mint()
            account_rent = (
                await self.gateway.minimum_rent_for_token_account() if params.initial_supply > 0 else 0
            )
            self.required = required_lamports(mint_rent, account_rent, params.initial_supply)
            balance = await self.gateway.get_balance_lamports(payer_address)
            check_funding(balance, self.required)
        except WalletError as exc:
            self.fail(str(exc))
            raise

        # 3. 创建 mint，这一步开始产生链上改动
        self._enter(WorkflowState.MINT_CREATION)
        try:
            self.mint_address = await self.gateway.create_mint(
                self.payer, params.decimals, params.freeze_authority
            )
        except WalletError as exc:
            if isinstance(exc, ProtocolError) and _looks_like_insufficient_funds(exc):
                self.fail(f"交易手续费不足，请先申请空投：{exc}")
                raise InsufficientFundsError(
                    self.required or 0, balance, "SOL 余额不足以支付交易手续费，请先申请空投"
                ) from exc
            self.fail(f"创建 mint 失败，链上可能已部分执行、确认状态未知：{exc}")
            raise
        logger.info("mint created: %s (decimals=%d)", self.mint_address, params.decimals)

        # 4. 关联代币账户 + 首次铸造
        supply = base_units(params.initial_supply, params.decimals)
        if params.initial_supply > 0:
            self._enter(WorkflowState.ACCOUNT_CREATION)
            try:
                self.token_account = await self.gateway.get_or_create_associated_account(
                    self.payer, self.mint_address, payer_address
                )
                self._enter(WorkflowState.MINTING)
                await self.gateway.mint_to(self.payer, self.mint_address, self.token_account, supply)
            except WalletError as exc:
                self.fail(f"mint {self.mint_address} 已创建但流通量为 0（未回滚）：{exc}")
                raise
            logger.info("minted %d base units of %s into %s", supply, self.mint_address, self.token_account)

        self._enter(WorkflowState.DONE)
        return TokenRecord(
            mint_address=self.mint_address,
            name=params.name,
            symbol=params.symbol,
            decimals=params.decimals,
            supply=str(supply),
            freeze_authority=payer_address if params.freeze_authority else None,
            mint_authority=payer_address if params.mint_authority else None,
            created_at=time.time(),
        )
