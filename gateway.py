"""链网关：把余额、交易数、测试币与 SPL 代币操作统一为链无关的异步接口。"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional, Union

import aiohttp
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException, TransactionExpiredBlockheightExceededError, UnconfirmedTxError
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.async_client import AsyncToken
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import get_associated_token_address
from web3 import AsyncWeb3
from web3.exceptions import ProviderConnectionError, TimeExhausted, Web3Exception
from web3.providers import AsyncHTTPProvider

from config import (
    FUNDING_CONFIRM_TIMEOUT,
    LAMPORTS_PER_SOL,
    SIGNATURE_PAGE_LIMIT,
    WEI_PER_ETH,
    ChainType,
    Endpoints,
    NetworkConfig,
)
from errors import FundingError, NetworkError, ProtocolError, ValidationError
from models import CreateTokenParams, TokenRecord, UserTokenBalance
from token_workflow import TokenWorkflow

logger = logging.getLogger(__name__)


# ------------------------- 单位换算 ------------------------- #
def lamports_to_sol(lamports: int) -> float:
    """lamports -> SOL（1e9）。"""
    return float(Decimal(int(lamports)) / Decimal(LAMPORTS_PER_SOL))


def sol_to_lamports(amount: float) -> int:
    return int(Decimal(str(amount)) * LAMPORTS_PER_SOL)


def wei_to_eth(wei: Union[int, str]) -> float:
    """wei -> ETH（1e18），同时接受 JSON-RPC 返回的 0x 十六进制字符串。"""
    if isinstance(wei, str):
        wei = int(wei, 16) if wei.lower().startswith("0x") else int(wei)
    return float(Decimal(wei) / Decimal(WEI_PER_ETH))


def keypair_from_hex(private_key: str) -> Keypair:
    """由 64 字节十六进制私钥还原 Solana 签名密钥对。"""
    try:
        return Keypair.from_bytes(bytes.fromhex(private_key))
    except ValueError as exc:
        raise ValidationError("Solana 私钥格式不正确") from exc


def _pubkey(address: str) -> Pubkey:
    try:
        return Pubkey.from_string(address)
    except ValueError as exc:
        raise ValidationError(f"无效的 Solana 地址: {address}") from exc


@dataclass
class FundingResult:
    signature: str
    confirmed_balance: float


class ChainGateway(ABC):
    """
    远程调用的统一契约。

    每个操作可能抛出 NetworkError（暂时性，调用方可重试）或
    ProtocolError（响应异常，不自动重试）。
    """

    chain: ChainType

    def __init__(self, network: NetworkConfig) -> None:
        self.network = network

    @abstractmethod
    async def get_balance(self, address: str) -> float:
        """以原生单位（SOL / ETH）返回余额。"""

    @abstractmethod
    async def get_transaction_count(self, address: str) -> int:
        ...

    async def request_test_funds(self, address: str, amount: float) -> FundingResult:
        raise FundingError(f"{self.network.name} 不支持测试币请求")

    async def close(self) -> None:
        return None


# ------------------------- Solana ------------------------- #
class SolanaGateway(ChainGateway):
    """基于 solana-py AsyncClient 的 Solana 网关，确认级别为 confirmed。"""

    chain = ChainType.SOLANA

    def __init__(
        self,
        network: NetworkConfig,
        client: Optional[AsyncClient] = None,
        confirm_timeout: float = FUNDING_CONFIRM_TIMEOUT,
    ) -> None:
        super().__init__(network)
        self.client = client or AsyncClient(network.rpc_url, commitment=Confirmed)
        self.confirm_timeout = confirm_timeout

    async def _rpc(self, method: str, call: Awaitable[Any]) -> Any:
        """执行一次 RPC 调用并把底层异常归类。"""
        try:
            return await call
        except RPCException as exc:
            raise ProtocolError(f"{method} 返回错误: {exc}") from exc
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as exc:
            # 交易已发出但未在期限内确认，链上结果未知
            raise NetworkError(f"{method} 确认超时: {exc}") from exc
        except (SolanaRpcException, asyncio.TimeoutError, OSError) as exc:
            raise NetworkError(f"{method} 请求失败: {exc}") from exc
        except (ValueError, TypeError, KeyError) as exc:
            raise ProtocolError(f"{method} 响应格式异常: {exc}") from exc

    async def get_balance_lamports(self, address: str) -> int:
        resp = await self._rpc("getBalance", self.client.get_balance(_pubkey(address)))
        value = getattr(resp, "value", None)
        if not isinstance(value, int):
            raise ProtocolError(f"getBalance 响应缺少数值: {resp!r}")
        return value

    async def get_balance(self, address: str) -> float:
        return lamports_to_sol(await self.get_balance_lamports(address))

    async def get_transaction_count(self, address: str) -> int:
        resp = await self._rpc(
            "getSignaturesForAddress",
            self.client.get_signatures_for_address(_pubkey(address), limit=SIGNATURE_PAGE_LIMIT),
        )
        if resp.value is None:
            return 0
        return len(resp.value)

    async def request_test_funds(self, address: str, amount: float) -> FundingResult:
        """申请空投并等待 confirmed，超时或被拒绝时抛出 FundingError。"""
        pubkey = _pubkey(address)
        try:
            resp = await self._rpc(
                "requestAirdrop",
                self.client.request_airdrop(pubkey, sol_to_lamports(amount), commitment=Confirmed),
            )
        except ProtocolError as exc:
            raise FundingError(f"空投请求被拒绝: {exc}") from exc
        signature = resp.value
        logger.info("airdrop %s SOL -> %s submitted: %s", amount, address, signature)

        try:
            await asyncio.wait_for(
                self.client.confirm_transaction(signature, Confirmed),
                timeout=self.confirm_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise FundingError(f"空投确认超时（{self.confirm_timeout:.0f}s）: {signature}") from exc
        except (RPCException, UnconfirmedTxError, SolanaRpcException) as exc:
            raise FundingError(f"空投未能确认: {exc}") from exc

        balance = await self.get_balance(address)
        return FundingResult(signature=str(signature), confirmed_balance=balance)

    # ------------------------- SPL 代币原语 ------------------------- #
    async def minimum_rent_for_mint(self) -> int:
        return await self._rpc(
            "getMinimumBalanceForRentExemption",
            AsyncToken.get_min_balance_rent_for_exempt_for_mint(self.client),
        )

    async def minimum_rent_for_token_account(self) -> int:
        return await self._rpc(
            "getMinimumBalanceForRentExemption",
            AsyncToken.get_min_balance_rent_for_exempt_for_account(self.client),
        )

    async def create_mint(self, payer: Keypair, decimals: int, freeze_authority: bool) -> str:
        """创建新的 mint 账户，payer 为铸币权限，按需设为冻结权限。"""
        token = await self._rpc(
            "createMint",
            AsyncToken.create_mint(
                conn=self.client,
                payer=payer,
                mint_authority=payer.pubkey(),
                decimals=decimals,
                program_id=TOKEN_PROGRAM_ID,
                freeze_authority=payer.pubkey() if freeze_authority else None,
            ),
        )
        return str(token.pubkey)

    async def get_or_create_associated_account(self, payer: Keypair, mint: str, owner: str) -> str:
        mint_key, owner_key = _pubkey(mint), _pubkey(owner)
        ata = get_associated_token_address(owner_key, mint_key)
        info = await self._rpc("getAccountInfo", self.client.get_account_info(ata))
        if info.value is not None:
            return str(ata)
        token = AsyncToken(self.client, mint_key, TOKEN_PROGRAM_ID, payer)
        created = await self._rpc("createAssociatedTokenAccount", token.create_associated_token_account(owner_key))
        return str(created)

    async def mint_to(self, payer: Keypair, mint: str, account: str, amount: int) -> str:
        token = AsyncToken(self.client, _pubkey(mint), TOKEN_PROGRAM_ID, payer)
        resp = await self._rpc(
            "mintTo",
            token.mint_to(
                dest=_pubkey(account),
                mint_authority=payer,
                amount=amount,
                opts=TxOpts(skip_confirmation=False, preflight_commitment=Confirmed),
            ),
        )
        return str(resp.value)

    async def get_mint_decimals(self, payer: Keypair, mint: str) -> int:
        token = AsyncToken(self.client, _pubkey(mint), TOKEN_PROGRAM_ID, payer)
        info = await self._rpc("getMint", token.get_mint_info())
        return int(info.decimals)

    async def fetch_owned_token_accounts(self, address: str) -> List[UserTokenBalance]:
        """列出余额非零的 SPL 代币账户，顺序与节点返回一致。"""
        resp = await self._rpc(
            "getTokenAccountsByOwner",
            self.client.get_token_accounts_by_owner_json_parsed(
                _pubkey(address), TokenAccountOpts(program_id=TOKEN_PROGRAM_ID)
            ),
        )
        balances: List[UserTokenBalance] = []
        for item in resp.value or []:
            try:
                info = item.account.data.parsed["info"]
                amount = str(info["tokenAmount"]["amount"])
                decimals = int(info["tokenAmount"]["decimals"])
                mint = str(info["mint"])
            except (AttributeError, KeyError, TypeError) as exc:
                raise ProtocolError(f"代币账户数据格式异常: {exc}") from exc
            if amount == "0":
                continue
            balances.append(
                UserTokenBalance(
                    mint_address=mint,
                    token_account=str(item.pubkey),
                    raw_balance=amount,
                    decimals=decimals,
                )
            )
        return balances

    async def create_token(
        self, payer: Keypair, params: CreateTokenParams, workflow: Optional[TokenWorkflow] = None
    ) -> TokenRecord:
        """跑完整个发行流程（预检、创建 mint、ATA 与首次铸造）。"""
        workflow = workflow or TokenWorkflow(self, payer, params)
        return await workflow.run()

    async def close(self) -> None:
        await self.client.close()


# ------------------------- Ethereum ------------------------- #
class EthereumGateway(ChainGateway):
    """基于 AsyncWeb3 的 Ethereum 网关。"""

    chain = ChainType.ETHEREUM

    def __init__(self, network: NetworkConfig, w3: Optional[AsyncWeb3] = None) -> None:
        super().__init__(network)
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(network.rpc_url))

    @property
    def w3(self) -> AsyncWeb3:
        return self._w3

    async def _rpc(self, method: str, call: Awaitable[Any]) -> Any:
        try:
            return await call
        except (aiohttp.ClientError, ProviderConnectionError, TimeExhausted, asyncio.TimeoutError, OSError) as exc:
            # 包括 HTTP 429 / 5xx 等传输层错误
            raise NetworkError(f"{method} 请求失败: {exc}") from exc
        except (Web3Exception, ValueError, TypeError) as exc:
            raise ProtocolError(f"{method} 返回错误: {exc}") from exc

    @staticmethod
    def _checksum(address: str) -> str:
        try:
            return AsyncWeb3.to_checksum_address(address)
        except ValueError as exc:
            raise ValidationError(f"无效的 Ethereum 地址: {address}") from exc

    async def get_balance(self, address: str) -> float:
        balance_wei = await self._rpc("eth_getBalance", self.w3.eth.get_balance(self._checksum(address)))
        if not isinstance(balance_wei, int):
            raise ProtocolError(f"eth_getBalance 响应异常: {balance_wei!r}")
        return wei_to_eth(balance_wei)

    async def get_transaction_count(self, address: str) -> int:
        count = await self._rpc(
            "eth_getTransactionCount", self.w3.eth.get_transaction_count(self._checksum(address))
        )
        if not isinstance(count, int):
            raise ProtocolError(f"eth_getTransactionCount 响应异常: {count!r}")
        return count

    async def close(self) -> None:
        await self.w3.provider.disconnect()


def build_gateways(endpoints: Endpoints) -> Dict[ChainType, ChainGateway]:
    """按链构建网关，端点已在配置层校验。"""
    return {
        ChainType.SOLANA: SolanaGateway(endpoints.solana),
        ChainType.ETHEREUM: EthereumGateway(endpoints.ethereum),
    }
