import asyncio
from typing import Dict, List, Optional

import pytest
from solana.rpc.core import UnconfirmedTxError

from config import ChainType, NetworkConfig
from gateway import ChainGateway, FundingResult, SolanaGateway
from state_store import AppState, MemoryStore

# 标准 BIP39 测试助记词 - 仅用于测试
TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)


class FakeChainGateway(ChainGateway):
    """可编程的链网关：结果可以是数值、异常或协程函数。"""

    def __init__(self, chain: ChainType) -> None:
        super().__init__(NetworkConfig(name=f"fake-{chain.value}", chain_type=chain, rpc_url="http://localhost"))
        self.chain = chain
        self.balance = 0.0
        self.transaction_count = 0
        self.balance_handler = None
        self.count_handler = None
        self.calls: List[tuple] = []

    async def _resolve(self, value, address):
        if callable(value):
            value = await value(address)
        if isinstance(value, Exception):
            raise value
        return value

    async def get_balance(self, address: str) -> float:
        self.calls.append(("get_balance", address))
        return await self._resolve(self.balance_handler or self.balance, address)

    async def get_transaction_count(self, address: str) -> int:
        self.calls.append(("get_transaction_count", address))
        return await self._resolve(self.count_handler or self.transaction_count, address)


class FakeSolanaGateway(SolanaGateway):
    """覆盖全部链上原语的 Solana 网关，发行流程沿用真实的 create_token。"""

    def __init__(self) -> None:
        super().__init__(
            NetworkConfig(name="fake-devnet", chain_type=ChainType.SOLANA, rpc_url="http://localhost"),
            client=object(),
        )
        self.mint_rent = 1_400_000
        self.account_rent = 2_000_000
        self.lamports = 5_000_000
        self.mint_decimals: Dict[str, int] = {}
        self.failures: Dict[str, Exception] = {}
        self.owned_accounts = []
        self.funding: Optional[FundingResult] = None
        self.calls: List[tuple] = []
        self._mint_counter = 0

    def _maybe_fail(self, name: str) -> None:
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    async def get_balance_lamports(self, address: str) -> int:
        self.calls.append(("get_balance_lamports", address))
        self._maybe_fail("get_balance_lamports")
        return self.lamports

    async def get_balance(self, address: str) -> float:
        return (await self.get_balance_lamports(address)) / 1_000_000_000

    async def get_transaction_count(self, address: str) -> int:
        self.calls.append(("get_transaction_count", address))
        return 0

    async def minimum_rent_for_mint(self) -> int:
        self.calls.append(("minimum_rent_for_mint",))
        return self.mint_rent

    async def minimum_rent_for_token_account(self) -> int:
        self.calls.append(("minimum_rent_for_token_account",))
        return self.account_rent

    async def create_mint(self, payer, decimals: int, freeze_authority: bool) -> str:
        self.calls.append(("create_mint", decimals, freeze_authority))
        self._maybe_fail("create_mint")
        self._mint_counter += 1
        mint = f"Mint{self._mint_counter}"
        self.mint_decimals[mint] = decimals
        return mint

    async def get_or_create_associated_account(self, payer, mint: str, owner: str) -> str:
        self.calls.append(("get_or_create_associated_account", mint, owner))
        self._maybe_fail("get_or_create_associated_account")
        return f"ATA-{mint}-{owner[:4]}"

    async def mint_to(self, payer, mint: str, account: str, amount: int) -> str:
        self.calls.append(("mint_to", mint, account, amount))
        self._maybe_fail("mint_to")
        return "sig-mint"

    async def get_mint_decimals(self, payer, mint: str) -> int:
        self.calls.append(("get_mint_decimals", mint))
        self._maybe_fail("get_mint_decimals")
        return self.mint_decimals[mint]

    async def fetch_owned_token_accounts(self, address: str):
        self.calls.append(("fetch_owned_token_accounts", address))
        self._maybe_fail("fetch_owned_token_accounts")
        return list(self.owned_accounts)

    async def request_test_funds(self, address: str, amount: float) -> FundingResult:
        self.calls.append(("request_test_funds", address, amount))
        self._maybe_fail("request_test_funds")
        self.lamports += int(amount * 1_000_000_000)
        return self.funding or FundingResult(signature="sig-airdrop", confirmed_balance=self.lamports / 1e9)

    async def close(self) -> None:
        return None

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]


class UnconfirmedMintGateway(FakeSolanaGateway):
    """create_mint 走真实的异常归类，发送后确认超时。"""

    async def create_mint(self, payer, decimals: int, freeze_authority: bool) -> str:
        self.calls.append(("create_mint", decimals, freeze_authority))

        async def send():
            raise UnconfirmedTxError("Unable to confirm transaction 5xyz")

        return await self._rpc("createMint", send())


@pytest.fixture
def state() -> AppState:
    s = AppState(MemoryStore())
    s.mnemonic = TEST_MNEMONIC
    return s


@pytest.fixture
def sol_gateway() -> FakeChainGateway:
    return FakeChainGateway(ChainType.SOLANA)


@pytest.fixture
def eth_gateway() -> FakeChainGateway:
    return FakeChainGateway(ChainType.ETHEREUM)


@pytest.fixture
def token_gateway() -> FakeSolanaGateway:
    return FakeSolanaGateway()


async def settle() -> None:
    """让出若干轮事件循环，使已创建的任务跑到各自的等待点。"""
    for _ in range(5):
        await asyncio.sleep(0)


