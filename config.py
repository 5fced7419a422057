"""全局配置，提供链类型、派生路径模板、单位常量与 RPC 端点加载。"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from errors import ConfigError


class ChainType(str, Enum):
    """链类型枚举，钱包两种变体通过该标签区分。"""

    SOLANA = "solana"
    ETHEREUM = "ethereum"


@dataclass
class NetworkConfig:
    """单条链的网络配置，核心模块只接收已校验过的配置。"""

    name: str
    chain_type: ChainType
    rpc_url: str
    is_testnet: bool = True


@dataclass
class Endpoints:
    """两条链的 RPC 端点集合。"""

    solana: NetworkConfig
    ethereum: NetworkConfig

    def for_chain(self, chain: ChainType) -> NetworkConfig:
        if chain is ChainType.SOLANA:
            return self.solana
        if chain is ChainType.ETHEREUM:
            return self.ethereum
        raise ValueError(f"未支持的链类型: {chain}")


# 每个账户一个硬化节点，index 位于 account 层
DERIVATION_PATH_TEMPLATE_SOL = "m/44'/501'/{index}'/0'"
DERIVATION_PATH_TEMPLATE_EVM = "m/44'/60'/{index}'/0'"

# 链上最小单位换算
LAMPORTS_PER_SOL = 1_000_000_000
WEI_PER_ETH = 10**18

# 代币发行流程
FEE_BUFFER_LAMPORTS = 1_000_000  # 0.001 SOL
MAX_TOKEN_DECIMALS = 18
DEFAULT_AIRDROP_SOL = 2
AIRDROP_SETTLE_DELAY = 2.0
FUNDING_CONFIRM_TIMEOUT = 60.0

# getSignaturesForAddress 单次最多返回条数
SIGNATURE_PAGE_LIMIT = 1000

# 状态持久化位置
STATE_FILE = Path("wallet_state.json")
STATE_NAMESPACE = "crypto-wallet-root"

# 环境变量名
ENV_SOLANA_RPC = "SOLANA_RPC_URL"
ENV_ETHEREUM_RPC = "ETHEREUM_RPC_URL"


def validate_rpc_url(url: Optional[str]) -> bool:
    """基础格式校验 RPC URL。"""
    if not url:
        return False
    return url.startswith("http://") or url.startswith("https://")


def _require_url(var_name: str) -> str:
    url = (os.getenv(var_name) or "").strip()
    if not url:
        raise ConfigError(f"缺少环境变量 {var_name}")
    if not validate_rpc_url(url):
        raise ConfigError(f"{var_name} 格式不正确，请使用 http/https 开头")
    return url


def load_endpoints(env_file: Optional[Path] = None) -> Endpoints:
    """
    从环境变量（及可选的 .env 文件）读取两条链的 RPC 端点。

    任一端点缺失或格式错误都视为启动失败，抛出 ConfigError。
    """
    if env_file is not None:
        load_dotenv(dotenv_path=env_file, override=True)
    else:
        load_dotenv()

    return Endpoints(
        solana=NetworkConfig(
            name="Solana Devnet",
            chain_type=ChainType.SOLANA,
            rpc_url=_require_url(ENV_SOLANA_RPC),
        ),
        ethereum=NetworkConfig(
            name="Ethereum",
            chain_type=ChainType.ETHEREUM,
            rpc_url=_require_url(ENV_ETHEREUM_RPC),
        ),
    )
