"""助记词生成与分层确定性派生，支持 Solana（Ed25519）与 Ethereum（secp256k1）。"""

import hashlib
import hmac
import logging
from typing import Tuple

from base58 import b58encode
from eth_account import Account
from eth_keys import constants as eth_constants
from eth_keys import keys as eth_keys
from mnemonic import Mnemonic
from nacl.signing import SigningKey

from config import ChainType, DERIVATION_PATH_TEMPLATE_EVM, DERIVATION_PATH_TEMPLATE_SOL
from errors import DerivationError, ValidationError
from models import DerivedKeypair

logger = logging.getLogger(__name__)

# 使用标准 BIP39 英文词表的生成器
MNEMONIC_GEN = Mnemonic("english")

# 曲线阶常量
SECP256K1_N = eth_constants.SECPK1_N

HARDENED_OFFSET = 0x80000000

WORD_COUNT_STRENGTH = {12: 128, 15: 160, 18: 192, 21: 224, 24: 256}


# ------------------------- 助记词 ------------------------- #
def generate_mnemonic(num_words: int = 12) -> str:
    """使用标准 BIP39 词表生成助记词，熵来自系统安全随机源。"""
    if num_words not in WORD_COUNT_STRENGTH:
        raise ValidationError("助记词长度仅支持 12/15/18/21/24")
    return MNEMONIC_GEN.generate(strength=WORD_COUNT_STRENGTH[num_words])


def validate_mnemonic(mnemonic: str) -> bool:
    """校验词表与校验位。"""
    if not mnemonic:
        return False
    try:
        return MNEMONIC_GEN.check(mnemonic)
    except (ValueError, LookupError):
        return False


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """通过 BIP39 标准将助记词转换为 64 字节种子，纯函数。"""
    if not mnemonic or not mnemonic.strip():
        raise DerivationError("助记词为空，请先生成助记词")
    return MNEMONIC_GEN.to_seed(mnemonic, passphrase)


# ------------------------- secp256k1 (BIP32) ------------------------- #
def _derive_child(private_key: bytes, chain_code: bytes, index: int, hardened: bool) -> Tuple[bytes, bytes]:
    """执行单步 BIP32 子密钥派生（secp256k1）。"""
    if hardened:
        data = b"\x00" + private_key + index.to_bytes(4, "big")
    else:
        pub_compressed = eth_keys.PrivateKey(private_key).public_key.to_compressed_bytes()
        data = pub_compressed + index.to_bytes(4, "big")
    I = hmac.new(chain_code, data, hashlib.sha512).digest()
    Il, Ir = I[:32], I[32:]
    child_int = (int.from_bytes(Il, "big") + int.from_bytes(private_key, "big")) % SECP256K1_N
    child_key = child_int.to_bytes(32, "big")
    return child_key, Ir


def _derive_private_key_from_path(seed: bytes, path: str) -> bytes:
    """从种子和路径计算最终 secp256k1 私钥。"""
    I = hmac.new(b"Bitcoin seed", seed, hashlib.sha512).digest()
    priv, chain = I[:32], I[32:]
    segments = path.split("/")[1:]  # 跳过 m
    for seg in segments:
        hardened = seg.endswith("'")
        index = int(seg.rstrip("'"))
        if hardened:
            index += HARDENED_OFFSET
        priv, chain = _derive_child(priv, chain, index, hardened)
    return priv


# ------------------------- Ed25519 (SLIP-0010) ------------------------- #
def _slip10_derive_ed25519(seed: bytes, path: str) -> bytes:
    """依据 SLIP-0010 派生 ed25519 私钥种子；ed25519 只支持硬化，未加 ' 的段也按硬化处理。"""
    I = hmac.new(b"ed25519 seed", seed, hashlib.sha512).digest()
    key, chain_code = I[:32], I[32:]
    segments = path.split("/")[1:]  # 跳过 m
    for seg in segments:
        if not seg:
            continue
        index = int(seg.rstrip("'")) | HARDENED_OFFSET
        data = b"\x00" + key + index.to_bytes(4, "big")
        I = hmac.new(chain_code, data, hashlib.sha512).digest()
        key, chain_code = I[:32], I[32:]
    return key


# ------------------------- 链级派生 ------------------------- #
def _derive_solana(seed: bytes, index: int) -> DerivedKeypair:
    """Base58 公钥 + 64 字节 (seed || pubkey) 私钥的十六进制。"""
    path = DERIVATION_PATH_TEMPLATE_SOL.format(index=index)
    signing_key = SigningKey(_slip10_derive_ed25519(seed, path))
    verify_key = signing_key.verify_key
    secret_key_bytes = signing_key.encode() + verify_key.encode()
    return DerivedKeypair(
        chain_type=ChainType.SOLANA,
        index=index,
        derivation_path=path,
        address=b58encode(bytes(verify_key)).decode("utf-8"),
        private_key=secret_key_bytes.hex(),
    )


def _derive_ethereum(seed: bytes, index: int) -> DerivedKeypair:
    """EIP-55 校验和地址 + 0x 前缀的 32 字节私钥。"""
    path = DERIVATION_PATH_TEMPLATE_EVM.format(index=index)
    priv_key_bytes = _derive_private_key_from_path(seed, path)
    acct = Account.from_key(priv_key_bytes)
    return DerivedKeypair(
        chain_type=ChainType.ETHEREUM,
        index=index,
        derivation_path=path,
        address=acct.address,
        private_key="0x" + priv_key_bytes.hex(),
    )


def derive_keypair(seed: bytes, chain: ChainType, index: int) -> DerivedKeypair:
    """
    按链的 BIP44 路径派生第 index 个账户的密钥对。

    相同 (seed, chain, index) 总是得到逐字节相同的结果，这是找回私钥的唯一依据。

    :param seed: BIP39 种子
    :param chain: 目标链
    :param index: 账户序号，需在硬化范围内
    """
    if not seed:
        raise DerivationError("种子为空，无法派生")
    if not 0 <= index < HARDENED_OFFSET:
        raise DerivationError(f"账户序号超出硬化范围: {index}")

    if chain is ChainType.SOLANA:
        keypair = _derive_solana(seed, index)
    elif chain is ChainType.ETHEREUM:
        keypair = _derive_ethereum(seed, index)
    else:  # pragma: no cover - 理论不会触发
        raise DerivationError(f"未支持的链类型: {chain}")

    logger.debug("derived %s #%d -> %s", chain.value, index, keypair.address)
    return keypair


def derive_from_mnemonic(mnemonic: str, chain: ChainType, index: int) -> DerivedKeypair:
    """每次派生都从助记词重新计算种子，种子本身不单独保存。"""
    return derive_keypair(mnemonic_to_seed(mnemonic), chain, index)
