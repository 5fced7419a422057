import pytest

from config import ChainType
from errors import DerivationError, ValidationError
from models import SyncStatus
from registry import WalletRegistry
from wallet_service import derive_from_mnemonic
from conftest import TEST_MNEMONIC


@pytest.mark.parametrize("chain", list(ChainType))
def test_indices_are_dense_and_monotonic(chain):
    reg = WalletRegistry(chain)
    wallets = [reg.create_next(TEST_MNEMONIC) for _ in range(6)]
    assert [w.index for w in wallets] == list(range(6))
    assert reg.next_index == 6
    assert len({w.id for w in wallets}) == 6
    assert all(w.sync_status is SyncStatus.LOADING for w in wallets)
    assert all(w.id.startswith(chain.value) for w in wallets)


def test_reset_restarts_at_zero_and_keeps_ids_unique():
    reg = WalletRegistry(ChainType.SOLANA)
    first = [reg.create_next(TEST_MNEMONIC) for _ in range(3)]
    reg.reset()
    assert len(reg) == 0
    second = [reg.create_next(TEST_MNEMONIC) for _ in range(3)]
    assert [w.index for w in second] == [0, 1, 2]
    assert not {w.id for w in first} & {w.id for w in second}


def test_wallet_keys_rederive_from_mnemonic():
    reg = WalletRegistry(ChainType.ETHEREUM)
    for _ in range(3):
        reg.create_next(TEST_MNEMONIC)
    for w in reg:
        kp = derive_from_mnemonic(TEST_MNEMONIC, ChainType.ETHEREUM, w.index)
        assert (kp.address, kp.private_key) == (w.address, w.private_key)


def test_failed_derivation_does_not_consume_index():
    reg = WalletRegistry(ChainType.SOLANA)
    with pytest.raises(DerivationError):
        reg.create_next("")
    assert reg.next_index == 0
    assert reg.create_next(TEST_MNEMONIC).index == 0


def test_patches_on_unknown_id_are_noops():
    changes = []
    reg = WalletRegistry(ChainType.SOLANA, on_change=lambda: changes.append(1))
    assert reg.update_balance("missing", 1.0) is False
    assert reg.update_transaction_count("missing", 3) is False
    assert reg.mark_sync_status("missing", SyncStatus.ERROR, "x") is False
    assert changes == []


def test_patches_apply_by_id():
    reg = WalletRegistry(ChainType.SOLANA)
    w = reg.create_next(TEST_MNEMONIC)
    assert reg.update_balance(w.id, 1.25)
    assert reg.update_transaction_count(w.id, 4)
    assert reg.mark_sync_status(w.id, SyncStatus.ERROR, "timeout")
    assert (w.balance, w.transaction_count, w.sync_status, w.last_error) == (1.25, 4, SyncStatus.ERROR, "timeout")
    reg.mark_sync_status(w.id, SyncStatus.IDLE)
    assert w.last_error is None


def test_load_dict_never_reuses_indices():
    reg = WalletRegistry(ChainType.SOLANA)
    for _ in range(3):
        reg.create_next(TEST_MNEMONIC)
    data = reg.to_dict()
    data["next_index"] = 1  # 计数器落后于已有钱包时以钱包为准

    restored = WalletRegistry(ChainType.SOLANA)
    restored.load_dict(data)
    assert [w.index for w in restored] == [0, 1, 2]
    assert restored.create_next(TEST_MNEMONIC).index == 3


def test_app_state_requires_mnemonic_before_creating(state):
    state.mnemonic = ""
    with pytest.raises(ValidationError):
        state.create_wallet(ChainType.SOLANA)


def test_reset_wallets_scopes_to_chain(state):
    state.create_wallet(ChainType.SOLANA)
    state.create_wallet(ChainType.ETHEREUM)
    state.reset_wallets(ChainType.SOLANA)
    assert len(state.registry(ChainType.SOLANA)) == 0
    assert len(state.registry(ChainType.ETHEREUM)) == 1
    state.reset_wallets()
    assert len(state.registry(ChainType.ETHEREUM)) == 0
    assert state.registry(ChainType.ETHEREUM).next_index == 0
