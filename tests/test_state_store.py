import os

import pytest

from config import STATE_NAMESPACE, ChainType
from errors import StorageError
from models import SyncStatus, TokenRecord, UserTokenBalance
from state_store import AppState, JsonFileStore, MemoryStore
from wallet_service import validate_mnemonic


def test_json_file_store_roundtrip(tmp_path):
    store = JsonFileStore(tmp_path / "state.json")
    assert store.get("missing") is None
    store.set("a", {"x": 1})
    store.set("b", [1, 2])
    assert JsonFileStore(tmp_path / "state.json").get("a") == {"x": 1}
    store.delete("a")
    assert store.get("a") is None
    assert store.get("b") == [1, 2]


def test_corrupt_state_file_is_never_overwritten(tmp_path):
    path = tmp_path / "state.json"
    path.write_text('{"crypto-wallet-root": {"mnemonic": "abandon', encoding="utf-8")
    store = JsonFileStore(path)

    with pytest.raises(StorageError):
        AppState.load(store)
    with pytest.raises(StorageError):
        store.set(STATE_NAMESPACE, {"mnemonic": ""})

    assert path.read_text(encoding="utf-8") == '{"crypto-wallet-root": {"mnemonic": "abandon'


def test_failed_write_keeps_previous_file(tmp_path, monkeypatch):
    path = tmp_path / "state.json"
    store = JsonFileStore(path)
    store.set("a", {"x": 1})
    before = path.read_text(encoding="utf-8")

    def disk_full(src, dst):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(os, "replace", disk_full)
    with pytest.raises(OSError):
        store.set("a", {"x": 2})

    assert path.read_text(encoding="utf-8") == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]


def test_every_change_is_persisted():
    store = MemoryStore()
    state = AppState(store)
    state.generate_new_mnemonic()
    wallet = state.create_wallet(ChainType.SOLANA)
    saved = store.get(STATE_NAMESPACE)
    assert saved["mnemonic"] == state.mnemonic
    assert saved["wallets"]["solana"]["wallets"][0]["id"] == wallet.id

    state.registry(ChainType.SOLANA).update_balance(wallet.id, 3.5)
    assert store.get(STATE_NAMESPACE)["wallets"]["solana"]["wallets"][0]["balance"] == 3.5


def test_state_rehydrates_verbatim(tmp_path):
    store = JsonFileStore(tmp_path / "state.json")
    state = AppState(store)
    state.generate_new_mnemonic()
    sol = state.create_wallet(ChainType.SOLANA)
    state.create_wallet(ChainType.ETHEREUM)
    state.create_wallet(ChainType.ETHEREUM)
    state.registry(ChainType.SOLANA).mark_sync_status(sol.id, SyncStatus.ERROR, "boom")
    state.add_token(
        TokenRecord(
            mint_address="Mint1", name="Test Token", symbol="TT", decimals=6,
            supply="1000000000", freeze_authority=None, mint_authority=sol.address,
        )
    )
    state.set_token_balances([UserTokenBalance("Mint1", "Acc1", "5", 6)])
    state.select_chain(ChainType.ETHEREUM)

    restored = AppState.load(JsonFileStore(tmp_path / "state.json"))
    assert restored.to_dict() == state.to_dict()
    assert restored.selected_chain is ChainType.ETHEREUM
    assert restored.find_wallet(sol.id).sync_status is SyncStatus.ERROR
    assert restored.registry(ChainType.ETHEREUM).create_next(restored.mnemonic).index == 2


def test_new_mnemonic_replaces_everything():
    state = AppState(MemoryStore())
    first = state.generate_new_mnemonic()
    state.create_wallet(ChainType.SOLANA)
    state.set_error("old")
    second = state.generate_new_mnemonic()
    assert first != second
    assert validate_mnemonic(second)
    assert len(state.registry(ChainType.SOLANA)) == 0
    assert state.error is None


def test_reset_clears_mnemonic_and_wallets():
    store = MemoryStore()
    state = AppState(store)
    state.generate_new_mnemonic()
    state.create_wallet(ChainType.ETHEREUM)
    state.reset()
    saved = store.get(STATE_NAMESPACE)
    assert saved["mnemonic"] == ""
    assert saved["wallets"]["ethereum"] == {"next_index": 0, "wallets": []}


def test_set_token_metadata_only_touches_known_mint(state):
    state.set_token_balances([UserTokenBalance("Mint1", "Acc1", "5", 0)])
    assert state.set_token_metadata("Mint1", "Name", "SYM")
    assert not state.set_token_metadata("Other", "X", "Y")
    assert (state.token_balances[0].name, state.token_balances[0].symbol) == ("Name", "SYM")
