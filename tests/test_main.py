import pytest

from config import ENV_ETHEREUM_RPC, ENV_SOLANA_RPC, STATE_NAMESPACE
from main import main
from state_store import JsonFileStore
from wallet_service import validate_mnemonic


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv(ENV_SOLANA_RPC, "https://api.devnet.solana.com")
    monkeypatch.setenv(ENV_ETHEREUM_RPC, "https://rpc.sepolia.org")
    return tmp_path / "none.env"


def test_new_then_list_and_reset(env, tmp_path, capsys):
    state_file = tmp_path / "state.json"
    base = ["--state", str(state_file), "--env-file", str(env)]

    assert main(base + ["new"]) == 0
    saved = JsonFileStore(state_file).get(STATE_NAMESPACE)
    assert validate_mnemonic(saved["mnemonic"])

    capsys.readouterr()
    assert main(base + ["list"]) == 0
    out = capsys.readouterr().out
    assert saved["mnemonic"] not in out
    assert "[solana] 0" in out

    assert main(base + ["list", "--show-keys"]) == 0
    assert saved["mnemonic"] in capsys.readouterr().out

    assert main(base + ["reset"]) == 0
    assert JsonFileStore(state_file).get(STATE_NAMESPACE)["mnemonic"] == ""


def test_missing_endpoints_abort_startup(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv(ENV_SOLANA_RPC, "x")
    monkeypatch.delenv(ENV_SOLANA_RPC)
    monkeypatch.setenv(ENV_ETHEREUM_RPC, "https://rpc.sepolia.org")
    code = main(["--state", str(tmp_path / "s.json"), "--env-file", str(tmp_path / "none.env"), "list"])
    assert code == 2
    assert ENV_SOLANA_RPC in capsys.readouterr().err


def test_corrupt_state_file_aborts_without_overwrite(env, tmp_path, capsys):
    state_file = tmp_path / "state.json"
    state_file.write_text("{truncated", encoding="utf-8")
    assert main(["--state", str(state_file), "--env-file", str(env), "new"]) == 2
    assert state_file.read_text(encoding="utf-8") == "{truncated"
    assert str(state_file) in capsys.readouterr().err
