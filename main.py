"""命令行入口：生成助记词、派生并同步钱包、空投与代币发行。"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

from config import DEFAULT_AIRDROP_SOL, STATE_FILE, ChainType, load_endpoints
from errors import ConfigError, StorageError, WalletError
from gateway import ChainGateway, build_gateways
from log_config import configure_logging
from models import CreateTokenParams, Wallet
from state_store import AppState, JsonFileStore
from sync import WalletSyncCoordinator
from token_service import TokenWorkflowEngine

logger = logging.getLogger("dualkey")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="dualkey", description="单助记词派生 Solana / Ethereum 钱包并同步链上状态")
    ap.add_argument("--state", type=Path, default=STATE_FILE, help="状态文件路径")
    ap.add_argument("--env-file", type=Path, default=None, help="包含 RPC 端点的 .env 文件")
    ap.add_argument("-v", "--verbose", action="store_true", help="输出调试日志")
    sub = ap.add_subparsers(dest="command", required=True)

    new = sub.add_parser("new", help="生成新助记词并清空全部钱包")
    new.add_argument("--words", type=int, default=12, choices=[12, 15, 18, 21, 24])

    add = sub.add_parser("add", help="派生下一个钱包并同步余额")
    add.add_argument("chain", choices=[c.value for c in ChainType])
    add.add_argument("--count", type=int, default=1)

    refresh = sub.add_parser("refresh", help="刷新钱包余额与交易数（缺省刷新全部）")
    refresh.add_argument("wallet_id", nargs="?")

    lst = sub.add_parser("list", help="列出钱包")
    lst.add_argument("--show-keys", action="store_true", help="显示私钥（注意保密）")

    airdrop = sub.add_parser("airdrop", help="为 Solana 钱包申请测试币")
    airdrop.add_argument("wallet_id")
    airdrop.add_argument("--amount", type=float, default=DEFAULT_AIRDROP_SOL)

    create = sub.add_parser("create-token", help="发行 SPL 代币")
    create.add_argument("wallet_id")
    create.add_argument("--name", required=True)
    create.add_argument("--symbol", required=True)
    create.add_argument("--decimals", type=int, default=9)
    create.add_argument("--supply", type=int, default=0)
    create.add_argument("--freeze", action="store_true", help="保留冻结权限")

    mint = sub.add_parser("mint-more", help="追加铸造已发行的代币")
    mint.add_argument("wallet_id")
    mint.add_argument("mint")
    mint.add_argument("amount", type=int)
    mint.add_argument("--recipient", default=None)

    tokens = sub.add_parser("tokens", help="刷新并列出钱包的代币持仓")
    tokens.add_argument("wallet_id")

    sub.add_parser("reset", help="清除助记词与全部钱包")
    return ap


def _print_wallets(state: AppState, show_keys: bool = False) -> None:
    if state.mnemonic:
        print(f"助记词: {state.mnemonic if show_keys else '(已隐藏，使用 --show-keys 显示)'}")
    for chain in ChainType:
        wallets: List[Wallet] = state.registry(chain).wallets()
        print(f"\n[{chain.value}] {len(wallets)} 个钱包")
        unit = "SOL" if chain is ChainType.SOLANA else "ETH"
        for w in wallets:
            line = (
                f"  #{w.index} {w.address}  {w.balance:.6f} {unit}  tx={w.transaction_count}"
                f"  [{w.sync_status.value}]  id={w.id}"
            )
            if w.last_error:
                line += f"  error={w.last_error}"
            print(line)
            if show_keys:
                print(f"      私钥: {w.private_key}")
    for token in state.created_tokens:
        print(f"\n代币 {token.symbol} ({token.name}) mint={token.mint_address} supply={token.supply}")


async def _run(args: argparse.Namespace, state: AppState, gateways: Dict[ChainType, ChainGateway]) -> int:
    sync = WalletSyncCoordinator(state, gateways)
    engine = TokenWorkflowEngine(state, gateways[ChainType.SOLANA], sync=sync)

    try:
        if args.command == "add":
            for _ in range(max(args.count, 1)):
                wallet = await sync.create_and_sync(ChainType(args.chain))
                print(f"#{wallet.index} {wallet.address} [{wallet.sync_status.value}]")
        elif args.command == "refresh":
            if args.wallet_id:
                outcomes = [await sync.sync_wallet(args.wallet_id)]
            else:
                outcomes = await sync.sync_all()
            for outcome in outcomes:
                if not outcome.ok:
                    print(f"{outcome.wallet_id}: {outcome.balance_error or outcome.transaction_count_error}")
            _print_wallets(state)
        elif args.command == "airdrop":
            request = await engine.request_airdrop(args.wallet_id, args.amount)
            print(f"空投成功 {request.signature}，新余额 {request.new_balance:.4f} SOL，钱包余额稍后刷新")
            await sync.drain()
        elif args.command == "create-token":
            record = await engine.create_token(
                args.wallet_id,
                CreateTokenParams(
                    name=args.name,
                    symbol=args.symbol,
                    decimals=args.decimals,
                    initial_supply=args.supply,
                    freeze_authority=args.freeze,
                ),
            )
            print(f"代币已创建: {record.mint_address} supply={record.supply}")
        elif args.command == "mint-more":
            minted = await engine.mint_more(args.wallet_id, args.mint, args.amount, args.recipient)
            print(f"已追加铸造 {minted}（最小单位）")
        elif args.command == "tokens":
            for b in await engine.refresh_portfolio(args.wallet_id):
                label = b.symbol or b.mint_address
                print(f"{label}: {b.ui_amount} (account {b.token_account})")
        return 0
    except WalletError as exc:
        print(f"失败: {state.error or exc}", file=sys.stderr)
        return 1
    finally:
        for gw in gateways.values():
            await gw.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        endpoints = load_endpoints(args.env_file)
    except ConfigError as exc:
        print(f"配置错误: {exc}", file=sys.stderr)
        return 2

    try:
        state = AppState.load(JsonFileStore(args.state))
    except StorageError as exc:
        print(f"状态错误: {exc}", file=sys.stderr)
        return 2

    if args.command == "new":
        state.generate_new_mnemonic(args.words)
        print("已生成新助记词，请妥善保管：")
        print(state.mnemonic)
        return 0
    if args.command == "reset":
        state.reset()
        print("已清除助记词与全部钱包")
        return 0
    if args.command == "list":
        _print_wallets(state, show_keys=args.show_keys)
        return 0

    return asyncio.run(_run(args, state, build_gateways(endpoints)))


if __name__ == "__main__":
    sys.exit(main())
