# walletsync/cli.py
import argparse
import json
import sys

from walletsync import __version__
from walletsync.coins.coin import DEFAULT_COINS, get_coin
from walletsync.core.errors import WalletSyncError
from walletsync.core.wallet_sync_helper import WalletSyncHelper
from walletsync.core.wallets import migrate_wallet_record
from walletsync.storage.database import MemoryStore, StorageType
from walletsync.utils.console import print_error, print_info, safe_print
from walletsync.utils.formatting import format_amount


def load_wallet_records(path, coin):
    """Read a JSON list of wallet records and seed an in-memory store with them."""
    with open(path, "r", encoding="utf-8") as fh:
        records = json.load(fh)

    software, hardware = [], []
    for record in records:
        migrated = migrate_wallet_record(record, coin_name=coin.name)
        (hardware if migrated["is_hardware"] else software).append(migrated)

    symbol = coin.symbol.lower()
    return MemoryStore({
        StorageType.CLIENT.value: {
            f"sw-wallets-{symbol}": software,
            f"hw-wallets-{symbol}": hardware,
        }
    })


def _amount(helper, value):
    return format_amount(value, helper.coin.symbol, helper.coin.decimals)


def show_balances(helper):
    for wallet in helper.sync_now():
        safe_print(f"💼 {wallet.label or wallet.id}: {_amount(helper, wallet.current)}"
                   f" (predicted {_amount(helper, wallet.predicted)})")
        for address in wallet.addresses:
            pending = " ⏳" if address.has_pending_coins else ""
            safe_print(f"   {address.address}: {_amount(helper, address.current)}{pending}")


def show_history(helper, wallet_id=None):
    wallets = helper.wallets.load_wallets()
    wallet = None
    if wallet_id:
        wallet = next((w for w in wallets if w.id == wallet_id), None)
        if wallet is None:
            print_error(f"❌ Unknown wallet: {wallet_id}")
            return 1

    history = helper.get_transactions_history(wallet)
    for transaction in history.transactions:
        safe_print(f"{transaction.timestamp:>12}  {transaction.type.value:<22}"
                   f" {_amount(helper, transaction.balance):>20}  {transaction.id}")
    if history.has_more:
        print_info(f"📜 {len(history.addresses_with_more_transactions)} addresses have older transactions")
    return 0


def main(argv=None):
    """Command line interface for walletsync"""
    parser = argparse.ArgumentParser(description="walletsync - wallet balance and history sync")
    parser.add_argument('--version', action='store_true', help='Show version')
    subparsers = parser.add_subparsers(dest='command')

    for name, help_text in (('balance', 'Show wallet balances'), ('history', 'Show transaction history')):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--coin', default='BTC', choices=sorted(DEFAULT_COINS), help='Coin to sync')
        sub.add_argument('--wallets', required=True, help='JSON file with the wallet records')
        if name == 'history':
            sub.add_argument('--wallet', help='Only show the history of this wallet id')

    args = parser.parse_args(argv)

    if args.version:
        print(f"walletsync v{__version__}")
        return 0
    if not args.command:
        print("walletsync - Use 'walletsync --help' for options")
        return 0

    coin = get_coin(args.coin)
    helper = WalletSyncHelper(coin, store=load_wallet_records(args.wallets, coin))
    try:
        if args.command == 'balance':
            show_balances(helper)
            return 0
        return show_history(helper, args.wallet)
    except WalletSyncError as e:
        print_error(f"❌ {e}")
        return 1
    finally:
        helper.dispose()


if __name__ == "__main__":
    sys.exit(main())
