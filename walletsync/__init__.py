"""
walletsync - background balance, output and history synchronization for
multi-coin wallets
"""
from .coins.coin import Coin, CoinType, get_coin
from .config import SyncSettings
from .core.wallet_sync_helper import WalletSyncHelper, create_wallet_sync_helper

__version__ = "1.0.0"
__all__ = [
    'Coin',
    'CoinType',
    'SyncSettings',
    'WalletSyncHelper',
    'create_wallet_sync_helper',
    'get_coin',
]
