from .coin import BTC, BTC_NODE, DEFAULT_COINS, SKYCOIN, Coin, CoinType, get_coin
from .operators import OperatorSet, create_operators

__all__ = [
    'BTC',
    'BTC_NODE',
    'DEFAULT_COINS',
    'SKYCOIN',
    'Coin',
    'CoinType',
    'OperatorSet',
    'create_operators',
    'get_coin',
]
