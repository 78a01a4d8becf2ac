import json
import os

import pytest

from walletsync.cli import main


@pytest.fixture
def wallets_file(temp_dir):
    path = os.path.join(temp_dir, "wallets.json")
    with open(path, "w", encoding="utf-8") as fh:
        json.dump([
            {"id": "w1", "label": "Main", "addresses": ["bc1qaaa", "bc1qbbb"], "walletType": "bip44"},
        ], fh)
    return path


def test_version(capsys):
    assert main(["--version"]) == 0
    assert "walletsync v1.0.0" in capsys.readouterr().out


def test_balance(fake_http, wallets_file, capsys):
    fake_http.route("get", "/address/bc1qaaa?", {"balance": "100000000", "unconfirmedBalance": "0"})
    fake_http.route("get", "/address/bc1qbbb?", {"balance": "50000000", "unconfirmedBalance": "25000000"})

    assert main(["balance", "--coin", "BTC", "--wallets", wallets_file]) == 0

    out = capsys.readouterr().out
    assert "Main: 1.5 BTC (predicted 1.75 BTC)" in out
    assert "bc1qbbb: 0.5 BTC" in out


def test_history(fake_http, wallets_file, capsys):
    fake_http.route("get", "/address/bc1qaaa?", {"totalPages": 1, "transactions": [{
        "txid": "t1",
        "blockTime": 1700000000,
        "confirmations": 6,
        "vin": [{"txid": "p", "vout": 0, "value": "200000000", "isAddress": True, "addresses": ["bc1qext"]}],
        "vout": [{"n": 0, "value": "150000000", "addresses": ["bc1qaaa"]}],
    }]})

    assert main(["history", "--coin", "BTC", "--wallets", wallets_file]) == 0

    out = capsys.readouterr().out
    assert "Incoming" in out
    assert "1.5 BTC" in out
    assert "t1" in out


def test_history_unknown_wallet(fake_http, wallets_file):
    assert main(["history", "--wallets", wallets_file, "--wallet", "nope"]) == 1


def test_backend_error(fake_http, wallets_file):
    fake_http.route("get", "/address/", "down", status=500)
    assert main(["balance", "--wallets", wallets_file]) == 1
