import json
import tempfile

import pytest

from walletsync.core.models import AddressBase, WalletBase, WalletType


def _response(status_code, payload):
    class Response:
        def __init__(self, code, data):
            self.status_code = code
            self.text = data if isinstance(data, str) else json.dumps(data)

        def json(self, **kwargs):
            return json.loads(self.text, **kwargs)

    return Response(status_code, payload)


class FakeHttp:
    """Answers requests.get / requests.post by method and url fragment. Later routes win."""

    def __init__(self):
        self.routes = []
        self.calls = []

    def route(self, method, fragment, payload=None, status=200, handler=None):
        self.routes.insert(0, (method, fragment, status, payload, handler))

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        for route_method, fragment, status, payload, handler in self.routes:
            if route_method == method and fragment in url:
                if handler is not None:
                    return handler(url, **kwargs)
                return _response(status, payload)
        return _response(404, "Not found")

    def get(self, url, **kwargs):
        return self.request("get", url, **kwargs)

    def post(self, url, **kwargs):
        return self.request("post", url, **kwargs)

    def urls(self, method=None):
        return [url for m, url, _ in self.calls if method is None or m == method]


class FakeTimer:
    def __init__(self, delay, function, args=()):
        self.delay = delay
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


@pytest.fixture(autouse=True)
def quiet_console(monkeypatch):
    monkeypatch.setenv("WALLETSYNC_QUIET", "1")


@pytest.fixture
def temp_dir():
    """Create temporary directory for test data"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def make_response():
    return _response


@pytest.fixture
def fake_http(monkeypatch):
    """Replace requests.get and requests.post with a router"""
    http = FakeHttp()
    monkeypatch.setattr("requests.get", http.get)
    monkeypatch.setattr("requests.post", http.post)
    return http


@pytest.fixture
def timers():
    """Timer factory for the scheduler; created timers only run when fired"""
    created = []

    def factory(delay, function, args=()):
        timer = FakeTimer(delay, function, args)
        created.append(timer)
        return timer

    factory.created = created
    return factory


@pytest.fixture
def sample_wallets():
    main = WalletBase(
        id="w1",
        label="Main",
        coin="Bitcoin",
        addresses=(AddressBase("bc1qaaa"), AddressBase("bc1qbbb")),
        wallet_type=WalletType.BIP44,
    )
    savings = WalletBase(
        id="w2",
        label="Savings",
        coin="Bitcoin",
        addresses=(AddressBase("bc1qccc"),),
        wallet_type=WalletType.BIP44,
    )
    return [main, savings]
