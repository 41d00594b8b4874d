import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import Settings
from odoo_client import Credentials, OdooClient

ERP_URL = 'http://erp.test/jsonrpc'
USERNAME = 'kassa'
PASSWORD = 'geheim'
UID = 7


class OdooFault(Exception):
    """Raised by a fake handler to produce a JSON-RPC `error` response."""


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class FakeOdoo:
    """requests-like transport that dispatches execute_kw calls by (model, method)."""

    def __init__(self):
        self.handlers = {}
        self.users = {}
        self.calls = []
        self.requests = []

    def on(self, model, method, handler):
        self.handlers[(model, method)] = handler

    def post(self, url, json=None, timeout=None):
        self.requests.append(json)
        params = json['params']
        if params['service'] == 'common':
            _db, user, password, _ctx = params['args']
            return FakeResponse({'jsonrpc': '2.0', 'id': json['id'],
                                 'result': self.users.get((user, password), False)})

        _db, _uid, _pw, model, method, args, kwargs = params['args']
        self.calls.append((model, method, args, kwargs))
        handler = self.handlers.get((model, method))
        if handler is None:
            return self._error(json['id'], f'{model}.{method} is not mocked')
        try:
            result = handler(args, kwargs) if callable(handler) else handler
        except OdooFault as e:
            return self._error(json['id'], str(e))
        return FakeResponse({'jsonrpc': '2.0', 'id': json['id'], 'result': result})

    @staticmethod
    def _error(request_id, message):
        return FakeResponse({'jsonrpc': '2.0', 'id': request_id, 'error': {
            'code': 200, 'message': 'Odoo Server Error', 'data': {'message': message}}})

    def calls_to(self, model=None, method=None):
        return [c for c in self.calls
                if (model is None or c[0] == model) and (method is None or c[1] == method)]


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def settings():
    return Settings(
        odoo_url=ERP_URL,
        odoo_db='shop_test',
        session_secret='test-session-secret-with-enough-length',
        app_env='development',
        erp_lang='nl_BE',
        erp_tz='Europe/Brussels',
        gift_card_programs=['Cadeaubonnen', 'Gift Cards'],
    )


@pytest.fixture
def fake_odoo():
    fake = FakeOdoo()
    fake.users[(USERNAME, PASSWORD)] = UID
    return fake


@pytest.fixture
def odoo(settings, fake_odoo):
    return OdooClient(settings.odoo_url, settings.odoo_db, 5, http=fake_odoo)


@pytest.fixture
def creds():
    return Credentials(UID, PASSWORD)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(settings, odoo, clock):
    app = create_app(settings, odoo, clock)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def logged_in(client):
    r = client.post('/api/odoo-login', json={'username': USERNAME, 'password': PASSWORD})
    assert r.status_code == 200
    return client
