import pytest
import requests

from errors import EmptyResultError, RpcError, UpstreamError
from odoo_client import OdooClient
from tests.conftest import ERP_URL, PASSWORD, UID, USERNAME, FakeResponse


class StaticTransport:
    def __init__(self, response):
        self.response = response
        self.sent = []

    def post(self, url, json=None, timeout=None):
        self.sent.append((url, json, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_client(response):
    transport = StaticTransport(response)
    return OdooClient(ERP_URL, 'shop_test', 3, http=transport), transport


def test_call_builds_execute_kw_envelope(creds):
    client, transport = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1, 'result': [1, 2]}))

    assert client.call(creds, 'sale.order', 'search', [[['id', '=', 5]]], {'limit': 1}) == [1, 2]

    url, payload, timeout = transport.sent[0]
    assert url == ERP_URL
    assert timeout == 3
    assert payload['jsonrpc'] == '2.0'
    assert payload['method'] == 'call'
    assert isinstance(payload['id'], int)
    assert payload['params'] == {
        'service': 'object',
        'method': 'execute_kw',
        'args': ['shop_test', UID, PASSWORD, 'sale.order', 'search', [[['id', '=', 5]]], {'limit': 1}],
    }


def test_call_sends_empty_kwargs_when_none_given(creds):
    client, transport = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1, 'result': True}))
    client.call(creds, 'sale.order', 'action_confirm', [[5]])
    assert transport.sent[0][1]['params']['args'][-1] == {}


def test_error_message_is_passed_through(creds):
    client, _ = make_client(FakeResponse({
        'jsonrpc': '2.0', 'id': 1, 'error': {'code': 200, 'message': 'Odoo Server Error'}}))

    with pytest.raises(UpstreamError) as exc:
        client.call(creds, 'sale.order', 'read', [[1]])
    assert isinstance(exc.value, RpcError)
    assert exc.value.message == 'Odoo Server Error'
    assert exc.value.code == 200


def test_nested_error_data_message_wins(creds):
    client, _ = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1, 'error': {
        'code': 200, 'message': 'Odoo Server Error', 'data': {'message': 'Record does not exist'}}}))

    with pytest.raises(RpcError) as exc:
        client.call(creds, 'sale.order', 'read', [[1]])
    assert exc.value.message == 'Record does not exist'


def test_missing_result_raises_empty_result(creds):
    client, _ = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1}))
    with pytest.raises(EmptyResultError):
        client.call(creds, 'sale.order', 'read', [[1]])


def test_null_result_is_a_valid_result(creds):
    client, _ = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1, 'result': None}))
    assert client.call(creds, 'stock.picking', 'button_validate', [[1]]) is None


def test_http_error_status_raises_upstream(creds):
    client, _ = make_client(FakeResponse({}, status_code=502))
    with pytest.raises(UpstreamError, match='502'):
        client.call(creds, 'sale.order', 'read', [[1]])


def test_non_json_body_raises_upstream(creds):
    client, _ = make_client(FakeResponse(ValueError('no json')))
    with pytest.raises(UpstreamError, match='Malformed'):
        client.call(creds, 'sale.order', 'read', [[1]])


def test_transport_failure_raises_upstream(creds):
    client, _ = make_client(requests.ConnectionError('connection refused'))
    with pytest.raises(UpstreamError, match='unreachable'):
        client.call(creds, 'sale.order', 'read', [[1]])


def test_authenticate_uses_common_service(odoo, fake_odoo):
    assert odoo.authenticate(USERNAME, PASSWORD) == UID
    params = fake_odoo.requests[-1]['params']
    assert params['service'] == 'common'
    assert params['method'] == 'authenticate'
    assert params['args'] == ['shop_test', USERNAME, PASSWORD, {}]


def test_authenticate_rejects_false_and_errors(odoo):
    assert odoo.authenticate(USERNAME, 'wrong') is None

    broken, _ = make_client(FakeResponse({'jsonrpc': '2.0', 'id': 1, 'error': {'message': 'Access Denied'}}))
    assert broken.authenticate(USERNAME, PASSWORD) is None

    offline, _ = make_client(requests.Timeout('timed out'))
    assert offline.authenticate(USERNAME, PASSWORD) is None


def test_search_read_shapes_kwargs(odoo, fake_odoo, creds):
    fake_odoo.on('res.partner', 'search_read', [])
    odoo.search_read(creds, 'res.partner', [['name', '=', 'x']], ['id'], limit=1, order='name asc',
                     context={'lang': 'nl_BE'})
    _model, _method, args, kwargs = fake_odoo.calls[-1]
    assert args == [[['name', '=', 'x']]]
    assert kwargs == {'fields': ['id'], 'limit': 1, 'order': 'name asc', 'context': {'lang': 'nl_BE'}}
