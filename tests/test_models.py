import pytest

from errors import UpstreamError
from models import (
    OrderRecord, PartnerRecord, PickingRecord, RpcResponse, expect_id, expect_ids, parse_records, unique_ids,
)


def test_false_values_become_defaults():
    partner = PartnerRecord.model_validate({'id': 1, 'name': 'An', 'email': False, 'country_id': False})
    assert partner.email is None
    assert partner.country_id is None

    order = OrderRecord.model_validate({'id': 5, 'name': 'S00005', 'order_line': False, 'amount_total': False})
    assert order.order_line == []
    assert order.amount_total == 0.0


def test_many2one_and_terminal_state():
    picking = PickingRecord.model_validate({'id': 1, 'state': 'cancel', 'carrier_id': [4, 'bpost'], 'extra': 1})
    assert picking.carrier_id == (4, 'bpost')
    assert picking.is_terminal
    assert not PickingRecord(id=2, state='assigned').is_terminal


def test_parse_records_rejects_bad_shapes():
    with pytest.raises(UpstreamError):
        parse_records(PickingRecord, {'id': 1})
    with pytest.raises(UpstreamError):
        parse_records(PickingRecord, [{'name': 'no id'}])


def test_result_presence_is_tracked():
    assert RpcResponse.model_validate({'jsonrpc': '2.0', 'id': 1, 'result': None}).has_result
    assert not RpcResponse.model_validate({'jsonrpc': '2.0', 'id': 1}).has_result


def test_id_helpers():
    assert expect_id(42, 'stock.quant') == 42
    with pytest.raises(UpstreamError):
        expect_id(False, 'stock.quant')
    assert expect_ids([1, 2], 'stock.quant') == [1, 2]
    with pytest.raises(UpstreamError):
        expect_ids({'ids': [1]}, 'stock.quant')
    assert unique_ids([3, 1, 3, 2, 1]) == [3, 1, 2]
