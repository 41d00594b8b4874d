from types import SimpleNamespace

import pytest

from attachments import (
    classify_attachment, find_invoice, find_shipping_label, is_invoice_name, is_shipping_label_name,
)


@pytest.mark.parametrize('name, kind', [
    ('Factuur INV-2024-001.pdf', 'invoice'),
    ('S00042 Order.pdf', 'invoice'),
    ('INVOICE.PDF', 'invoice'),
    ('Sendcloud Label 123.pdf', 'shipping_label'),
    ('Verzending WH-OUT-0001.pdf', 'shipping_label'),
    ('Shipping Invoice.pdf', 'shipping_label'),
    ('Order label.pdf', 'shipping_label'),
    ('Handleiding.pdf', 'other'),
    ('', 'other'),
])
def test_classify_attachment(name, kind):
    assert classify_attachment(name) == kind


def test_shipping_keyword_excludes_invoice():
    assert is_shipping_label_name('Shipping Invoice.pdf')
    assert not is_invoice_name('Shipping Invoice.pdf')
    assert not is_shipping_label_name(None)
    assert not is_invoice_name(None)


def test_find_returns_first_match_in_input_order():
    attachments = [
        SimpleNamespace(name='Notes.pdf'),
        SimpleNamespace(name='Factuur 2.pdf'),
        SimpleNamespace(name='Sendcloud label.pdf'),
        SimpleNamespace(name='Factuur 1.pdf'),
    ]
    assert find_invoice(attachments).name == 'Factuur 2.pdf'
    assert find_shipping_label(attachments).name == 'Sendcloud label.pdf'
    assert find_invoice(attachments[:1]) is None


def test_order_document_and_sendcloud_label_are_told_apart():
    attachments = [SimpleNamespace(name='Order - 2024.pdf'), SimpleNamespace(name='Sendcloud Label.pdf')]
    assert find_invoice(attachments) is attachments[0]
    assert find_shipping_label(attachments) is attachments[1]
