"""Clasificación heurística de adjuntos PDF por nombre de fichero.

Coincidencia por subcadena sin distinguir mayúsculas. Un nombre con cualquier
palabra de envío nunca cuenta como factura. Es una heurística que depende de
cómo nombra el ERP sus adjuntos, no un clasificador garantizado.
"""

from typing import Iterable, Optional, TypeVar

INVOICE_KEYWORDS = ('invoice', 'factuur', 'order')
SHIPPING_KEYWORDS = ('shipping', 'sendcloud', 'label', 'verzending')

INVOICE = 'invoice'
SHIPPING_LABEL = 'shipping_label'
OTHER = 'other'

A = TypeVar('A')


def _contains_any(name: str, keywords) -> bool:
    lowered = name.lower()
    return any(k in lowered for k in keywords)


def is_shipping_label_name(name: str) -> bool:
    return _contains_any(name or '', SHIPPING_KEYWORDS)


def is_invoice_name(name: str) -> bool:
    name = name or ''
    return _contains_any(name, INVOICE_KEYWORDS) and not is_shipping_label_name(name)


# classify_attachment: invoice | shipping_label | other (envío tiene prioridad).
def classify_attachment(name: str) -> str:
    if is_shipping_label_name(name):
        return SHIPPING_LABEL
    if is_invoice_name(name):
        return INVOICE
    return OTHER


# find_invoice / find_shipping_label: primer adjunto que coincide (el orden
# de entrada manda; el ERP los entrega del más reciente al más antiguo).
def find_invoice(attachments: Iterable[A]) -> Optional[A]:
    return next((a for a in attachments if is_invoice_name(a.name)), None)


def find_shipping_label(attachments: Iterable[A]) -> Optional[A]:
    return next((a for a in attachments if is_shipping_label_name(a.name)), None)
