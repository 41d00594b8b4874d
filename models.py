"""Esquemas de los registros que devuelve el ERP.

Cada endpoint valida las filas de `search_read`/`read` contra un esquema
explícito en la frontera RPC. Odoo usa `false` para valores vacíos y
`[id, nombre]` para relaciones many2one; aquí `false` se normaliza a None.
"""

from typing import Any, Iterable, List, Optional, Tuple, Type, TypeVar
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from errors import UpstreamError

Many2One = Optional[Tuple[int, str]]

T = TypeVar('T', bound='OdooRecord')


class OdooRecord(BaseModel):
    """Base de todos los registros ERP: ignora campos extra y descarta `false`."""
    model_config = ConfigDict(extra='ignore')

    @model_validator(mode='before')
    @classmethod
    def _false_to_none(cls, data: Any):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            field = cls.model_fields.get(key)
            if value is False and field is not None and field.annotation is not bool:
                if not field.is_required():
                    # el valor por defecto del campo sustituye al `false`
                    continue
                value = None
            cleaned[key] = value
        return cleaned


# ----------------------------- Envelope -----------------------------

class RpcErrorData(BaseModel):
    message: Optional[str] = None
    debug: Optional[str] = None


class RpcErrorBody(BaseModel):
    code: Optional[int] = None
    message: Optional[str] = None
    data: Optional[RpcErrorData] = None


class RpcResponse(BaseModel):
    """Respuesta JSON-RPC 2.0. `result` ausente se distingue de `result: null`."""
    jsonrpc: Optional[str] = None
    id: Optional[int] = None
    result: Any = None
    error: Optional[RpcErrorBody] = None

    @property
    def has_result(self) -> bool:
        return 'result' in self.model_fields_set


# ----------------------------- Records ------------------------------

class PickingRecord(OdooRecord):
    """stock.picking: orden de entrega vinculada a una orden de venta."""
    id: int
    name: str = ''
    state: Optional[str] = None
    carrier_id: Many2One = None
    picking_type_id: Many2One = None

    @property
    def is_terminal(self) -> bool:
        return self.state in ('done', 'cancel')


class OrderRecord(OdooRecord):
    """sale.order."""
    id: int
    name: str = ''
    state: Optional[str] = None
    order_line: List[int] = []
    website_id: Many2One = None
    partner_id: Many2One = None
    date_order: Optional[str] = None
    amount_total: float = 0.0


class OrderLineRecord(OdooRecord):
    id: Optional[int] = None
    product_id: Many2One = None
    product_uom_qty: float = 0.0
    price_unit: float = 0.0
    price_total: float = 0.0


class ProductRecord(OdooRecord):
    """product.product (variante)."""
    id: int
    name: str = ''
    display_name: Optional[str] = None
    barcode: Optional[str] = None
    product_tmpl_id: Many2One = None
    qty_available: float = 0.0
    list_price: float = 0.0
    product_template_attribute_value_ids: List[int] = []
    image_1920: Optional[str] = None


class TemplateRecord(OdooRecord):
    id: int
    name: str = ''


class AttributeValueRecord(OdooRecord):
    """product.template.attribute.value."""
    id: int
    name: str = ''
    attribute_id: Many2One = None


class PartnerRecord(OdooRecord):
    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None
    country_id: Many2One = None


class AttachmentRecord(OdooRecord):
    """ir.attachment; `datas` es el contenido en base64."""
    id: int
    name: str = ''
    datas: Optional[str] = None
    res_model: Optional[str] = None
    res_id: Optional[int] = None
    mimetype: Optional[str] = None
    description: Optional[str] = None


class WarehouseRecord(OdooRecord):
    id: int
    name: str = ''
    lot_stock_id: Many2One = None


class LoyaltyProgramRecord(OdooRecord):
    id: int
    name: str = ''
    program_type: Optional[str] = None


class LoyaltyCardRecord(OdooRecord):
    """loyalty.card: el cheque regalo (código, saldo, caducidad)."""
    id: int
    code: Optional[str] = None
    points: float = 0.0
    expiration_date: Optional[str] = None
    partner_id: Many2One = None


# ----------------------------- Helpers ------------------------------

# parse_records: Valida una lista de filas ERP contra el esquema dado.
# Lanza UpstreamError si la forma no coincide.
def parse_records(model_cls: Type[T], rows: Any) -> List[T]:
    if not isinstance(rows, list):
        raise UpstreamError(f"Unexpected {model_cls.__name__} payload from Odoo: expected a list")
    try:
        return [model_cls.model_validate(row) for row in rows]
    except ValidationError as e:
        raise UpstreamError(f"Unexpected {model_cls.__name__} payload from Odoo: {e.error_count()} invalid field(s)")


# expect_id: Valida el resultado de un `create` (un entero positivo).
def expect_id(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise UpstreamError(f"Unexpected {what} id from Odoo: {value!r}")
    return value


# expect_ids: Valida el resultado de un `search` (lista de enteros).
def expect_ids(value: Any, what: str) -> List[int]:
    if not isinstance(value, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in value):
        raise UpstreamError(f"Unexpected {what} ids from Odoo")
    return value


def m2o_id(value: Many2One) -> Optional[int]:
    return value[0] if value else None


def m2o_name(value: Many2One, default: Optional[str] = None) -> Optional[str]:
    return value[1] if value else default


def unique_ids(ids: Iterable[int]) -> List[int]:
    """Elimina duplicados preservando el orden."""
    return list(dict.fromkeys(ids))

