"""Flujos de pedidos web sobre el ERP.

Secuencia llamadas RPC dependientes (confirmar pedido, validar entregas,
disparar etiquetas de envío, localizar facturas/etiquetas) con política
explícita de idempotencia y alternativas. No hay transacciones: si un flujo
falla a medias, el ERP queda como lo dejó el prefijo completado y el resultado
lo informa por picking.
"""

import base64
import binascii
from typing import Any, Dict, List, Optional, Tuple
from attachments import classify_attachment, find_invoice, find_shipping_label
from config import get_settings
from errors import DeliveryConfirmationError, NotFoundError, UpstreamError
from logger import get_logger
from models import (
    AttachmentRecord, OrderLineRecord, OrderRecord, PartnerRecord, PickingRecord,
    ProductRecord, expect_id, m2o_id, m2o_name, parse_records,
)
from odoo_client import Credentials, OdooClient

log = get_logger(__name__)

# Métodos del conector de transportista, probados en este orden.
SHIPPER_METHODS = (
    'action_send_to_shipper',
    'send_to_shipper',
    'action_generate_carrier_label',
    'generate_carrier_label',
    'send_to_carrier',
)
# Asistentes que `button_validate` puede devolver en lugar de validar.
VALIDATION_WIZARDS = ('stock.immediate.transfer', 'stock.backorder.confirmation')
PENDING_ORDER_STATES = ['sent', 'sale', 'done']


class PickingOutcome:
    """Resultado de un picking dentro de un lote de confirmación/envío."""
    def __init__(self, picking: PickingRecord):
        self.id = picking.id
        self.name = picking.name
        self.state = picking.state
        self.success: Optional[bool] = None
        self.already_confirmed = False
        self.final_state: Optional[str] = None
        self.error: Optional[str] = None
        self.label_exists: Optional[bool] = None
        self.label_triggered: Optional[bool] = None
        self.method: Optional[str] = None
        self.result: Any = None

    @property
    def ok(self) -> bool:
        return bool(self.success or self.already_confirmed)

    # to_dict: Serializa solo los campos relevantes para el estado alcanzado.
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'id': self.id, 'name': self.name}
        if self.already_confirmed:
            data.update({'state': self.state, 'alreadyConfirmed': True})
            return data
        data['success'] = bool(self.success)
        if self.final_state is not None:
            data['finalState'] = self.final_state
        if self.error:
            data['error'] = self.error
        if self.label_exists is not None:
            data['labelExists'] = self.label_exists
        if self.label_triggered is not None:
            data['labelTriggered'] = self.label_triggered
        if self.method:
            data['method'] = self.method
            data['result'] = self.result
        return data


# attachment_bytes: Decodifica el contenido base64 de un adjunto PDF.
def attachment_bytes(attachment: AttachmentRecord) -> bytes:
    try:
        return base64.b64decode(attachment.datas or '', validate=True)
    except (binascii.Error, ValueError):
        raise UpstreamError(f"Attachment {attachment.name} has invalid content")


class OrderService:
    """Operaciones sobre sale.order / stock.picking para un usuario concreto."""
    def __init__(self, client: OdooClient, creds: Credentials, settings=None):
        self.client = client
        self.creds = creds
        self.settings = settings or get_settings()

    def _context(self) -> Dict[str, str]:
        return {'lang': self.settings.erp_lang, 'tz': self.settings.erp_tz}

    def _pickings(self, order_id: int, fields: List[str]) -> List[PickingRecord]:
        rows = self.client.search_read(self.creds, 'stock.picking', [['sale_id', '=', order_id]], fields)
        return parse_records(PickingRecord, rows)

    def _get_order(self, order_id: int, fields: List[str]) -> OrderRecord:
        rows = self.client.search_read(self.creds, 'sale.order', [['id', '=', order_id]], fields, limit=1)
        orders = parse_records(OrderRecord, rows)
        if not orders:
            raise NotFoundError('Order not found')
        return orders[0]

    # _order_summary: Relee {id, name, state}; un fallo aquí no invalida el flujo.
    def _order_summary(self, order_id: int) -> Optional[Dict[str, Any]]:
        try:
            order = self._get_order(order_id, ['id', 'name', 'state'])
        except (UpstreamError, NotFoundError) as e:
            log.warning("Could not re-read order %s: %s", order_id, e.message)
            return None
        return {'id': order.id, 'name': order.name, 'state': order.state}

    def _pdf_attachments(self, res_model: str, res_id: int, fields: List[str]) -> List[AttachmentRecord]:
        rows = self.client.search_read(
            self.creds, 'ir.attachment',
            [['res_model', '=', res_model], ['res_id', '=', res_id], ['mimetype', '=', 'application/pdf']],
            fields, order='create_date desc',
        )
        return parse_records(AttachmentRecord, rows)

    # ------------------------- Confirmar pedido -------------------------

    def confirm_order(self, order_id: int) -> Dict[str, Any]:
        result = self.client.call(self.creds, 'sale.order', 'action_confirm', [[order_id]])
        if not result:
            raise UpstreamError('Failed to confirm order')
        log.info("Order %s confirmed", order_id)
        return {
            'success': True,
            'order': self._order_summary(order_id),
            'message': 'Order confirmed successfully',
        }

    # ------------------------ Confirmar entrega -------------------------

    def confirm_delivery(self, order_id: int) -> Dict[str, Any]:
        """Valida cada picking del pedido y asegura su etiqueta de envío.

        Los pickings ya en `done`/`cancel` no se tocan. El lote tiene éxito si
        al menos uno termina validado o ya estaba confirmado.
        """
        pickings = self._pickings(order_id, ['id', 'name', 'state', 'carrier_id'])
        log.info("Found %d delivery order(s) for order %s", len(pickings), order_id)
        if not pickings:
            raise NotFoundError('Geen leveringsorder gevonden voor deze order')

        outcomes = []
        for picking in pickings:
            outcome = PickingOutcome(picking)
            outcomes.append(outcome)
            if picking.is_terminal:
                log.info("Picking %s already in state %s (no action needed)", picking.id, picking.state)
                outcome.already_confirmed = True
                continue
            try:
                outcome.final_state = self._validate_picking(picking)
            except UpstreamError as e:
                log.error("Error confirming picking %s: %s", picking.id, e.message)
                outcome.success = False
                outcome.error = e.message
                continue
            if outcome.final_state != 'done':
                outcome.success = False
                outcome.error = f"Picking is still in state '{outcome.final_state}' after validation"
                continue
            outcome.success = True
            self._ensure_shipping_label(picking, outcome)

        if not any(o.ok for o in outcomes):
            details = [f"{o.name}: {o.error}" for o in outcomes if o.error]
            raise DeliveryConfirmationError('Kon leveringsorder niet bevestigen', details)

        log.info("Delivery confirmation completed for order %s", order_id)
        return {
            'success': True,
            'order': self._order_summary(order_id),
            'confirmedPickings': [o.to_dict() for o in outcomes],
            'message': 'Leveringsorder bevestigd',
        }

    # _validate_picking: button_validate y, si el ERP pide un asistente de
    # transferencia inmediata o backorder, lo crea y lo procesa. Devuelve el
    # estado releído del picking.
    def _validate_picking(self, picking: PickingRecord) -> Optional[str]:
        context = self._context()
        log.info("Validating picking %s (%s), current state %s", picking.id, picking.name, picking.state)
        result = self.client.call(self.creds, 'stock.picking', 'button_validate', [[picking.id]],
                                  {'context': context})
        if isinstance(result, dict) and result.get('res_model') in VALIDATION_WIZARDS:
            wizard_model = result['res_model']
            wizard_context = dict(context)
            wizard_context.update(result.get('context') or {})
            log.info("Picking %s needs wizard %s", picking.id, wizard_model)
            wizard_id = expect_id(self.client.create(self.creds, wizard_model, {}, context=wizard_context),
                                  wizard_model)
            self.client.call(self.creds, wizard_model, 'process', [[wizard_id]], {'context': wizard_context})

        rows = self.client.read(self.creds, 'stock.picking', [picking.id], ['state'])
        verified = parse_records(PickingRecord, rows)
        final_state = verified[0].state if verified else None
        log.info("Picking %s final state: %s", picking.id, final_state)
        return final_state

    # _ensure_shipping_label: Mejor esfuerzo. Si el picking ya tiene un PDF de
    # etiqueta no se genera otra; los errores se registran y no se propagan.
    def _ensure_shipping_label(self, picking: PickingRecord, outcome: PickingOutcome):
        try:
            existing = find_shipping_label(self._pdf_attachments('stock.picking', picking.id, ['id', 'name']))
            outcome.label_exists = existing is not None
            if existing is not None:
                log.info("Picking %s already has shipping label %s", picking.id, existing.name)
                return
            method, _ = self._trigger_shipper(picking.id)
            outcome.label_triggered = True
            log.info("Shipping label triggered for picking %s via %s", picking.id, method)
        except UpstreamError as e:
            outcome.label_triggered = False
            log.warning("Shipping label step skipped for picking %s: %s", picking.id, e.message)

    # _trigger_shipper: Prueba los métodos del conector en orden; el primero
    # que responde sin error gana.
    def _trigger_shipper(self, picking_id: int) -> Tuple[str, Any]:
        last_error = None
        for method in SHIPPER_METHODS:
            try:
                result = self.client.call(self.creds, 'stock.picking', method, [[picking_id]])
                return method, result
            except UpstreamError as e:
                log.info("%s failed for picking %s: %s", method, picking_id, e.message)
                last_error = e
        raise UpstreamError(f"No shipper method succeeded for picking {picking_id}: "
                            f"{last_error.message if last_error else 'no methods'}")

    # ------------------------ Enviar a transportista ------------------------

    def send_to_shipper(self, order_id: int) -> Dict[str, Any]:
        pickings = self._pickings(order_id, ['id', 'name', 'state', 'carrier_id'])
        if not pickings:
            raise NotFoundError('Geen leveringsorder gevonden')

        outcomes = []
        for picking in pickings:
            outcome = PickingOutcome(picking)
            outcomes.append(outcome)
            try:
                outcome.method, outcome.result = self._trigger_shipper(picking.id)
                outcome.success = True
            except UpstreamError as e:
                log.error("All shipper methods failed for picking %s: %s", picking.id, e.message)
                outcome.success = False
                outcome.error = 'Kon niet naar verzender sturen - geen werkende methode gevonden'

        if not any(o.success for o in outcomes):
            details = [f"{o.name}: {o.error}" for o in outcomes if o.error]
            raise DeliveryConfirmationError('Kon niet naar verzender sturen', details)

        return {
            'success': True,
            'orderId': order_id,
            'sentPickings': [o.to_dict() for o in outcomes],
            'message': 'Verzonden naar verzender (Sendcloud)',
        }

    # ------------------------- Documentos PDF --------------------------

    def find_shipping_label(self, order_id: int) -> AttachmentRecord:
        """Busca la etiqueta en el pedido y, si no, en cada picking por orden."""
        fields = ['id', 'name', 'datas', 'res_model', 'res_id']
        seen = self._pdf_attachments('sale.order', order_id, fields)
        label = find_shipping_label(seen)

        if label is None:
            for picking in self._pickings(order_id, ['id', 'name']):
                picking_attachments = self._pdf_attachments('stock.picking', picking.id, fields)
                seen.extend(picking_attachments)
                label = find_shipping_label(picking_attachments)
                if label is not None:
                    break

        if label is None or not label.datas:
            log.info("No shipping label for order %s; available: %s", order_id, [a.name for a in seen])
            raise NotFoundError(
                'Geen verzendlabel gevonden. Controleer of Sendcloud het label heeft aangemaakt in Odoo.',
                {'availableAttachments': [a.name for a in seen],
                 'checkedModels': ['sale.order', 'stock.picking']},
            )
        return label

    def find_invoice(self, order_id: int) -> AttachmentRecord:
        attachments = self._pdf_attachments('sale.order', order_id, ['id', 'name', 'datas'])
        invoice = find_invoice(attachments)
        if invoice is None or not invoice.datas:
            raise NotFoundError(
                'Geen factuur gevonden. Bevestig de order eerst.',
                {'availableAttachments': [a.name for a in attachments]},
            )
        return invoice

    def order_attachments(self, order_id: int) -> Dict[str, Any]:
        order = self._get_order(order_id, ['id', 'name', 'state'])
        attachments = self._pdf_attachments(
            'sale.order', order_id, ['id', 'name', 'datas', 'mimetype', 'description'])
        invoice = find_invoice(attachments)
        label = find_shipping_label(attachments)

        def payload(a: Optional[AttachmentRecord]):
            return {'id': a.id, 'name': a.name, 'data': a.datas} if a else None

        return {
            'success': True,
            'orderName': order.name,
            'orderState': order.state,
            'attachments': [{'id': a.id, 'name': a.name, 'type': classify_attachment(a.name)}
                            for a in attachments],
            'invoice': payload(invoice),
            'shippingLabel': payload(label),
        }

    # --------------------------- Consultas ---------------------------

    def pending_orders(self, limit: int = 10) -> Dict[str, Any]:
        """Últimos pedidos web (sin borradores ni cancelados) con cliente y líneas."""
        rows = self.client.search_read(
            self.creds, 'sale.order',
            [['state', 'in', PENDING_ORDER_STATES], ['website_id', '!=', False]],
            ['id', 'name', 'date_order', 'amount_total', 'partner_id', 'state', 'website_id'],
            limit=limit, order='date_order desc',
        )
        enriched = []
        for order in parse_records(OrderRecord, rows):
            partner = self._partner(m2o_id(order.partner_id))
            lines = parse_records(OrderLineRecord, self.client.search_read(
                self.creds, 'sale.order.line', [['order_id', '=', order.id]],
                ['product_id', 'product_uom_qty', 'price_unit', 'price_total'],
            ))
            enriched.append({
                'id': order.id,
                'name': order.name,
                'date_order': order.date_order,
                'amount_total': order.amount_total,
                'partner_id': order.partner_id,
                'partner_name': (partner.name if partner else None) or 'Onbekend',
                'partner_email': partner.email if partner else None,
                'partner_phone': partner.phone if partner else None,
                'partner_street': partner.street if partner else None,
                'partner_city': partner.city if partner else None,
                'partner_zip': partner.zip if partner else None,
                'partner_country': m2o_name(partner.country_id) if partner else None,
                'state': order.state,
                'website_id': order.website_id,
                'picking_state': self._first_picking_state(order.id),
                'order_line': [{
                    'product_id': line.product_id,
                    'product_uom_qty': line.product_uom_qty,
                    'price_unit': line.price_unit,
                    'price_total': line.price_total,
                } for line in lines],
            })
        return {'orders': enriched}

    def _partner(self, partner_id: Optional[int]) -> Optional[PartnerRecord]:
        if not partner_id:
            return None
        rows = self.client.search_read(
            self.creds, 'res.partner', [['id', '=', partner_id]],
            ['name', 'email', 'phone', 'street', 'city', 'zip', 'country_id'], limit=1,
        )
        partners = parse_records(PartnerRecord, rows)
        return partners[0] if partners else None

    # _first_picking_state: Enriquecimiento opcional; sin picking o con error
    # devuelve None.
    def _first_picking_state(self, order_id: int) -> Optional[str]:
        try:
            rows = self.client.search_read(
                self.creds, 'stock.picking', [['sale_id', '=', order_id]], ['state'], limit=1)
            pickings = parse_records(PickingRecord, rows)
        except UpstreamError as e:
            log.info("Could not fetch picking state for order %s: %s", order_id, e.message)
            return None
        return pickings[0].state if pickings else None

    def check_availability(self, order_id: int) -> Dict[str, Any]:
        order = self._get_order(order_id, ['id', 'name', 'order_line'])
        if not order.order_line:
            return {
                'orderId': order_id,
                'orderName': order.name,
                'products': [],
                'allAvailable': True,
                'message': 'No products in order',
            }

        lines = parse_records(OrderLineRecord, self.client.search_read(
            self.creds, 'sale.order.line', [['id', 'in', order.order_line]],
            ['id', 'product_id', 'product_uom_qty', 'price_unit', 'price_total'],
        ))
        product_ids = [m2o_id(line.product_id) for line in lines if line.product_id]
        products = parse_records(ProductRecord, self.client.search_read(
            self.creds, 'product.product', [['id', 'in', product_ids]], ['id', 'name', 'qty_available'],
        ))
        qty_by_product = {p.id: p.qty_available or 0 for p in products}

        availability = []
        for line in lines:
            product_id = m2o_id(line.product_id)
            needed = line.product_uom_qty or 0
            available = qty_by_product.get(product_id, 0) if product_id else 0
            availability.append({
                'id': line.id,
                'name': m2o_name(line.product_id, 'Unknown'),
                'product_id': line.product_id,
                'product_uom_qty': needed,
                'qty_available': available,
                'isAvailable': available >= needed,
                'shortage': max(0, needed - available),
                'price_unit': line.price_unit or 0,
                'price_total': line.price_total or 0,
            })

        all_available = all(p['isAvailable'] for p in availability)
        log.info("Availability for order %s: %d line(s), all available=%s", order_id, len(availability), all_available)
        return {
            'success': True,
            'orderId': order_id,
            'orderName': order.name,
            'products': availability,
            'allAvailable': all_available,
            'message': ('All products are available in inventory' if all_available
                        else 'Some products have insufficient inventory'),
        }

    def picking_details(self, order_id: int) -> Dict[str, Any]:
        order = self._get_order(order_id, ['id', 'name', 'order_line'])
        lines: List[OrderLineRecord] = []
        if order.order_line:
            lines = parse_records(OrderLineRecord, self.client.read(
                self.creds, 'sale.order.line', order.order_line,
                ['id', 'product_id', 'product_uom_qty', 'price_unit', 'price_total'],
            ))

        pickings = self._pickings(order_id, ['id', 'name', 'state', 'picking_type_id'])
        if not pickings:
            raise NotFoundError('Geen leveringsorder gevonden')

        move_lines = [{
            'id': line.id,
            'product_id': line.product_id,
            'product_name': m2o_name(line.product_id, 'Unknown'),
            'product_uom_qty': line.product_uom_qty or 0,
            'qty_done': 0,
            'quantity_done': 0,
            'reserved_availability': line.product_uom_qty or 0,
        } for line in lines]

        return {
            'success': True,
            'orderId': order_id,
            'pickings': [{
                'id': p.id,
                'name': p.name,
                'state': p.state,
                'picking_type_id': p.picking_type_id,
                'move_lines': move_lines,
            } for p in pickings],
            'message': 'Picking details retrieved',
        }
