"""Cheques regalo (loyalty.card) y búsqueda de clientes."""

from typing import Any, Dict, Optional
from config import get_settings
from errors import NotFoundError, ValidationError
from logger import get_logger
from models import (
    LoyaltyCardRecord, LoyaltyProgramRecord, PartnerRecord, expect_id, parse_records,
)
from odoo_client import Credentials, OdooClient

log = get_logger(__name__)

CUSTOMER_SEARCH_LIMIT = 20
CARD_FIELDS = ['id', 'code', 'points', 'expiration_date', 'partner_id']


def voucher_dict(card: LoyaltyCardRecord) -> Dict[str, Any]:
    return {
        'id': card.id,
        'code': card.code,
        'points': card.points,
        'expiration_date': card.expiration_date,
        'partner_id': card.partner_id,
    }


class VoucherService:
    def __init__(self, client: OdooClient, creds: Credentials, settings=None):
        self.client = client
        self.creds = creds
        self.settings = settings or get_settings()

    # _gift_card_program: Prueba los nombres configurados (producción y pruebas
    # usan nombres distintos), incluyendo programas archivados.
    def _gift_card_program(self) -> LoyaltyProgramRecord:
        names = self.settings.gift_card_programs
        for name in names:
            rows = self.client.search_read(
                self.creds, 'loyalty.program',
                [['name', '=', name], ['program_type', '=', 'gift_card']],
                ['id', 'name', 'program_type'], limit=1,
                context={'active_test': False, 'lang': self.settings.erp_lang},
            )
            programs = parse_records(LoyaltyProgramRecord, rows)
            if programs:
                log.info("Found loyalty program %r (ID: %s)", programs[0].name, programs[0].id)
                return programs[0]
        raise NotFoundError('Geen gift card programma gevonden. Geprobeerd: ' + ', '.join(names))

    # _resolve_partner: cliente elegido > nombre existente > cliente nuevo;
    # sin datos el cheque queda anónimo (None).
    def _resolve_partner(self, customer_id: Optional[int], customer_name: Optional[str],
                         email: Optional[str]) -> Optional[int]:
        if customer_id:
            return customer_id
        name = (customer_name or '').strip()
        if not name:
            log.info("No customer specified - creating anonymous voucher")
            return None
        partners = parse_records(PartnerRecord, self.client.search_read(
            self.creds, 'res.partner', [['name', '=', name]], ['id', 'name'], limit=1))
        if partners:
            return partners[0].id
        partner_id = expect_id(self.client.create(self.creds, 'res.partner', {
            'name': name,
            'email': email or False,
            'customer_rank': 1,
        }), 'res.partner')
        log.info("Created new customer %s", partner_id)
        return partner_id

    def create_gift_voucher(self, amount: Optional[float], customer_id: Optional[int] = None,
                            customer_name: Optional[str] = None, email: Optional[str] = None,
                            expiry_date: Optional[str] = None) -> Dict[str, Any]:
        if not amount or amount <= 0:
            raise ValidationError('Amount is required and must be greater than 0')

        program = self._gift_card_program()
        partner_id = self._resolve_partner(customer_id, customer_name, email)

        values: Dict[str, Any] = {'program_id': program.id, 'points': amount}
        if partner_id is not None:
            values['partner_id'] = partner_id
        if expiry_date:
            values['expiration_date'] = expiry_date

        card_id = expect_id(self.client.create(self.creds, 'loyalty.card', values), 'loyalty.card')
        voucher = self.load_voucher(card_id)
        log.info("Gift voucher %s created (code %s)", card_id, voucher.code if voucher else None)
        return {
            'success': True,
            'voucher': voucher_dict(voucher) if voucher else None,
            'message': (f'Cadeaubon aangemaakt! Code: {voucher.code}' if voucher and voucher.code
                        else 'Cadeaubon aangemaakt!'),
        }

    def load_voucher(self, voucher_id: int) -> Optional[LoyaltyCardRecord]:
        rows = self.client.search_read(self.creds, 'loyalty.card', [['id', '=', voucher_id]], CARD_FIELDS, limit=1)
        cards = parse_records(LoyaltyCardRecord, rows)
        return cards[0] if cards else None

    def search_customers(self, query: Optional[str]) -> Dict[str, Any]:
        if not query or len(query) < 2:
            return {'customers': []}
        rows = self.client.search_read(
            self.creds, 'res.partner',
            ['|', ['name', 'ilike', query], ['email', 'ilike', query], ['customer_rank', '>', 0]],
            ['id', 'name', 'email', 'phone', 'city'],
            limit=CUSTOMER_SEARCH_LIMIT, order='name asc',
        )
        customers = parse_records(PartnerRecord, rows)
        log.info("Found %d customers matching %r", len(customers), query)
        return {'customers': [{
            'id': c.id,
            'name': c.name,
            'email': c.email,
            'phone': c.phone,
            'city': c.city,
        } for c in customers]}
