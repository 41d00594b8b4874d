"""Consulta de productos, ajustes de stock e imágenes.

La búsqueda por código de barras/nombre resuelve los atributos de cada
variante a través de la caché de atributos compartida por la aplicación.
"""

import re
from functools import cmp_to_key
from typing import Any, Dict, List, Optional
from attribute_cache import AttributeCache, AttributeInfo
from errors import NotFoundError, UpstreamError, ValidationError
from logger import get_logger
from models import (
    AttributeValueRecord, ProductRecord, TemplateRecord, WarehouseRecord,
    expect_id, expect_ids, m2o_id, parse_records, unique_ids,
)
from odoo_client import Credentials, OdooClient

log = get_logger(__name__)

PRODUCT_FIELDS = ['id', 'name', 'barcode', 'product_tmpl_id', 'qty_available', 'list_price']
VARIANT_FIELDS = ['id', 'name', 'display_name', 'barcode', 'qty_available', 'list_price',
                  'product_template_attribute_value_ids']
SEARCH_LIMIT = 50
# Atributo de marca: no se muestra junto a la variante.
HIDDEN_ATTRIBUTE = 'merk'

_NUMBER = re.compile(r'(\d+)')


# attribute_label: Une los valores de atributo visibles ("3 jaar, Rood").
def attribute_label(attr_ids: List[int], attr_map: Dict[int, AttributeInfo]) -> Optional[str]:
    names = []
    for attr_id in attr_ids:
        attr = attr_map.get(attr_id)
        if attr and HIDDEN_ATTRIBUTE not in attr.attribute_name.lower():
            names.append(attr.name)
    return ', '.join(names) or None


# compare_variants: Primero por el número que aparezca en los atributos
# ("3 jaar" < "10 jaar"), después alfabético; sin atributos van al final.
def compare_variants(a: Dict[str, Any], b: Dict[str, Any]) -> int:
    a_attrs, b_attrs = a.get('attributes'), b.get('attributes')
    if not a_attrs and not b_attrs:
        return 0
    if not a_attrs:
        return 1
    if not b_attrs:
        return -1
    a_match, b_match = _NUMBER.search(a_attrs), _NUMBER.search(b_attrs)
    if a_match and b_match:
        a_num, b_num = int(a_match.group(1)), int(b_match.group(1))
        if a_num != b_num:
            return -1 if a_num < b_num else 1
    a_key, b_key = a_attrs.casefold(), b_attrs.casefold()
    return (a_key > b_key) - (a_key < b_key)


class ProductService:
    """Operaciones de producto/stock para un usuario concreto."""
    def __init__(self, client: OdooClient, creds: Credentials, cache: AttributeCache):
        self.client = client
        self.creds = creds
        self.cache = cache

    def _fetch_attribute_values(self, ids: List[int]) -> List[AttributeValueRecord]:
        rows = self.client.search_read(
            self.creds, 'product.template.attribute.value', [['id', 'in', ids]],
            ['id', 'name', 'attribute_id'],
        )
        return parse_records(AttributeValueRecord, rows)

    def _attributes(self, attr_ids: List[int]) -> Dict[int, AttributeInfo]:
        return self.cache.lookup(attr_ids, self._fetch_attribute_values)

    def _search(self, domain: List[Any], fields: List[str], limit: Optional[int] = None,
                order: Optional[str] = None) -> List[ProductRecord]:
        rows = self.client.search_read(self.creds, 'product.product', domain, fields, limit=limit, order=order)
        return parse_records(ProductRecord, rows)

    # ----------------------------- Escaneo -----------------------------

    def scan(self, barcode: Optional[str] = None, product_id: Optional[int] = None,
             light: bool = False) -> Dict[str, Any]:
        """Busca un producto por código de barras, id o nombre.

        - light: solo la variante escaneada, sin plantillas.
        - product_id: id exacto (clic en un resultado de búsqueda).
        - barcode: coincidencia exacta y, si no hay, búsqueda por nombre/código.
        """
        log.info("Product scan - barcode=%r product_id=%r light=%s", barcode, product_id, light)
        if light and barcode:
            return self._light_scan(barcode.strip())

        if product_id:
            products = self._search([['id', '=', product_id], ['active', '=', True]], PRODUCT_FIELDS, limit=1)
            if not products:
                raise NotFoundError('Product niet gevonden', {'success': False})
            return self._variants_response(products[0])

        if not barcode:
            raise ValidationError('Barcode or product name is required')

        products = self._search([['barcode', '=', barcode], ['active', '=', True]], PRODUCT_FIELDS, limit=1)
        if not products:
            products = self._search(
                ['|', ['name', 'ilike', barcode], ['barcode', 'ilike', barcode], ['active', '=', True]],
                PRODUCT_FIELDS + ['product_template_attribute_value_ids'],
                limit=SEARCH_LIMIT, order='name asc',
            )
            if not products:
                raise NotFoundError(f'Geen product gevonden met naam of barcode: {barcode}', {'success': False})
            if len(products) > 1:
                return self._search_results(products)

        return self._variants_response(products[0])

    def _light_scan(self, barcode: str) -> Dict[str, Any]:
        products = self._search([['barcode', '=', barcode], ['active', '=', True]],
                                PRODUCT_FIELDS + ['product_template_attribute_value_ids'], limit=1)
        if not products:
            raise NotFoundError(f'Geen product gevonden met barcode: {barcode}', {'success': False})
        p = products[0]
        attr_map = self._attributes(p.product_template_attribute_value_ids)
        return {
            'success': True,
            'productName': p.name,
            'scannedVariantId': p.id,
            'variants': [{
                'id': p.id,
                'name': p.name,
                'barcode': p.barcode,
                'qty_available': p.qty_available,
                'list_price': p.list_price,
                'image': None,
                'isScanned': True,
                'attributes': attribute_label(p.product_template_attribute_value_ids, attr_map),
            }],
            'totalVariants': 1,
        }

    def _search_results(self, products: List[ProductRecord]) -> Dict[str, Any]:
        all_attr_ids = [i for p in products for i in p.product_template_attribute_value_ids]
        attr_map = self._attributes(all_attr_ids)
        log.info("Found %d products matching name search", len(products))
        return {
            'success': True,
            'isSearchResults': True,
            'searchResults': [{
                'id': p.id,
                'name': p.name,
                'barcode': p.barcode,
                'qty_available': p.qty_available,
                'list_price': p.list_price,
                'attributes': attribute_label(p.product_template_attribute_value_ids, attr_map),
            } for p in products],
            'totalResults': len(products),
        }

    def _variants_response(self, scanned: ProductRecord) -> Dict[str, Any]:
        template_id = m2o_id(scanned.product_tmpl_id)
        if not template_id:
            return {
                'success': True,
                'productName': scanned.name,
                'scannedVariant': {
                    'id': scanned.id,
                    'name': scanned.name,
                    'barcode': scanned.barcode,
                    'qty_available': scanned.qty_available,
                    'list_price': scanned.list_price,
                },
                'variants': [],
                'totalVariants': 1,
            }

        templates = parse_records(TemplateRecord, self.client.search_read(
            self.creds, 'product.template', [['id', '=', template_id]], ['name'], limit=1))
        variants_raw = self._search([['product_tmpl_id', '=', template_id], ['active', '=', True]],
                                    VARIANT_FIELDS, order='name asc')
        log.info("Found %d variants for product template %s", len(variants_raw), template_id)

        attr_map = self._attributes([i for v in variants_raw for i in v.product_template_attribute_value_ids])
        variants = [{
            'id': v.id,
            'name': v.display_name or v.name,
            'barcode': v.barcode or None,
            'qty_available': v.qty_available,
            'list_price': v.list_price,
            'isScanned': v.id == scanned.id,
            'attributes': attribute_label(v.product_template_attribute_value_ids, attr_map),
        } for v in variants_raw]
        variants.sort(key=cmp_to_key(compare_variants))

        return {
            'success': True,
            'productName': templates[0].name if templates else scanned.name,
            'scannedVariantId': scanned.id,
            'variants': variants,
            'totalVariants': len(variants),
        }

    # ----------------------------- Stock -----------------------------

    def adjust_stock(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Fija la cantidad contada de cada producto en el stock del almacén principal."""
        warehouses = parse_records(WarehouseRecord, self.client.search_read(
            self.creds, 'stock.warehouse', [], ['id', 'name', 'lot_stock_id'], limit=1))
        if not warehouses or not warehouses[0].lot_stock_id:
            raise UpstreamError('Geen magazijn gevonden in Odoo')
        location_id = m2o_id(warehouses[0].lot_stock_id)
        log.info("Stock adjustment for %d product(s) at location %s", len(items), location_id)

        results = []
        for item in items:
            product_id, quantity = item['productId'], item['quantity']
            try:
                quant_ids = expect_ids(self.client.search(
                    self.creds, 'stock.quant',
                    [['product_id', '=', product_id], ['location_id', '=', location_id]], limit=1,
                ), 'stock.quant')
                if not quant_ids:
                    quant_ids = [expect_id(self.client.create(self.creds, 'stock.quant', {
                        'product_id': product_id,
                        'location_id': location_id,
                        'inventory_quantity': quantity,
                    }), 'stock.quant')]
                else:
                    self.client.write(self.creds, 'stock.quant', quant_ids, {'inventory_quantity': quantity})
                self.client.call(self.creds, 'stock.quant', 'action_apply_inventory', [quant_ids])
                results.append({'productId': product_id, 'success': True})
            except UpstreamError as e:
                log.error("Failed to adjust stock for product %s: %s", product_id, e.message)
                results.append({'productId': product_id, 'success': False, 'error': e.message})

        succeeded = sum(1 for r in results if r['success'])
        return {
            'success': succeeded > 0,
            'results': results,
            'message': f'{succeeded} van {len(items)} producten aangepast',
        }

    # ---------------------------- Imágenes ----------------------------

    def images(self, product_ids: List[int]) -> Dict[str, Any]:
        products = self._search([['id', 'in', unique_ids(product_ids)]], ['id', 'image_1920'])
        return {'images': {p.id: p.image_1920 for p in products}}

    # products_for_labels: Respeta el orden pedido; ids repetidos repiten etiqueta.
    def products_for_labels(self, product_ids: List[int]) -> List[ProductRecord]:
        products = self._search([['id', 'in', unique_ids(product_ids)]], ['id', 'name', 'barcode', 'list_price'])
        by_id = {p.id: p for p in products}
        return [by_id[i] for i in product_ids if i in by_id]
