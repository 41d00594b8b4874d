"""Etiquetas imprimibles (HTML 62x29 mm) con código de barras.

Los códigos se generan localmente con python-barcode y se incrustan como
PNG en base64. Si un código no se puede generar, la etiqueta sale sin imagen.
"""

import base64
import io
import re
from datetime import datetime
from html import escape
from typing import Iterable, Optional
import barcode
from barcode.writer import ImageWriter
from logger import get_logger
from models import ProductRecord

log = get_logger(__name__)

WRITER_OPTIONS = {'write_text': False, 'module_height': 10.0, 'quiet_zone': 2.0, 'dpi': 300}

LABEL_PAGE_CSS = """
    @page { size: 62mm 29mm; margin: 0; }
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { margin: 0; padding: 0; font-family: Arial, sans-serif; }
"""

PRODUCT_LABEL_CSS = """
    .label {
      width: 62mm; height: 29mm; padding: 1.5mm 2mm;
      display: flex; flex-direction: column; justify-content: center; align-items: center;
      text-align: center; page-break-after: always; overflow: hidden;
    }
    .label:last-child { page-break-after: auto; }
    .product-name {
      font-size: 8pt; font-weight: bold; color: #000; margin-bottom: 1mm;
      max-height: 8mm; overflow: hidden; line-height: 1.2; width: 100%;
    }
    .price { font-size: 11pt; font-weight: bold; color: #000; margin-bottom: 1mm; }
    .barcode { max-width: 54mm; height: auto; max-height: 8mm; margin-bottom: 0.5mm; }
    .barcode-text { font-size: 7pt; font-family: 'Courier New', monospace; color: #333; letter-spacing: 0.5px; }
"""

VOUCHER_LABEL_CSS = """
    body {
      width: 62mm; height: 29mm; padding: 2mm;
      display: flex; flex-direction: column; justify-content: center; align-items: center;
      text-align: center;
    }
    .amount-line { font-size: 11pt; font-weight: bold; color: #000; margin-bottom: 1.5mm; white-space: nowrap; }
    .barcode { max-width: 56mm; height: auto; margin-bottom: 1mm; }
    .code { font-size: 9pt; font-weight: bold; letter-spacing: 0.5px; font-family: 'Courier New', monospace; color: #333; }
"""


# symbology_for: EAN-13/EAN-8 cuando el código encaja; Code 128 en otro caso.
def symbology_for(code: str) -> str:
    if re.fullmatch(r'\d{13}', code):
        return 'ean13'
    if re.fullmatch(r'\d{8}', code):
        return 'ean8'
    return 'code128'


def barcode_data_url(code: str, symbology: Optional[str] = None) -> str:
    """PNG del código como data URL, o cadena vacía si no se puede generar."""
    try:
        barcode_cls = barcode.get_barcode_class(symbology or symbology_for(code))
        buf = io.BytesIO()
        barcode_cls(code, writer=ImageWriter()).write(buf, options=WRITER_OPTIONS)
    except Exception as e:
        log.warning("Could not generate barcode for %r: %s", code, e)
        return ''
    return 'data:image/png;base64,' + base64.b64encode(buf.getvalue()).decode('ascii')


# format_eur: Importe en formato belga-neerlandés ("€ 1.234,50").
def format_eur(amount: float) -> str:
    text = f"{amount:,.2f}".replace(',', '_').replace('.', ',').replace('_', '.')
    return f"€ {text}"


# format_expiry: 'YYYY-MM-DD' → 'DD/MM/YYYY'; otros formatos se muestran tal cual.
def format_expiry(value: Optional[str]) -> str:
    if not value:
        return ''
    try:
        return datetime.strptime(value[:10], '%Y-%m-%d').strftime('%d/%m/%Y')
    except ValueError:
        return value


def _document(title: str, css: str, body: str, auto_print: bool = False) -> str:
    script = ("<script>window.onload = function() { setTimeout(function() { window.print(); }, 400); };"
              "</script>") if auto_print else ''
    return (f"<!DOCTYPE html>\n<html>\n<head>\n  <meta charset=\"UTF-8\">\n"
            f"  <title>{escape(title)}</title>\n  <style>{LABEL_PAGE_CSS}{css}</style>\n</head>\n"
            f"<body>\n{body}\n{script}\n</body>\n</html>")


def render_product_labels(products: Iterable[ProductRecord]) -> str:
    """Una etiqueta por producto (nombre, precio, código de barras)."""
    products = list(products)
    images = {code: barcode_data_url(code) for code in {p.barcode for p in products if p.barcode}}
    blocks = []
    for product in products:
        image = images.get(product.barcode, '') if product.barcode else ''
        parts = [
            f'<div class="product-name">{escape(product.name)}</div>',
            f'<div class="price">{escape(format_eur(product.list_price or 0))}</div>',
        ]
        if image:
            parts.append(f'<img src="{image}" class="barcode" alt="Barcode" />')
        if product.barcode:
            parts.append(f'<div class="barcode-text">{escape(product.barcode)}</div>')
        blocks.append('<div class="label">' + ''.join(parts) + '</div>')
    return _document('Product Labels', PRODUCT_LABEL_CSS, '\n'.join(blocks), auto_print=True)


def render_voucher_label(code: str, amount: float, expiry_date: Optional[str] = None) -> str:
    image = barcode_data_url(code, 'code128')
    expiry = format_expiry(expiry_date)
    amount_line = f"€{amount:.2f}" + (f" geldig tot: {expiry}" if expiry else '')
    body = f'<div class="amount-line">{escape(amount_line)}</div>'
    if image:
        body += f'<img src="{image}" class="barcode" alt="Barcode" />'
    body += f'<div class="code">{escape(code)}</div>'
    return _document('Cadeaubon', VOUCHER_LABEL_CSS, body)
