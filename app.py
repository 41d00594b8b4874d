"""Aplicación FastAPI del back-office de la tienda.

Cada endpoint valida la petición, recupera las credenciales ERP de la sesión
sellada y delega en un servicio (pedidos, productos, cheques) que habla con
el ERP vía JSON-RPC. Los errores se traducen a un único cuerpo JSON
`{"error": ...}` en los manejadores registrados por create_app.
"""

import re
import time
from typing import List, Optional
from urllib.parse import quote
import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from attribute_cache import AttributeCache
from audit_log import AuditLog
from config import get_settings
from errors import AppError, AuthError, ValidationError
from labels import render_product_labels, render_voucher_label
from logger import get_logger
from odoo_client import Credentials, OdooClient
from orders import OrderService, attachment_bytes
from products import ProductService
from rate_limiter import LoginRateLimiter, client_ip
from security import SessionData, seal_session, unseal_session
from vouchers import VoucherService

log = get_logger(__name__)
router = APIRouter()

# ---------------------------- Schemas ----------------------------
class LoginPayload(BaseModel):
    """Credenciales ERP del empleado."""
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=200)

class OrderPayload(BaseModel):
    """Cuerpo común de los endpoints de pedido."""
    orderId: Optional[int] = None

class ScanPayload(BaseModel):
    """Escaneo por código de barras/nombre o selección por id."""
    barcode: Optional[str] = None
    productId: Optional[int] = None
    light: bool = False

class StockItem(BaseModel):
    productId: int
    quantity: float

class AdjustStockPayload(BaseModel):
    items: Optional[List[StockItem]] = None

class ProductIdsPayload(BaseModel):
    """Ids de producto; en etiquetas un id repetido imprime varias copias."""
    productIds: Optional[List[int]] = None

class VoucherPayload(BaseModel):
    amount: Optional[float] = None
    customerId: Optional[int] = None
    customerName: Optional[str] = None
    email: Optional[str] = None
    expiryDate: Optional[str] = None

class VoucherLabelPayload(BaseModel):
    voucherCode: Optional[str] = None
    voucherId: Optional[int] = None

# ----------------------- Auth Dependencies -----------------------

def request_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return client_ip(request.headers.get('x-forwarded-for'), peer)

def get_session(request: Request) -> Optional[SessionData]:
    """Sesión del navegador o None si no hay cookie válida."""
    settings = request.app.state.settings
    return unseal_session(request.cookies.get(settings.session_cookie_name), settings)

def require_session(request: Request) -> SessionData:
    """Obtiene la sesión autenticada o lanza 401."""
    session = get_session(request)
    if session is None:
        raise AuthError('Unauthorized', {'message': 'You must be logged in to access this resource'})
    return session

def get_credentials(session: SessionData = Depends(require_session)) -> Credentials:
    return Credentials(session.uid, session.password)

def order_service(request: Request, creds: Credentials = Depends(get_credentials)) -> OrderService:
    return OrderService(request.app.state.odoo, creds, request.app.state.settings)

def product_service(request: Request, creds: Credentials = Depends(get_credentials)) -> ProductService:
    return ProductService(request.app.state.odoo, creds, request.app.state.attribute_cache)

def voucher_service(request: Request, creds: Credentials = Depends(get_credentials)) -> VoucherService:
    return VoucherService(request.app.state.odoo, creds, request.app.state.settings)

def enforce_login_rate_limit(request: Request):
    """Cuenta el intento antes de validar el cuerpo; lanza 429 al superar el límite."""
    request.app.state.rate_limiter.check(request_ip(request))

def require_order_id(payload: OrderPayload) -> int:
    if not payload.orderId:
        raise ValidationError('Order ID is required')
    return payload.orderId

# content_disposition: `filename` ASCII de reserva más `filename*` (RFC 5987)
# con el nombre original; las cabeceras HTTP solo admiten latin-1.
def content_disposition(name: str) -> str:
    fallback = re.sub(r'[^\x20-\x7e]', '_', name).replace('\\', '\\\\').replace('"', '\\"')
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"

def pdf_response(name: str, content: bytes) -> Response:
    return Response(content=content, media_type='application/pdf',
                    headers={'Content-Disposition': content_disposition(name)})

# --------------------------- Auth Routes -------------------------
@router.post('/api/odoo-login', dependencies=[Depends(enforce_login_rate_limit)])
def login(payload: LoginPayload, request: Request):
    """Autentica contra el ERP y guarda las credenciales en la cookie sellada."""
    state = request.app.state
    settings = state.settings
    ip = request_ip(request)
    user_agent = request.headers.get('user-agent', 'unknown')

    uid = state.odoo.authenticate(payload.username, payload.password)
    if not uid:
        state.audit_log.login_failure(payload.username, ip, 'Invalid credentials', user_agent)
        raise AuthError('Invalid credentials')

    session = SessionData(uid=uid, username=payload.username, password=payload.password)
    response = JSONResponse({'success': True, 'user': {'uid': uid, 'username': payload.username}})
    response.set_cookie(
        settings.session_cookie_name,
        seal_session(session, settings),
        max_age=settings.session_max_age,
        path='/',
        httponly=True,
        secure=settings.is_production,
        samesite='strict' if settings.is_production else 'lax',
    )
    state.audit_log.login_success(uid, payload.username, ip, user_agent)
    return response

@router.post('/api/logout')
def logout(request: Request):
    """Destruye la sesión (idempotente)."""
    session = get_session(request)
    if session is not None:
        request.app.state.audit_log.logout(session.uid, session.username, request_ip(request))
    response = JSONResponse({'success': True})
    response.delete_cookie(request.app.state.settings.session_cookie_name, path='/')
    return response

@router.get('/api/auth/session')
def session_check(request: Request):
    """Estado de la sesión para la UI; nunca responde 401."""
    session = get_session(request)
    if session is None:
        return {'isLoggedIn': False, 'user': None}
    return {'isLoggedIn': True, 'user': {'uid': session.uid, 'username': session.username}}

@router.get('/api/env-info', dependencies=[Depends(require_session)])
def env_info(request: Request):
    """Entorno ERP al que apunta la aplicación (banner de producción/pruebas)."""
    settings = request.app.state.settings
    return {
        'odooUrl': settings.odoo_url,
        'odooDb': settings.odoo_db,
        'appEnv': settings.app_env,
        'isProduction': settings.is_production or 'prod' in settings.odoo_db.lower(),
        'environmentName': settings.environment_name,
    }

@router.get('/api/audit-logs', dependencies=[Depends(require_session)])
def audit_logs(request: Request, limit: int = Query(100, ge=1, le=1000)):
    """Últimos eventos de login/logout, del más reciente al más antiguo."""
    return {'logs': request.app.state.audit_log.recent(limit)}

# ------------------------- Product Routes ------------------------
@router.post('/api/scan-product')
def scan_product(payload: ScanPayload, service: ProductService = Depends(product_service)):
    return service.scan(payload.barcode, payload.productId, payload.light)

@router.post('/api/adjust-stock')
def adjust_stock(payload: AdjustStockPayload, service: ProductService = Depends(product_service)):
    if not payload.items:
        raise ValidationError('Items array is required')
    return service.adjust_stock([item.model_dump() for item in payload.items])

@router.post('/api/product-images')
def product_images(payload: ProductIdsPayload, service: ProductService = Depends(product_service)):
    if not payload.productIds:
        raise ValidationError('productIds array is required')
    return service.images(payload.productIds)

@router.post('/api/print-product-labels', response_class=HTMLResponse)
def print_product_labels(payload: ProductIdsPayload, service: ProductService = Depends(product_service)):
    """HTML imprimible con una etiqueta por id pedido."""
    if not payload.productIds:
        raise ValidationError('Product IDs array is required')
    products = service.products_for_labels(payload.productIds)
    log.info("Generated %d product label(s)", len(products))
    return HTMLResponse(render_product_labels(products))

# -------------------------- Order Routes -------------------------
@router.get('/api/pending-orders')
def pending_orders(service: OrderService = Depends(order_service)):
    return service.pending_orders()

@router.post('/api/confirm-order')
def confirm_order(payload: OrderPayload, service: OrderService = Depends(order_service)):
    return service.confirm_order(require_order_id(payload))

@router.post('/api/check-product-availability')
def check_product_availability(payload: OrderPayload, service: OrderService = Depends(order_service)):
    return service.check_availability(require_order_id(payload))

@router.post('/api/get-picking-details')
def get_picking_details(payload: OrderPayload, service: OrderService = Depends(order_service)):
    return service.picking_details(require_order_id(payload))

@router.post('/api/confirm-delivery')
def confirm_delivery(payload: OrderPayload, service: OrderService = Depends(order_service)):
    """Valida las entregas del pedido; éxito parcial se informa por picking."""
    return service.confirm_delivery(require_order_id(payload))

@router.post('/api/send-to-shipper')
def send_to_shipper(payload: OrderPayload, service: OrderService = Depends(order_service)):
    return service.send_to_shipper(require_order_id(payload))

@router.post('/api/download-order-invoice')
def download_order_invoice(payload: OrderPayload, service: OrderService = Depends(order_service)):
    invoice = service.find_invoice(require_order_id(payload))
    return pdf_response(invoice.name, attachment_bytes(invoice))

@router.post('/api/download-shipping-label')
def download_shipping_label(payload: OrderPayload, service: OrderService = Depends(order_service)):
    label = service.find_shipping_label(require_order_id(payload))
    return pdf_response(label.name, attachment_bytes(label))

@router.post('/api/download-order-attachments')
def download_order_attachments(payload: OrderPayload, service: OrderService = Depends(order_service)):
    return service.order_attachments(require_order_id(payload))

# ------------------------- Voucher Routes ------------------------
@router.post('/api/create-gift-voucher')
def create_gift_voucher(payload: VoucherPayload, service: VoucherService = Depends(voucher_service)):
    return service.create_gift_voucher(
        payload.amount, payload.customerId, payload.customerName, payload.email, payload.expiryDate)

@router.get('/api/search-customers')
def search_customers(query: Optional[str] = None, service: VoucherService = Depends(voucher_service)):
    return service.search_customers(query)

@router.post('/api/print-voucher-label', response_class=HTMLResponse)
def print_voucher_label(payload: VoucherLabelPayload, service: VoucherService = Depends(voucher_service)):
    """Etiqueta del cheque; con voucherId se cargan código, saldo y caducidad."""
    code, amount, expiry = payload.voucherCode, 0.0, None
    if payload.voucherId:
        voucher = service.load_voucher(payload.voucherId)
        if voucher is not None:
            code, amount, expiry = voucher.code, voucher.points or 0.0, voucher.expiration_date
    if not code:
        raise ValidationError('Voucher code is required')
    return HTMLResponse(render_voucher_label(code, amount, expiry))

# -------------------------- Utility ------------------------------
@router.get('/health')
def health(request: Request):
    """Verificación básica de salud y entorno ERP configurado."""
    return {'status': 'ok', 'erp': request.app.state.settings.environment_name}

# ------------------------- Error Handlers ------------------------

def register_error_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    def handle_app_error(request: Request, exc: AppError):
        response = JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_body()))
        if isinstance(exc, AuthError):
            # sesión ausente o corrupta: se destruye
            response.delete_cookie(request.app.state.settings.session_cookie_name, path='/')
        return response

    @app.exception_handler(StarletteHTTPException)
    def handle_http_error(request: Request, exc: StarletteHTTPException):
        """Ruta desconocida (404) o verbo no admitido (405)."""
        return JSONResponse(status_code=exc.status_code, content={'error': exc.detail},
                            headers=getattr(exc, 'headers', None))

    @app.exception_handler(RequestValidationError)
    def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={
            'error': 'Invalid input',
            'details': jsonable_encoder(exc.errors()),
        })

    @app.exception_handler(Exception)
    def handle_unexpected(request: Request, exc: Exception):
        log.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(status_code=500, content={'error': str(exc) or 'Internal server error'})

# -------------------------- Factory ------------------------------

def create_app(settings=None, client: Optional[OdooClient] = None, clock=time.time) -> FastAPI:
    """Construye la app con su estado propio (cliente ERP, limitador, caché, auditoría)."""
    settings = settings or get_settings()
    if settings.is_production and settings.secret_is_default:
        log.warning("APP_ENV=production without SESSION_SECRET; using the built-in development secret")

    app = FastAPI(title="Shop Back-office API", version="0.1.0")
    app.state.settings = settings
    app.state.odoo = client or OdooClient(settings.odoo_url, settings.odoo_db, settings.request_timeout)
    app.state.rate_limiter = LoginRateLimiter(settings.login_rate_window, settings.login_max_attempts, clock)
    app.state.attribute_cache = AttributeCache(settings.attribute_cache_ttl, clock)
    app.state.audit_log = AuditLog(settings.audit_log_size)
    register_error_handlers(app)
    app.include_router(router)
    return app

app = create_app()

# main: Punto de entrada `shop-backoffice` (sirve la app con uvicorn).
def main():
    settings = app.state.settings
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=settings.log_level.lower())

if __name__ == '__main__':
    main()
