"""Cliente JSON-RPC 2.0 para el ERP (pasarela RPC).

Todas las llamadas al ERP pasan por OdooClient.call, que construye el sobre
`execute_kw`, envía un único POST y desenvuelve `result`/`error`. No hay
reintentos, caché ni agrupación en esta capa.
"""

import time
from typing import Any, Dict, List, NamedTuple, Optional
import requests
from pydantic import ValidationError as PydanticValidationError
from config import get_settings
from errors import EmptyResultError, RpcError, UpstreamError
from logger import get_logger
from models import RpcResponse

log = get_logger(__name__)


class Credentials(NamedTuple):
    """Credenciales ERP del usuario, extraídas de la sesión sellada."""
    uid: int
    password: str


# next_request_id: Id del sobre JSON-RPC (milisegundos de reloj de pared).
# Las colisiones se toleran porque las peticiones no se encadenan por conexión.
def next_request_id() -> int:
    return int(time.time() * 1000)


class OdooClient:
    """Pasarela hacia el endpoint JSON-RPC del ERP.

    Recibe una sesión `requests` inyectable (los tests pasan un transporte
    falso) y usa la URL, base de datos y timeout de la configuración.
    """
    def __init__(self, url: Optional[str] = None, db: Optional[str] = None,
                 timeout: Optional[float] = None, http=None):
        settings = get_settings()
        self.url = url or settings.odoo_url
        self.db = db or settings.odoo_db
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.http = http if http is not None else requests.Session()

    # _post: Envía el sobre y devuelve la respuesta JSON-RPC validada.
    def _post(self, service: str, method: str, args: List[Any]) -> RpcResponse:
        payload = {
            'jsonrpc': '2.0',
            'method': 'call',
            'params': {'service': service, 'method': method, 'args': args},
            'id': next_request_id(),
        }
        try:
            resp = self.http.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError(f"Odoo unreachable: {e}")
        if not resp.ok:
            raise UpstreamError(f"HTTP error! status: {resp.status_code}")
        try:
            return RpcResponse.model_validate(resp.json())
        except (ValueError, PydanticValidationError):
            raise UpstreamError('Malformed response from Odoo')

    def authenticate(self, username: str, password: str) -> Optional[int]:
        """Autentica contra `common.authenticate`; devuelve el uid o None."""
        try:
            resp = self._post('common', 'authenticate', [self.db, username, password, {}])
        except UpstreamError as e:
            log.error("Odoo authentication failed: %s", e.message)
            return None
        if resp.error:
            log.error("Odoo authentication error: %s", resp.error.message)
            return None
        uid = resp.result
        if isinstance(uid, bool) or not isinstance(uid, int) or uid <= 0:
            return None
        return uid

    def call(self, creds: Credentials, model: str, method: str,
             args: Optional[List[Any]] = None, kwargs: Optional[Dict[str, Any]] = None) -> Any:
        """Ejecuta `object.execute_kw` y devuelve `result`.

        Lanza RpcError si el ERP responde con `error` (mensaje de `data.message`
        si existe) y EmptyResultError si no hay `result`.
        """
        execute_args = [self.db, creds.uid, creds.password, model, method,
                        args if args is not None else [], kwargs or {}]
        resp = self._post('object', 'execute_kw', execute_args)
        if resp.error:
            err = resp.error
            message = (err.data.message if err.data and err.data.message else None) \
                or err.message or 'Unknown Odoo error'
            log.warning("Odoo error on %s.%s: %s", model, method, message)
            raise RpcError(message, err.code)
        if not resp.has_result:
            raise EmptyResultError()
        return resp.result

    # ------------------------- Atajos ORM -------------------------

    def search_read(self, creds: Credentials, model: str, domain: Optional[List[Any]] = None,
                    fields: Optional[List[str]] = None, limit: Optional[int] = None,
                    order: Optional[str] = None, context: Optional[Dict[str, Any]] = None) -> Any:
        kwargs: Dict[str, Any] = {}
        if fields:
            kwargs['fields'] = fields
        if limit is not None:
            kwargs['limit'] = limit
        if order:
            kwargs['order'] = order
        if context:
            kwargs['context'] = context
        return self.call(creds, model, 'search_read', [domain or []], kwargs)

    def search(self, creds: Credentials, model: str, domain: Optional[List[Any]] = None,
               limit: Optional[int] = None) -> Any:
        kwargs = {'limit': limit} if limit is not None else None
        return self.call(creds, model, 'search', [domain or []], kwargs)

    def read(self, creds: Credentials, model: str, ids: List[int],
             fields: Optional[List[str]] = None) -> Any:
        args: List[Any] = [ids]
        if fields:
            args.append(fields)
        return self.call(creds, model, 'read', args)

    def create(self, creds: Credentials, model: str, values: Dict[str, Any],
               context: Optional[Dict[str, Any]] = None) -> Any:
        kwargs = {'context': context} if context else None
        return self.call(creds, model, 'create', [values], kwargs)

    def write(self, creds: Credentials, model: str, ids: List[int], values: Dict[str, Any]) -> Any:
        return self.call(creds, model, 'write', [ids, values])
