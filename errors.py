"""Taxonomía de errores de la API.

Cada error lleva su código HTTP y campos extra opcionales que se añaden al
cuerpo JSON `{"error": mensaje, ...}` en el manejador de excepciones de app.py.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """Error base con código HTTP y carga extra para la respuesta."""
    status_code = 500

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        body = {'error': self.message}
        body.update(self.extra)
        return body


class ValidationError(AppError):
    """Campos de la petición ausentes o mal formados."""
    status_code = 400


class AuthError(AppError):
    """Sesión ausente/inválida o credenciales incorrectas."""
    status_code = 401


class NotFoundError(AppError):
    """Registro esperado ausente en el ERP (p. ej. orden sin picking)."""
    status_code = 404


class RateLimitError(AppError):
    """Demasiados intentos de login desde la misma IP."""
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__(
            'Too many login attempts',
            {'retryAfter': retry_after, 'message': f'Please try again in {retry_after} seconds'},
        )
        self.retry_after = retry_after


class UpstreamError(AppError):
    """El ERP devolvió un error o una respuesta vacía/mal formada."""
    status_code = 500


class RpcError(UpstreamError):
    """Campo `error` presente en la respuesta JSON-RPC."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class EmptyResultError(UpstreamError):
    """Respuesta JSON-RPC sin `result` ni `error`."""

    def __init__(self, message: str = 'No result returned from Odoo'):
        super().__init__(message)


class DeliveryConfirmationError(UpstreamError):
    """Ningún picking del lote pudo confirmarse o enviarse."""
    status_code = 400

    def __init__(self, message: str, details):
        super().__init__(message, {'details': list(details)})
        self.details = list(details)
