"""Módulo de configuración del back-office.

Lee variables de entorno (y un `.env` local) una sola vez al arrancar el proceso:
URL y base de datos del ERP, secreto de sesión y parámetros de throttling/caché.

Formato esperado en GIFT_CARD_PROGRAMS:
  "Cadeaubonnen,Geschenkbon,Gift Cards" (nombres probados en orden).
"""

import os
from pathlib import Path
from functools import lru_cache
from typing import List
from urllib.parse import urlparse
from dotenv import load_dotenv

DEFAULT_SESSION_SECRET = 'complex_password_at_least_32_characters_long_change_this'
DEFAULT_GIFT_CARD_PROGRAMS = 'Cadeaubonnen,Geschenkbon,Gift Cards'

# parse_name_list: Convierte una cadena separada por comas en una lista limpia.
def parse_name_list(raw: str) -> List[str]:
    if not raw:
        return []
    return [item.strip() for item in raw.split(',') if item.strip()]

# get_settings: Devuelve (cacheado) la instancia única de Settings.
@lru_cache
def get_settings():
    return Settings()

class Settings:
    """Agrupa todos los parámetros de configuración usados en la aplicación.

    Se inicializa leyendo variables de entorno. No se recarga en caliente:
    cambiar el entorno requiere reiniciar el proceso.
    """
    def __init__(self, **overrides):
        base_dir = Path(__file__).resolve().parent
        load_dotenv(base_dir / '.env')

        # ERP (endpoint JSON-RPC y base de datos)
        self.odoo_url = os.getenv('ODOO_URL', 'http://localhost:8069/jsonrpc')
        self.odoo_db = os.getenv('ODOO_DB', 'odoo')
        self.request_timeout = float(os.getenv('REQUEST_TIMEOUT', '30'))
        self.erp_lang = os.getenv('ERP_LANG', 'nl_BE')
        self.erp_tz = os.getenv('ERP_TZ', 'Europe/Brussels')

        # Sesión
        self.app_env = os.getenv('APP_ENV', 'development').lower()
        self.session_secret = os.getenv('SESSION_SECRET', '')
        self.session_cookie_name = os.getenv('SESSION_COOKIE_NAME', 'pos_session')
        self.session_max_age = int(os.getenv('SESSION_MAX_AGE', str(60 * 60 * 24)))

        # Throttling de login y caché de atributos
        self.login_rate_window = float(os.getenv('LOGIN_RATE_WINDOW_SEC', str(15 * 60)))
        self.login_max_attempts = int(os.getenv('LOGIN_MAX_ATTEMPTS', '5'))
        self.attribute_cache_ttl = float(os.getenv('ATTRIBUTE_CACHE_TTL_SEC', str(5 * 60)))

        self.gift_card_programs = parse_name_list(
            os.getenv('GIFT_CARD_PROGRAMS', DEFAULT_GIFT_CARD_PROGRAMS)
        )
        self.log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
        self.audit_log_size = int(os.getenv('AUDIT_LOG_SIZE', '1000'))

        # Servidor HTTP (uvicorn)
        self.api_host = os.getenv('API_HOST', '127.0.0.1')
        self.api_port = int(os.getenv('API_PORT', '3001'))

        # Permite a los tests fijar valores sin tocar el entorno.
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        self.secret_is_default = not self.session_secret
        if self.secret_is_default:
            self.session_secret = DEFAULT_SESSION_SECRET

    @property
    def is_production(self) -> bool:
        return self.app_env == 'production'

    @property
    def environment_name(self) -> str:
        """Nombre legible del entorno ERP (hostname de la URL)."""
        host = urlparse(self.odoo_url).hostname
        return host or self.odoo_url
