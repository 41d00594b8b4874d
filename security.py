"""Sellado de la sesión del navegador.

La sesión ({uid, username, password, isLoggedIn}) viaja en una cookie opaca:
un JWT firmado con PyJWT (caducidad incluida) cifrado después con Fernet usando
una clave derivada de SESSION_SECRET. El servidor no guarda estado de sesión.
"""

import base64
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt
from cryptography.fernet import Fernet, InvalidToken
from pydantic import BaseModel, ValidationError
from config import get_settings
from logger import get_logger

JWT_ALGORITHM = 'HS256'

log = get_logger(__name__)


class SessionData(BaseModel):
    """Contenido de la sesión; `password` solo existe dentro del sello cifrado."""
    uid: int
    username: str
    password: str
    isLoggedIn: bool = True


# _fernet: Deriva una clave Fernet de 32 bytes a partir del secreto configurado.
def _fernet(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode('utf-8')).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


# seal_session: Convierte la sesión en un blob opaco apto para cookie.
def seal_session(data: SessionData, settings=None) -> str:
    settings = settings or get_settings()
    exp = datetime.now(timezone.utc) + timedelta(seconds=settings.session_max_age)
    claims = {
        'uid': data.uid,
        'username': data.username,
        'password': data.password,
        'isLoggedIn': data.isLoggedIn,
        'exp': exp,
    }
    token = jwt.encode(claims, settings.session_secret, algorithm=JWT_ALGORITHM)
    return _fernet(settings.session_secret).encrypt(token.encode('utf-8')).decode('ascii')


# unseal_session: Devuelve la sesión o None si el blob es inválido, está
# manipulado o ha caducado.
def unseal_session(blob: Optional[str], settings=None) -> Optional[SessionData]:
    if not blob:
        return None
    settings = settings or get_settings()
    try:
        token = _fernet(settings.session_secret).decrypt(blob.encode('ascii'))
        claims = jwt.decode(token, settings.session_secret, algorithms=[JWT_ALGORITHM])
        session = SessionData.model_validate(claims)
    except (InvalidToken, UnicodeEncodeError, jwt.PyJWTError, ValidationError) as e:
        log.info("Discarding unreadable session cookie (%s)", type(e).__name__)
        return None
    if not session.isLoggedIn:
        return None
    return session
