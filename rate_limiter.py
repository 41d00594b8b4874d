"""Limitador de intentos de login por IP (ventana fija).

El primer intento de una ventana se admite sin comparar con el máximo y el
contador arranca en 1: con MAX = 5 se admiten 5 intentos y se deniega a
partir del 6.º.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from errors import RateLimitError
from logger import get_logger

log = get_logger(__name__)


@dataclass
class RateLimitBucket:
    key: str
    attempts: int
    reset_time: float


@dataclass
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None


# client_ip: Primera IP de X-Forwarded-For o, en su defecto, la del socket.
def client_ip(forwarded_for: Optional[str], peer: Optional[str]) -> str:
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return peer or 'unknown'


class LoginRateLimiter:
    """Contador de intentos por clave con ventana fija.

    El estado vive en memoria del proceso, sin locks: es un freno de mejor
    esfuerzo, no una garantía de seguridad, y se pierde al reiniciar.
    """
    def __init__(self, window_seconds: float = 15 * 60, max_attempts: int = 5,
                 clock: Callable[[], float] = time.time):
        self.window = window_seconds
        self.max_attempts = max_attempts
        self.clock = clock
        self.buckets: Dict[str, RateLimitBucket] = {}

    @staticmethod
    def key_for(ip: str) -> str:
        return f"login:{ip}"

    def hit(self, ip: str) -> RateLimitDecision:
        """Registra un intento y decide si se admite."""
        key = self.key_for(ip)
        now = self.clock()
        bucket = self.buckets.get(key)
        if bucket and now > bucket.reset_time:
            del self.buckets[key]
            bucket = None

        if bucket is None:
            self.buckets[key] = RateLimitBucket(key, 1, now + self.window)
            return RateLimitDecision(True)

        bucket.attempts += 1
        if bucket.attempts > self.max_attempts:
            retry_after = math.ceil(bucket.reset_time - now)
            log.warning("Login throttled for %s (%d attempts, retry in %ss)", ip, bucket.attempts, retry_after)
            return RateLimitDecision(False, retry_after)
        return RateLimitDecision(True)

    # check: Variante que lanza RateLimitError (HTTP 429) al denegar.
    def check(self, ip: str) -> None:
        decision = self.hit(ip)
        if not decision.allowed:
            raise RateLimitError(decision.retry_after)
