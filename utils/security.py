import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from core.environment import get_environment

logger = logging.getLogger(__name__)


class Security():
    """Signs and reads the identity tokens issued by the storefront login."""

    def __init__(self, secret_key: str = None, algorithm: str = None):
        env = get_environment()
        self._secret_key = secret_key or env.SECRET_KEY
        self._algorithm = algorithm or env.ALGORITHM

    def create_token(self, payload: dict, expires_in: int = 3600) -> str:
        data = dict(payload)
        data.setdefault("exp", datetime.now(timezone.utc) + timedelta(seconds=expires_in))
        return jwt.encode(data, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> dict:
        """Decodifica e verifica assinatura e expiração. ValueError se inválido."""
        try:
            decoded = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except JWTError as e:
            logger.info("Token inválido: %s", e)
            raise ValueError("Invalid token") from e

        if not decoded.get("_id"):
            raise ValueError("Token missing user identifier")
        return decoded


_security = Security()


def get_security() -> Security:
    return _security
