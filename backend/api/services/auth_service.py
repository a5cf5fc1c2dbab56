"""Supabase access token verification"""

import logging

import jwt

logger = logging.getLogger(__name__)


class AuthService:
    """Validate JWTs issued by Supabase Auth"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", audience: str | None = None):
        if not secret_key:
            raise ValueError("JWT secret key cannot be empty")

        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience

    def verify_token(self, token: str) -> dict | None:
        """Verify a JWT and return its payload if valid"""
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": bool(self.audience)},
            )
            if not payload.get("sub"):
                logger.warning("Token missing sub")
                return None

            return payload

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid token: {e}")
            return None
