from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt

TEST_JWT_SECRET = "test-supabase-jwt-secret-with-enough-length"


def make_token(user_id: str, secret: str = TEST_JWT_SECRET, expires_in: int = 3600) -> str:
    now = datetime.now(UTC)
    return jwt.encode(
        {
            "sub": user_id,
            "aud": "authenticated",
            "role": "authenticated",
            "iat": now,
            "exp": now + timedelta(seconds=expires_in),
        },
        secret,
        algorithm="HS256",
    )


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}
