"""JWT access token validation (ES256).

Tokens are issued by the identity service; this service only verifies
them.  The verification key comes from JWT_PUBLIC_KEY (PEM).  When it is
unset (dev/test) an ephemeral EC key pair is generated on import, and
create_access_token() can mint tokens signed with it for local use.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = SETTINGS.jwt_issuer
AUDIENCE = SETTINGS.jwt_audience
ACCESS_TOKEN_TTL_MIN = 15

_private_key: ec.EllipticCurvePrivateKey | None
if SETTINGS.jwt_public_key:
    _private_key = None
    _public_key = serialization.load_pem_public_key(SETTINGS.jwt_public_key.encode())
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    email: str | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Sign a token with the ephemeral dev key.

    Only available when no JWT_PUBLIC_KEY is configured.
    """
    if _private_key is None:
        raise RuntimeError("token minting requires the ephemeral dev key")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["user"],
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256; exp, iss and aud are checked by PyJWT.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat"]},
    )
