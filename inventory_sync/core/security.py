import base64
import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from jose import JWTError, jwt

from inventory_sync.core.config import settings

ALGORITHM = "HS256"
OPERATOR_TOKEN_TYPE = "operator"
OPERATOR_ROLES = {"admin", "operator", "viewer"}


class TokenValidationError(ValueError):
    pass


@dataclass(frozen=True)
class OperatorIdentity:
    subject: str
    role: str
    jti: str
    expires_at: datetime


def create_token(
    subject: str,
    expires_delta: timedelta,
    token_type: str,
    role: str | None = None,
    jti: str | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "jti": jti or str(uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_delta).timestamp()),
    }
    if role:
        payload["role"] = role
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str, *, expected_type: str | None = None) -> dict:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise TokenValidationError("Invalid token") from exc

    subject = payload.get("sub")
    if not subject:
        raise TokenValidationError("Invalid token subject")

    token_type = payload.get("type")
    if expected_type and token_type != expected_type:
        raise TokenValidationError("Invalid token type")

    if not payload.get("jti"):
        raise TokenValidationError("Invalid token id")

    return payload


def create_operator_token(subject: str, role: str = "operator") -> str:
    normalized = role.strip().lower()
    if normalized not in OPERATOR_ROLES:
        raise ValueError(f"Unknown operator role '{role}'")
    return create_token(
        subject=subject,
        expires_delta=timedelta(minutes=settings.operator_token_expire_minutes),
        token_type=OPERATOR_TOKEN_TYPE,
        role=normalized,
    )


def decode_operator_token(token: str) -> OperatorIdentity:
    payload = decode_token(token, expected_type=OPERATOR_TOKEN_TYPE)
    role = str(payload.get("role") or "").lower()
    if role not in OPERATOR_ROLES:
        raise TokenValidationError("Invalid operator role")
    exp = payload.get("exp")
    if not exp:
        raise TokenValidationError("Invalid token expiration")
    return OperatorIdentity(
        subject=str(payload["sub"]),
        role=role,
        jti=str(payload["jti"]),
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc),
    )


def compute_webhook_signature(secret: str, payload_bytes: bytes) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload_bytes, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def compute_challenge_response(challenge_code: str, verification_token: str, endpoint_url: str) -> str:
    return hashlib.sha256(
        f"{challenge_code}{verification_token}{endpoint_url}".encode("utf-8")
    ).hexdigest()
