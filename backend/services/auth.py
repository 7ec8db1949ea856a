"""Bearer-token identity.

Routers resolve the caller once through ``get_current_user`` and pass the
user's id into every service call; nothing below the routers reads headers.
Tokens are compact HS256 JWTs signed with ``RXGUARD_AUTH_SECRET``.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import os
import secrets
import time
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, status
from sqlmodel import Session, select

from database import get_session
from models import Profile, User

PBKDF2_ITERATIONS = 200_000
PASSWORD_SCHEME = "pbkdf2_sha256"
TOKEN_ALGORITHM = "HS256"
TOKEN_ISSUER = "rxguard"
TOKEN_TTL_SECONDS = int(os.getenv("RXGUARD_TOKEN_TTL_SECONDS", str(12 * 60 * 60)))
AUTH_SECRET = os.getenv("RXGUARD_AUTH_SECRET", "rxguard-dev-secret-change-me")

logger = logging.getLogger("rxguard.auth")


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    issued_at: int
    expires_at: int


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def _b64url_decode(encoded: str) -> bytes:
    padding = "=" * ((4 - len(encoded) % 4) % 4)
    return base64.urlsafe_b64decode(encoded + padding)


def _encode_segment(data: dict) -> str:
    return _b64url_encode(json.dumps(data, separators=(",", ":")).encode())


def _sign(message: bytes) -> bytes:
    return hmac.new(AUTH_SECRET.encode(), message, hashlib.sha256).digest()


# --- passwords ---


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    if not password:
        raise ValueError("Password cannot be empty")
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return f"{PASSWORD_SCHEME}${iterations}${_b64url_encode(salt)}${_b64url_encode(digest)}"


def _parse_password_hash(password_hash: str) -> tuple[int, bytes, bytes] | None:
    parts = password_hash.split("$", 3)
    if len(parts) != 4 or parts[0] != PASSWORD_SCHEME:
        return None
    try:
        return int(parts[1]), _b64url_decode(parts[2]), _b64url_decode(parts[3])
    except ValueError:
        return None


def verify_password(password: str, password_hash: str) -> bool:
    parsed = _parse_password_hash(password_hash)
    if parsed is None:
        return False
    iterations, salt, expected = parsed
    actual = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, iterations)
    return hmac.compare_digest(actual, expected)


def password_needs_rehash(password_hash: str) -> bool:
    parsed = _parse_password_hash(password_hash)
    return parsed is None or parsed[0] < PBKDF2_ITERATIONS


# --- tokens ---


def create_access_token(user: User, now: int | None = None) -> str:
    if user.id is None:
        raise ValueError("User id is required to issue token")

    issued_at = int(time.time()) if now is None else now
    header_b64 = _encode_segment({"alg": TOKEN_ALGORITHM, "typ": "JWT"})
    payload_b64 = _encode_segment(
        {
            "iss": TOKEN_ISSUER,
            "sub": str(user.id),
            "email": user.email,
            "iat": issued_at,
            "exp": issued_at + TOKEN_TTL_SECONDS,
        }
    )
    signature = _sign(f"{header_b64}.{payload_b64}".encode())
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def decode_access_token(token: str, now: int | None = None) -> TokenClaims:
    segments = token.split(".")
    if len(segments) != 3:
        raise _unauthorized("Invalid token")
    header_b64, payload_b64, signature_b64 = segments

    try:
        header = json.loads(_b64url_decode(header_b64))
        provided_signature = _b64url_decode(signature_b64)
    except ValueError as exc:
        raise _unauthorized("Invalid token") from exc
    if not isinstance(header, dict) or header.get("alg") != TOKEN_ALGORITHM:
        raise _unauthorized("Unsupported token algorithm")
    if not hmac.compare_digest(_sign(f"{header_b64}.{payload_b64}".encode()), provided_signature):
        raise _unauthorized("Invalid token signature")

    try:
        payload = json.loads(_b64url_decode(payload_b64))
    except ValueError as exc:
        raise _unauthorized("Invalid token payload") from exc
    if not isinstance(payload, dict) or payload.get("iss") != TOKEN_ISSUER:
        raise _unauthorized("Invalid token issuer")

    exp = payload.get("exp")
    current = int(time.time()) if now is None else now
    if not isinstance(exp, int) or exp < current:
        raise _unauthorized("Token expired")

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise _unauthorized("Invalid token subject")

    return TokenClaims(
        user_id=int(subject),
        email=str(payload.get("email", "")),
        issued_at=int(payload.get("iat", 0)),
        expires_at=exp,
    )


def extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise _unauthorized("Missing authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        raise _unauthorized("Invalid auth scheme")
    token = token.strip()
    if not token:
        raise _unauthorized("Missing token")
    return token


def get_current_user(
    authorization: str | None = Header(default=None),
    session: Session = Depends(get_session),
) -> User:
    claims = decode_access_token(extract_bearer_token(authorization))
    user = session.get(User, claims.user_id)
    if not user or not user.is_active:
        raise _unauthorized("Unauthorized")
    return user


def authenticate_user(email: str, password: str, session: Session) -> User | None:
    """Check credentials, upgrading the stored hash when its work factor is stale."""
    user = session.exec(select(User).where(User.email == email.strip().lower())).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    if password_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        session.add(user)
        try:
            session.commit()
            session.refresh(user)
        except Exception:
            session.rollback()
            logger.warning("Could not upgrade password hash for user_id=%s", user.id)
    return user


def user_payload(user: User, profile: Profile | None = None) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": profile.full_name if profile else "",
    }
