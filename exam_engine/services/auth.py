# exam_engine/services/auth.py
# 외부 IdP 가 발급한 HS256 access token 검증. sub = 사용자 id, role = student|staff|admin
from typing import Dict
from uuid import UUID
from jose import JWTError, jwt
from exam_engine.config import settings
import logging

logger = logging.getLogger(__name__)

JWT_SECRET = settings.jwt_secret

if not JWT_SECRET:
    raise RuntimeError("JWT_SECRET 환경변수가 설정되어 있지 않습니다.")


def verify_bearer(authorization: str | None) -> Dict[str, object]:
    if not authorization:
        raise ValueError("missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise ValueError("invalid Authorization header")

    token = parts[1].strip()
    if not token:
        raise ValueError("invalid Authorization header")

    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=[settings.jwt_algorithm],
            options={
                "verify_aud": False,
                "verify_iss": False,
            },
        )
    except JWTError as e:
        logger.warning("[AUTH] JWT decode failed: %s", e)
        raise ValueError("invalid token") from e

    sub = claims.get("sub")
    if not sub:
        raise ValueError("invalid token: missing sub")

    try:
        user_id = UUID(str(sub))
    except ValueError as e:
        raise ValueError("invalid token: sub is not a uuid") from e

    return {
        "user_id": user_id,
        "email": claims.get("email"),
        "role": claims.get("role") or "student",
    }
