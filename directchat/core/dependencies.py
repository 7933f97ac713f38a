import logging

import jwt
from fastapi import Depends, HTTPException, Query, WebSocketException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from directchat.core import config

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_token(token: str) -> dict:
    """Validate a Supabase access token and return its claims."""
    return jwt.decode(
        token,
        config.JWT_SIGN_KEY,
        algorithms=["HS256"],
        issuer=f"{config.SUPABASE_URL}/auth/v1",
        options={"verify_aud": False},
        leeway=60,
    )


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        return decode_token(token)

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.warning(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user_id(payload: dict = Depends(verify_token)) -> str:
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid authentication")
    return user_id


def get_websocket_user_id(token: str = Query(...)) -> str:
    """Browsers cannot set headers on a WebSocket, so the token rides in the query."""
    try:
        payload = decode_token(token)
    except jwt.InvalidTokenError as e:
        logger.warning(f"ws_jwt_verification_failed error={e}")
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION)

    user_id = payload.get("sub")
    if not user_id:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION)
    return user_id
