import jwt

from .config import settings


def decode_jwt_token(token: str):
    """Decode and verify a JWT issued by the auth service"""
    try:
        # Ensure SECRET_KEY is properly set
        if not settings.SECRET_KEY or settings.SECRET_KEY == "change-me-in-prod":
            return None

        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None
