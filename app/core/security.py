import hashlib
from datetime import datetime, timedelta, timezone
from jose import jwt

def hash_code(code: str) -> str:
    return hashlib.sha256(str(code).encode("utf-8")).hexdigest()

def create_jwt(payload: dict, secret: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    data = payload.copy()
    data.update({"iat": int(now.timestamp()), "exp": int((now + expires_delta).timestamp())})
    return jwt.encode(data, secret, algorithm="HS256")

def decode_jwt(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])
