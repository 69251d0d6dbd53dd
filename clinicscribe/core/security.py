"""
Caller authentication and request identifiers
"""

import hashlib
import secrets
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import HTTPException, status, Request
from fastapi.security.utils import get_authorization_scheme_param
from clinicscribe.config import settings
from clinicscribe.core.logging import get_logger

logger = get_logger(__name__)


class SecurityManager:
    """Central security handling"""

    def __init__(self, api_keys=None, secret_key: str = None, algorithm: str = None):
        self.api_keys = set(settings.api_keys if api_keys is None else api_keys)
        self.secret_key = settings.api_secret_key if secret_key is None else secret_key
        self.algorithm = algorithm or settings.token_algorithm

    @property
    def enabled(self) -> bool:
        return bool(self.api_keys)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verifies a JWT issued by the web front end"""
        if not self.secret_key:
            return None
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning("token_verification_failed", error=str(e))
            return None

    def hash_api_key(self, api_key: str) -> str:
        """Short hash of an API key, safe to log"""
        return hashlib.sha256(api_key.encode()).hexdigest()[:16]

    def generate_request_id(self) -> str:
        return secrets.token_urlsafe(16)

    def validate_api_key(self, api_key: str) -> bool:
        if not api_key or not api_key.strip():
            return False
        return any(secrets.compare_digest(api_key, known) for known in self.api_keys)


# Global security manager instance
security_manager = SecurityManager()


async def get_current_caller(request: Request) -> Dict[str, Any]:
    """
    Dependency for authenticated requests.
    Accepts a JWT bearer token or an X-API-Key header. When no API keys are
    configured the check is disabled (local development).
    """
    if not security_manager.enabled:
        return {"sub": "anonymous", "auth_type": "disabled"}

    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, credentials = get_authorization_scheme_param(auth_header)
        if scheme.lower() == "bearer":
            token_payload = security_manager.verify_token(credentials)
            if token_payload:
                return token_payload

    api_key = request.headers.get("X-API-Key")
    if api_key and security_manager.validate_api_key(api_key):
        key_hash = security_manager.hash_api_key(api_key)
        return {"sub": f"api_key_{key_hash}", "auth_type": "api_key"}

    logger.warning("authentication_failed", path=request.url.path)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
