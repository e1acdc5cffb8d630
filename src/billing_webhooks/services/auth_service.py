from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from supabase import Client
import logging

from billing_webhooks.core.interfaces import IAuthService
from billing_webhooks.core.responses import AuthenticationException

logger = logging.getLogger(__name__)


class AuthService(IAuthService):
    """Resolves Supabase users from bearer tokens"""

    def __init__(self, supabase_client: Client):
        self.supabase = supabase_client

    async def verify_auth(self, credentials: HTTPAuthorizationCredentials):
        try:
            return await self._verify_token_internal(credentials)
        except AuthenticationException as e:
            raise HTTPException(status_code=401, detail=e.message)
        except Exception as e:
            logger.error(f"Authentication failed: {e}")
            raise HTTPException(status_code=401, detail="Authentication failed")

    async def _verify_token_internal(self, credentials: HTTPAuthorizationCredentials):
        if credentials is None or not credentials.credentials:
            raise AuthenticationException("No authorization header provided")

        try:
            response = self.supabase.auth.get_user(credentials.credentials)
        except Exception as e:
            logger.error(f"Token verification error: {e}")
            raise AuthenticationException("Authentication failed")

        if response is None or response.user is None:
            raise AuthenticationException("User not authenticated")

        return response.user
