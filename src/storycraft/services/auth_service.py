import logging
from typing import Optional

from supabase import Client, create_client

from storycraft.core.config import Settings
from storycraft.core.errors import AuthExpired, AuthInvalid, AuthRequired


def get_supabase_client(settings: Settings) -> Client:
    """Get a Supabase client instance."""
    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)


class AuthService:
    """Resolves bearer tokens to user ids through Supabase auth."""

    def __init__(self, supabase: Client):
        self.supabase = supabase
        self.logger = logging.getLogger(__name__)

    def resolve_user_id(self, token: Optional[str]) -> str:
        """Verify a JWT and return the user id it belongs to.

        Raises:
            AuthRequired: no token supplied
            AuthExpired: token is expired, the client should sign in again
            AuthInvalid: token could not be verified
        """
        if not token:
            raise AuthRequired()
        try:
            self.logger.debug("Attempting to verify token")
            user = self.supabase.auth.get_user(token)
        except Exception as e:
            error_str = str(e)
            self.logger.error(f"Token verification failed: {error_str}")
            if "expired" in error_str.lower():
                raise AuthExpired()
            raise AuthInvalid()

        if not user or not user.user:
            self.logger.warning("Token verification failed: No valid user found")
            raise AuthInvalid()

        self.logger.info(f"Token verified successfully for user: {user.user.id}")
        return str(user.user.id)
