"""
OAuth2 provider clients (authorization-code flow).
"""
import logging
from typing import Optional, Protocol
from urllib.parse import urlencode

import requests

from core.errors import ProviderExchangeFailed, ProviderProfileMissingEmail

from .types import ProviderProfile

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class OAuthProvider(Protocol):
    """What the login flow needs from a provider."""

    name: str

    def authorization_url(self, state: str) -> str:
        ...

    def exchange_code(self, code: str) -> str:
        ...

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        ...


class GoogleOAuthClient:
    """Google OAuth2 client: consent URL, code exchange, userinfo."""

    name = "google"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_url,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "online",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> str:
        """Trade an authorization code for an access token.

        Raises:
            ProviderExchangeFailed: HTTP failure or no access_token in the reply
        """
        try:
            resp = self._session.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_url,
                    "grant_type": "authorization_code",
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            token = resp.json().get("access_token")
        except (requests.RequestException, ValueError) as e:
            raise ProviderExchangeFailed(f"token exchange failed: {e}") from e
        if not token:
            raise ProviderExchangeFailed("token response carried no access_token")
        return token

    def fetch_profile(self, access_token: str) -> ProviderProfile:
        """Fetch the signed-in user's id, email and name.

        Raises:
            ProviderExchangeFailed: HTTP failure
            ProviderProfileMissingEmail: profile without an email
        """
        try:
            resp = self._session.get(
                GOOGLE_USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise ProviderExchangeFailed(f"userinfo request failed: {e}") from e

        email = (data.get("email") or "").strip().lower()
        if not email:
            raise ProviderProfileMissingEmail("provider profile has no email")
        return ProviderProfile(id=str(data.get("id") or ""), email=email, name=data.get("name") or "")
