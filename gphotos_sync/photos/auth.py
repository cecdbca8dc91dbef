"""
OAuth authentication manager for Google Photos Sync.

Handles the Google OAuth 2.0 installed-app flow for the Photos Library API.
"""

import logging
from pathlib import Path
from typing import List, Optional

from google.auth.exceptions import GoogleAuthError, RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from ..core.constants import PHOTOS_OAUTH_SCOPES
from ..errors import AuthError

log = logging.getLogger(__name__)


class OAuthManager:
    """
    Manages OAuth 2.0 credentials for the Photos Library API.

    The first sign-in opens a browser and listens on a local port for the
    redirect; afterwards the saved token is refreshed silently.
    """

    def __init__(
        self,
        credentials_path: Path,
        token_path: Path,
        scopes: Optional[List[str]] = None,
        interactive: bool = True,
    ):
        """
        Initialize OAuth manager.

        Args:
            credentials_path: Path to OAuth client secrets JSON
            token_path: Path to save/load the user token
            scopes: OAuth scopes (read-only Photos scope by default)
            interactive: Allow the browser flow when no usable token exists
        """
        self.credentials_path = Path(credentials_path)
        self.token_path = Path(token_path)
        self.scopes = scopes or PHOTOS_OAUTH_SCOPES
        self.interactive = interactive
        self._credentials: Optional[Credentials] = None

    def _load_saved(self) -> Optional[Credentials]:
        if self._credentials is not None:
            return self._credentials
        if not self.token_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_path), self.scopes)
        except (ValueError, OSError) as e:
            log.warning("Ignoring unreadable token file %s: %s", self.token_path, e)
            return None

    def _run_flow(self) -> Credentials:
        if not self.interactive:
            raise AuthError("No valid token and interactive sign-in is disabled")
        if not self.credentials_path.exists():
            raise AuthError(f"OAuth client secrets not found at {self.credentials_path}")

        log.info("Starting browser sign-in")
        try:
            flow = InstalledAppFlow.from_client_secrets_file(str(self.credentials_path), self.scopes)
            return flow.run_local_server(port=0)
        except (GoogleAuthError, ValueError, OSError) as e:
            raise AuthError(f"OAuth sign-in failed: {e}") from e

    def get_credentials(self) -> Credentials:
        """
        Get valid credentials, refreshing or signing in as needed.

        Raises:
            AuthError: If no valid credentials can be obtained
        """
        creds = self._load_saved()
        changed = False

        if creds and creds.expired and creds.refresh_token:
            log.info("Access token expired, refreshing")
            try:
                creds.refresh(Request())
                changed = True
            except RefreshError as e:
                log.warning("Token refresh failed: %s", e)
                creds = None

        if not creds or not creds.valid:
            creds = self._run_flow()
            changed = True

        if changed:
            self._save_token(creds)
        self._credentials = creds
        return creds

    def get_valid_token(self) -> str:
        """Get a non-expired access token string."""
        return self.get_credentials().token

    def _save_token(self, creds: Credentials):
        """Save credentials to token file."""
        try:
            self.token_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.token_path, "w") as f:
                f.write(creds.to_json())
        except OSError as e:
            log.warning("Could not save token to %s: %s", self.token_path, e)

    def clear_token(self):
        """Remove saved token (force re-authentication)."""
        if self.token_path.exists():
            self.token_path.unlink()
        self._credentials = None
