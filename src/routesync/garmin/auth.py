"""
Garmin Connect token authentication with disk persistence.

garminconnect (0.2.x) logs in through garth, which produces OAuth1/OAuth2
tokens. We dump them to the tokens directory so the plaintext password is
only needed once, during `python -m routesync setup`:

    ~/.routesync/garmin_session/
        oauth1_token.json
        oauth2_token.json

On later starts the tokens are restored with login(tokenstore=...). If
Garmin rejects them we raise SessionExpiredError and the user re-runs
setup. Both errors below are NotAuthorized: the caller must re-prompt.
"""
import logging
import os
import stat
from pathlib import Path

import garminconnect

from routesync.errors import NotAuthorized

logger = logging.getLogger(__name__)

SESSION_DIR_NAME = "garmin_session"
TOKEN_FILE_NAME = "oauth2_token.json"


class NoSessionError(NotAuthorized):
    """Raised when no saved tokens exist."""


class SessionExpiredError(NotAuthorized):
    """Raised when saved tokens are rejected by Garmin's servers."""


class GarminAuth:
    """
    Manages Garmin Connect token persistence.

    Usage:
        auth = GarminAuth(settings.state_dir / SESSION_DIR_NAME)
        if not auth.has_session():
            auth.authenticate_and_save(email, password)
        api = auth.build_client()   # → garminconnect.Garmin instance
    """

    def __init__(self, tokens_dir: Path):
        self._tokens_dir = Path(tokens_dir)

    @property
    def tokens_dir(self) -> Path:
        return self._tokens_dir

    def has_session(self) -> bool:
        """Return True if saved tokens exist on disk."""
        return (self._tokens_dir / TOKEN_FILE_NAME).exists()

    def clear(self) -> None:
        """Delete saved token files (does not raise if already absent)."""
        if not self._tokens_dir.exists():
            return
        for token_file in self._tokens_dir.glob("*.json"):
            token_file.unlink()

    def authenticate_and_save(self, email: str, password: str) -> garminconnect.Garmin:
        """
        Log in with email + password and save the resulting tokens.

        Raises:
            NotAuthorized: if Garmin rejects the credentials.
        """
        api = garminconnect.Garmin(email, password)
        try:
            api.login()
        except garminconnect.GarminConnectAuthenticationError as exc:
            raise NotAuthorized(f"Garmin login failed: {exc}") from exc

        self._save(api)
        return api

    def build_client(self) -> garminconnect.Garmin:
        """
        Build an authenticated Garmin client from the saved tokens.

        Raises:
            NoSessionError: if setup has not been run.
            SessionExpiredError: if the saved tokens are no longer valid.
        """
        if not self.has_session():
            raise NoSessionError(
                f"No Garmin session found at {self._tokens_dir}. "
                "Run `python -m routesync setup` to authenticate."
            )

        api = garminconnect.Garmin()
        try:
            api.login(tokenstore=str(self._tokens_dir))
        except garminconnect.GarminConnectConnectionError:
            raise
        except Exception as exc:
            raise SessionExpiredError(
                "Garmin session has expired. "
                "Run `python -m routesync setup` to re-authenticate."
            ) from exc
        return api

    def _save(self, api: garminconnect.Garmin) -> None:
        """Dump tokens with owner-only permissions (dir 0700, files 0600)."""
        target = self._tokens_dir
        target.mkdir(parents=True, exist_ok=True)
        os.chmod(target, stat.S_IRWXU)

        api.garth.dump(str(target))
        for token_file in target.glob("*.json"):
            os.chmod(token_file, stat.S_IRUSR | stat.S_IWUSR)
        logger.info("Garmin tokens saved to %s", target)
