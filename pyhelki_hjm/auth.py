import asyncio
import logging
import time

from .constants import (
    FORM_CONTENT_TYPE,
    HDR_AUTHORIZATION,
    HDR_CONTENT_TYPE,
    HTTP_401_UNAUTHORIZED,
    TOKEN_PATH,
)
from .exceptions import (
    HelkiAPIError,
    HelkiAuthError,
    HelkiError,
    HelkiNoCredentials,
)
from .session import HelkiSession

_LOGGER = logging.getLogger(__name__)


class HelkiTokenManager:
    """
    Owns the credentials and the bearer token for one HJM account.

    Concurrent callers that need a new token share a single in-flight
    request: the first one starts it, everyone awaits the same task and
    observes the same token or the same exception.
    """

    def __init__(
        self,
        session: HelkiSession,
        username: str | None = None,
        password: str | None = None,
    ):
        self._session = session
        self._credentials: tuple[str, str] | None = None
        if username is not None and password is not None:
            self._credentials = (username, password)

        self._access_token: str | None = None
        self._expires_at: float = 0.0
        self._refresh_task: asyncio.Task | None = None

    # ---------- state helpers ----------

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None and time.time() < self._expires_at

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None

    @property
    def expires_at(self) -> float:
        """Epoch seconds after which the cached token is treated as stale."""
        return self._expires_at

    # ---------- public API ----------

    async def authenticate(self, username: str, password: str) -> str:
        """Store credentials and fetch a token with them."""
        self._credentials = (username, password)
        token = await self._fetch_token()
        _LOGGER.info("Authenticated with HJM cloud")
        return token

    async def get_token(self) -> str:
        if self.is_authenticated:
            return self._access_token
        return await self.refresh()

    async def refresh(self) -> str:
        # Check and assignment must not be separated by an await
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._run_refresh())
            # Retrieve the outcome even if every waiter was cancelled
            task.add_done_callback(lambda t: t.cancelled() or t.exception())
            self._refresh_task = task
        else:
            _LOGGER.debug("Joining in-flight token refresh")
        # shield: one waiter being cancelled must not cancel the others
        return await asyncio.shield(task)

    def invalidate(self) -> None:
        self._access_token = None
        self._expires_at = 0.0

    # ---------- token fetch ----------

    async def _run_refresh(self) -> str:
        try:
            return await self._fetch_token()
        finally:
            self._refresh_task = None

    async def _fetch_token(self) -> str:
        if not self._credentials:
            raise HelkiNoCredentials("No credentials available. Please log in first.")

        username, password = self._credentials
        config = self._session.config
        form = {
            "grant_type": "password",
            "username": username,
            "password": password,
        }
        headers = {
            HDR_AUTHORIZATION: f"Basic {config.client_basic_auth}",
            HDR_CONTENT_TYPE: FORM_CONTENT_TYPE,
        }

        try:
            resp = await self._session.request(
                "POST", self._session.url(TOKEN_PATH), headers=headers, data=form
            )
            if resp.status == HTTP_401_UNAUTHORIZED:
                raise HelkiAuthError("Invalid credentials. Check your HJM app login.")
            if not resp.ok:
                raise HelkiAPIError(
                    f"Token request failed: {resp.status} - {resp.text[:200]}", resp.status
                )

            data = resp.json()
            try:
                access_token = data["access_token"]
                expires_in = float(data["expires_in"])
            except (KeyError, TypeError, ValueError) as err:
                raise HelkiAPIError(
                    f"Malformed token response: {resp.text[:200]}", resp.status
                ) from err
        except HelkiError:
            self.invalidate()
            raise

        # expires_in smaller than the buffer gives an already-expired token
        self._access_token = access_token
        self._expires_at = time.time() + expires_in - config.token_refresh_buffer
        _LOGGER.debug("Token issued, valid for %.0fs", expires_in - config.token_refresh_buffer)
        return access_token
