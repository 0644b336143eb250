"""
Session and credential lifecycle.

CredentialStore owns the bearer token and the user profile, answers
liveness queries, runs the two-step OAuth handshake against the backend,
and is the single choke point for every protected outbound call.
"""

import logging
import time
from typing import Callable, Optional
from urllib.parse import parse_qs, urlsplit, urlunsplit

import httpx
import jwt

from .config import (
    API_BASE_URL,
    LOGIN_PATH,
    TOKEN_KEY,
    USER_KEY,
    EXPIRES_AT_KEY,
    OAUTH_STATE_KEY,
    OAUTH_PROVIDER_KEY,
    SUPPORTED_PROVIDERS,
)
from .errors import (
    AuthenticationRequired,
    InvalidState,
    MalformedResponse,
    PreconditionFailed,
    UpstreamHttpError,
)
from .models import Session, User

logger = logging.getLogger(__name__)


def decode_token_expiry(token: Optional[str]) -> Optional[int]:
    """
    Read the `exp` claim from a JWT without verifying its signature.

    Returns None for anything that is not a decodable JWT with a numeric exp.
    """
    if not token:
        return None
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.debug(f"Token validation error: {e}")
        return None

    exp = payload.get('exp')
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return int(exp)


def response_json(response: httpx.Response, what: str) -> dict:
    """Parse a 2xx JSON object body, raising MalformedResponse otherwise."""
    try:
        data = response.json()
    except ValueError as e:
        raise MalformedResponse(f"{what}: response is not JSON ({e})") from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def response_error_message(response: httpx.Response) -> str:
    """Best-effort error text from a failed JSON or plain-text response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        error = data.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
        for key in ('message', 'errmsg', 'error'):
            if isinstance(data.get(key), str) and data[key]:
                return data[key]
    return response.text[:200]


class CredentialStore:
    """
    Holds the session in a key/value store and wraps protected calls.

    Args:
        storage: object with get/set/remove (see report_assistant.storage)
        http_client: shared httpx.AsyncClient used for every call
        base_url: backend origin, e.g. http://localhost:8080
        navigate: hook invoked with a URL/path whenever the user must be
            sent somewhere (authorization page, login page, cleaned callback URL)
    """

    def __init__(
        self,
        storage,
        http_client: httpx.AsyncClient,
        base_url: str = API_BASE_URL,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.storage = storage
        self.http_client = http_client
        self.base_url = base_url.rstrip('/')
        self._navigate = navigate

    # -------------------------------------------------------------------------
    # Session state
    # -------------------------------------------------------------------------

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(TOKEN_KEY)

    def get_session(self) -> Optional[Session]:
        token = self.token
        user_json = self.storage.get(USER_KEY)
        if not token or not user_json:
            return None
        try:
            user = User.model_validate_json(user_json)
        except ValueError as e:
            logger.warning(f"Stored user profile is unreadable, ignoring session: {e}")
            return None

        expires_at = self.storage.get(EXPIRES_AT_KEY)
        try:
            expires = int(expires_at) if expires_at else (decode_token_expiry(token) or 0)
        except ValueError:
            expires = decode_token_expiry(token) or 0
        return Session(token=token, expires_at=expires, user=user)

    def set_session(self, session: Session) -> None:
        self.storage.set(TOKEN_KEY, session.token)
        self.storage.set(USER_KEY, session.user.model_dump_json())
        self.storage.set(EXPIRES_AT_KEY, str(session.expires_at))
        logger.info(f"Session stored for {session.user.display_name or session.user.id} ({session.user.provider})")

    def clear(self) -> None:
        for key in (TOKEN_KEY, USER_KEY, EXPIRES_AT_KEY):
            self.storage.remove(key)

    def is_live(self, now: Optional[float] = None) -> bool:
        """True if a token is stored and its encoded expiry lies strictly in the future."""
        exp = decode_token_expiry(self.token)
        if exp is None:
            return False
        current = time.time() if now is None else now
        return exp > current

    def require_session(self) -> Session:
        """Return the live session, or clear a dead one and raise AuthenticationRequired."""
        session = self.get_session()
        if session is None:
            raise AuthenticationRequired("用户未登录")
        if not self.is_live():
            logger.warning("Session token expired, forcing re-login")
            self._force_login()
            raise AuthenticationRequired("Token expired")
        return session

    # -------------------------------------------------------------------------
    # Outbound calls
    # -------------------------------------------------------------------------

    def url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self.base_url}{path}"

    async def authenticated_call(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Issue a call with the bearer token attached.

        A 401 answer clears the session, navigates to the login page and
        raises AuthenticationRequired.
        """
        headers = {'Content-Type': 'application/json', **kwargs.pop('headers', {})}
        token = self.token
        if token:
            headers['Authorization'] = f"Bearer {token}"

        response = await self.http_client.request(method, self.url(path), headers=headers, **kwargs)

        if response.status_code == 401:
            logger.warning(f"{method} {path} answered 401, clearing session")
            self._force_login()
            raise AuthenticationRequired()

        return response

    def _force_login(self) -> None:
        self.clear()
        self.navigate(LOGIN_PATH)

    def navigate(self, target: str) -> None:
        if self._navigate is not None:
            self._navigate(target)
        else:
            logger.info(f"Navigation requested: {target}")

    # -------------------------------------------------------------------------
    # Login handshake
    # -------------------------------------------------------------------------

    async def begin_login(self, provider: str = 'dingtalk') -> str:
        """
        Step 1: fetch the authorization URL and anti-forgery state.

        Persists `state` and `provider`, navigates to the authorization URL
        and returns it.
        """
        if provider not in SUPPORTED_PROVIDERS:
            raise PreconditionFailed(f"Unknown login provider: {provider}")

        response = await self.http_client.get(self.url(f"/api/auth/{provider}/login"))
        if response.is_error:
            raise UpstreamHttpError(response.status_code, response_error_message(response))

        data = response_json(response, "Failed to get auth URL")
        auth_url = data.get('auth_url')
        state = data.get('state')
        if not auth_url or not state:
            raise UpstreamHttpError(response.status_code, "Failed to get auth URL")

        self.storage.set(OAUTH_STATE_KEY, str(state))
        self.storage.set(OAUTH_PROVIDER_KEY, provider)

        self.navigate(auth_url)
        return auth_url

    async def handle_auth_callback(self, callback_url: str) -> Session:
        """
        Step 2: verify `state`, exchange `code` for a session and persist it.

        Raises InvalidState (without contacting the backend) when the code is
        missing or the returned state differs from the stored one.
        """
        parts = urlsplit(callback_url)
        params = parse_qs(parts.query)
        code = (params.get('code') or [None])[0]
        state = (params.get('state') or [None])[0]
        stored_state = self.storage.get(OAUTH_STATE_KEY)
        provider = self.storage.get(OAUTH_PROVIDER_KEY) or 'dingtalk'

        if not code:
            raise InvalidState("No authorization code found")
        if not state or stored_state is None or state != stored_state:
            raise InvalidState("Invalid state parameter")

        response = await self.http_client.post(
            self.url(f"/api/auth/{provider}/exchange"),
            json={'provider': provider, 'code': code, 'state': state},
        )
        if response.is_error:
            raise UpstreamHttpError(response.status_code, response_error_message(response))

        auth_data = response_json(response, "Failed to exchange code for token")
        token = auth_data.get('token')
        if not token:
            raise UpstreamHttpError(response.status_code, "Failed to exchange code for token")

        user = User.from_backend(auth_data.get('user') or {}, auth_data.get('provider') or provider)
        expires_at = auth_data.get('expires_at') or decode_token_expiry(token) or 0
        session = Session(token=token, expires_at=int(expires_at), user=user)
        self.set_session(session)

        self.storage.remove(OAUTH_STATE_KEY)
        self.storage.remove(OAUTH_PROVIDER_KEY)

        self.navigate(urlunsplit((parts.scheme, parts.netloc, parts.path, '', '')))
        return session

    async def fetch_current_user(self) -> User:
        """Refresh the stored profile from GET /api/auth/user."""
        session = self.get_session()
        if session is None:
            raise AuthenticationRequired("No token found")

        response = await self.authenticated_call('GET', '/api/auth/user')
        if response.is_error:
            raise UpstreamHttpError(response.status_code, "Failed to get user info")

        user = User.from_backend(response_json(response, "Failed to get user info"), session.user.provider)
        self.set_session(session.model_copy(update={'user': user}))
        return user

    async def logout(self) -> None:
        """Tell the backend (best effort), then always drop the local session."""
        try:
            if self.token:
                await self.authenticated_call('POST', '/api/auth/logout')
        except (httpx.HTTPError, AuthenticationRequired) as e:
            logger.error(f"Logout error: {e}")
        finally:
            self.clear()
            self.navigate(LOGIN_PATH)
