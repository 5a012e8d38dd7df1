"""
Session bootstrap: authenticate once, capture the cookies, and seed an
independent requests.Session per worker from them.
"""

import re
import logging
from abc import ABC, abstractmethod
from urllib.parse import urlparse

import requests

from vttscribe.core.constants import (
    DEFAULT_BASE_URL, DEFAULT_LOGIN_URL, LOGIN_URL_MARKERS, HTTP_TIMEOUT_SEC,
)
from vttscribe.core.error_codes import AuthenticationError
from vttscribe.core.models import Manifest, SessionCredentials

logger = logging.getLogger(__name__)

_AUTH_TOKEN_RE = re.compile(r'name="authenticity_token"\s+value="([^"]+)"')


class Platform(ABC):
    """
    Capability interface for a course platform.

    Implementations:
    - TeachablePlatform
    """

    name: str = ""

    @property
    @abstractmethod
    def base_url(self) -> str:
        """Origin the session cookies are scoped to."""

    @abstractmethod
    def is_authenticated(self, session: requests.Session) -> bool:
        pass

    @abstractmethod
    def authenticate(self, session: requests.Session, email: str, password: str) -> bool:
        pass

    @abstractmethod
    def scrape_manifest(self, session: requests.Session, course_id: str) -> Manifest:
        pass


class TeachablePlatform(Platform):
    """Teachable schools with SSO password login."""

    name = "Teachable"

    def __init__(self, base_url: str = DEFAULT_BASE_URL, login_url: str = DEFAULT_LOGIN_URL,
                 timeout: int = HTTP_TIMEOUT_SEC):
        self._base_url = base_url
        self.login_url = login_url
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url

    def is_authenticated(self, session: requests.Session) -> bool:
        # An anonymous visit gets redirected to a login / sign_in page
        resp = session.get(self.base_url, timeout=self.timeout, allow_redirects=True)
        final_url = resp.url or ""
        return not any(marker in final_url for marker in LOGIN_URL_MARKERS)

    def authenticate(self, session: requests.Session, email: str, password: str) -> bool:
        logger.info("Attempting login to %s...", self.name)

        form = session.get(self.login_url, timeout=self.timeout)
        form.raise_for_status()

        payload = {'email': email, 'password': password}
        m = _AUTH_TOKEN_RE.search(form.text or "")
        if m:
            payload['authenticity_token'] = m.group(1)

        resp = session.post(self.login_url, data=payload, timeout=self.timeout,
                            allow_redirects=True)
        if resp.status_code >= 400:
            logger.error("Login rejected (HTTP %d)", resp.status_code)
            return False

        if self.is_authenticated(session):
            logger.info("Login successful.")
            return True

        logger.error("Login failed.")
        return False

    def scrape_manifest(self, session: requests.Session, course_id: str) -> Manifest:
        raise NotImplementedError(
            "Course structure is scraped by the browser collaborator; "
            "load the saved manifest instead"
        )


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def extract_cookies(session: requests.Session) -> tuple[dict, ...]:
    """Copy every cookie in the jar into a plain, immutable-friendly dict."""
    return tuple(
        {
            'name': c.name,
            'value': c.value,
            'domain': c.domain,
            'path': c.path,
            'secure': bool(c.secure),
        }
        for c in session.cookies
    )


def bootstrap_session(platform: Platform, email: str, password: str) -> SessionCredentials:
    """
    Authenticate once and return the credentials every worker is seeded with.
    Raises AuthenticationError if the session cannot be confirmed; the run
    must not start workers in that case.
    """
    session = requests.Session()
    try:
        try:
            authenticated = platform.is_authenticated(session)
            if not authenticated:
                if not email or not password:
                    raise AuthenticationError("EMAIL and PASSWORD must be set to log in")
                authenticated = platform.authenticate(session, email, password)
        except requests.exceptions.RequestException as e:
            raise AuthenticationError(f"Network error during login: {e}") from e

        if not authenticated:
            raise AuthenticationError(f"Failed to login to {platform.name or 'platform'}")

        credentials = SessionCredentials(
            base_url=origin_of(platform.base_url),
            cookies=extract_cookies(session),
        )
    finally:
        session.close()

    logger.info("Session captured (%d cookies).", len(credentials.cookies))
    return credentials


def seed_session(credentials: SessionCredentials) -> requests.Session:
    """
    Create an isolated worker context: a new requests.Session holding its
    own copies of the bootstrap cookies.
    """
    session = requests.Session()
    default_domain = urlparse(credentials.base_url).hostname or ""
    for cookie in credentials.cookies:
        session.cookies.set(
            cookie['name'],
            cookie['value'],
            domain=cookie.get('domain') or default_domain,
            path=cookie.get('path') or '/',
            secure=cookie.get('secure', False),
        )
    session.headers['Referer'] = credentials.base_url
    return session
