from __future__ import annotations

import os
from typing import Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

API_HEADERS = {
    "Accept": "application/json",
    "X-Requested-With": "XMLHttpRequest",
}


def build_http_session(
    *,
    timeout: Optional[float] = None,
    retry_total: int = 3,
    retry_backoff: float = 0.5,
    user_agent: Optional[str] = None,
    pool_size: int = 16,
) -> requests.Session:
    """Create a `requests.Session` configured with retry/backoff logic.

    ``pool_size`` should be at least the number of detail workers sharing the
    session, otherwise urllib3 discards connections under load.
    """

    session = requests.Session()
    retry = Retry(
        total=retry_total,
        connect=retry_total,
        read=retry_total,
        backoff_factor=retry_backoff,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers["User-Agent"] = user_agent or os.getenv("HTTP_USER_AGENT", DEFAULT_USER_AGENT)

    # Attach timeout to session for convenience
    session.request = _timeout_wrapper(session.request, timeout or float(os.getenv("REQUEST_TIMEOUT", "30")))
    return session


def _timeout_wrapper(func, timeout: float):
    def wrapped(method, url, **kwargs):
        if "timeout" not in kwargs:
            kwargs["timeout"] = timeout
        return func(method, url, **kwargs)

    return wrapped


def fetch_text(session: requests.Session, url: str, *, api: bool = False) -> str:
    """GET ``url`` (following redirects) and return the decoded body.

    Raises ``requests.RequestException`` on transport or HTTP errors.
    """

    headers = dict(API_HEADERS) if api else None
    response = session.get(url, headers=headers, allow_redirects=True)
    response.raise_for_status()
    return response.text
