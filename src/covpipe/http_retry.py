"""HTTP session used for the kcov tarball and the uploader script.

Retries are left to urllib3 ``Retry``, which covers connection errors,
read errors and the server error statuses in ``RETRY_STATUSES``. With
``total`` set to 0 every request is attempted exactly once.
"""

from __future__ import annotations

import typing

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_TIMEOUT = 60.0
RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def make_retry(total: int = 0, backoff_factor: float = 1.0) -> Retry:
    """Retry policy for idempotent downloads

    The last response is returned instead of raising once the retries for
    a bad status are used up, so ``raise_for_status()`` reports it.
    """
    return Retry(
        total=max(0, total),
        backoff_factor=backoff_factor,
        backoff_max=60.0,
        status_forcelist=sorted(RETRY_STATUSES),
        allowed_methods=["GET", "HEAD"],
        raise_on_status=False,
    )


class RetryHTTPAdapter(HTTPAdapter):
    """HTTPAdapter with a default timeout"""

    def __init__(
        self,
        retry: Retry | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs: typing.Any,
    ):
        self.timeout = timeout
        super().__init__(max_retries=retry or make_retry(), **kwargs)

    def send(
        self,
        request: requests.PreparedRequest,
        stream: bool = False,
        timeout: float | tuple[float, float] | tuple[float, None] | None = None,
        **kwargs: typing.Any,
    ) -> requests.Response:
        if timeout is None:
            timeout = self.timeout
        return super().send(request, stream=stream, timeout=timeout, **kwargs)


def create_retry_session(
    total: int = 0,
    backoff_factor: float = 1.0,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Session:
    session = requests.Session()
    adapter = RetryHTTPAdapter(
        retry=make_retry(total=total, backoff_factor=backoff_factor),
        timeout=timeout,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
