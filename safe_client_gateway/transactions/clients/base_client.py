import logging
from typing import Any, Optional
from urllib.parse import urljoin

import requests

from .exceptions import TransactionServiceNotFound, TransactionServiceRequestError

logger = logging.getLogger(__name__)


class BaseHTTPClient:
    def __init__(self, base_url: str, request_timeout: int = 10):
        self.base_url = base_url
        self.http_session = self._prepare_http_session()
        self.request_timeout = request_timeout

    def _prepare_http_session(self) -> requests.Session:
        """
        Prepare http session with custom pooling. See:
        https://urllib3.readthedocs.io/en/stable/advanced-usage.html
        https://docs.python-requests.org/en/v1.2.3/api/#requests.adapters.HTTPAdapter
        """
        session = requests.Session()
        adapter = requests.adapters.HTTPAdapter(
            pool_connections=10,
            pool_maxsize=100,  # Number of concurrent connections
            pool_block=False,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def _do_request(
        self, path: str, params: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]:
        url = urljoin(self.base_url, path)
        try:
            response = self.http_session.get(
                url, params=params, timeout=self.request_timeout
            )
            if not response.ok:
                if response.status_code == 404:
                    raise TransactionServiceNotFound(url)
                raise TransactionServiceRequestError(
                    f"{url} returned status={response.status_code}"
                )
            return response.json()
        except (OSError, ValueError) as e:
            logger.warning("Problem fetching %s", url)
            raise TransactionServiceRequestError(url) from e
