from typing import Any, Optional

from eth_typing import ChecksumAddress

from .base_client import BaseHTTPClient


class TransactionServiceClient(BaseHTTPClient):
    """
    Client for the Safe Transaction Service REST API of one chain
    """

    def get_safe(self, address: ChecksumAddress) -> dict[str, Any]:
        return self._do_request(f"api/v1/safes/{address}/")

    def get_multisig_transactions(
        self,
        address: ChecksumAddress,
        nonce__gte: Optional[int] = None,
        executed: Optional[bool] = None,
        trusted: Optional[bool] = None,
        ordering: str = "nonce,submissionDate",
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> dict[str, Any]:
        params = {
            "nonce__gte": nonce__gte,
            "executed": executed,
            "trusted": trusted,
            "ordering": ordering,
            "limit": limit,
            "offset": offset,
        }
        return self._do_request(
            f"api/v1/safes/{address}/multisig-transactions/",
            params={
                key: str(value).lower() if isinstance(value, bool) else value
                for key, value in params.items()
                if value is not None
            },
        )

    def get_delegates(
        self,
        safe: Optional[ChecksumAddress] = None,
        delegate: Optional[ChecksumAddress] = None,
    ) -> dict[str, Any]:
        params = {"safe": safe, "delegate": delegate}
        return self._do_request(
            "api/v2/delegates/",
            params={key: value for key, value in params.items() if value},
        )

    def get_contract(self, address: ChecksumAddress) -> dict[str, Any]:
        return self._do_request(f"api/v1/contracts/{address}/")
