import logging
from typing import Any, Optional

from django.utils.dateparse import parse_datetime

from asgiref.sync import sync_to_async
from eth_typing import ChecksumAddress
from safe_eth.eth.utils import fast_to_checksum_address

from ..entities import Confirmation, Delegate, MultisigTransaction, Page, Safe
from ..repositories import (
    ConfigurationService,
    ContractsRepository,
    DelegatesRepository,
    SafeRepository,
)
from .exceptions import TransactionServiceNotConfigured, TransactionServiceNotFound
from .transaction_service_client import TransactionServiceClient

logger = logging.getLogger(__name__)


def _to_optional_address(value: Optional[str]) -> Optional[ChecksumAddress]:
    return fast_to_checksum_address(value) if value else None


def _to_optional_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


def parse_safe(data: dict[str, Any]) -> Safe:
    return Safe(
        address=fast_to_checksum_address(data["address"]),
        nonce=int(data["nonce"]),
        threshold=int(data["threshold"]),
        owners=[fast_to_checksum_address(owner) for owner in data["owners"]],
        version=data.get("version"),
    )


def parse_confirmation(data: dict[str, Any]) -> Confirmation:
    submission_date = data.get("submissionDate")
    return Confirmation(
        owner=fast_to_checksum_address(data["owner"]),
        signature=data.get("signature"),
        signature_type=data.get("signatureType"),
        submission_date=parse_datetime(submission_date) if submission_date else None,
    )


def parse_multisig_transaction(data: dict[str, Any]) -> MultisigTransaction:
    submission_date = data.get("submissionDate")
    return MultisigTransaction(
        safe=fast_to_checksum_address(data["safe"]),
        to=fast_to_checksum_address(data["to"]),
        value=int(data["value"]),
        data=data.get("data"),
        operation=int(data["operation"]),
        safe_tx_gas=_to_optional_int(data.get("safeTxGas")),
        base_gas=_to_optional_int(data.get("baseGas")),
        gas_price=_to_optional_int(data.get("gasPrice")),
        gas_token=_to_optional_address(data.get("gasToken")),
        refund_receiver=_to_optional_address(data.get("refundReceiver")),
        nonce=int(data["nonce"]),
        safe_tx_hash=data["safeTxHash"],
        is_executed=bool(data.get("isExecuted")),
        trusted=bool(data.get("trusted", True)),
        proposer=_to_optional_address(data.get("proposer")),
        submission_date=parse_datetime(submission_date) if submission_date else None,
        confirmations_required=_to_optional_int(data.get("confirmationsRequired")),
        confirmations=[
            parse_confirmation(confirmation)
            for confirmation in data.get("confirmations") or []
        ],
    )


def parse_delegate(data: dict[str, Any]) -> Delegate:
    return Delegate(
        safe=_to_optional_address(data.get("safe")),
        delegate=fast_to_checksum_address(data["delegate"]),
        delegator=fast_to_checksum_address(data["delegator"]),
        label=data.get("label") or "",
    )


class TransactionServiceRepositoryProvider:
    def __new__(cls):
        if not hasattr(cls, "instance"):
            configuration_service = ConfigurationService()
            cls.instance = TransactionServiceRepository(
                configuration_service.get_or_throw("TRANSACTION_SERVICE_URLS"),
                request_timeout=configuration_service.get(
                    "TRANSACTION_SERVICE_REQUEST_TIMEOUT", 10
                ),
            )
        return cls.instance

    @classmethod
    def del_singleton(cls):
        if hasattr(cls, "instance"):
            del cls.instance


class TransactionServiceRepository(
    SafeRepository, DelegatesRepository, ContractsRepository
):
    """
    Fetches Safes, queued transactions, delegates and contracts from the
    Transaction Service of every configured chain
    """

    def __init__(self, urls_by_chain_id: dict[str, str], request_timeout: int = 10):
        self.urls_by_chain_id = {
            str(chain_id): url for chain_id, url in urls_by_chain_id.items()
        }
        self.request_timeout = request_timeout
        self.clients: dict[str, TransactionServiceClient] = {}

    def get_client(self, chain_id: str) -> TransactionServiceClient:
        chain_id = str(chain_id)
        if chain_id not in self.clients:
            try:
                url = self.urls_by_chain_id[chain_id]
            except KeyError as exc:
                raise TransactionServiceNotConfigured(
                    f"No Transaction Service configured for chain-id={chain_id}"
                ) from exc
            self.clients[chain_id] = TransactionServiceClient(
                url, request_timeout=self.request_timeout
            )
        return self.clients[chain_id]

    async def get_safe(self, chain_id: str, address: ChecksumAddress) -> Safe:
        client = self.get_client(chain_id)
        return parse_safe(await sync_to_async(client.get_safe)(address))

    async def get_transaction_queue(
        self,
        chain_id: str,
        safe: Safe,
        limit: int,
        offset: int,
        trusted: Optional[bool] = None,
    ) -> Page[MultisigTransaction]:
        client = self.get_client(chain_id)
        data = await sync_to_async(client.get_multisig_transactions)(
            safe.address,
            nonce__gte=safe.nonce,
            executed=False,
            trusted=trusted,
            limit=limit,
            offset=offset,
        )
        return Page(
            count=data.get("count"),
            next=data.get("next"),
            previous=data.get("previous"),
            results=[parse_multisig_transaction(result) for result in data["results"]],
        )

    async def get_delegates(
        self,
        chain_id: str,
        safe_address: Optional[ChecksumAddress] = None,
        delegate: Optional[ChecksumAddress] = None,
    ) -> list[Delegate]:
        client = self.get_client(chain_id)
        data = await sync_to_async(client.get_delegates)(
            safe=safe_address, delegate=delegate
        )
        return [parse_delegate(result) for result in data["results"]]

    async def is_trusted_for_delegate_call(
        self, chain_id: str, contract_address: ChecksumAddress
    ) -> bool:
        client = self.get_client(chain_id)
        try:
            data = await sync_to_async(client.get_contract)(contract_address)
        except TransactionServiceNotFound:
            logger.debug(
                "Contract %s not found on chain-id=%s", contract_address, chain_id
            )
            return False
        return bool(data.get("trustedForDelegateCall"))
