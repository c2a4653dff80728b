from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Optional, TypeVar

from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from safe_eth.safe import SafeOperationEnum

T = TypeVar("T")


@dataclass
class Safe:
    address: ChecksumAddress
    nonce: int
    threshold: int
    owners: list[ChecksumAddress]
    version: Optional[str]


@dataclass
class Confirmation:
    owner: ChecksumAddress
    signature: Optional[str]
    signature_type: Optional[str] = None
    submission_date: Optional[datetime] = None


@dataclass
class BaseMultisigTransaction:
    """
    Fields covered by the ``safeTxHash``
    """

    to: ChecksumAddress
    value: int
    data: Optional[str]
    operation: int
    safe_tx_gas: Optional[int]
    base_gas: Optional[int]
    gas_price: Optional[int]
    gas_token: Optional[ChecksumAddress]
    refund_receiver: Optional[ChecksumAddress]
    nonce: int

    def get_base_fields(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": self.data,
            "operation": self.operation,
            "safe_tx_gas": self.safe_tx_gas,
            "base_gas": self.base_gas,
            "gas_price": self.gas_price,
            "gas_token": self.gas_token,
            "refund_receiver": self.refund_receiver,
            "nonce": self.nonce,
        }

    def is_delegate_call(self) -> bool:
        return self.operation == SafeOperationEnum.DELEGATE_CALL.value


@dataclass
class MultisigTransaction(BaseMultisigTransaction):
    safe: ChecksumAddress = None
    safe_tx_hash: str = None
    is_executed: bool = False
    trusted: bool = True
    proposer: Optional[ChecksumAddress] = None
    submission_date: Optional[datetime] = None
    confirmations_required: Optional[int] = None
    confirmations: Optional[list[Confirmation]] = field(default_factory=list)

    def has_signature(self, signature: bytes) -> bool:
        """
        :return: ``True`` if ``signature`` is already stored on one of the confirmations
        """
        signature = HexBytes(signature)
        return any(
            confirmation.signature and HexBytes(confirmation.signature) == signature
            for confirmation in self.confirmations or []
        )


@dataclass
class ProposeTransaction(BaseMultisigTransaction):
    safe_tx_hash: str = None
    sender: ChecksumAddress = None
    signature: Optional[str] = None
    origin: Optional[str] = None


@dataclass
class Delegate:
    safe: Optional[ChecksumAddress]
    delegate: ChecksumAddress
    delegator: ChecksumAddress
    label: str = ""


@dataclass
class Page(Generic[T]):
    count: Optional[int]
    next: Optional[str]
    previous: Optional[str]
    results: list[T]
