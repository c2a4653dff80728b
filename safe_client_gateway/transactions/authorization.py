import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from eth_typing import ChecksumAddress
from safe_eth.eth.utils import fast_to_checksum_address

from .entities import BaseMultisigTransaction, MultisigTransaction, Safe
from .repositories import ConfigurationService, ContractsRepository, DelegatesRepository
from .signatures import SafeSignature, SignatureType, recover_signer

logger = logging.getLogger(__name__)


class AuthorizationFailure(Enum):
    BLOCKED_ADDRESS = 0
    ETH_SIGN_DISABLED = 1
    SIGNER_MISMATCH = 2
    NOT_OWNER = 3


@dataclass(frozen=True)
class SignerAuthorization:
    signer: ChecksumAddress
    safe_signature: SafeSignature
    failure: Optional[AuthorizationFailure] = None

    @property
    def is_authorized(self) -> bool:
        return self.failure is None


class AuthorizationPolicy:
    """
    Decides if the signer of a signature can act on behalf of a Safe
    """

    def __init__(
        self,
        configuration_service: ConfigurationService,
        delegates_repository: Optional[DelegatesRepository] = None,
        contracts_repository: Optional[ContractsRepository] = None,
    ):
        self.configuration_service = configuration_service
        self.delegates_repository = delegates_repository
        self.contracts_repository = contracts_repository

    @property
    def banned_addresses(self) -> set[ChecksumAddress]:
        return {
            fast_to_checksum_address(address)
            for address in self.configuration_service.get("BANNED_EOAS", [])
        }

    def is_blocked(self, address: ChecksumAddress) -> bool:
        return fast_to_checksum_address(address) in self.banned_addresses

    def is_eth_sign_allowed(
        self,
        safe_signature: SafeSignature,
        stored_transaction: Optional[MultisigTransaction] = None,
    ) -> bool:
        """
        :param safe_signature:
        :param stored_transaction: Transaction as stored in the Transaction Service.
            An ``eth_sign`` signature already stored is accepted even if they are disabled
        :return: ``True`` if signature is not ``eth_sign`` or it can be used
        """
        if safe_signature.signature_type != SignatureType.ETH_SIGN:
            return True
        if self.configuration_service.get("ENABLE_ETH_SIGN_SIGNATURES", True):
            return True
        return bool(
            stored_transaction
            and stored_transaction.has_signature(safe_signature.signature)
        )

    def authorize_signer(
        self,
        safe_signature: SafeSignature,
        safe_tx_hash: str | bytes,
        owners: Optional[Sequence[ChecksumAddress]],
        expected_signer: Optional[ChecksumAddress] = None,
        stored_transaction: Optional[MultisigTransaction] = None,
    ) -> SignerAuthorization:
        """
        :param safe_signature:
        :param safe_tx_hash:
        :param owners: Owners of the Safe. If ``None`` ownership is not checked
        :param expected_signer: Address the signature must belong to, if known
        :param stored_transaction: Transaction as stored in the Transaction Service, if any
        :return: Result of the checks. Blocked addresses are always reported
            as ``BLOCKED_ADDRESS``, no matter other failures
        :raises CannotRecoverSigner: if an ECDSA signature cannot be recovered
        """
        if expected_signer and self.is_blocked(expected_signer):
            return SignerAuthorization(
                expected_signer, safe_signature, AuthorizationFailure.BLOCKED_ADDRESS
            )

        signer = recover_signer(safe_signature, safe_tx_hash)
        if self.is_blocked(signer):
            failure = AuthorizationFailure.BLOCKED_ADDRESS
        elif not self.is_eth_sign_allowed(safe_signature, stored_transaction):
            failure = AuthorizationFailure.ETH_SIGN_DISABLED
        elif expected_signer and signer != fast_to_checksum_address(expected_signer):
            failure = AuthorizationFailure.SIGNER_MISMATCH
        elif owners is not None and signer not in owners:
            failure = AuthorizationFailure.NOT_OWNER
        else:
            failure = None
        return SignerAuthorization(signer, safe_signature, failure)

    async def is_delegate_call_allowed(
        self, chain_id: str, transaction: BaseMultisigTransaction
    ) -> bool:
        """
        :return: ``True`` if operation is not a ``DELEGATE_CALL``, restriction is disabled
            or ``to`` is trusted for delegate calls
        """
        if not transaction.is_delegate_call():
            return True
        if not self.configuration_service.get(
            "DISABLE_CREATION_MULTISIG_TRANSACTIONS_WITH_DELEGATE_CALL_OPERATION", True
        ):
            return True
        try:
            return await self.contracts_repository.is_trusted_for_delegate_call(
                chain_id, transaction.to
            )
        except Exception:
            logger.warning(
                "Cannot check if contract %s on chain-id=%s is trusted for delegate calls",
                transaction.to,
                chain_id,
                exc_info=True,
            )
            return False

    async def is_delegate(
        self, chain_id: str, safe: Safe, address: ChecksumAddress
    ) -> bool:
        delegates = await self.delegates_repository.get_delegates(
            chain_id, safe_address=safe.address, delegate=address
        )
        return any(
            delegate.delegate == address
            and (delegate.safe is None or delegate.safe == safe.address)
            for delegate in delegates
        )
