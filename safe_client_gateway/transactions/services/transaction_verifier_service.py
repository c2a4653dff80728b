import logging
from typing import Any, Optional, Sequence, Type

from eth_typing import ChecksumAddress
from safe_eth.util.util import to_0x_hex_str

from ..authorization import AuthorizationFailure, AuthorizationPolicy, SignerAuthorization
from ..clients.transaction_service_repository import (
    TransactionServiceRepositoryProvider,
)
from ..entities import (
    BaseMultisigTransaction,
    MultisigTransaction,
    ProposeTransaction,
    Safe,
)
from ..exceptions import (
    InvalidUpstreamTransaction,
    TransactionVerificationException,
    UnprocessableTransaction,
)
from ..hashing import CannotCalculateSafeTxHash, get_safe_tx_hash, hashes_match
from ..repositories import ConfigurationService, ContractsRepository, DelegatesRepository
from ..signatures import (
    CannotRecoverSigner,
    SafeSignature,
    parse_signature,
    parse_signatures,
)

logger = logging.getLogger(__name__)


class ErrorMessage:
    MALFORMED_HASH = "Could not calculate safeTxHash"
    HASH_MISMATCH = "Invalid safeTxHash"
    DUPLICATE_OWNERS = "Duplicate owners in confirmations"
    DUPLICATE_SIGNATURES = "Duplicate signatures in confirmations"
    UNRECOVERABLE_ADDRESS = "Could not recover address"
    INVALID_SIGNATURE = "Invalid signature"
    UNAUTHORIZED_ADDRESS = "Unauthorized address"
    ETH_SIGN_DISABLED = "eth_sign is disabled"
    DELEGATE_CALL_DISABLED = "Delegate call is disabled"
    INVALID_NONCE = "Invalid nonce"
    ALREADY_EXECUTED = "Transaction already executed"


AUTHORIZATION_FAILURE_MESSAGES = {
    AuthorizationFailure.BLOCKED_ADDRESS: ErrorMessage.UNAUTHORIZED_ADDRESS,
    AuthorizationFailure.ETH_SIGN_DISABLED: ErrorMessage.ETH_SIGN_DISABLED,
    AuthorizationFailure.SIGNER_MISMATCH: ErrorMessage.INVALID_SIGNATURE,
    AuthorizationFailure.NOT_OWNER: ErrorMessage.INVALID_SIGNATURE,
}


class TransactionVerifierProvider:
    def __new__(cls):
        if not hasattr(cls, "instance"):
            repository = TransactionServiceRepositoryProvider()
            cls.instance = TransactionVerifier(
                ConfigurationService(), repository, repository
            )
        return cls.instance

    @classmethod
    def del_singleton(cls):
        if hasattr(cls, "instance"):
            del cls.instance


class TransactionVerifier:
    """
    Verifies that transactions returned by the Transaction Service, proposed or
    confirmed by clients have a valid ``safeTxHash`` and are signed by who is allowed
    to.

    Failures that can only happen with a forged or tampered payload are logged as
    security events, policy rejections are not.
    """

    TRANSACTION_TYPE = "multisig_transaction_validity"

    def __init__(
        self,
        configuration_service: ConfigurationService,
        delegates_repository: DelegatesRepository,
        contracts_repository: ContractsRepository,
    ):
        self.configuration_service = configuration_service
        self.authorization_policy = AuthorizationPolicy(
            configuration_service, delegates_repository, contracts_repository
        )

    def _is_enabled(self, flag: str) -> bool:
        return bool(self.configuration_service.get(flag, True))

    @property
    def is_api_hash_verification_enabled(self) -> bool:
        return self._is_enabled("ENABLE_API_HASH_VERIFICATION")

    @property
    def is_api_signature_verification_enabled(self) -> bool:
        return self._is_enabled("ENABLE_API_SIGNATURE_VERIFICATION")

    @property
    def is_proposal_hash_verification_enabled(self) -> bool:
        return self._is_enabled("ENABLE_PROPOSAL_HASH_VERIFICATION")

    @property
    def is_proposal_signature_verification_enabled(self) -> bool:
        return self._is_enabled("ENABLE_PROPOSAL_SIGNATURE_VERIFICATION")

    async def verify_api_transaction(
        self, chain_id: str, safe: Safe, transaction: MultisigTransaction
    ) -> None:
        """
        Verifies a transaction returned by the Transaction Service. Executed
        transactions and transactions with an old nonce are not verified

        :param chain_id:
        :param safe:
        :param transaction:
        :raises InvalidUpstreamTransaction:
        """
        if transaction.is_executed or transaction.nonce < safe.nonce:
            return

        if self.is_api_hash_verification_enabled:
            self._verify_safe_tx_hash(
                chain_id,
                safe,
                transaction,
                transaction.safe_tx_hash,
                InvalidUpstreamTransaction,
                InvalidUpstreamTransaction,
            )
        if self.is_api_signature_verification_enabled:
            self._verify_api_signatures(chain_id, safe, transaction)

    async def verify_proposal(
        self,
        chain_id: str,
        safe: Safe,
        proposal: ProposeTransaction,
        transaction: Optional[MultisigTransaction] = None,
    ) -> None:
        """
        Verifies a transaction proposed by a client

        :param chain_id:
        :param safe:
        :param proposal:
        :param transaction: Stored transaction with the same ``safeTxHash``, if any
        :raises UnprocessableTransaction:
        :raises SignatureDecodingError: if ``proposal.signature`` is malformed
        """
        if proposal.nonce < safe.nonce:
            raise UnprocessableTransaction(ErrorMessage.INVALID_NONCE)

        if self.is_proposal_hash_verification_enabled:
            self._verify_safe_tx_hash(
                chain_id,
                safe,
                proposal,
                proposal.safe_tx_hash,
                UnprocessableTransaction,
                UnprocessableTransaction,
            )

        if not await self.authorization_policy.is_delegate_call_allowed(
            chain_id, proposal
        ):
            raise UnprocessableTransaction(ErrorMessage.DELEGATE_CALL_DISABLED)

        if self.is_proposal_signature_verification_enabled:
            await self._verify_proposal_signature(chain_id, safe, proposal, transaction)

    async def verify_confirmation(
        self,
        chain_id: str,
        safe: Safe,
        transaction: MultisigTransaction,
        signature: str | bytes,
    ) -> None:
        """
        Verifies a signature added to a stored transaction. Only owners can confirm

        :param chain_id:
        :param safe:
        :param transaction:
        :param signature:
        :raises TransactionVerificationException:
        :raises SignatureDecodingError: if ``signature`` is malformed
        """
        if transaction.is_executed:
            raise UnprocessableTransaction(ErrorMessage.ALREADY_EXECUTED)
        if transaction.nonce < safe.nonce:
            raise UnprocessableTransaction(ErrorMessage.INVALID_NONCE)

        if self.is_proposal_hash_verification_enabled:
            # Stored transaction was provided by the Transaction Service
            self._verify_safe_tx_hash(
                chain_id,
                safe,
                transaction,
                transaction.safe_tx_hash,
                UnprocessableTransaction,
                InvalidUpstreamTransaction,
            )

        if self.is_proposal_signature_verification_enabled:
            for safe_signature in parse_signatures(signature):
                self._authorize_signer(
                    chain_id,
                    safe,
                    transaction.safe_tx_hash,
                    safe_signature,
                    UnprocessableTransaction,
                    owners=safe.owners,
                    stored_transaction=transaction,
                )

    def _verify_safe_tx_hash(
        self,
        chain_id: str,
        safe: Safe,
        transaction: BaseMultisigTransaction,
        safe_tx_hash: Optional[str | bytes],
        malformed_exception_class: Type[TransactionVerificationException],
        mismatch_exception_class: Type[TransactionVerificationException],
    ) -> None:
        try:
            calculated_safe_tx_hash = get_safe_tx_hash(chain_id, safe, transaction)
        except CannotCalculateSafeTxHash:
            self._log_security_event(
                ErrorMessage.MALFORMED_HASH,
                chain_id,
                safe,
                safe_tx_hash,
                transaction=transaction.get_base_fields(),
            )
            raise malformed_exception_class(
                ErrorMessage.MALFORMED_HASH, is_security_event=True
            )

        if not hashes_match(calculated_safe_tx_hash, safe_tx_hash):
            self._log_security_event(
                "safeTxHash does not match",
                chain_id,
                safe,
                safe_tx_hash,
                transaction=transaction.get_base_fields(),
            )
            raise mismatch_exception_class(
                ErrorMessage.HASH_MISMATCH, is_security_event=True
            )

    def _verify_api_signatures(
        self, chain_id: str, safe: Safe, transaction: MultisigTransaction
    ) -> None:
        confirmations = transaction.confirmations or []
        if not confirmations:
            return

        confirmations_context = [
            {"owner": confirmation.owner, "signature": confirmation.signature}
            for confirmation in confirmations
        ]
        owners = {confirmation.owner for confirmation in confirmations}
        if len(owners) != len(confirmations):
            self._log_security_event(
                ErrorMessage.DUPLICATE_OWNERS,
                chain_id,
                safe,
                transaction.safe_tx_hash,
                confirmations=confirmations_context,
            )
            raise InvalidUpstreamTransaction(
                ErrorMessage.DUPLICATE_OWNERS, is_security_event=True
            )

        stored_signatures = self._get_stored_signatures(transaction)
        if len({signature.lower() for signature in stored_signatures}) != len(
            stored_signatures
        ):
            self._log_security_event(
                ErrorMessage.DUPLICATE_SIGNATURES,
                chain_id,
                safe,
                transaction.safe_tx_hash,
                confirmations=confirmations_context,
            )
            raise InvalidUpstreamTransaction(
                ErrorMessage.DUPLICATE_SIGNATURES, is_security_event=True
            )

        for confirmation in confirmations:
            if not confirmation.signature:
                continue
            self._authorize_signer(
                chain_id,
                safe,
                transaction.safe_tx_hash,
                parse_signature(confirmation.signature),
                InvalidUpstreamTransaction,
                owners=safe.owners,
                expected_signer=confirmation.owner,
                stored_transaction=transaction,
            )

    async def _verify_proposal_signature(
        self,
        chain_id: str,
        safe: Safe,
        proposal: ProposeTransaction,
        transaction: Optional[MultisigTransaction],
    ) -> None:
        if not proposal.signature:
            return

        if proposal.sender and self.authorization_policy.is_blocked(proposal.sender):
            self._log_security_event(
                ErrorMessage.UNAUTHORIZED_ADDRESS,
                chain_id,
                safe,
                proposal.safe_tx_hash,
                signer=proposal.sender,
                signature=proposal.signature,
            )
            raise UnprocessableTransaction(
                ErrorMessage.UNAUTHORIZED_ADDRESS, is_security_event=True
            )

        # Clients can propose concatenated signatures
        signers = [
            self._authorize_signer(
                chain_id,
                safe,
                proposal.safe_tx_hash,
                safe_signature,
                UnprocessableTransaction,
                owners=None,
                stored_transaction=transaction,
            ).signer
            for safe_signature in parse_signatures(proposal.signature)
        ]

        if proposal.sender not in signers:
            self._log_invalid_signature(
                chain_id, safe, proposal.safe_tx_hash, proposal.sender, proposal.signature
            )
            raise UnprocessableTransaction(
                ErrorMessage.INVALID_SIGNATURE, is_security_event=True
            )

        if proposal.sender in safe.owners:
            return

        if not await self.authorization_policy.is_delegate(
            chain_id, safe, proposal.sender
        ):
            self._log_invalid_signature(
                chain_id, safe, proposal.safe_tx_hash, proposal.sender, proposal.signature
            )
            raise UnprocessableTransaction(
                ErrorMessage.INVALID_SIGNATURE, is_security_event=True
            )

    def _authorize_signer(
        self,
        chain_id: str,
        safe: Safe,
        safe_tx_hash: str | bytes,
        safe_signature: SafeSignature,
        exception_class: Type[TransactionVerificationException],
        owners: Optional[Sequence[ChecksumAddress]],
        expected_signer: Optional[ChecksumAddress] = None,
        stored_transaction: Optional[MultisigTransaction] = None,
    ) -> SignerAuthorization:
        """
        :return: Authorization for the signer
        :raises TransactionVerificationException: of ``exception_class`` if signer
            cannot be recovered or is not authorized
        """
        signature = to_0x_hex_str(safe_signature.signature)
        try:
            authorization = self.authorization_policy.authorize_signer(
                safe_signature,
                safe_tx_hash,
                owners,
                expected_signer=expected_signer,
                stored_transaction=stored_transaction,
            )
        except CannotRecoverSigner:
            self._log_security_event(
                ErrorMessage.UNRECOVERABLE_ADDRESS,
                chain_id,
                safe,
                safe_tx_hash,
                signature=signature,
            )
            raise exception_class(
                ErrorMessage.UNRECOVERABLE_ADDRESS, is_security_event=True
            )

        if authorization.is_authorized:
            return authorization

        message = AUTHORIZATION_FAILURE_MESSAGES[authorization.failure]
        if authorization.failure == AuthorizationFailure.ETH_SIGN_DISABLED:
            raise exception_class(message)

        if authorization.failure == AuthorizationFailure.BLOCKED_ADDRESS:
            self._log_security_event(
                ErrorMessage.UNAUTHORIZED_ADDRESS,
                chain_id,
                safe,
                safe_tx_hash,
                signer=authorization.signer,
                signature=signature,
            )
        else:
            self._log_invalid_signature(
                chain_id,
                safe,
                safe_tx_hash,
                expected_signer or authorization.signer,
                signature,
            )
        raise exception_class(message, is_security_event=True)

    @staticmethod
    def _get_stored_signatures(transaction: MultisigTransaction) -> list[str]:
        return [
            confirmation.signature
            for confirmation in transaction.confirmations or []
            if confirmation.signature
        ]

    def _log_invalid_signature(
        self,
        chain_id: str,
        safe: Safe,
        safe_tx_hash: Optional[str | bytes],
        signer: ChecksumAddress,
        signature: str,
    ) -> None:
        self._log_security_event(
            "Recovered address does not match signer",
            chain_id,
            safe,
            safe_tx_hash,
            signer=signer,
            signature=signature,
        )

    def _log_security_event(
        self,
        message: str,
        chain_id: str,
        safe: Safe,
        safe_tx_hash: Optional[str | bytes],
        **context: Any,
    ) -> None:
        if isinstance(safe_tx_hash, bytes):
            safe_tx_hash = to_0x_hex_str(safe_tx_hash)
        logger.error(
            message,
            extra={
                "extra_data": {
                    "chainId": str(chain_id),
                    "safeAddress": safe.address,
                    "safeVersion": safe.version,
                    "safeTxHash": safe_tx_hash,
                    **context,
                    "type": self.TRANSACTION_TYPE,
                }
            },
        )
