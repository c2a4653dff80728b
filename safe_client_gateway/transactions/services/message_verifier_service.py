import logging
from typing import Any, Union

from hexbytes import HexBytes
from safe_eth.util.util import to_0x_hex_str

from ..authorization import AuthorizationFailure, AuthorizationPolicy
from ..entities import Safe
from ..exceptions import UnprocessableMessage
from ..hashing import (
    CannotCalculateSafeMessageHash,
    get_safe_message_hash,
    hashes_match,
)
from ..repositories import ConfigurationService
from ..signatures import CannotRecoverSigner, parse_signature

logger = logging.getLogger(__name__)

SafeMessage = Union[str, dict[str, Any]]


class MessageVerifierProvider:
    def __new__(cls):
        if not hasattr(cls, "instance"):
            cls.instance = MessageVerifier(ConfigurationService())
        return cls.instance

    @classmethod
    def del_singleton(cls):
        if hasattr(cls, "instance"):
            del cls.instance


class MessageVerifier:
    """
    Verifies off-chain Safe messages created or signed by clients. Every failure
    is reported as ``422``
    """

    MESSAGE_TYPE = "message_validity"

    def __init__(self, configuration_service: ConfigurationService):
        self.configuration_service = configuration_service
        self.authorization_policy = AuthorizationPolicy(configuration_service)

    @property
    def is_message_verification_enabled(self) -> bool:
        return bool(self.configuration_service.get("ENABLE_MESSAGE_VERIFICATION", True))

    async def verify_creation(
        self, chain_id: str, safe: Safe, message: SafeMessage, signature: str
    ) -> None:
        """
        There's no hash provided by the client on creation, so only the signature
        over the calculated hash is verified
        """
        if not self.is_message_verification_enabled:
            return

        message_hash = self._calculate_message_hash(chain_id, safe, message)
        self._verify_signature(chain_id, safe, message_hash, signature)

    async def verify_update(
        self,
        chain_id: str,
        safe: Safe,
        message: SafeMessage,
        message_hash: str,
        signature: str,
    ) -> None:
        if not self.is_message_verification_enabled:
            return

        calculated_message_hash = self._calculate_message_hash(chain_id, safe, message)
        if not hashes_match(calculated_message_hash, message_hash):
            self._log_security_event(
                "messageHash does not match",
                chain_id,
                safe,
                messageHash=message_hash,
                safeMessage=message,
            )
            raise UnprocessableMessage("Invalid messageHash", is_security_event=True)

        self._verify_signature(chain_id, safe, calculated_message_hash, signature)

    def _calculate_message_hash(
        self, chain_id: str, safe: Safe, message: SafeMessage
    ) -> HexBytes:
        try:
            return get_safe_message_hash(chain_id, safe, message)
        except CannotCalculateSafeMessageHash:
            self._log_security_event(
                "Could not calculate messageHash", chain_id, safe, safeMessage=message
            )
            raise UnprocessableMessage(
                "Could not calculate messageHash", is_security_event=True
            )

    def _verify_signature(
        self, chain_id: str, safe: Safe, message_hash: HexBytes, signature: str
    ) -> None:
        safe_signature = parse_signature(signature)
        context = {
            "messageHash": to_0x_hex_str(message_hash),
            "signature": to_0x_hex_str(safe_signature.signature),
        }
        # Approved hashes and contract signatures cannot be verified offchain
        if not safe_signature.is_ecdsa:
            raise UnprocessableMessage("Could not recover address")

        try:
            authorization = self.authorization_policy.authorize_signer(
                safe_signature, message_hash, safe.owners
            )
        except CannotRecoverSigner:
            self._log_security_event(
                "Could not recover address", chain_id, safe, **context
            )
            raise UnprocessableMessage(
                "Could not recover address", is_security_event=True
            )

        if authorization.failure == AuthorizationFailure.BLOCKED_ADDRESS:
            self._log_security_event(
                "Unauthorized address",
                chain_id,
                safe,
                blockedAddress=authorization.signer,
                **context,
            )
            raise UnprocessableMessage("Unauthorized address", is_security_event=True)
        elif authorization.failure == AuthorizationFailure.ETH_SIGN_DISABLED:
            raise UnprocessableMessage("eth_sign is disabled")
        elif authorization.failure == AuthorizationFailure.NOT_OWNER:
            self._log_security_event(
                "Recovered address does not match signer",
                chain_id,
                safe,
                signerAddress=authorization.signer,
                **context,
            )
            raise UnprocessableMessage("Invalid signature", is_security_event=True)

    def _log_security_event(
        self, message: str, chain_id: str, safe: Safe, **context: Any
    ) -> None:
        logger.error(
            message,
            extra={
                "extra_data": {
                    "chainId": str(chain_id),
                    "safeAddress": safe.address,
                    "safeVersion": safe.version,
                    **context,
                    "type": self.MESSAGE_TYPE,
                }
            },
        )
