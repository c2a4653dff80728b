from unittest.mock import AsyncMock, MagicMock

from django.test import SimpleTestCase, override_settings

from eth_account import Account
from safe_eth.safe import SafeOperationEnum
from safe_eth.safe.signatures import signature_to_bytes
from safe_eth.util.util import to_0x_hex_str

from ..entities import Confirmation
from ..exceptions import InvalidUpstreamTransaction, UnprocessableTransaction
from ..repositories import (
    ConfigurationService,
    ContractsRepository,
    DelegatesRepository,
)
from ..services.transaction_verifier_service import (
    ErrorMessage,
    TransactionVerifier,
)
from ..signatures import SignatureDecodingError, SignatureType
from .factories import (
    DelegateFactory,
    MultisigTransactionFactory,
    ProposeTransactionFactory,
    SafeFactory,
)
from .utils import CHAIN_ID, build_confirmation, set_safe_tx_hash, sign_hash

LOGGER_NAME = "safe_client_gateway.transactions.services.transaction_verifier_service"


class TransactionVerifierTestCase(SimpleTestCase):
    def setUp(self):
        self.owners = [Account.create() for _ in range(3)]
        self.safe = SafeFactory(
            nonce=5, threshold=2, owners=[owner.address for owner in self.owners]
        )
        self.delegates_repository = MagicMock(spec=DelegatesRepository)
        self.delegates_repository.get_delegates = AsyncMock(return_value=[])
        self.contracts_repository = MagicMock(spec=ContractsRepository)
        self.contracts_repository.is_trusted_for_delegate_call = AsyncMock(
            return_value=False
        )
        self.transaction_verifier = TransactionVerifier(
            ConfigurationService(),
            self.delegates_repository,
            self.contracts_repository,
        )

    def _build_transaction(self, signers=(), signature_type=SignatureType.EOA, **kwargs):
        transaction = MultisigTransactionFactory(
            safe=self.safe.address, nonce=kwargs.pop("nonce", self.safe.nonce), **kwargs
        )
        set_safe_tx_hash(self.safe, transaction)
        transaction.confirmations = [
            build_confirmation(signer, transaction.safe_tx_hash, signature_type)
            for signer in signers
        ]
        return transaction

    def _build_proposal(self, sender, signature_type=SignatureType.EOA, **kwargs):
        proposal = ProposeTransactionFactory(
            nonce=kwargs.pop("nonce", self.safe.nonce), sender=sender.address, **kwargs
        )
        set_safe_tx_hash(self.safe, proposal)
        proposal.signature = sign_hash(sender, proposal.safe_tx_hash, signature_type)
        return proposal


class TestVerifyApiTransaction(TransactionVerifierTestCase):
    async def test_verify_api_transaction(self):
        transaction = self._build_transaction(signers=self.owners[:2])
        with self.assertNoLogs(LOGGER_NAME, level="ERROR"):
            await self.transaction_verifier.verify_api_transaction(
                CHAIN_ID, self.safe, transaction
            )

        # Confirmations without signature are not verified
        transaction.confirmations.append(
            Confirmation(owner=self.owners[2].address, signature=None)
        )
        await self.transaction_verifier.verify_api_transaction(
            CHAIN_ID, self.safe, transaction
        )

    async def test_verify_api_transaction_other_signature_types(self):
        for signature_type in SignatureType:
            with self.subTest(signature_type=signature_type):
                transaction = self._build_transaction(
                    signers=self.owners[:1], signature_type=signature_type
                )
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )

    async def test_verify_api_transaction_not_verified(self):
        executed_transaction = self._build_transaction(is_executed=True)
        executed_transaction.safe_tx_hash = to_0x_hex_str(b"\x01" * 32)
        await self.transaction_verifier.verify_api_transaction(
            CHAIN_ID, self.safe, executed_transaction
        )

        old_transaction = self._build_transaction(nonce=self.safe.nonce - 1)
        old_transaction.safe_tx_hash = to_0x_hex_str(b"\x01" * 32)
        await self.transaction_verifier.verify_api_transaction(
            CHAIN_ID, self.safe, old_transaction
        )

    async def test_verify_api_transaction_hash(self):
        transaction = self._build_transaction(signers=self.owners[:1])
        transaction.value += 1
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.HASH_MISMATCH
            ) as context:
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)
        self.assertEqual(cm.records[0].getMessage(), "safeTxHash does not match")
        extra_data = cm.records[0].extra_data
        self.assertEqual(extra_data["chainId"], CHAIN_ID)
        self.assertEqual(extra_data["safeAddress"], self.safe.address)
        self.assertEqual(extra_data["safeTxHash"], transaction.safe_tx_hash)
        self.assertEqual(extra_data["type"], "multisig_transaction_validity")
        self.assertEqual(context.exception.status_code, 502)
        self.assertTrue(context.exception.is_security_event)

        transaction.data = "0x123"
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.MALFORMED_HASH
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)

        with override_settings(
            ENABLE_API_HASH_VERIFICATION=False, ENABLE_API_SIGNATURE_VERIFICATION=False
        ):
            await self.transaction_verifier.verify_api_transaction(
                CHAIN_ID, self.safe, transaction
            )

    async def test_verify_api_transaction_duplicates(self):
        transaction = self._build_transaction(signers=self.owners[:1])
        transaction.confirmations.append(transaction.confirmations[0])
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.DUPLICATE_OWNERS
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)

        transaction = self._build_transaction(signers=self.owners[:1])
        transaction.confirmations.append(
            Confirmation(
                owner=self.owners[1].address,
                signature=transaction.confirmations[0].signature.upper().replace(
                    "0X", "0x"
                ),
            )
        )
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.DUPLICATE_SIGNATURES
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)

    async def test_verify_api_transaction_signatures(self):
        not_owner = Account.create()
        transaction = self._build_transaction(signers=[not_owner])
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.INVALID_SIGNATURE
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)

        # Signature of an owner reported as other owner's confirmation
        transaction = self._build_transaction(signers=self.owners[:1])
        transaction.confirmations[0].owner = self.owners[1].address
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.INVALID_SIGNATURE
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)
        self.assertEqual(cm.records[0].extra_data["signer"], self.owners[1].address)

        with override_settings(ENABLE_API_SIGNATURE_VERIFICATION=False):
            await self.transaction_verifier.verify_api_transaction(
                CHAIN_ID, self.safe, transaction
            )

    async def test_verify_api_transaction_not_recoverable(self):
        transaction = self._build_transaction()
        transaction.confirmations = [
            Confirmation(
                owner=self.owners[0].address,
                signature=to_0x_hex_str(signature_to_bytes(27, 1, 0)),
            )
        ]
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.UNRECOVERABLE_ADDRESS
            ):
                await self.transaction_verifier.verify_api_transaction(
                    CHAIN_ID, self.safe, transaction
                )
        self.assertEqual(len(cm.records), 1)

    async def test_verify_api_transaction_blocked(self):
        transaction = self._build_transaction(signers=self.owners[:2])
        with override_settings(BANNED_EOAS=[self.owners[1].address]):
            with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
                with self.assertRaisesMessage(
                    InvalidUpstreamTransaction, ErrorMessage.UNAUTHORIZED_ADDRESS
                ):
                    await self.transaction_verifier.verify_api_transaction(
                        CHAIN_ID, self.safe, transaction
                    )
        self.assertEqual(len(cm.records), 1)

    @override_settings(ENABLE_ETH_SIGN_SIGNATURES=False)
    async def test_verify_api_transaction_eth_sign(self):
        # Stored eth_sign signatures are still valid
        transaction = self._build_transaction(
            signers=self.owners[:2], signature_type=SignatureType.ETH_SIGN
        )
        await self.transaction_verifier.verify_api_transaction(
            CHAIN_ID, self.safe, transaction
        )


class TestVerifyProposal(TransactionVerifierTestCase):
    async def test_verify_proposal(self):
        proposal = self._build_proposal(self.owners[0])
        with self.assertNoLogs(LOGGER_NAME, level="ERROR"):
            await self.transaction_verifier.verify_proposal(
                CHAIN_ID, self.safe, proposal
            )

        # Future nonces can be proposed
        proposal = self._build_proposal(self.owners[0], nonce=self.safe.nonce + 10)
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)

        # Proposals without signature
        proposal = self._build_proposal(self.owners[0])
        proposal.signature = None
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)

    async def test_verify_proposal_concatenated_signatures(self):
        proposal = self._build_proposal(self.owners[0])
        proposal.signature = sign_hash(
            self.owners[1], proposal.safe_tx_hash
        ) + proposal.signature.removeprefix("0x")
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)

    async def test_verify_proposal_nonce(self):
        proposal = self._build_proposal(self.owners[0], nonce=self.safe.nonce - 1)
        with self.assertNoLogs(LOGGER_NAME, level="ERROR"):
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.INVALID_NONCE
            ):
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )

    async def test_verify_proposal_hash(self):
        proposal = self._build_proposal(self.owners[0])
        proposal.safe_tx_hash = to_0x_hex_str(b"\x02" * 32)
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.HASH_MISMATCH
            ) as context:
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )
        self.assertEqual(len(cm.records), 1)
        self.assertEqual(context.exception.status_code, 422)

        proposal.safe_tx_hash = "not-a-hash"
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.HASH_MISMATCH
            ):
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )
        self.assertEqual(len(cm.records), 1)

        proposal = self._build_proposal(self.owners[0])
        proposal.safe_tx_gas = -1
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.MALFORMED_HASH
            ):
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )
        self.assertEqual(len(cm.records), 1)

    async def test_verify_proposal_delegate_call(self):
        proposal = self._build_proposal(
            self.owners[0], operation=SafeOperationEnum.DELEGATE_CALL.value
        )
        with self.assertRaisesMessage(
            UnprocessableTransaction, ErrorMessage.DELEGATE_CALL_DISABLED
        ):
            await self.transaction_verifier.verify_proposal(
                CHAIN_ID, self.safe, proposal
            )

        self.contracts_repository.is_trusted_for_delegate_call.return_value = True
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)

    async def test_verify_proposal_sender(self):
        # Sender is not the signer
        proposal = self._build_proposal(self.owners[0])
        proposal.sender = self.owners[1].address
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.INVALID_SIGNATURE
            ):
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )
        self.assertEqual(len(cm.records), 1)

        # Sender is neither owner nor delegate
        not_owner = Account.create()
        proposal = self._build_proposal(not_owner)
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.INVALID_SIGNATURE
            ):
                await self.transaction_verifier.verify_proposal(
                    CHAIN_ID, self.safe, proposal
                )
        self.assertEqual(len(cm.records), 1)

        # Delegates can propose
        self.delegates_repository.get_delegates.return_value = [
            DelegateFactory(safe=self.safe.address, delegate=not_owner.address)
        ]
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)
        self.delegates_repository.get_delegates.assert_awaited_with(
            CHAIN_ID, safe_address=self.safe.address, delegate=not_owner.address
        )

    async def test_verify_proposal_blocked_sender(self):
        proposal = self._build_proposal(self.owners[0])
        with override_settings(BANNED_EOAS=[self.owners[0].address]):
            with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
                with self.assertRaisesMessage(
                    UnprocessableTransaction, ErrorMessage.UNAUTHORIZED_ADDRESS
                ):
                    await self.transaction_verifier.verify_proposal(
                        CHAIN_ID, self.safe, proposal
                    )
        self.assertEqual(len(cm.records), 1)

    async def test_verify_proposal_eth_sign(self):
        proposal = self._build_proposal(
            self.owners[0], signature_type=SignatureType.ETH_SIGN
        )
        await self.transaction_verifier.verify_proposal(CHAIN_ID, self.safe, proposal)

        with override_settings(ENABLE_ETH_SIGN_SIGNATURES=False):
            with self.assertNoLogs(LOGGER_NAME, level="ERROR"):
                with self.assertRaisesMessage(
                    UnprocessableTransaction, ErrorMessage.ETH_SIGN_DISABLED
                ):
                    await self.transaction_verifier.verify_proposal(
                        CHAIN_ID, self.safe, proposal
                    )

            # Already stored signature
            transaction = self._build_transaction()
            transaction.confirmations = [
                Confirmation(
                    owner=self.owners[0].address, signature=proposal.signature
                )
            ]
            await self.transaction_verifier.verify_proposal(
                CHAIN_ID, self.safe, proposal, transaction
            )

    async def test_verify_proposal_signature_not_valid(self):
        proposal = self._build_proposal(self.owners[0])
        proposal.signature = proposal.signature[:-2] + "05"
        with self.assertRaisesMessage(SignatureDecodingError, "Unknown signature type"):
            await self.transaction_verifier.verify_proposal(
                CHAIN_ID, self.safe, proposal
            )

        with override_settings(ENABLE_PROPOSAL_SIGNATURE_VERIFICATION=False):
            await self.transaction_verifier.verify_proposal(
                CHAIN_ID, self.safe, proposal
            )


class TestVerifyConfirmation(TransactionVerifierTestCase):
    async def test_verify_confirmation(self):
        transaction = self._build_transaction(signers=self.owners[:1])
        signature = sign_hash(self.owners[1], transaction.safe_tx_hash)
        with self.assertNoLogs(LOGGER_NAME, level="ERROR"):
            await self.transaction_verifier.verify_confirmation(
                CHAIN_ID, self.safe, transaction, signature
            )

    async def test_verify_confirmation_not_valid_transaction(self):
        transaction = self._build_transaction(is_executed=True)
        signature = sign_hash(self.owners[0], transaction.safe_tx_hash)
        with self.assertRaisesMessage(
            UnprocessableTransaction, ErrorMessage.ALREADY_EXECUTED
        ):
            await self.transaction_verifier.verify_confirmation(
                CHAIN_ID, self.safe, transaction, signature
            )

        transaction = self._build_transaction(nonce=self.safe.nonce - 1)
        signature = sign_hash(self.owners[0], transaction.safe_tx_hash)
        with self.assertRaisesMessage(UnprocessableTransaction, ErrorMessage.INVALID_NONCE):
            await self.transaction_verifier.verify_confirmation(
                CHAIN_ID, self.safe, transaction, signature
            )

    async def test_verify_confirmation_hash(self):
        transaction = self._build_transaction()
        signature = sign_hash(self.owners[0], transaction.safe_tx_hash)
        transaction.nonce += 1
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                InvalidUpstreamTransaction, ErrorMessage.HASH_MISMATCH
            ):
                await self.transaction_verifier.verify_confirmation(
                    CHAIN_ID, self.safe, transaction, signature
                )
        self.assertEqual(len(cm.records), 1)

        transaction.data = "0xzz"
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.MALFORMED_HASH
            ) as context:
                await self.transaction_verifier.verify_confirmation(
                    CHAIN_ID, self.safe, transaction, signature
                )
        self.assertEqual(len(cm.records), 1)
        self.assertEqual(context.exception.status_code, 422)

    async def test_verify_confirmation_signature(self):
        transaction = self._build_transaction()
        signature = sign_hash(Account.create(), transaction.safe_tx_hash)
        with self.assertLogs(LOGGER_NAME, level="ERROR") as cm:
            with self.assertRaisesMessage(
                UnprocessableTransaction, ErrorMessage.INVALID_SIGNATURE
            ):
                await self.transaction_verifier.verify_confirmation(
                    CHAIN_ID, self.safe, transaction, signature
                )
        self.assertEqual(len(cm.records), 1)

        with self.assertRaisesMessage(SignatureDecodingError, "Invalid signature length"):
            await self.transaction_verifier.verify_confirmation(
                CHAIN_ID, self.safe, transaction, signature[:-4]
            )

    @override_settings(ENABLE_ETH_SIGN_SIGNATURES=False)
    async def test_verify_confirmation_eth_sign(self):
        transaction = self._build_transaction()
        signature = sign_hash(
            self.owners[0], transaction.safe_tx_hash, SignatureType.ETH_SIGN
        )
        with self.assertRaisesMessage(
            UnprocessableTransaction, ErrorMessage.ETH_SIGN_DISABLED
        ):
            await self.transaction_verifier.verify_confirmation(
                CHAIN_ID, self.safe, transaction, signature
            )
