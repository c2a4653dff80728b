from django.test import SimpleTestCase

from djangorestframework_camel_case.util import camelize
from eth_account import Account
from safe_eth.eth.constants import NULL_ADDRESS
from safe_eth.eth.utils import fast_keccak_text
from safe_eth.util.util import to_0x_hex_str

from ..entities import Page
from ..serializers import (
    ConfirmationSerializer,
    ProposeTransactionSerializer,
    QueuedItemPageResponseSerializer,
)
from ..services.queue_service import (
    ConflictHeaderQueuedItem,
    ConflictType,
    LabelItem,
    LabelQueuedItem,
    TransactionQueuedItem,
)
from .factories import ConfirmationFactory, MultisigTransactionFactory


class TestProposeTransactionSerializer(SimpleTestCase):
    def setUp(self):
        self.data = {
            "to": Account.create().address,
            "value": 1,
            "data": "0xa9059cbb",
            "nonce": 3,
            "operation": 0,
            "safe_tx_gas": 0,
            "base_gas": 0,
            "gas_price": 0,
            "gas_token": NULL_ADDRESS,
            "refund_receiver": None,
            "safe_tx_hash": to_0x_hex_str(fast_keccak_text("proposal")),
            "sender": Account.create().address,
            "signature": "0x" + "ab" * 65,
            "origin": None,
        }

    def test_get_propose_transaction(self):
        serializer = ProposeTransactionSerializer(data=self.data)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        proposal = serializer.get_propose_transaction()
        self.assertEqual(proposal.to, self.data["to"])
        self.assertEqual(proposal.value, 1)
        self.assertEqual(proposal.data, "0xa9059cbb")
        self.assertEqual(proposal.nonce, 3)
        self.assertEqual(proposal.gas_token, NULL_ADDRESS)
        self.assertIsNone(proposal.refund_receiver)
        self.assertEqual(proposal.safe_tx_hash, self.data["safe_tx_hash"])
        self.assertEqual(proposal.sender, self.data["sender"])
        self.assertEqual(proposal.signature, self.data["signature"])

    def test_get_propose_transaction_optional_fields(self):
        for field in ("data", "signature", "gas_token", "refund_receiver"):
            del self.data[field]
        serializer = ProposeTransactionSerializer(data=self.data)
        self.assertTrue(serializer.is_valid(), serializer.errors)
        proposal = serializer.get_propose_transaction()
        self.assertIsNone(proposal.data)
        self.assertIsNone(proposal.signature)

    def test_get_propose_transaction_malformed_signature(self):
        # Signature bytes are decoded when the proposal is verified
        serializer = ProposeTransactionSerializer(
            data={**self.data, "signature": "0x12"}
        )
        self.assertTrue(serializer.is_valid(), serializer.errors)
        self.assertEqual(serializer.get_propose_transaction().signature, "0x12")

    def test_not_valid(self):
        for field, value in (
            ("to", "0x1234"),
            ("to", self.data["to"].lower()),
            ("value", -1),
            ("operation", 2),
            ("safe_tx_hash", "0x1234"),
            ("sender", None),
            ("data", "not-hex"),
        ):
            with self.subTest(field=field, value=value):
                serializer = ProposeTransactionSerializer(
                    data={**self.data, field: value}
                )
                self.assertFalse(serializer.is_valid())
                self.assertIn(field, serializer.errors)

    def test_confirmation_serializer(self):
        self.assertTrue(ConfirmationSerializer(data={"signature": "0x12"}).is_valid())
        self.assertFalse(ConfirmationSerializer(data={}).is_valid())


class TestQueuedItemPageResponseSerializer(SimpleTestCase):
    def test_serialize(self):
        transaction = MultisigTransactionFactory(
            nonce=4,
            value=10,
            confirmations=[ConfirmationFactory(), ConfirmationFactory()],
            confirmations_required=2,
        )
        page = Page(
            count=3,
            next="http://testserver/queued?cursor=limit%3D20%26offset%3D20",
            previous=None,
            results=[
                LabelQueuedItem(LabelItem.NEXT),
                ConflictHeaderQueuedItem(4),
                TransactionQueuedItem(transaction, ConflictType.HAS_NEXT),
            ],
        )
        data = camelize(QueuedItemPageResponseSerializer(page).data)
        self.assertEqual(data["count"], 3)
        self.assertEqual(data["next"], page.next)
        self.assertIsNone(data["previous"])
        self.assertEqual(data["results"][0], {"type": "LABEL", "label": "Next"})
        self.assertEqual(
            data["results"][1], {"type": "CONFLICT_HEADER", "nonce": 4}
        )
        transaction_item = data["results"][2]
        self.assertEqual(transaction_item["type"], "TRANSACTION")
        self.assertEqual(transaction_item["conflictType"], "HasNext")
        self.assertEqual(
            transaction_item["transaction"]["safeTxHash"], transaction.safe_tx_hash
        )
        self.assertEqual(transaction_item["transaction"]["value"], "10")
        self.assertEqual(transaction_item["transaction"]["nonce"], 4)
        self.assertEqual(transaction_item["transaction"]["confirmationsSubmitted"], 2)
        self.assertEqual(transaction_item["transaction"]["confirmationsRequired"], 2)
        self.assertFalse(transaction_item["transaction"]["isExecuted"])
