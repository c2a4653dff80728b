from typing import Any, Optional

from rest_framework import serializers
from safe_eth.eth.django.serializers import (
    EthereumAddressField,
    HexadecimalField,
    Sha3HashField,
)
from safe_eth.util.util import to_0x_hex_str

from .entities import MultisigTransaction, ProposeTransaction
from .services.queue_service import (
    ConflictHeaderQueuedItem,
    LabelQueuedItem,
    QueuedItem,
    TransactionQueuedItem,
)


# ================================================ #
#            Request Serializers
# ================================================ #
class ProposeTransactionSerializer(serializers.Serializer):
    to = EthereumAddressField(allow_zero_address=True, allow_sentinel_address=True)
    value = serializers.IntegerField(min_value=0)
    data = HexadecimalField(allow_null=True, required=False, default=None)
    nonce = serializers.IntegerField(min_value=0)
    operation = serializers.IntegerField(min_value=0, max_value=1)
    safe_tx_gas = serializers.IntegerField(min_value=0)
    base_gas = serializers.IntegerField(min_value=0)
    gas_price = serializers.IntegerField(min_value=0)
    gas_token = EthereumAddressField(
        allow_zero_address=True, allow_null=True, required=False, default=None
    )
    refund_receiver = EthereumAddressField(
        allow_zero_address=True, allow_null=True, required=False, default=None
    )
    safe_tx_hash = Sha3HashField()
    sender = EthereumAddressField()
    signature = serializers.CharField(allow_null=True, required=False, default=None)
    origin = serializers.CharField(max_length=200, allow_null=True, default=None)

    def get_propose_transaction(self) -> ProposeTransaction:
        validated_data = self.validated_data
        data: Optional[bytes] = validated_data["data"]
        return ProposeTransaction(
            to=validated_data["to"],
            value=validated_data["value"],
            data=to_0x_hex_str(data) if data else None,
            operation=validated_data["operation"],
            safe_tx_gas=validated_data["safe_tx_gas"],
            base_gas=validated_data["base_gas"],
            gas_price=validated_data["gas_price"],
            gas_token=validated_data["gas_token"],
            refund_receiver=validated_data["refund_receiver"],
            nonce=validated_data["nonce"],
            safe_tx_hash=to_0x_hex_str(validated_data["safe_tx_hash"]),
            sender=validated_data["sender"],
            signature=validated_data["signature"],
            origin=validated_data["origin"],
        )


class ConfirmationSerializer(serializers.Serializer):
    signature = serializers.CharField()


# ================================================ #
#            Response Serializers
# ================================================ #
class TransactionSummaryResponseSerializer(serializers.Serializer):
    safe = EthereumAddressField()
    safe_tx_hash = serializers.CharField()
    to = EthereumAddressField()
    value = serializers.CharField()
    operation = serializers.IntegerField()
    nonce = serializers.IntegerField()
    is_executed = serializers.BooleanField()
    trusted = serializers.BooleanField()
    proposer = EthereumAddressField(allow_null=True)
    submission_date = serializers.DateTimeField(allow_null=True)
    confirmations_required = serializers.IntegerField(allow_null=True)
    confirmations_submitted = serializers.SerializerMethodField()

    def get_confirmations_submitted(self, obj: MultisigTransaction) -> int:
        return len(obj.confirmations or [])


class LabelQueuedItemResponseSerializer(serializers.Serializer):
    type = serializers.CharField()
    label = serializers.SerializerMethodField()

    def get_label(self, obj: LabelQueuedItem) -> str:
        return obj.label.value


class ConflictHeaderQueuedItemResponseSerializer(serializers.Serializer):
    type = serializers.CharField()
    nonce = serializers.IntegerField()


class TransactionQueuedItemResponseSerializer(serializers.Serializer):
    type = serializers.CharField()
    transaction = TransactionSummaryResponseSerializer()
    conflict_type = serializers.SerializerMethodField()

    def get_conflict_type(self, obj: TransactionQueuedItem) -> str:
        return obj.conflict_type.value


class QueuedItemResponseSerializer(serializers.Serializer):
    """
    Dispatches every queued item to the serializer for its type
    """

    serializer_by_item_class = {
        LabelQueuedItem: LabelQueuedItemResponseSerializer,
        ConflictHeaderQueuedItem: ConflictHeaderQueuedItemResponseSerializer,
        TransactionQueuedItem: TransactionQueuedItemResponseSerializer,
    }

    def to_representation(self, instance: QueuedItem) -> dict[str, Any]:
        serializer_class = self.serializer_by_item_class[type(instance)]
        return serializer_class(instance, context=self.context).data


class QueuedItemPageResponseSerializer(serializers.Serializer):
    count = serializers.IntegerField(allow_null=True)
    next = serializers.CharField(allow_null=True)
    previous = serializers.CharField(allow_null=True)
    results = QueuedItemResponseSerializer(many=True)
