# sales/serializers/commands.py

"""
LEDGER COMMAND INPUT SERIALIZERS

Shape validation only (types, ranges, choices). Business rules such as
"fiado needs a client" or "payment exceeds balance" live in the services.
"""

from rest_framework import serializers

from sales.models import Payment
from sales.services.amendment import MODE_CHOICES

MONEY = {"max_digits": 12, "decimal_places": 2}


class ItemLineInputSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class PaymentInputSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=[m for m, _ in Payment.METHOD_CHOICES])
    amount = serializers.DecimalField(min_value=0, **MONEY)
    fee_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, default=0
    )
    fee_absorber = serializers.ChoiceField(
        choices=[a for a, _ in Payment.ABSORBER_CHOICES],
        required=False,
        default=Payment.ABSORBER_SELLER,
    )
    card_installments = serializers.IntegerField(
        min_value=1, max_value=12, required=False, default=1
    )
    paid_at = serializers.DateTimeField(required=False)


class VersionedInputSerializer(serializers.Serializer):
    expected_version = serializers.IntegerField(min_value=0, required=False)


class CreateSaleInputSerializer(serializers.Serializer):
    items = ItemLineInputSerializer(many=True, allow_empty=False)
    client_id = serializers.UUIDField(required=False, allow_null=True)
    discount_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False, allow_null=True
    )
    payments = PaymentInputSerializer(many=True, required=False, default=list)
    installment_plan = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    fixed_installment_amount = serializers.DecimalField(
        required=False, allow_null=True, min_value=0, **MONEY
    )
    payment_day = serializers.IntegerField(
        min_value=1, max_value=31, required=False, allow_null=True
    )
    start_month = serializers.IntegerField(
        min_value=1, max_value=12, required=False, allow_null=True
    )
    start_year = serializers.IntegerField(min_value=2000, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class AddItemsInputSerializer(VersionedInputSerializer):
    items = ItemLineInputSerializer(many=True, allow_empty=False)
    mode = serializers.ChoiceField(choices=list(MODE_CHOICES))
    start_installment = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    target_amount = serializers.DecimalField(required=False, allow_null=True, **MONEY)
    target_count = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    start_from = serializers.IntegerField(min_value=1, required=False, allow_null=True)

    def mode_params(self) -> dict:
        data = self.validated_data
        return {
            key: data.get(key)
            for key in ("start_installment", "target_amount", "target_count", "start_from")
            if data.get(key) is not None
        }


class SalePaymentInputSerializer(VersionedInputSerializer, PaymentInputSerializer):
    pass


class RescheduleInputSerializer(VersionedInputSerializer):
    payment_day = serializers.IntegerField(
        min_value=1, max_value=31, required=False, allow_null=True
    )
    start_month = serializers.IntegerField(
        min_value=1, max_value=12, required=False, allow_null=True
    )
    start_year = serializers.IntegerField(min_value=2000, required=False, allow_null=True)


class CancelInputSerializer(VersionedInputSerializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
