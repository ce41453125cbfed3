# sales/models/payment.py

"""
PAYMENT (APPEND-ONLY AUDIT RECORD)

One row per amount of money received against a sale.

Notes:
- Never mutated after creation. Corrections are new rows.
- A payment does not point at receivables; which installments it settled
  is decided by the allocator when it is applied.
- fee_absorber=SELLER: fee is deducted from the store's proceeds (sale.total_fees)
  fee_absorber=CLIENT: fee is disclosed only
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from .sale import Sale


class Payment(models.Model):
    METHOD_CASH = "CASH"
    METHOD_PIX = "PIX"
    METHOD_DEBIT = "DEBIT"
    METHOD_CREDIT = "CREDIT"

    METHOD_CHOICES = [
        (METHOD_CASH, "Cash"),
        (METHOD_PIX, "Pix"),
        (METHOD_DEBIT, "Debit card"),
        (METHOD_CREDIT, "Credit card"),
    ]

    ABSORBER_SELLER = "SELLER"
    ABSORBER_CLIENT = "CLIENT"

    ABSORBER_CHOICES = [
        (ABSORBER_SELLER, "Seller"),
        (ABSORBER_CLIENT, "Client"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name="payments",
    )

    method = models.CharField(max_length=16, choices=METHOD_CHOICES)

    amount = models.DecimalField(max_digits=12, decimal_places=2)

    fee_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0.00")
    )
    fee_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    fee_absorber = models.CharField(
        max_length=8,
        choices=ABSORBER_CHOICES,
        default=ABSORBER_SELLER,
    )

    card_installments = models.PositiveSmallIntegerField(
        default=1,
        help_text="Card installments (not sale installments).",
    )

    paid_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["paid_at", "created_at"]
        indexes = [
            models.Index(fields=["sale", "paid_at"], name="payment_sale_paid_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("Payment records are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError("Payment records are append-only")

    def __str__(self):
        return f"{self.sale_id} | {self.method} | {self.amount}"
