# sales/models/receivable.py

"""
RECEIVABLE (ONE SCHEDULED INSTALLMENT)

Rules:
- installment numbers are unique per sale and contiguous from 1
- 0 <= paid_amount <= amount
- paid_at is set only while status is PAID
- CANCELLED rows are excluded from every balance computation

Writers: payment allocator (paid_amount/status), amendment engine
(amount, tail replacement), reschedule (due_date), sale cancellation.
"""

from __future__ import annotations

import uuid
from decimal import Decimal

from django.db import models

from .sale import Sale


class Receivable(models.Model):
    STATUS_PENDING = "PENDING"
    STATUS_PARTIAL = "PARTIAL"
    STATUS_PAID = "PAID"
    STATUS_CANCELLED = "CANCELLED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_PARTIAL, "Partially paid"),
        (STATUS_PAID, "Paid"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    OPEN_STATUSES = (STATUS_PENDING, STATUS_PARTIAL)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sale = models.ForeignKey(
        Sale,
        on_delete=models.CASCADE,
        related_name="receivables",
    )

    installment = models.PositiveSmallIntegerField()

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    paid_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )

    due_date = models.DateField()

    status = models.CharField(
        max_length=16,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    paid_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["sale", "installment"]
        constraints = [
            models.UniqueConstraint(
                fields=["sale", "installment"],
                name="uniq_receivable_sale_installment",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "due_date"], name="receivable_status_due_idx"),
            models.Index(fields=["sale", "status"], name="receivable_sale_status_idx"),
        ]

    @property
    def is_open(self) -> bool:
        return self.status in self.OPEN_STATUSES

    @property
    def remaining_amount(self) -> Decimal:
        if self.status == self.STATUS_CANCELLED:
            return Decimal("0.00")
        return Decimal(self.amount) - Decimal(self.paid_amount)

    def __str__(self):
        return f"{self.sale_id} #{self.installment} | {self.amount} | {self.status}"
