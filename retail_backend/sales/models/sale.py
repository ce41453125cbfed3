# sales/models/sale.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

User = settings.AUTH_USER_MODEL


class Sale(models.Model):
    """
    One POS checkout, paid up front or left open as store credit (fiado).

    GUARANTEES:
    - Open balance lives in Receivables (related_name="receivables")
    - paid_amount is a cache re-derived from receivables on every mutation,
      never incremented
    - Immutable financial record once COMPLETED or CANCELLED
      (only COMPLETED -> CANCELLED is allowed afterwards)
    - version is bumped on every ledger mutation (optimistic check for clients)
    """

    STATUS_PENDING = "PENDING"
    STATUS_COMPLETED = "COMPLETED"
    STATUS_CANCELLED = "CANCELLED"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    invoice_no = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated invoice / receipt number",
    )

    client = models.ForeignKey(
        "clients.Client",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="sales",
    )

    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        related_name="sales",
        help_text="Cashier / staff who processed the sale",
    )

    subtotal_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    discount_percent = models.DecimalField(
        max_digits=5, decimal_places=2, default=Decimal("0.00")
    )
    discount_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_amount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_fees = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Card fees absorbed by the seller.",
    )
    net_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="total_amount - total_fees",
    )

    down_payment_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Money received at checkout, outside any receivable.",
    )
    paid_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="down_payment_amount + sum(receivable.paid_amount)",
    )

    status = models.CharField(
        max_length=16,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    installment_plan = models.PositiveSmallIntegerField(default=1)
    fixed_installment_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Operator-chosen value per installment (optional).",
    )
    payment_day = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        help_text="Day of month installments fall due (1-31).",
    )

    version = models.PositiveIntegerField(default=1)
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["created_at"], name="sale_created_idx"),
            models.Index(fields=["status"], name="sale_status_idx"),
            models.Index(fields=["client", "status"], name="sale_client_status_idx"),
        ]

    _IMMUTABLE_FIELDS_AFTER_CLOSE = (
        "client_id",
        "user_id",
        "subtotal_amount",
        "discount_percent",
        "discount_amount",
        "total_amount",
        "total_fees",
        "net_total",
        "down_payment_amount",
        "paid_amount",
        "installment_plan",
        "fixed_installment_amount",
        "created_at",
        "completed_at",
    )

    @property
    def open_amount(self) -> Decimal:
        return Decimal(self.total_amount) - Decimal(self.paid_amount)

    @property
    def is_fiado(self) -> bool:
        return self.open_amount > Decimal("0.00")

    def _validate_immutable(self, previous: "Sale"):
        if previous.status == self.STATUS_PENDING:
            return

        if self.status != previous.status and not (
            previous.status == self.STATUS_COMPLETED
            and self.status == self.STATUS_CANCELLED
        ):
            raise ValueError(
                f"Sale is immutable once {previous.status}. "
                f"Status change {previous.status} -> {self.status} is not allowed."
            )

        for field in self._IMMUTABLE_FIELDS_AFTER_CLOSE:
            if getattr(self, field) != getattr(previous, field):
                raise ValueError(
                    f"Sale is immutable once {previous.status}. "
                    f"Field '{field}' cannot be changed."
                )

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            previous = Sale.objects.filter(pk=self.pk).first()
            if previous is not None:
                self._validate_immutable(previous)

        if not self.invoice_no:
            prefix = timezone.now().strftime("INV%Y%m%d")
            self.invoice_no = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"

        if self.status == self.STATUS_COMPLETED and not self.completed_at:
            self.completed_at = timezone.now()

        if self.status == self.STATUS_CANCELLED and not self.cancelled_at:
            self.cancelled_at = timezone.now()

        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.invoice_no} | {self.total_amount} | {self.status}"
