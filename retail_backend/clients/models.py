# clients/models.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models


class Client(models.Model):
    """
    A customer who may buy on store credit.

    The ledger only reads from this table: name for display and
    discount_percent as the default checkout discount.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255, db_index=True)
    phone = models.CharField(max_length=32, blank=True, default="")

    discount_percent = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Default discount applied to this client's sales (0-100).",
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def clean(self):
        pct = Decimal(self.discount_percent or 0)
        if pct < Decimal("0.00") or pct > Decimal("100.00"):
            raise ValidationError("discount_percent must be between 0 and 100")

    def __str__(self):
        return self.name
