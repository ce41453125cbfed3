# sales/tests/test_payment_allocator.py

from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from clients.models import Client
from products.models import Product
from sales.models import Payment, Receivable, Sale
from sales.services.exceptions import LedgerValidationError, PreconditionError
from sales.services.payment_allocator import pay_receivable, register_sale_payment
from sales.services.sale_service import cancel_sale, create_sale

User = get_user_model()


class PaymentAllocatorTests(TestCase):
    """
    Payment allocator against the database.

    GUARANTEES:
    - sale.paid_amount always equals what the installments absorbed
    - a sweep never overpays
    - the sale completes exactly when every installment is PAID
    - one Payment audit row per call
    """

    def setUp(self):
        self.user = User.objects.create_user(username="cashier", password="pass")
        self.client_obj = Client.objects.create(name="Joao Lima")
        self.product = Product.objects.create(
            sku="BAG-01", name="Bag", sale_price=Decimal("80.00"), stock=20
        )
        # 160.00 in 2 x 80.00
        self.sale = create_sale(
            user=self.user,
            items=[{"product_id": self.product.id, "quantity": 2}],
            client_id=self.client_obj.id,
            installment_plan=2,
            payment_day=10,
            reference_date=date(2026, 3, 5),
        )
        self.first, self.second = Receivable.objects.filter(sale=self.sale).order_by(
            "installment"
        )

    def _sweep(self, amount, **kwargs):
        kwargs.setdefault("method", Payment.METHOD_CASH)
        return register_sale_payment(sale_id=self.sale.id, amount=Decimal(amount), **kwargs)

    # =====================================================
    # SWEEP
    # =====================================================

    def test_sweep_pays_oldest_first(self):
        result = self._sweep("120.00")

        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.status, Receivable.STATUS_PAID)
        self.assertEqual(self.first.paid_amount, Decimal("80.00"))
        self.assertIsNotNone(self.first.paid_at)
        self.assertEqual(self.second.status, Receivable.STATUS_PARTIAL)
        self.assertEqual(self.second.remaining_amount, Decimal("40.00"))

        self.assertEqual(result.sale.paid_amount, Decimal("120.00"))
        self.assertEqual(result.sale.status, Sale.STATUS_PENDING)
        self.assertEqual(result.payment.amount, Decimal("120.00"))
        self.assertEqual([r.installment for r in result.receivables], [1, 2])

    def test_two_sweeps_match_one(self):
        self._sweep("60.00")
        self._sweep("60.00")

        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(
            (self.first.status, self.first.paid_amount),
            (Receivable.STATUS_PAID, Decimal("80.00")),
        )
        self.assertEqual(
            (self.second.status, self.second.paid_amount),
            (Receivable.STATUS_PARTIAL, Decimal("40.00")),
        )
        self.sale.refresh_from_db()
        self.assertEqual(self.sale.paid_amount, Decimal("120.00"))

    def test_sweep_of_full_balance_completes_sale(self):
        self._sweep("120.00")
        result = self._sweep("40.00")

        self.assertEqual(result.sale.status, Sale.STATUS_COMPLETED)
        self.assertEqual(result.sale.paid_amount, Decimal("160.00"))
        self.assertEqual(self.sale.payments.count(), 2)

    def test_sweep_above_balance_is_refused(self):
        with self.assertRaises(PreconditionError) as ctx:
            self._sweep("160.01")
        self.assertEqual(ctx.exception.code, "PAYMENT_EXCEEDS_BALANCE")

        self.sale.refresh_from_db()
        self.assertEqual(self.sale.paid_amount, Decimal("0.00"))
        self.assertEqual(Payment.objects.filter(sale=self.sale).count(), 0)

    def test_sweep_bumps_version(self):
        self._sweep("10.00", expected_version=1)

        self.sale.refresh_from_db()
        self.assertEqual(self.sale.version, 2)

    def test_stale_version_is_refused(self):
        self._sweep("10.00")

        with self.assertRaises(PreconditionError) as ctx:
            self._sweep("10.00", expected_version=1)
        self.assertEqual(ctx.exception.code, "STALE_VERSION")

    def test_invalid_method(self):
        with self.assertRaises(LedgerValidationError):
            self._sweep("10.00", method="BARTER")

    def test_seller_fee_on_installment_payment(self):
        result = self._sweep(
            "80.00",
            method=Payment.METHOD_DEBIT,
            fee_percent=Decimal("2.00"),
        )

        self.assertEqual(result.payment.fee_amount, Decimal("1.60"))
        self.assertEqual(result.sale.total_fees, Decimal("1.60"))
        self.assertEqual(result.sale.net_total, Decimal("158.40"))

    def test_cancelled_sale_refuses_payments(self):
        cancel_sale(sale_id=self.sale.id, user=self.user)

        with self.assertRaises(PreconditionError) as ctx:
            self._sweep("10.00")
        self.assertEqual(ctx.exception.code, "SALE_NOT_PENDING")

    # =====================================================
    # SINGLE INSTALLMENT
    # =====================================================

    def test_pay_receivable_partial_then_full(self):
        pay_receivable(receivable_id=self.first.id, amount=Decimal("40.00"), method="CASH")
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Receivable.STATUS_PARTIAL)

        result = pay_receivable(
            receivable_id=self.first.id, amount=Decimal("40.00"), method="PIX"
        )
        self.first.refresh_from_db()
        self.assertEqual(self.first.status, Receivable.STATUS_PAID)
        self.assertEqual(result.sale.paid_amount, Decimal("80.00"))
        self.assertEqual(result.sale.status, Sale.STATUS_PENDING)

    def test_pay_receivable_does_not_spill_over(self):
        with self.assertRaises(PreconditionError) as ctx:
            pay_receivable(receivable_id=self.first.id, amount=Decimal("100.00"), method="CASH")
        self.assertEqual(ctx.exception.code, "PAYMENT_EXCEEDS_BALANCE")

        self.second.refresh_from_db()
        self.assertEqual(self.second.paid_amount, Decimal("0.00"))

    def test_paid_installment_refuses_more(self):
        pay_receivable(receivable_id=self.first.id, amount=Decimal("80.00"), method="CASH")

        with self.assertRaises(PreconditionError) as ctx:
            pay_receivable(receivable_id=self.first.id, amount=Decimal("1.00"), method="CASH")
        self.assertEqual(ctx.exception.code, "RECEIVABLE_CLOSED")

    def test_paying_every_installment_completes_sale(self):
        pay_receivable(receivable_id=self.first.id, amount=Decimal("80.00"), method="CASH")
        result = pay_receivable(
            receivable_id=self.second.id, amount=Decimal("80.00"), method="CASH"
        )

        self.assertEqual(result.sale.status, Sale.STATUS_COMPLETED)
        self.assertIsNotNone(result.sale.completed_at)


class MissingReceivableTests(TestCase):
    def test_open_balance_without_installments_gets_one(self):
        user = User.objects.create_user(username="cashier", password="pass")
        client = Client.objects.create(name="Ana")
        sale = Sale.objects.create(
            user=user,
            client=client,
            subtotal_amount=Decimal("50.00"),
            total_amount=Decimal("50.00"),
            net_total=Decimal("50.00"),
            payment_day=10,
            installment_plan=0,
        )

        result = register_sale_payment(sale_id=sale.id, amount=Decimal("20.00"), method="CASH")

        row = Receivable.objects.get(sale=sale)
        self.assertEqual(row.amount, Decimal("50.00"))
        self.assertEqual(row.paid_amount, Decimal("20.00"))
        self.assertEqual(row.status, Receivable.STATUS_PARTIAL)
        self.assertEqual(result.sale.installment_plan, 1)
