# sales/tests/test_sale_service.py

from datetime import date
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from clients.models import Client
from products.models import Product, StockMovement
from sales.models import Payment, Receivable, Sale
from sales.services.exceptions import LedgerValidationError, PreconditionError, StockConflictError
from sales.services.payment_allocator import pay_receivable, register_sale_payment
from sales.services.sale_lifecycle import InvalidTransitionError
from sales.services.sale_service import (
    add_items_to_sale,
    cancel_sale,
    create_sale,
    reschedule_sale,
)

User = get_user_model()

REF = date(2026, 3, 5)


class LedgerTestMixin:
    def setUp(self):
        self.user = User.objects.create_user(username="cashier", password="pass")
        self.client_obj = Client.objects.create(name="Maria Souza", phone="555-0101")
        self.shirt = Product.objects.create(
            sku="SHIRT-01", name="Shirt", sale_price=Decimal("100.00"),
            cost_price=Decimal("40.00"), stock=10,
        )
        self.belt = Product.objects.create(
            sku="BELT-01", name="Belt", sale_price=Decimal("50.00"),
            cost_price=Decimal("20.00"), stock=10,
        )

    def _fiado(self, *, qty=3, installments=3, product=None, **kwargs):
        kwargs.setdefault("client_id", self.client_obj.id)
        kwargs.setdefault("payment_day", 10)
        kwargs.setdefault("reference_date", REF)
        return create_sale(
            user=self.user,
            items=[{"product_id": (product or self.shirt).id, "quantity": qty}],
            installment_plan=installments,
            **kwargs,
        )

    def _receivables(self, sale):
        return list(Receivable.objects.filter(sale=sale).order_by("installment"))


class CreateSaleTests(LedgerTestMixin, TestCase):
    """
    Checkout guarantees:
    - open balance becomes a schedule that sums to it exactly
    - fully paid sales complete immediately with no schedule
    - stock is taken in the same transaction
    """

    def test_fiado_sale_builds_schedule(self):
        sale = self._fiado()

        rows = self._receivables(sale)
        self.assertEqual([r.amount for r in rows], [Decimal("100.00")] * 3)
        self.assertEqual(
            [r.due_date for r in rows],
            [date(2026, 3, 10), date(2026, 4, 10), date(2026, 5, 10)],
        )
        self.assertEqual(sale.status, Sale.STATUS_PENDING)
        self.assertEqual(sale.total_amount, Decimal("300.00"))
        self.assertEqual(sale.paid_amount, Decimal("0.00"))
        self.assertEqual(sale.installment_plan, 3)
        self.assertEqual(sale.version, 1)
        self.assertTrue(sale.invoice_no)

    def test_stock_is_deducted(self):
        sale = self._fiado(qty=3)

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 7)
        movement = StockMovement.objects.get(sale=sale)
        self.assertEqual(movement.reason, StockMovement.Reason.SALE)
        self.assertEqual((movement.previous_stock, movement.new_stock), (10, 7))

    def test_sale_item_copies_prices(self):
        sale = self._fiado(qty=2, installments=2)

        item = sale.items.get()
        self.assertEqual(item.unit_price, Decimal("100.00"))
        self.assertEqual(item.cost_price, Decimal("40.00"))
        self.assertEqual(item.total_price, Decimal("200.00"))

    def test_down_payment_reduces_schedule(self):
        sale = self._fiado(
            installments=2,
            payments=[{"method": Payment.METHOD_CASH, "amount": Decimal("100.00")}],
        )

        self.assertEqual([r.amount for r in self._receivables(sale)], [Decimal("100.00")] * 2)
        self.assertEqual(sale.down_payment_amount, Decimal("100.00"))
        self.assertEqual(sale.paid_amount, Decimal("100.00"))
        self.assertEqual(sale.payments.count(), 1)

    def test_fully_paid_sale_completes(self):
        sale = create_sale(
            user=self.user,
            items=[{"product_id": self.shirt.id, "quantity": 3}],
            payments=[{"method": Payment.METHOD_PIX, "amount": Decimal("300.00")}],
        )

        self.assertEqual(sale.status, Sale.STATUS_COMPLETED)
        self.assertIsNotNone(sale.completed_at)
        self.assertEqual(sale.installment_plan, 0)
        self.assertEqual(sale.receivables.count(), 0)

    def test_client_discount_is_default(self):
        self.client_obj.discount_percent = Decimal("10.00")
        self.client_obj.save()

        sale = self._fiado()

        self.assertEqual(sale.discount_amount, Decimal("30.00"))
        self.assertEqual(sale.total_amount, Decimal("270.00"))
        self.assertEqual(sum(r.amount for r in self._receivables(sale)), Decimal("270.00"))

    def test_seller_fee_reduces_net_total(self):
        sale = create_sale(
            user=self.user,
            items=[{"product_id": self.shirt.id, "quantity": 3}],
            payments=[
                {
                    "method": Payment.METHOD_CREDIT,
                    "amount": Decimal("300.00"),
                    "fee_percent": Decimal("2.50"),
                    "card_installments": 3,
                }
            ],
        )

        self.assertEqual(sale.total_fees, Decimal("7.50"))
        self.assertEqual(sale.net_total, Decimal("292.50"))

    def test_client_absorbed_fee_is_not_deducted(self):
        sale = create_sale(
            user=self.user,
            items=[{"product_id": self.shirt.id, "quantity": 1}],
            payments=[
                {
                    "method": Payment.METHOD_CREDIT,
                    "amount": Decimal("100.00"),
                    "fee_percent": Decimal("3.00"),
                    "fee_absorber": Payment.ABSORBER_CLIENT,
                }
            ],
        )

        self.assertEqual(sale.total_fees, Decimal("0.00"))
        self.assertEqual(sale.payments.get().fee_amount, Decimal("3.00"))

    # =====================================================
    # REJECTIONS
    # =====================================================

    def test_fiado_requires_client(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            self._fiado(client_id=None)
        self.assertEqual(ctx.exception.code, "CLIENT_REQUIRED")
        self.assertEqual(Sale.objects.count(), 0)

    def test_overpayment_is_refused(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            self._fiado(payments=[{"method": Payment.METHOD_CASH, "amount": Decimal("300.01")}])
        self.assertEqual(ctx.exception.code, "OVERPAYMENT")

    def test_insufficient_stock_rolls_back(self):
        with self.assertRaises(StockConflictError):
            self._fiado(qty=11)

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)
        self.assertEqual(Sale.objects.count(), 0)
        self.assertEqual(Receivable.objects.count(), 0)

    def test_unknown_product(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            create_sale(
                user=self.user,
                items=[{"product_id": "7d3f0c1e-0000-4000-8000-000000000000", "quantity": 1}],
                client_id=self.client_obj.id,
            )
        self.assertEqual(ctx.exception.code, "PRODUCT_NOT_FOUND")

    def test_installment_count_limit(self):
        with self.assertRaises(LedgerValidationError):
            self._fiado(installments=13)

    def test_fixed_amount_installment_limit(self):
        with self.assertRaises(LedgerValidationError) as ctx:
            self._fiado(installments=None, fixed_installment_amount=Decimal("1.00"))
        self.assertEqual(ctx.exception.code, "TOO_MANY_INSTALLMENTS")

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)
        self.assertEqual(Receivable.objects.count(), 0)


class AddItemsTests(LedgerTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        # 300.00 in 2 x 150.00, first installment settled
        self.sale = self._fiado(installments=2, fixed_installment_amount=Decimal("75.00"))
        first = self._receivables(self.sale)[0]
        pay_receivable(
            receivable_id=first.id, amount=Decimal("150.00"), method=Payment.METHOD_CASH
        )
        self.sale.refresh_from_db()

    def _add_belt(self, mode, **kwargs):
        return add_items_to_sale(
            sale_id=self.sale.id,
            items=[{"product_id": self.belt.id, "quantity": 1}],
            mode=mode,
            user=self.user,
            reference_date=REF,
            **kwargs,
        )

    def test_increase_value_inflates_pending(self):
        sale = self._add_belt("increase_value")

        rows = self._receivables(sale)
        self.assertEqual([r.amount for r in rows], [Decimal("150.00"), Decimal("200.00")])
        self.assertEqual(sale.installment_plan, 2)
        self.assertEqual(sale.total_amount, Decimal("350.00"))
        self.assertEqual(sale.paid_amount, Decimal("150.00"))

    def test_increase_installments_appends(self):
        sale = self._add_belt("increase_installments")

        rows = self._receivables(sale)
        self.assertEqual([r.installment for r in rows], [1, 2, 3])
        self.assertEqual(rows[2].amount, Decimal("50.00"))
        self.assertEqual(rows[2].due_date, date(2026, 5, 10))
        self.assertEqual(sale.installment_plan, 3)
        self.assertEqual(sale.fixed_installment_amount, Decimal("75.00"))

    def test_recalculate_replaces_untouched_tail(self):
        sale = self._add_belt("recalculate", mode_params={"target_count": 2})

        rows = self._receivables(sale)
        self.assertEqual(
            [(r.installment, r.amount) for r in rows],
            [(1, Decimal("150.00")), (2, Decimal("100.00")), (3, Decimal("100.00"))],
        )
        self.assertEqual(sale.installment_plan, 3)

    def test_items_and_stock_recorded(self):
        sale = self._add_belt("increase_value")

        self.assertEqual(sale.items.count(), 2)
        self.belt.refresh_from_db()
        self.assertEqual(self.belt.stock, 9)

    def test_logs_schedule_changes(self):
        with self.assertLogs("sales.ledger", level="INFO") as logs:
            self._add_belt("increase_installments")

        record = logs.records[-1]
        self.assertEqual(record.getMessage(), "Items added to open sale")
        self.assertEqual(record.created_count, 1)
        self.assertEqual(record.updated_count, 0)
        self.assertEqual(record.deleted_count, 0)

    def test_version_is_bumped(self):
        before = self.sale.version
        sale = self._add_belt("increase_value", expected_version=before)
        self.assertEqual(sale.version, before + 1)

    def test_stale_version_is_refused(self):
        with self.assertRaises(PreconditionError) as ctx:
            self._add_belt("increase_value", expected_version=self.sale.version - 1)
        self.assertEqual(ctx.exception.code, "STALE_VERSION")

        self.belt.refresh_from_db()
        self.assertEqual(self.belt.stock, 10)

    def test_completed_sale_is_closed_for_items(self):
        second = self._receivables(self.sale)[1]
        pay_receivable(
            receivable_id=second.id, amount=Decimal("150.00"), method=Payment.METHOD_CASH
        )

        with self.assertRaises(PreconditionError) as ctx:
            self._add_belt("increase_value")
        self.assertEqual(ctx.exception.code, "SALE_NOT_PENDING")

    def test_unknown_mode(self):
        with self.assertRaises(LedgerValidationError):
            self._add_belt("whatever")


class LedgerSumTests(LedgerTestMixin, TestCase):
    """
    A sale that goes through checkout, payments and two different
    amendments keeps its books balanced after every step:
    open remainder + paid == total, installments == total - down payment.
    """

    def _assert_balanced(self, sale_id, *, amounts):
        sale = Sale.objects.get(pk=sale_id)
        rows = [r for r in self._receivables(sale) if r.status != Receivable.STATUS_CANCELLED]

        open_remaining = sum(
            (r.amount - r.paid_amount for r in rows if r.is_open), Decimal("0.00")
        )
        installments_paid = sum((r.paid_amount for r in rows), Decimal("0.00"))

        self.assertEqual([r.amount for r in rows], [Decimal(a) for a in amounts])
        self.assertEqual(
            sum((r.amount for r in rows), Decimal("0.00")),
            sale.total_amount - sale.down_payment_amount,
        )
        self.assertEqual(sale.paid_amount, sale.down_payment_amount + installments_paid)
        self.assertEqual(open_remaining + sale.paid_amount, sale.total_amount)
        return sale

    def test_books_balance_through_a_full_sequence(self):
        # 300.00 with 60.00 down -> 3 x 80.00
        sale = self._fiado(
            installments=3,
            payments=[{"method": Payment.METHOD_CASH, "amount": Decimal("60.00")}],
        )
        self._assert_balanced(sale.id, amounts=["80.00", "80.00", "80.00"])

        # sweep: installment 1 paid, 20.00 on installment 2
        register_sale_payment(sale_id=sale.id, amount=Decimal("100.00"), method="CASH")
        self._assert_balanced(sale.id, amounts=["80.00", "80.00", "80.00"])

        # +50.00 spread over the open installments: 60 + 80 + 50 = 95 / 95
        add_items_to_sale(
            sale_id=sale.id,
            items=[{"product_id": self.belt.id, "quantity": 1}],
            mode="increase_value",
            reference_date=REF,
        )
        self._assert_balanced(sale.id, amounts=["80.00", "115.00", "95.00"])

        # +50.00 over the untouched tail (installment 3): 145 / 2
        add_items_to_sale(
            sale_id=sale.id,
            items=[{"product_id": self.belt.id, "quantity": 1}],
            mode="recalculate",
            mode_params={"target_count": 2},
            reference_date=REF,
        )
        self._assert_balanced(sale.id, amounts=["80.00", "115.00", "72.50", "72.50"])

        third = Receivable.objects.get(sale_id=sale.id, installment=3)
        pay_receivable(receivable_id=third.id, amount=Decimal("72.50"), method="PIX")
        sale = self._assert_balanced(sale.id, amounts=["80.00", "115.00", "72.50", "72.50"])

        self.assertEqual(sale.total_amount, Decimal("400.00"))
        self.assertEqual(sale.paid_amount, Decimal("232.50"))
        self.assertEqual(sale.status, Sale.STATUS_PENDING)


class RescheduleTests(LedgerTestMixin, TestCase):
    def test_moves_open_due_dates_only(self):
        sale = self._fiado()

        sale = reschedule_sale(sale_id=sale.id, payment_day=20, reference_date=REF)

        rows = self._receivables(sale)
        self.assertEqual(
            [r.due_date for r in rows],
            [date(2026, 3, 20), date(2026, 4, 20), date(2026, 5, 20)],
        )
        self.assertEqual([r.amount for r in rows], [Decimal("100.00")] * 3)
        self.assertEqual(sale.payment_day, 20)

    def test_explicit_start_month(self):
        sale = self._fiado(installments=2)

        sale = reschedule_sale(
            sale_id=sale.id, start_month=12, start_year=2026, reference_date=REF
        )

        self.assertEqual(
            [r.due_date for r in self._receivables(sale)],
            [date(2026, 12, 10), date(2027, 1, 10)],
        )

    def test_paid_installments_keep_their_dates(self):
        sale = self._fiado(installments=2)
        first = self._receivables(sale)[0]
        pay_receivable(receivable_id=first.id, amount=first.amount, method=Payment.METHOD_CASH)

        sale = reschedule_sale(sale_id=sale.id, payment_day=25, reference_date=REF)

        rows = self._receivables(sale)
        self.assertEqual(rows[0].due_date, date(2026, 3, 10))
        self.assertEqual(rows[1].due_date, date(2026, 3, 25))

    def test_completed_sale_cannot_be_rescheduled(self):
        sale = create_sale(
            user=self.user,
            items=[{"product_id": self.shirt.id, "quantity": 1}],
            payments=[{"method": Payment.METHOD_CASH, "amount": Decimal("100.00")}],
        )

        with self.assertRaises(PreconditionError):
            reschedule_sale(sale_id=sale.id, payment_day=20)


class CancelSaleTests(LedgerTestMixin, TestCase):
    def test_cancel_restores_stock_and_closes_installments(self):
        sale = self._fiado()
        first = self._receivables(sale)[0]
        pay_receivable(receivable_id=first.id, amount=Decimal("40.00"), method=Payment.METHOD_CASH)

        sale = cancel_sale(sale_id=sale.id, user=self.user, reason="Returned")

        self.assertEqual(sale.status, Sale.STATUS_CANCELLED)
        self.assertIsNotNone(sale.cancelled_at)
        self.assertIn("Returned", sale.notes)
        self.assertEqual(
            {r.status for r in self._receivables(sale)}, {Receivable.STATUS_CANCELLED}
        )
        # money already received stays on record
        self.assertEqual(sale.paid_amount, Decimal("40.00"))

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)

    def test_completed_sale_can_be_cancelled(self):
        sale = create_sale(
            user=self.user,
            items=[{"product_id": self.shirt.id, "quantity": 1}],
            payments=[{"method": Payment.METHOD_CASH, "amount": Decimal("100.00")}],
        )

        sale = cancel_sale(sale_id=sale.id, user=self.user)

        self.assertEqual(sale.status, Sale.STATUS_CANCELLED)

    def test_cancelled_sale_is_terminal(self):
        sale = self._fiado()
        cancel_sale(sale_id=sale.id, user=self.user)

        with self.assertRaises(InvalidTransitionError):
            cancel_sale(sale_id=sale.id, user=self.user)

        self.shirt.refresh_from_db()
        self.assertEqual(self.shirt.stock, 10)
