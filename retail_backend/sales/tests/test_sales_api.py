# sales/tests/test_sales_api.py

from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from rest_framework.test import APIClient

from clients.models import Client
from products.models import Product
from sales.models import Receivable, Sale

User = get_user_model()

SALES_URL = "/api/sales/sales/"
RECEIVABLES_URL = "/api/sales/receivables/"


class SalesApiTests(TestCase):
    """
    HTTP contract of the ledger endpoints.

    GUARANTEES:
    - staff-only (authenticated)
    - ledger errors use {"error": {"code", "message", "details"}}
    - validation -> 400, state conflicts -> 409
    """

    def setUp(self):
        cache.clear()
        self.api = APIClient()
        self.user = User.objects.create_user(username="cashier", password="pass")
        self.api.force_authenticate(user=self.user)

        self.client_obj = Client.objects.create(name="Carla Dias")
        self.product = Product.objects.create(
            sku="SHOE-01", name="Shoe", sale_price=Decimal("100.00"), stock=10
        )

    def _create(self, **overrides):
        payload = {
            "items": [{"product_id": str(self.product.id), "quantity": 3}],
            "client_id": str(self.client_obj.id),
            "installment_plan": 3,
            "payment_day": 10,
        }
        payload.update(overrides)
        return self.api.post(SALES_URL, payload, format="json")

    # =====================================================
    # PUBLIC ENDPOINTS + AUTH
    # =====================================================

    def test_health_check_is_public(self):
        res = APIClient().get("/api/health/")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["db"], "ok")

    def test_sales_require_authentication(self):
        res = APIClient().get(SALES_URL)
        self.assertEqual(res.status_code, 401)

    # =====================================================
    # CHECKOUT
    # =====================================================

    def test_create_fiado_sale(self):
        res = self._create()

        self.assertEqual(res.status_code, 201, res.data)
        self.assertEqual(res.data["status"], Sale.STATUS_PENDING)
        self.assertEqual(res.data["total_amount"], "300.00")
        self.assertEqual(res.data["open_amount"], "300.00")
        self.assertEqual(res.data["version"], 1)
        self.assertEqual(res.data["client_name"], "Carla Dias")
        self.assertEqual(
            [r["amount"] for r in res.data["receivables"]], ["100.00", "100.00", "100.00"]
        )

    def test_fiado_without_client_is_400(self):
        res = self._create(client_id=None)

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["error"]["code"], "CLIENT_REQUIRED")
        self.assertEqual(Sale.objects.count(), 0)

    def test_overpayment_is_400(self):
        res = self._create(payments=[{"method": "CASH", "amount": "400.00"}])

        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.data["error"]["code"], "OVERPAYMENT")

    def test_insufficient_stock_is_409(self):
        res = self._create(items=[{"product_id": str(self.product.id), "quantity": 99}])

        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.data["error"]["code"], "INSUFFICIENT_STOCK")
        self.assertEqual(res.data["error"]["details"]["available"], 10)

    def test_malformed_payload_is_400(self):
        res = self.api.post(SALES_URL, {"items": []}, format="json")
        self.assertEqual(res.status_code, 400)

    def test_list_filters_by_status(self):
        self._create()
        self._create(
            client_id=None,
            installment_plan=None,
            items=[{"product_id": str(self.product.id), "quantity": 1}],
            payments=[{"method": "CASH", "amount": "100.00"}],
        )

        res = self.api.get(SALES_URL, {"status": "completed"})

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["count"], 1)
        self.assertEqual(res.data["results"][0]["status"], Sale.STATUS_COMPLETED)

    # =====================================================
    # LEDGER MUTATIONS
    # =====================================================

    def test_sweep_payment(self):
        sale_id = self._create().data["id"]

        res = self.api.post(
            f"{SALES_URL}{sale_id}/payments/",
            {"method": "PIX", "amount": "150.00", "expected_version": 1},
            format="json",
        )

        self.assertEqual(res.status_code, 201, res.data)
        self.assertEqual(res.data["paid_amount"], "150.00")
        self.assertEqual(res.data["version"], 2)
        statuses = [r["status"] for r in res.data["receivables"]]
        self.assertEqual(
            statuses,
            [Receivable.STATUS_PAID, Receivable.STATUS_PARTIAL, Receivable.STATUS_PENDING],
        )

        listed = self.api.get(f"{SALES_URL}{sale_id}/payments/")
        self.assertEqual(len(listed.data), 1)

    def test_overpayment_sweep_is_409(self):
        sale_id = self._create().data["id"]

        res = self.api.post(
            f"{SALES_URL}{sale_id}/payments/",
            {"method": "CASH", "amount": "300.01"},
            format="json",
        )

        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.data["error"]["code"], "PAYMENT_EXCEEDS_BALANCE")

    def test_stale_version_is_409(self):
        sale_id = self._create().data["id"]
        self.api.post(
            f"{SALES_URL}{sale_id}/payments/", {"method": "CASH", "amount": "10.00"}, format="json"
        )

        res = self.api.post(
            f"{SALES_URL}{sale_id}/payments/",
            {"method": "CASH", "amount": "10.00", "expected_version": 1},
            format="json",
        )

        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.data["error"]["code"], "STALE_VERSION")
        self.assertEqual(res.data["error"]["details"]["current_version"], 2)

    def test_add_items_increase_value(self):
        sale_id = self._create().data["id"]

        res = self.api.post(
            f"{SALES_URL}{sale_id}/add-items/",
            {
                "items": [{"product_id": str(self.product.id), "quantity": 1}],
                "mode": "increase_value",
            },
            format="json",
        )

        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(res.data["total_amount"], "400.00")
        self.assertEqual(
            [r["amount"] for r in res.data["receivables"]], ["133.33", "133.33", "133.34"]
        )

    def test_add_items_unknown_mode_is_400(self):
        sale_id = self._create().data["id"]

        res = self.api.post(
            f"{SALES_URL}{sale_id}/add-items/",
            {"items": [{"product_id": str(self.product.id), "quantity": 1}], "mode": "nope"},
            format="json",
        )

        self.assertEqual(res.status_code, 400)

    def test_reschedule(self):
        sale_id = self._create().data["id"]

        res = self.api.post(
            f"{SALES_URL}{sale_id}/reschedule/",
            {"payment_day": 5, "start_month": 1, "start_year": 2030},
            format="json",
        )

        self.assertEqual(res.status_code, 200, res.data)
        self.assertEqual(
            [r["due_date"] for r in res.data["receivables"]],
            ["2030-01-05", "2030-02-05", "2030-03-05"],
        )

    def test_cancel(self):
        sale_id = self._create().data["id"]

        res = self.api.post(f"{SALES_URL}{sale_id}/cancel/", {"reason": "typo"}, format="json")

        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.data["status"], Sale.STATUS_CANCELLED)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 10)

        again = self.api.post(f"{SALES_URL}{sale_id}/cancel/", {}, format="json")
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["error"]["code"], "INVALID_TRANSITION")

    # =====================================================
    # RECEIVABLES
    # =====================================================

    def test_pay_single_receivable(self):
        sale = self._create().data
        second = sale["receivables"][1]["id"]

        res = self.api.post(
            f"{RECEIVABLES_URL}{second}/pay/", {"method": "CASH", "amount": "100.00"}, format="json"
        )

        self.assertEqual(res.status_code, 201, res.data)
        statuses = {r["installment"]: r["status"] for r in res.data["receivables"]}
        self.assertEqual(statuses[1], Receivable.STATUS_PENDING)
        self.assertEqual(statuses[2], Receivable.STATUS_PAID)

    def test_receivable_filters(self):
        sale_id = self._create().data["id"]
        self.api.post(
            f"{SALES_URL}{sale_id}/payments/", {"method": "CASH", "amount": "100.00"}, format="json"
        )

        pending = self.api.get(RECEIVABLES_URL, {"pending": "true"})
        paid = self.api.get(RECEIVABLES_URL, {"status": "PAID"})
        by_client = self.api.get(RECEIVABLES_URL, {"client": str(self.client_obj.id)})

        self.assertEqual(pending.data["count"], 2)
        self.assertEqual(paid.data["count"], 1)
        self.assertEqual(by_client.data["count"], 3)

    def test_sale_schedule_endpoint(self):
        sale_id = self._create().data["id"]

        res = self.api.get(f"{SALES_URL}{sale_id}/receivables/")

        self.assertEqual(res.status_code, 200)
        self.assertEqual([r["installment"] for r in res.data], [1, 2, 3])

    def test_summary(self):
        self._create()

        dashboard = self.api.get(f"{RECEIVABLES_URL}summary/")
        per_client = self.api.get(
            f"{RECEIVABLES_URL}summary/", {"client_id": str(self.client_obj.id)}
        )

        self.assertEqual(dashboard.status_code, 200)
        self.assertEqual(dashboard.data["total_due"], "300.00")
        self.assertEqual(dashboard.data["clients_with_debt"], 1)
        self.assertEqual(per_client.data["total_due"], "300.00")
        self.assertEqual(per_client.data["pending_count"], 3)
