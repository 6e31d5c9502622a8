from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from common.audit import create_audit_log
from core.models import AuditLog
from inventory.models import Location


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.supervisor = self.user_model.objects.create_user(
            username="core-supervisor",
            email="Supervisor@Example.com",
            password="pass1234",
            role="supervisor",
        )

    def test_token_carries_role_claim(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "core-supervisor", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        token = AccessToken(response.json()["access"])
        self.assertEqual(token["role"], "supervisor")
        self.assertEqual(token["username"], "core-supervisor")
        self.assertIn("stock.transfer", token["capabilities"])
        self.assertNotIn("admin.records.manage", token["capabilities"])
        self.assertFalse(token["is_superuser"])

    def test_token_accepts_email_login_case_insensitively(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "SUPERVISOR@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.assertIn("refresh", response.json())

    def test_bad_credentials_use_error_envelope(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "core-supervisor", "password": "wrong"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "authentication_failed")

    def test_bearer_token_authenticates_inventory_reads(self):
        access = self.client.post(
            "/api/v1/token/",
            {"username": "core-supervisor", "password": "pass1234"},
            format="json",
        ).json()["access"]
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {access}")

        response = self.client.get("/api/v1/stock-movements/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_email_is_stored_lowercase(self):
        self.supervisor.refresh_from_db()
        self.assertEqual(self.supervisor.email, "supervisor@example.com")


class HealthzTests(TestCase):
    def test_healthz_is_public_and_echoes_request_id(self):
        client = APIClient()

        response = client.get("/api/v1/healthz/", HTTP_X_REQUEST_ID="req-123")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok", "request_id": "req-123"})
        self.assertEqual(response["X-Request-ID"], "req-123")


class AuditLogTests(TestCase):
    def test_snapshots_are_stored_as_json_safe_values(self):
        location = Location.objects.create(name="Tienda", code="TDA-9")

        entry = create_audit_log(
            action="location.upsert",
            entity="location",
            entity_id=location.id,
            after_snapshot={"id": location.id, "createdAt": location.created_at},
            location_id=location.id,
            request_id="req-9",
        )

        entry = AuditLog.objects.get(id=entry.id)
        self.assertEqual(entry.entity_id, str(location.id))
        self.assertIsInstance(entry.after_snapshot["createdAt"], str)
        self.assertIsNone(entry.actor)
        self.assertEqual(entry.location_id, location.id)


class ReadinessAndProfileTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.cashier = get_user_model().objects.create_user(username="core-cashier", password="pass1234", role="cashier")

    def test_readyz_pings_database(self):
        response = self.client.get("/api/v1/readyz/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ready")
        self.assertIn("database", response.json())

    def test_me_lists_role_capabilities(self):
        self.client.force_authenticate(user=self.cashier)

        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["role"], "cashier")
        self.assertEqual(body["capabilities"], ["inventory.view", "stock.movement.create"])

    def test_me_requires_authentication(self):
        response = self.client.get("/api/v1/me/")

        self.assertEqual(response.status_code, 401)
