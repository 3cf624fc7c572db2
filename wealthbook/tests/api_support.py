import os
import tempfile
import unittest

os.environ.setdefault(
    "DATABASE_URL",
    "sqlite:///" + os.path.join(tempfile.gettempdir(), "wealthbook-tests.db"),
)

from fastapi.testclient import TestClient  # noqa: E402

from wealthbook.main import app, engine, metadata  # noqa: E402


class ApiTestCase(unittest.TestCase):
    """Fresh tables and a signed-in user for every test."""

    def setUp(self) -> None:
        metadata.drop_all(engine)
        metadata.create_all(engine)
        self.client = TestClient(app)
        self.headers = self.sign_in("owner@example.com")

    def sign_in(self, email: str, password: str = "s3cret-pass") -> dict:
        response = self.client.post("/auth/signup", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 201, response.text)
        response = self.client.post("/auth/login", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 200, response.text)
        return {"Authorization": f"Bearer {response.json()['token']}"}

    def create(self, path: str, payload: dict, headers: dict | None = None) -> dict:
        response = self.client.post(path, json=payload, headers=headers or self.headers)
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def create_category(self, name: str, category_type: str = "ASSET", **extra) -> dict:
        return self.create("/asset-categories", {"name": name, "type": category_type, **extra})

    def create_account(self, nickname: str = "Main savings", **extra) -> dict:
        payload = {"nickname": nickname, "account_type": "SAVINGS", "currency": "USD"}
        payload.update(extra)
        return self.create("/accounts", payload)

    def create_entry(self, account_id: int, entry_date: str, balance: str, **extra) -> dict:
        payload = {
            "account_id": account_id,
            "entry_date": entry_date,
            "balance_original": balance,
            "currency": extra.pop("currency", "USD"),
        }
        payload.update(extra)
        return self.create("/balance-entries", payload)
