import unittest
from decimal import Decimal

from wealthbook.tests.api_support import ApiTestCase


def address_payload(line1: str, from_date: str, is_current: bool = False) -> dict:
    return {
        "type": "home",
        "line1": line1,
        "city": "Pune",
        "state": "MH",
        "postal_code": "411001",
        "country": "India",
        "from_date": from_date,
        "is_current": is_current,
    }


class AddressTests(ApiTestCase):
    def current_ids(self) -> list[int]:
        rows = self.client.get("/addresses", headers=self.headers).json()
        return [row["id"] for row in rows if row["is_current"]]

    def test_new_current_address_demotes_previous(self) -> None:
        first = self.create("/addresses", address_payload("1 Old Road", "2020-01-01", True))
        second = self.create("/addresses", address_payload("2 New Road", "2023-06-01", True))

        self.assertEqual(self.current_ids(), [second["id"]])
        self.assertEqual(second["type"], "HOME")
        self.assertNotEqual(first["id"], second["id"])

    def test_update_to_current_leaves_exactly_one(self) -> None:
        first = self.create("/addresses", address_payload("1 Old Road", "2020-01-01", True))
        second = self.create("/addresses", address_payload("2 New Road", "2023-06-01"))

        response = self.client.put(
            f"/addresses/{second['id']}", json={"is_current": True}, headers=self.headers
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.current_ids(), [second["id"]])

        response = self.client.put(
            f"/addresses/{first['id']}", json={"is_current": True}, headers=self.headers
        )
        self.assertEqual(self.current_ids(), [first["id"]])

    def test_list_orders_current_first_then_newest(self) -> None:
        older = self.create("/addresses", address_payload("Older", "2019-01-01"))
        newer = self.create("/addresses", address_payload("Newer", "2022-01-01"))
        current = self.create("/addresses", address_payload("Current", "2018-01-01", True))

        rows = self.client.get("/addresses", headers=self.headers).json()

        self.assertEqual([row["id"] for row in rows], [current["id"], newer["id"], older["id"]])

    def test_blank_required_text_is_rejected(self) -> None:
        payload = address_payload("   ", "2020-01-01")

        response = self.client.post("/addresses", json=payload, headers=self.headers)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Address line 1 is required.")

    def test_deleting_address_unlinks_accounts(self) -> None:
        address = self.create("/addresses", address_payload("1 Old Road", "2020-01-01"))
        account = self.create_account(linked_address_id=address["id"])
        self.assertEqual(account["linked_address"]["id"], address["id"])

        response = self.client.delete(f"/addresses/{address['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)

        stored = self.client.get(f"/accounts/{account['id']}", headers=self.headers).json()
        self.assertIsNone(stored["linked_address_id"])


class IdentityDocumentTests(ApiTestCase):
    def test_duplicate_document_conflicts(self) -> None:
        payload = {"doc_type": "passport", "doc_number": "Z1234567"}
        created = self.create("/identity-documents", payload)
        self.assertEqual(created["doc_type"], "PASSPORT")

        response = self.client.post("/identity-documents", json=payload, headers=self.headers)

        self.assertEqual(response.status_code, 409)

    def test_partial_update_keeps_other_fields(self) -> None:
        created = self.create(
            "/identity-documents",
            {"doc_type": "TAX_ID", "doc_number": "ABCDE1234F", "issuing_authority": "ITD"},
        )

        response = self.client.put(
            f"/identity-documents/{created['id']}",
            json={"is_primary": True},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_primary"])
        self.assertEqual(response.json()["issuing_authority"], "ITD")


class AssetCategoryTests(ApiTestCase):
    def test_parent_and_sub_categories_are_summarized(self) -> None:
        parent = self.create_category("Investments")
        child = self.create_category("Equity", parent_category_id=parent["id"])

        self.assertEqual(child["parent_category"], {"id": parent["id"], "name": "Investments"})
        stored = self.client.get(f"/asset-categories/{parent['id']}", headers=self.headers).json()
        self.assertEqual(stored["sub_categories"], [{"id": child["id"], "name": "Equity"}])

    def test_category_cannot_be_its_own_parent_or_descendant(self) -> None:
        parent = self.create_category("Investments")
        child = self.create_category("Equity", parent_category_id=parent["id"])

        response = self.client.put(
            f"/asset-categories/{parent['id']}",
            json={"parent_category_id": parent["id"]},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.put(
            f"/asset-categories/{parent['id']}",
            json={"parent_category_id": child["id"]},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

    def test_duplicate_name_conflicts(self) -> None:
        self.create_category("Cash")

        response = self.client.post(
            "/asset-categories", json={"name": "Cash", "type": "ASSET"}, headers=self.headers
        )

        self.assertEqual(response.status_code, 409)

    def test_invalid_type_is_rejected(self) -> None:
        response = self.client.post(
            "/asset-categories", json={"name": "Cash", "type": "EQUITY"}, headers=self.headers
        )

        self.assertEqual(response.status_code, 400)

    def test_delete_rules(self) -> None:
        parent = self.create_category("Investments")
        child = self.create_category("Equity", parent_category_id=parent["id"])
        self.create_account(asset_category_id=child["id"])

        response = self.client.delete(f"/asset-categories/{parent['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 400)

        response = self.client.delete(f"/asset-categories/{child['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Category is in use.")

        unused = self.create_category("Unused")
        response = self.client.delete(f"/asset-categories/{unused['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)

    def test_foreign_category_reference_is_rejected(self) -> None:
        intruder = self.sign_in("intruder@example.com")
        foreign = self.create(
            "/asset-categories", {"name": "Theirs", "type": "ASSET"}, headers=intruder
        )

        response = self.client.post(
            "/accounts",
            json={
                "nickname": "Mine",
                "account_type": "SAVINGS",
                "currency": "USD",
                "asset_category_id": foreign["id"],
            },
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Invalid Asset Category ID.")


class CreditCardTests(ApiTestCase):
    def card_payload(self, **extra) -> dict:
        payload = {
            "nickname": "Travel card",
            "card_type": "visa",
            "last_four_digits": "4242",
            "issuing_bank": "HDFC",
            "credit_limit": "150000",
            "expiry_date": "2028-09-30",
        }
        payload.update(extra)
        return payload

    def test_create_and_update(self) -> None:
        card = self.create("/credit-cards", self.card_payload())
        self.assertEqual(card["card_type"], "VISA")

        response = self.client.put(
            f"/credit-cards/{card['id']}",
            json={"credit_limit": "200000"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(Decimal(str(response.json()["credit_limit"])), Decimal("200000"))

    def test_last_four_digits_must_be_four_digits(self) -> None:
        for digits in ("424", "42a2", "42424"):
            response = self.client.post(
                "/credit-cards",
                json=self.card_payload(last_four_digits=digits),
                headers=self.headers,
            )
            self.assertEqual(response.status_code, 400, digits)

    def test_credit_limit_must_be_positive(self) -> None:
        response = self.client.post(
            "/credit-cards", json=self.card_payload(credit_limit="0"), headers=self.headers
        )

        self.assertEqual(response.status_code, 400)


class FixedDepositTests(ApiTestCase):
    def deposit_payload(self, **extra) -> dict:
        payload = {
            "bank_name": "SBI",
            "principal_amount": "100000",
            "interest_rate": "6",
            "start_date": "2024-01-01",
            "maturity_date": "2025-01-01",
            "payout_frequency": "on_maturity",
            "currency": "INR",
        }
        payload.update(extra)
        return payload

    def test_response_includes_maturity_value(self) -> None:
        deposit = self.create("/fixed-deposits", self.deposit_payload())

        self.assertEqual(deposit["payout_frequency"], "ON_MATURITY")
        self.assertAlmostEqual(float(deposit["maturity_value"]), 106000, delta=50)

    def test_maturity_must_follow_start(self) -> None:
        response = self.client.post(
            "/fixed-deposits",
            json=self.deposit_payload(maturity_date="2023-12-31"),
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

        deposit = self.create("/fixed-deposits", self.deposit_payload())
        response = self.client.put(
            f"/fixed-deposits/{deposit['id']}",
            json={"start_date": "2025-06-01"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 400)

    def test_deleting_linked_account_unlinks_deposit(self) -> None:
        account = self.create_account(currency="INR")
        deposit = self.create(
            "/fixed-deposits", self.deposit_payload(linked_account_id=account["id"])
        )
        self.assertEqual(deposit["linked_account"]["id"], account["id"])

        self.client.delete(f"/accounts/{account['id']}", headers=self.headers)

        stored = self.client.get(f"/fixed-deposits/{deposit['id']}", headers=self.headers).json()
        self.assertIsNone(stored["linked_account_id"])


class MutualFundTests(ApiTestCase):
    def test_current_value_is_units_times_nav(self) -> None:
        fund = self.create(
            "/mutual-funds",
            {
                "fund_name": "Index Fund",
                "units_held": "12.5",
                "average_cost_per_unit": "100",
                "current_nav": "120",
                "currency": "INR",
            },
        )

        self.assertEqual(Decimal(str(fund["current_value"])), Decimal("1500"))

    def test_current_value_is_empty_without_nav(self) -> None:
        fund = self.create(
            "/mutual-funds",
            {
                "fund_name": "Index Fund",
                "units_held": "12.5",
                "average_cost_per_unit": "100",
                "currency": "INR",
            },
        )

        self.assertIsNone(fund["current_value"])


class PensionProfileTests(ApiTestCase):
    def test_create_update_delete(self) -> None:
        profile = self.create(
            "/pension-profiles",
            {"country": "japan", "employer_name": "Acme KK", "employee_share_percent": "9.15"},
        )
        self.assertEqual(profile["country"], "JAPAN")

        response = self.client.put(
            f"/pension-profiles/{profile['id']}",
            json={"projected_payout": "250000"},
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["employer_name"], "Acme KK")

        response = self.client.delete(f"/pension-profiles/{profile['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        response = self.client.get(f"/pension-profiles/{profile['id']}", headers=self.headers)
        self.assertEqual(response.status_code, 404)

    def test_share_percent_is_bounded(self) -> None:
        response = self.client.post(
            "/pension-profiles",
            json={"country": "INDIA", "employer_share_percent": "120"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
