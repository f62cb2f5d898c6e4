"""
HTTP API tests.

Verifies:
- Health reports a degraded ledger without failing the service
- Public catalog, sale state, eligibility and proof endpoints
- Purchase endpoint status codes (200 / 422 / 409 / 400)
- Operator endpoints require a configured X-Admin-Address (401 / 403)
"""

import io

import pytest

from conftest import ADMIN, USDC, admin_headers, make_record
from mintgate.services import allowlist_service, merkle_service
from mintgate.services.concurrency import in_flight


WALLET = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20
ROOT = "0x" + "11" * 32
OPEN = {"salesPeriodEnabled": True, "isUnlimited": True}


def open_item(client, item_id=1, **extra):
    payload = dict(OPEN, **extra)
    resp = client.patch(f"/api/admin/items/{item_id}/override", json=payload, headers=admin_headers())
    assert resp.status_code == 200, resp.get_json()
    return resp


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystem:

    def test_health_ok(self, client, db_session, chain):
        resp = client.get("/api/health")
        data = resp.get_json()
        assert resp.status_code == 200
        assert data["status"] == "healthy"
        assert data["checks"]["chain"]["details"]["block_number"] == 16

    def test_health_degraded_when_ledger_down(self, client, db_session, chain):
        chain.rpc.fail = True
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "degraded"

    def test_version(self, client):
        assert client.get("/api/version").get_json()["chain_id"] == 137


# =============================================================================
# CATALOG
# =============================================================================


class TestCatalog:

    def test_lists_displayable_items_in_order(self, client, db_session, chain):
        chain.next_id = 3
        chain.records[0] = make_record(item_id=0)
        client.patch("/api/admin/items/1/override", json={"displayEnabled": False}, headers=admin_headers())
        client.patch("/api/admin/items/0/override", json={"displayOrder": 9}, headers=admin_headers())
        client.patch("/api/admin/items/2/override", json={"name": "Featured"}, headers=admin_headers())

        data = client.get("/api/items").get_json()

        assert [i["item_id"] for i in data["items"]] == [2, 0]
        assert data["items"][0]["name"] == "Featured"
        assert data["items"][1]["sale_state"]["effective_price"] == str(10**18)

    def test_default_item(self, client, db_session, chain):
        chain.next_id = 2
        client.patch("/api/admin/items/1/override", json={"isDefaultDisplay": True}, headers=admin_headers())
        assert client.get("/api/items/default").get_json()["item"]["item_id"] == 1

    def test_no_default_item(self, client, db_session, chain):
        assert client.get("/api/items/default").status_code == 404

    def test_sale_state_and_supply(self, client, db_session, chain):
        chain.records[1] = make_record()
        open_item(client, maxSupply=10, reservedSupply=2)

        state = client.get("/api/items/1/sale-state").get_json()["sale_state"]
        supply = client.get("/api/items/1/supply").get_json()

        assert state["sale_status"] == "unlimited"
        assert state["effective_supply_cap"] == 8
        assert state["provenance"]["effective_price"] == "onchain"
        assert supply["remaining_supply"] == 8

    def test_proof_endpoint(self, client, db_session):
        allowlist_service.ingest_rows(item_id=1, rows=[{"address": WALLET}, {"address": OTHER}])

        assert client.get("/api/items/1/proof/0x1234").status_code == 400
        assert client.get(f"/api/items/1/proof/{'0x' + '99' * 20}").status_code == 404

        data = client.get(f"/api/items/1/proof/{WALLET}").get_json()
        assert data["root"] == merkle_service.get_tree(1).root_hex
        assert merkle_service.verify_proof(data["root"], WALLET, data["proof"])


# =============================================================================
# ELIGIBILITY
# =============================================================================


class TestEligibility:

    def test_decision_for_allowlisted_wallet(self, client, db_session, chain):
        chain.records[1] = make_record(membership_root=ROOT)
        chain.claimed[(1, WALLET)] = 1
        allowlist_service.ingest_rows(item_id=1, rows=[{"address": WALLET, "max": 3}])
        open_item(client)

        resp = client.post("/api/eligibility", json={"address": WALLET, "itemId": 1})
        decision = resp.get_json()["decision"]

        assert resp.status_code == 200
        assert decision["can_mint"] is True
        assert decision["max_mint_amount"] == 2
        assert decision["price"] == str(10**18)

    def test_denial_is_a_normal_response(self, client, db_session, chain):
        chain.records[1] = make_record(membership_root=ROOT)
        resp = client.post("/api/eligibility", json={"wallet": WALLET, "item_id": 1})
        assert resp.status_code == 200
        assert resp.get_json()["decision"]["denial_reason"] == "not-allowlisted"

    @pytest.mark.parametrize(
        "payload",
        [{}, {"address": WALLET}, {"address": "0x12", "itemId": 1}, {"address": WALLET, "itemId": "1"}],
    )
    def test_bad_requests(self, client, db_session, chain, payload):
        assert client.post("/api/eligibility", json=payload).status_code == 400

    def test_verify_allowlist(self, client, db_session):
        allowlist_service.ingest_rows(item_id=1, rows=[{"address": WALLET, "max": 4}])

        member = client.post("/api/verify-allowlist", json={"address": WALLET, "itemId": 1}).get_json()
        outsider = client.post("/api/verify-allowlist", json={"address": OTHER, "itemId": 1}).get_json()

        assert member["is_allowlisted"] is True
        assert member["max_mint_amount"] == 4
        assert member["proof"] == []
        assert outsider["is_allowlisted"] is False
        assert outsider["root"] == member["root"]


# =============================================================================
# PURCHASE
# =============================================================================


class TestMint:

    def test_successful_purchase(self, client, db_session, chain, wallets):
        chain.records[1] = make_record()
        open_item(client)

        resp = client.post("/api/mint", json={"wallet": WALLET, "itemId": 1, "quantity": 2})
        outcome = resp.get_json()["outcome"]

        assert resp.status_code == 200
        assert outcome["state"] == "succeeded"
        assert outcome["strategy"] == "claim"
        assert client.get("/api/items/1/supply").get_json()["total_minted"] == 2

    def test_failed_purchase_reports_trail(self, client, db_session, chain, wallets):
        chain.records[1] = make_record()
        open_item(client)
        wallets.outcomes.update({"claim": "revert", "claim-legacy": "revert", "claim-simple": "revert", "mint-to": "revert"})

        resp = client.post("/api/mint", json={"wallet": WALLET, "itemId": 1})
        outcome = resp.get_json()["outcome"]

        assert resp.status_code == 422
        assert outcome["reason"] == "all-candidates-reverted"
        assert [a["strategy"] for a in outcome["attempts"]] == ["claim", "claim-legacy", "claim-simple", "mint-to"]

    def test_price_increase_flow(self, client, db_session, chain, wallets):
        chain.records[1] = make_record(price=2 * 10**18)
        open_item(client, customPrice="1")

        refused = client.post("/api/mint", json={"wallet": WALLET, "itemId": 1})
        assert refused.status_code == 422
        assert refused.get_json()["outcome"]["reason"] == "price-confirmation-required"

        accepted = client.post("/api/mint", json={"wallet": WALLET, "itemId": 1, "acceptPriceIncrease": True})
        assert accepted.status_code == 200
        assert accepted.get_json()["outcome"]["price_per_token"] == str(2 * 10**18)

    def test_concurrent_purchase_conflict(self, client, db_session, chain, wallets):
        chain.records[1] = make_record()
        open_item(client)
        in_flight.acquire(WALLET, 1)
        try:
            resp = client.post("/api/mint", json={"wallet": WALLET, "itemId": 1})
        finally:
            in_flight.release(WALLET, 1)
        assert resp.status_code == 409
        assert wallets.created[0].sent == []

    @pytest.mark.parametrize(
        "payload",
        [{"itemId": 1}, {"wallet": "nope", "itemId": 1}, {"wallet": WALLET}, {"wallet": WALLET, "itemId": 1, "acceptPriceIncrease": "yes"}],
    )
    def test_bad_requests(self, client, db_session, chain, wallets, payload):
        assert client.post("/api/mint", json=payload).status_code == 400


# =============================================================================
# OPERATOR ACCESS
# =============================================================================


class TestAdminAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/items"),
            ("PUT", "/api/admin/items/1/override"),
            ("PATCH", "/api/admin/items/1/override"),
            ("POST", "/api/admin/items/1/minted-count"),
            ("POST", "/api/admin/items/1/allowlist"),
            ("GET", "/api/admin/currencies"),
        ],
    )
    def test_requires_admin_header(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_malformed_header(self, client, db_session):
        assert client.get("/api/admin/items", headers={"X-Admin-Address": "admin"}).status_code == 401

    def test_unknown_operator_denied(self, client, db_session):
        resp = client.get("/api/admin/items", headers={"X-Admin-Address": WALLET})
        assert resp.status_code == 403

    def test_operator_address_is_case_insensitive(self, client, db_session):
        resp = client.get("/api/admin/items", headers={"X-Admin-Address": ADMIN.upper().replace("0X", "0x")})
        assert resp.status_code == 200


# =============================================================================
# OPERATOR ENDPOINTS
# =============================================================================


class TestAdminOverrides:

    def test_put_replaces_and_patch_merges(self, client, db_session):
        put = client.put(
            "/api/admin/items/1/override",
            json={"customPrice": "2", "maxSupply": 50, "name": "Genesis"},
            headers=admin_headers(),
        )
        assert put.status_code == 200

        patch = client.patch("/api/admin/items/1/override", json={"soldOutMessage": "Gone"}, headers=admin_headers())
        override = patch.get_json()["override"]
        assert override["custom_price"] == "2"
        assert override["sold_out_message"] == "Gone"

        replaced = client.put("/api/admin/items/1/override", json={"name": "Genesis"}, headers=admin_headers())
        assert replaced.get_json()["override"]["custom_price"] is None

    def test_invalid_override_rejected(self, client, db_session):
        resp = client.patch(
            "/api/admin/items/1/override",
            json={"maxSupply": 5, "reservedSupply": 6},
            headers=admin_headers(),
        )
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_get_override_defaults(self, client, db_session):
        data = client.get("/api/admin/items/3/override", headers=admin_headers()).get_json()
        assert data["override"] is None
        assert data["defaults"]["is_unlimited"] is True

    def test_supply_endpoints(self, client, db_session):
        resp = client.put("/api/admin/items/1/max-supply", json={"maxSupply": 10}, headers=admin_headers())
        assert resp.get_json()["supply"]["max_supply"] == 10

        resp = client.post("/api/admin/items/1/minted-count", json={"mintedCount": 4}, headers=admin_headers())
        assert resp.get_json()["supply"]["remaining_supply"] == 6

        lowered = client.post("/api/admin/items/1/minted-count", json={"mintedCount": 1}, headers=admin_headers())
        assert lowered.status_code == 400


class TestAdminAllowlist:

    def test_upload_file_then_view_and_export(self, client, db_session):
        raw = f"address,maxMintAmount\n{WALLET},2\nbad,1\n".encode("utf-8")
        resp = client.post(
            "/api/admin/items/1/allowlist",
            data={"file": (io.BytesIO(raw), "list.csv")},
            headers=admin_headers(),
            content_type="multipart/form-data",
        )
        data = resp.get_json()
        assert resp.status_code == 201
        assert data["upload"]["accepted_rows"] == 1
        assert data["upload"]["uploaded_by"] == ADMIN
        assert len(data["errors"]) == 1

        view = client.get("/api/admin/items/1/allowlist", headers=admin_headers()).get_json()
        assert view["count"] == 1
        assert view["root"] == merkle_service.get_tree(1).root_hex

        export = client.get("/api/admin/items/1/allowlist?format=csv", headers=admin_headers())
        assert export.mimetype == "text/csv"
        assert export.get_data(as_text=True).splitlines()[1] == f"{WALLET},2"

    def test_upload_json_entries(self, client, db_session):
        resp = client.post(
            "/api/admin/items/1/allowlist",
            json={"entries": [{"address": OTHER, "maxMintAmount": 5}]},
            headers=admin_headers(),
        )
        assert resp.status_code == 201
        assert allowlist_service.get_entry(1, OTHER).max_mint_amount == 5

    def test_upload_requires_content(self, client, db_session):
        resp = client.post("/api/admin/items/1/allowlist", json={}, headers=admin_headers())
        assert resp.status_code == 400


class TestAdminCurrencies:

    def test_currency_lifecycle(self, client, db_session):
        created = client.post(
            "/api/admin/currencies",
            json={"symbol": "USDC", "address": USDC, "decimals": 6},
            headers=admin_headers(),
        )
        assert created.status_code == 201

        listed = client.get("/api/admin/currencies", headers=admin_headers()).get_json()["currencies"]
        assert {c["symbol"] for c in listed} == {"POL", "USDC"}

        assert client.delete("/api/admin/currencies/USDC", headers=admin_headers()).status_code == 200
        assert client.delete("/api/admin/currencies/USDC", headers=admin_headers()).status_code == 404

    def test_invalid_currency(self, client, db_session):
        resp = client.post(
            "/api/admin/currencies",
            json={"symbol": "USDC", "address": "0x12", "decimals": 6},
            headers=admin_headers(),
        )
        assert resp.status_code == 400
