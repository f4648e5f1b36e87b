"""
API Integration Tests
End-to-end flows through the HTTP layer, including error-to-status mapping
"""

from fastapi.testclient import TestClient

from tests.conftest import CODE_A, CODE_B

API = "/api/v1"


def _count(client: TestClient, code=CODE_A, location="A-01", **quantities):
    response = client.post(f"{API}/items/counts", json={"qr_code": code, "location": location, **quantities})
    assert response.status_code == 201, response.text
    return response.json()


class TestSystemEndpoints:

    def test_health(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["version"]


class TestInventoryAPI:
    """Items, counts and stock reads"""

    def test_count_then_read_stock(self, client: TestClient):
        created = _count(client, unrestrict=10, foc=5, rfb=2)
        assert created["stock"]["total"] == 17
        assert created["stock"]["ever_counted"] is True

        response = client.get(f"{API}/items/{CODE_A}/stock")
        assert response.status_code == 200
        assert response.json()["total"] == 17

        detail = client.get(f"{API}/items/{CODE_A}").json()
        assert detail["item"]["location"] == "A-01"
        assert len(detail["history"]) == 1

    def test_padded_location_is_trimmed(self, client: TestClient):
        created = _count(client, location=" A-01 ", unrestrict=3)

        assert created["stock"]["unrestrict"] == 3
        assert created["stock"]["location"] == "A-01"
        assert client.get(f"{API}/items/{CODE_A}").json()["item"]["location"] == "A-01"
        padded = client.get(f"{API}/items/{CODE_A}/stock", params={"location": " A-01 "})
        assert padded.json()["unrestrict"] == 3

    def test_never_counted_item(self, client: TestClient):
        response = client.post(f"{API}/items", json={"qr_code": CODE_B, "location": "B-01"})
        assert response.status_code == 201

        stock = client.get(f"{API}/items/{CODE_B}/stock").json()
        assert stock["ever_counted"] is False
        assert stock["total"] == 0

    def test_bad_code_is_400(self, client: TestClient):
        response = client.post(f"{API}/items/counts", json={"qr_code": "SHORT", "unrestrict": 1})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INVALID_REQUEST"
        assert body["field"] == "qr_code"

    def test_unknown_item_is_404(self, client: TestClient):
        response = client.get(f"{API}/items/{CODE_B}")

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_list_and_delete(self, client: TestClient):
        _count(client, unrestrict=1)

        assert client.get(f"{API}/items").json()["total"] == 1
        assert client.delete(f"{API}/items/{CODE_A}").json()["status"] == "deleted"
        assert client.get(f"{API}/items").json()["total"] == 0


class TestMovementAPI:

    def test_out_exceeding_stock_is_400(self, client: TestClient):
        _count(client, unrestrict=10, foc=5, rfb=2)

        response = client.post(
            f"{API}/movements",
            json={"qr_code": CODE_A, "movement_type": "out", "unrestrict": 15},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert body["bucket"] == "unrestrict"
        assert body["shortfall"] == 5
        assert client.get(f"{API}/items/{CODE_A}/stock").json()["unrestrict"] == 10

    def test_apply_and_list(self, client: TestClient):
        _count(client, unrestrict=10)

        response = client.post(
            f"{API}/movements",
            json={"qr_code": CODE_A, "movement_type": "in", "unrestrict": 3, "reference": "PO-7"},
        )
        assert response.status_code == 201
        assert response.json()["total_qty"] == 3

        listing = client.get(f"{API}/movements", params={"movement_type": "in"}).json()
        assert listing["total"] == 1
        assert client.get(f"{API}/movements/item/{CODE_A}").json()[0]["reference_doc"] == "PO-7"
        assert client.get(f"{API}/movements/stats").json()["general"]["total_movements"] == 1

    def test_transfer_type_is_400(self, client: TestClient):
        _count(client, unrestrict=10)

        response = client.post(
            f"{API}/movements",
            json={"qr_code": CODE_A, "movement_type": "transfer", "unrestrict": 1},
        )

        assert response.status_code == 400


class TestBlockAPI:

    def test_block_conflict_and_release(self, client: TestClient):
        _count(client, unrestrict=10)
        payload = {"qr_code": CODE_A, "block_type": "count", "reason": "Audit", "blocked_by": "lead"}

        first = client.post(f"{API}/blocks", json=payload)
        assert first.status_code == 201
        block_id = first.json()["id"]

        second = client.post(f"{API}/blocks", json=payload)
        assert second.status_code == 409
        assert second.json()["error"] == "ALREADY_BLOCKED"
        assert second.json()["existing_block_id"] == block_id

        gated = client.post(
            f"{API}/movements",
            json={"qr_code": CODE_A, "movement_type": "out", "unrestrict": 1},
        )
        assert gated.status_code == 409
        assert gated.json()["error"] == "ITEM_BLOCKED"

        assert client.get(f"{API}/blocks/item/{CODE_A}").json()["is_blocked"] is True
        released = client.post(f"{API}/blocks/{block_id}/release", json={"unblocked_by": "lead", "notes": "ok"})
        assert released.status_code == 200
        assert released.json()["status"] == "released"

        again = client.post(f"{API}/blocks/item/{CODE_A}/unblock", json={})
        assert again.status_code == 404


class TestTransferAPI:

    def test_transfer_lifecycle(self, client: TestClient):
        _count(client, location="X", unrestrict=5)

        created = client.post(
            f"{API}/transfers",
            json={"from_location": "X", "to_location": "Y", "items": [{"qr_code": CODE_A, "unrestrict": 3}]},
        )
        assert created.status_code == 201
        transfer_id = created.json()["id"]

        early = client.post(f"{API}/transfers/{transfer_id}/receive", json={"actor": "dock"})
        assert early.status_code == 409
        assert early.json()["error"] == "INVALID_STATE"

        assert client.post(f"{API}/transfers/{transfer_id}/approve", json={"actor": "boss"}).json()["status"] == "in_transit"
        received = client.post(f"{API}/transfers/{transfer_id}/receive", json={"actor": "dock"})
        assert received.status_code == 200
        assert received.json()["status"] == "completed"
        assert received.json()["items"][0]["status"] == "received"

        assert client.get(f"{API}/items/{CODE_A}/stock", params={"location": "X"}).json()["unrestrict"] == 2
        assert client.get(f"{API}/items/{CODE_A}/stock").json()["unrestrict"] == 3

        cancelled = client.post(f"{API}/transfers/{transfer_id}/cancel", json={"actor": "boss"})
        assert cancelled.status_code == 409

    def test_short_transfer_is_400(self, client: TestClient):
        _count(client, location="X", unrestrict=2)

        response = client.post(
            f"{API}/transfers",
            json={"from_location": "X", "to_location": "Y", "items": [{"qr_code": CODE_A, "unrestrict": 3}]},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INSUFFICIENT_STOCK"
        assert client.get(f"{API}/transfers").json() == []

    def test_same_location_is_400(self, client: TestClient):
        _count(client, location="X", unrestrict=2)

        response = client.post(
            f"{API}/transfers",
            json={"from_location": "X", "to_location": "X", "items": [{"qr_code": CODE_A, "unrestrict": 1}]},
        )

        assert response.status_code == 400


class TestVarianceAPI:

    def test_detect_approve_and_reprocess(self, client: TestClient):
        _count(client, unrestrict=10, foc=5, rfb=2)

        none = client.post(f"{API}/variances/detect", json={"qr_code": CODE_A, "unrestrict": 10, "foc": 5, "rfb": 2})
        assert none.json()["has_variance"] is False

        detected = client.post(f"{API}/variances/detect", json={"qr_code": CODE_A, "unrestrict": 8, "foc": 5, "rfb": 2})
        body = detected.json()
        assert body["has_variance"] is True
        assert body["variance"]["total"] == -2
        variance_id = body["variance_id"]

        assert [v["id"] for v in client.get(f"{API}/variances").json()] == [variance_id]

        approved = client.post(f"{API}/variances/{variance_id}/approve", json={"approved_by": "boss"})
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"
        assert client.get(f"{API}/items/{CODE_A}/stock").json()["total"] == 15

        again = client.post(f"{API}/variances/{variance_id}/reject", json={"approved_by": "boss"})
        assert again.status_code == 409
        assert again.json()["error"] == "ALREADY_PROCESSED"

        assert client.post(f"{API}/variances/999/approve", json={"approved_by": "boss"}).status_code == 404


class TestCyclicCountAPI:

    def test_schedule_execute_pending(self, client: TestClient):
        _count(client, unrestrict=4)

        created = client.post(f"{API}/cyclic-counts", json={"location": "A-01", "frequency_days": 7})
        assert created.status_code == 201
        cyclic_id = created.json()["id"]

        duplicate = client.post(f"{API}/cyclic-counts", json={"location": "A-01", "frequency_days": 3})
        assert duplicate.status_code == 409
        assert duplicate.json()["error"] == "DUPLICATE_LOCATION"

        run = client.post(f"{API}/cyclic-counts/{cyclic_id}/execute").json()
        assert run["total_items"] == 1
        assert run["items"][0]["stock"]["unrestrict"] == 4

        pending = client.get(f"{API}/cyclic-counts/pending/A-01").json()
        assert pending[0]["count_status"] == "current"

        paused = client.put(f"{API}/cyclic-counts/{cyclic_id}", json={"status": "paused"})
        assert paused.json()["status"] == "paused"
        inactive = client.post(f"{API}/cyclic-counts/{cyclic_id}/execute")
        assert inactive.status_code == 409
        assert inactive.json()["error"] == "INACTIVE"

        assert client.delete(f"{API}/cyclic-counts/{cyclic_id}").status_code == 200
        assert client.get(f"{API}/cyclic-counts/{cyclic_id}").status_code == 404
