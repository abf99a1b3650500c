"""
API Tests

Drives the FastAPI app with TestClient over an engine backed by the seeded
in-memory store, and checks how payment errors map to HTTP status codes.
"""

from decimal import Decimal

import pytest


@pytest.fixture
def client(engine):
    from fastapi.testclient import TestClient
    from api.server import create_app
    from api.services.engine import engine_dependency

    app = create_app()
    app.dependency_overrides[engine_dependency] = lambda: engine
    return TestClient(app)


def _table_payload(make_price_table, overrides=None):
    return make_price_table(overrides).model_dump(mode="json")


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["services"]["api"] == "up"
        assert data["services"]["storage"] in ("up", "missing")

    def test_missing_database_reported(self, tmp_path):
        from api.routes.health import service_states
        from core.config import Settings

        states = service_states(Settings(db_path=tmp_path / "absent.db"))

        assert states["storage"] == "missing"
        assert states["temporal"] == "not configured"

    def test_live(self, client):
        assert client.get("/live").json() == {"status": "alive"}

    def test_metrics_reflect_operations(self, client):
        client.get("/cheques/A-1001/breakdown")

        data = client.get("/metrics").json()

        assert data["operations"]["by_name"]["build_cheque_breakdown"]["completed"] == 1


class TestPriceTableRoutes:

    def test_valid_table(self, client, make_price_table):
        response = client.post("/price-tables/validate", json=_table_payload(make_price_table))

        assert response.status_code == 200
        assert response.json()["valid"] is True

    def test_invalid_table_still_200(self, client, make_price_table):
        payload = _table_payload(make_price_table, {(1, 1): ("1.00", "1.10", "1.05", "1.10")})

        response = client.post("/price-tables/validate", json=payload)

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["flagged"] == {"T1G1": ["A3"]}

    def test_malformed_table_is_422(self, client, make_price_table):
        payload = _table_payload(make_price_table)
        payload["cells"] = payload["cells"][:8]

        response = client.post("/price-tables/validate", json=payload)

        assert response.status_code == 422
        assert response.json()["error_type"] == "PriceTableShapeError"


class TestChequeRoutes:

    def test_breakdown(self, client):
        response = client.get("/cheques/A-1001/breakdown")

        assert response.status_code == 200
        data = response.json()
        assert data["header"]["cheque_number"] == "A-1001"
        assert Decimal(str(data["summary"]["net_amount"])) == Decimal("382.18")
        assert Decimal(str(data["summary"]["total_deductions"])) == Decimal("150.00")
        assert data["warnings"] == []

    def test_unknown_cheque_is_404(self, client):
        response = client.get("/cheques/A-9999/breakdown")

        assert response.status_code == 404
        assert response.json()["error_type"] == "NotFoundError"

    def test_malformed_key_is_422(self, client):
        response = client.get("/cheques/not-a-key/breakdown")

        assert response.status_code == 422

    def test_void_cheque(self, client):
        response = client.post("/cheques/A-1001/void", json={"reason": "Printed on wrong stock", "actor": "jsmith"})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["deductions_reversed"] == 1
        assert data["batches_reverted"] == ["B-2025-001"]

    def test_void_cheque_twice_is_409(self, client):
        body = {"reason": "Lost in mail", "actor": "jsmith"}
        client.post("/cheques/A-1002/void", json=body)

        response = client.post("/cheques/A-1002/void", json=body)

        assert response.status_code == 409
        assert response.json()["error_type"] == "InvalidStateError"


class TestReceiptRoutes:

    def test_void_impact(self, client):
        response = client.get("/receipts/1001/void-impact")

        assert response.status_code == 200
        data = response.json()
        assert data["requires_confirmation"] is True
        assert data["affected_growers"] == ["G001", "G002"]

    def test_void_receipt(self, client, store):
        from models.records import ReceiptStatus

        response = client.post("/receipts/1002/void", json={"reason": "Duplicate entry", "actor": "jsmith"})

        assert response.status_code == 200
        assert response.json()["batch_reverted"] is True
        assert store.receipts[1002].status == ReceiptStatus.VOIDED

    def test_blank_reason_is_422(self, client, store):
        from models.records import ReceiptStatus

        response = client.post("/receipts/1002/void", json={"reason": "  ", "actor": "jsmith"})

        assert response.status_code == 422
        assert response.json()["error_type"] == "InvalidRequestError"
        assert store.receipts[1002].status == ReceiptStatus.ACTIVE

    def test_unknown_receipt_is_404(self, client):
        assert client.get("/receipts/4242/void-impact").status_code == 404

    def test_unavailable_store_is_503(self, client, store):
        store.unavailable.add("get_receipt")

        response = client.get("/receipts/1001/void-impact")

        assert response.status_code == 503
        assert response.json()["error_type"] == "ProviderUnavailableError"


class TestBatchRoutes:

    def test_reconciliation(self, client):
        response = client.get("/batches/1/reconciliation")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PASS"
        assert data["batch_number"] == "B-2025-001"

    def test_unknown_batch_is_404(self, client):
        assert client.get("/batches/77/reconciliation").status_code == 404


class TestErrorMapping:

    @pytest.mark.parametrize("error, expected", [
        ("not_found", 404),
        ("invalid_state", 409),
        ("invalid_request", 422),
        ("unavailable", 503),
        ("base", 500),
    ])
    def test_status_for(self, error, expected):
        from api.server import status_for
        from core.errors import (
            InvalidRequestError,
            InvalidStateError,
            NotFoundError,
            PaymentsError,
            ProviderUnavailableError,
        )

        errors = {
            "not_found": NotFoundError("Receipt", 1),
            "invalid_state": InvalidStateError("Receipt", 1, current="Voided"),
            "invalid_request": InvalidRequestError("bad"),
            "unavailable": ProviderUnavailableError("sqlite", "locked"),
            "base": PaymentsError("boom"),
        }

        assert status_for(errors[error]) == expected
