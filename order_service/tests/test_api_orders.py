"""API tests for the orders endpoints.

These tests exercise list, create, fetch and transition against the
in-memory repository, plus a stub repository whose every call fails to
check that storage errors are answered with a generic message.
"""

import uuid

import pytest

from order_service.domain import ErrorKind, OrderError

LIST_URL = "/orders"
DETAIL_URL = "/orders/{oid}"
TRANSITION_URL = "/orders/{oid}/transitions"


class BrokenRepository:
    """Repository stub whose every call fails with a storage error."""

    def _fail(self, *args, **kwargs):
        raise OrderError(ErrorKind.STORAGE_FAILURE, "connection refused to db-internal:5432")

    get_all = create = get_by_id = update_status = _fail


def create(client):
    r = client.post(LIST_URL)
    assert r.status_code == 201
    return r.json()


def test_create_order_returns_201_new_order(client):
    body = create(client)
    uuid.UUID(body["id"])
    assert body["status"] == "NEW"
    assert body["version"] == 0
    assert "created_at" in body and "updated_at" in body
    # null failure reasons are omitted
    assert "fail_reason_code" not in body
    assert "fail_reason_detail" not in body


def test_create_order_ignores_body(client):
    r = client.post(LIST_URL, json={"status": "CONFIRMED", "version": 7})
    assert r.status_code == 201
    assert r.json()["status"] == "NEW"
    assert r.json()["version"] == 0


def test_list_orders_returns_array(client):
    assert client.get(LIST_URL).json() == []
    a = create(client)
    b = create(client)

    r = client.get(LIST_URL)
    assert r.status_code == 200
    body = r.json()
    assert isinstance(body, list)
    assert [o["id"] for o in body] == [a["id"], b["id"]]


def test_get_order_by_id_returns_200(client):
    created = create(client)
    r = client.get(DETAIL_URL.format(oid=created["id"]))
    assert r.status_code == 200
    assert r.json() == created


def test_get_order_not_found_returns_404(client):
    r = client.get(DETAIL_URL.format(oid=uuid.uuid4()))
    assert r.status_code == 404
    assert r.json() == {"error": "order not found"}


def test_get_order_invalid_id_returns_400(client):
    r = client.get(DETAIL_URL.format(oid="not-a-valid-id"))
    assert r.status_code == 400
    assert r.json() == {"error": "invalid id"}


def test_transition_flow(client):
    created = create(client)
    url = TRANSITION_URL.format(oid=created["id"])

    r = client.post(url, json={"status": "RESERVED", "expected_version": 0})
    assert r.status_code == 200
    assert r.json()["status"] == "RESERVED"
    assert r.json()["version"] == 1

    r = client.post(url, json={"status": "confirmed"})
    assert r.status_code == 200
    assert r.json()["status"] == "CONFIRMED"
    assert r.json()["version"] == 2

    r = client.post(url, json={"status": "FAILED"})
    assert r.status_code == 409
    assert r.json() == {"error": "order is in terminal state"}

    assert client.get(DETAIL_URL.format(oid=created["id"])).json()["version"] == 2


def test_transition_to_failed_with_reason(client):
    created = create(client)
    r = client.post(
        TRANSITION_URL.format(oid=created["id"]),
        json={"status": "FAILED", "fail_reason_code": "NO_STOCK", "fail_reason_detail": "sold out"},
    )
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "FAILED"
    assert body["fail_reason_code"] == "NO_STOCK"
    assert body["fail_reason_detail"] == "sold out"


def test_transition_same_status_is_noop(client):
    created = create(client)
    r = client.post(TRANSITION_URL.format(oid=created["id"]), json={"status": "NEW"})
    assert r.status_code == 200
    assert r.json() == created


@pytest.mark.parametrize(
    "payload,status_code,error",
    [
        ({"status": "CONFIRMED"}, 409, "invalid order transition"),
        ({"status": "SHIPPED"}, 400, "invalid order status"),
        ({"status": "RESERVED", "expected_version": 4}, 409, "version conflict"),
        ({"status": "RESERVED", "fail_reason_code": "X"}, 400, "invalid request body"),
        ({"expected_version": 0}, 400, "invalid request body"),
    ],
)
def test_transition_rejections(client, payload, status_code, error):
    created = create(client)
    r = client.post(TRANSITION_URL.format(oid=created["id"]), json=payload)
    assert r.status_code == status_code
    assert r.json() == {"error": error}


def test_transition_unknown_order_returns_404(client):
    r = client.post(TRANSITION_URL.format(oid=uuid.uuid4()), json={"status": "RESERVED"})
    assert r.status_code == 404
    assert r.json() == {"error": "order not found"}


def test_transition_invalid_id_returns_400(client):
    r = client.post(TRANSITION_URL.format(oid="42"), json={"status": "RESERVED"})
    assert r.status_code == 400
    assert r.json() == {"error": "invalid id"}


@pytest.mark.parametrize(
    "method,url,kwargs,error",
    [
        ("get", LIST_URL, {}, "failed to fetch orders"),
        ("post", LIST_URL, {}, "failed to create order"),
        ("get", DETAIL_URL.format(oid=uuid.uuid4()), {}, "failed to fetch order"),
        ("post", TRANSITION_URL.format(oid=uuid.uuid4()), {"json": {"status": "RESERVED"}}, "failed to update order"),
    ],
)
def test_storage_failure_returns_generic_500(make_client, caplog, method, url, kwargs, error):
    """Storage errors map to 500 without leaking the underlying message."""
    client = make_client(BrokenRepository())
    r = getattr(client, method)(url, **kwargs)
    assert r.status_code == 500
    assert r.json() == {"error": error}
    assert "db-internal" not in r.text
    assert any(rec.exc_info and "db-internal" in str(rec.exc_info[1]) for rec in caplog.records)


def test_end_to_end_with_sql_repository(make_client, sql_repo):
    client = make_client(sql_repo)
    created = create(client)
    oid = created["id"]

    r = client.post(TRANSITION_URL.format(oid=oid), json={"status": "RESERVED", "expected_version": 0})
    assert r.status_code == 200

    r = client.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 200
    assert r.json()["status"] == "RESERVED"
    assert r.json()["version"] == 1

    r = client.post(TRANSITION_URL.format(oid=oid), json={"status": "CONFIRMED", "expected_version": 0})
    assert r.status_code == 409
    assert r.json() == {"error": "version conflict"}

    assert [o["id"] for o in client.get(LIST_URL).json()] == [oid]


def test_unexpected_exception_returns_json_500(make_client, caplog):
    """Errors outside the OrderError taxonomy still answer with the JSON error shape."""

    class ExplodingRepository(BrokenRepository):
        def get_all(self):
            raise RuntimeError("boom at db-internal")

    client = make_client(ExplodingRepository(), raise_server_exceptions=False)
    r = client.get(LIST_URL)
    assert r.status_code == 500
    assert r.headers["content-type"].startswith("application/json")
    assert r.json() == {"error": "internal error"}
    assert "db-internal" not in r.text
    assert any(rec.getMessage() == "unhandled error" and rec.exc_info for rec in caplog.records)
