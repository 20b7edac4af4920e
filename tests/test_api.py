import time

import pytest
from fastapi.testclient import TestClient

from tests.fakes import make_workbook
from tradebook.main import app

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@pytest.fixture
def client(sql_store):
    with TestClient(app) as test_client:
        yield test_client


def upload(client, headers, rows, filename="trades.xlsx"):
    response = client.post("/import", files={"file": (filename, make_workbook(headers, rows), XLSX)})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    return body["importId"]


def wait_for_import(client, import_id, timeout=15.0):
    deadline = time.monotonic() + timeout
    while True:
        response = client.get(f"/import/progress/{import_id}")
        assert response.status_code == 200
        progress = response.json()["progress"]
        if progress["stage"] in ("completed", "error") or time.monotonic() > deadline:
            return progress
        time.sleep(0.05)


def test_health(client):
    assert client.get("/").json()["status"] == "ok"


def test_import_end_to_end(client):
    import_id = upload(client, ["WS client id", "Quantity", "Rate"], [["123", "10", "50"]])

    progress = wait_for_import(client, import_id)
    assert progress["stage"] == "completed"
    assert progress["progress"] == 100
    assert progress["imported"] == 1
    assert progress["errors"] == 0

    listing = client.get("/records", params={"ws_client_id": "123"}).json()
    assert listing["total"] == 1
    [record] = listing["data"]
    assert record["WS_client_id"] == "123"
    assert record["QTY"] == 10
    assert record["RATE"] == 50

    by_id = client.get(f"/records/{record['id']}")
    assert by_id.status_code == 200
    assert by_id.json()["QTY"] == 10


def test_progress_is_never_cached(client):
    import_id = upload(client, ["Quantity"], [[1]])
    response = client.get(f"/import/progress/{import_id}")
    assert "no-store" in response.headers["cache-control"]
    assert response.headers["pragma"] == "no-cache"
    assert response.headers["expires"] == "0"
    wait_for_import(client, import_id)


def test_unknown_import_is_404(client):
    response = client.get("/import/progress/doesnotexist")
    assert response.status_code == 404
    assert response.json()["success"] is False


def test_upload_rejects_other_extensions(client):
    response = client.post("/import", files={"file": ("trades.csv", b"a,b\n1,2\n", "text/csv")})
    assert response.status_code == 400


def test_upload_requires_a_file(client):
    assert client.post("/import").status_code == 400


def test_failed_import_reports_error(client):
    response = client.post("/import", files={"file": ("broken.xlsx", b"garbage", XLSX)})
    progress = wait_for_import(client, response.json()["importId"])
    assert progress["stage"] == "error"
    assert progress["error_details"]


def test_holdings_and_meta_endpoints(client):
    headers = ["WS client id", "Security Name", "Security code", "Tran Type", "Quantity", "Net Amount",
               "Trandate", "Exchange"]
    rows = [
        ["C9", "ACME", "AC", "Buy", 10, 1000, "2024-01-05", "NSE"],
        ["C9", "ACME", "AC", "Sell", 4, 500, "2024-02-05", "NSE"],
        ["C9", "CASH", None, "Buy", 1, 1, "2024-01-01", None],
    ]
    assert wait_for_import(client, upload(client, headers, rows))["imported"] == 3

    holdings = client.get("/records/holdings", params={"clientId": "C9"}).json()
    assert holdings["client_id"] == "C9"
    [acme] = holdings["holdings"]
    assert acme["current_holding"] == 6
    assert acme["profit"] == -500

    txns = client.get("/records/holdings/ACME/transactions", params={"clientId": "C9", "endDate": "2024-01-31"})
    assert [t["Tran_Type"] for t in txns.json()["transactions"]] == ["Buy"]

    stats = client.get("/records/stats", params={"ws_client_id": "C9"}).json()
    assert stats["overall"]["total_trades"] == 3
    assert stats["overall"]["buy_trades"] == 2

    assert client.get("/records/meta/exchanges").json() == ["NSE"]
    assert client.get("/records/meta/transaction-types").json() == ["Buy", "Sell"]
    assert client.get("/records/meta/symbols").json() == ["ACME", "CASH"]
    client_ids = client.get("/records/meta/client-ids")
    assert client_ids.json() == ["C9"]
    assert "no-store" in client_ids.headers["cache-control"]
    assert client.get("/records/meta/stocks-by-client", params={"clientId": "C9"}).json() == ["ACME", "CASH"]


def test_client_scoped_endpoints_require_client_id(client):
    assert client.get("/records/holdings").status_code == 400
    assert client.get("/records/meta/stocks-by-client").status_code == 400


def test_invalid_inputs_are_400(client):
    assert client.get("/records/not-a-number").status_code == 400
    assert client.get("/records", params={"trandate_from": "yesterday-ish"}).status_code == 400


def test_missing_record_is_404(client):
    assert client.get("/records/424242").status_code == 404
