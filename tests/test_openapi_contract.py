import json
from pathlib import Path

from app.main import app


def test_openapi_paths_snapshot():
    snapshot_path = Path(__file__).parent / "snapshots" / "openapi_paths_snapshot.json"
    expected_paths = sorted(json.loads(snapshot_path.read_text(encoding="utf-8")))
    actual_paths = sorted(app.openapi()["paths"].keys())
    assert actual_paths == expected_paths


def test_admin_routes_document_error_envelope():
    paths = app.openapi()["paths"]
    used = paths["/coupon-codes/{coupon_id}/used"]["put"]["responses"]
    assert {"403", "404", "409"} <= set(used)


def _example(responses, status):
    return responses[status]["content"]["application/json"]["example"]["error"]


def test_error_examples_use_real_messages():
    paths = app.openapi()["paths"]

    missing_rule = _example(paths["/sales-rules/{sales_rule_id}"]["get"]["responses"], "404")
    assert missing_rule == {
        "code": "not_found",
        "message": "Sales rule not found",
        "request_id": "request-id",
        "path": "/sales-rules",
        "details": None,
    }

    exhausted = _example(paths["/coupon-codes/{coupon_id}/used"]["put"]["responses"], "409")
    assert exhausted["message"] == "Coupon code has no uses left"

    for webhook in ("/admin-bot/webhook", "/bot/webhook"):
        forbidden = _example(paths[webhook]["post"]["responses"], "403")
        assert forbidden["message"] == "Invalid webhook secret"
