from datetime import timedelta

import pytest

from backend.config import parse_duration


@pytest.mark.parametrize("raw,expected", [
    ("90", timedelta(seconds=90)),
    ("15m", timedelta(minutes=15)),
    ("1h", timedelta(hours=1)),
    (" 7D ", timedelta(days=7)),
])
def test_parse_duration(raw, expected):
    assert parse_duration(raw) == expected


def test_parse_duration_rejects_garbage():
    with pytest.raises(ValueError):
        parse_duration("soon")


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_unknown_route_uses_envelope(client):
    response = client.get("/v1/api/nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Not Found"}


def test_malformed_json_is_a_400(client):
    response = client.post(
        "/v1/api/auth/login", content="{not json", headers={"content-type": "application/json"}
    )
    assert response.status_code == 400
    assert response.json()["success"] is False
