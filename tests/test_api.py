def test_start_session(client):
    resp = client.post("/sessions/conv-1")
    assert resp.status_code == 201
    data = resp.json()
    assert data["conversation_id"] == "conv-1"
    assert data["active"] is True
    assert data["mentioned_pois"] == []
    assert [w["kind"] for w in data["open_grace_windows"]] == ["initialization"]
    assert data["open_grace_windows"][0]["remaining_seconds"] == 15.0


def test_unknown_session_is_404(client):
    assert client.get("/sessions/nope").status_code == 404
    assert client.delete("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/location", json={"latitude": 1, "longitude": 2}).status_code == 404
    assert client.post("/sessions/nope/visibility", json={"visible": True}).status_code == 404
    assert client.get("/sessions/nope/notifications").status_code == 404


def test_stop_session(client):
    client.post("/sessions/conv-1")
    assert client.delete("/sessions/conv-1").status_code == 204
    assert client.get("/sessions/conv-1").status_code == 404


def test_push_location(client):
    client.post("/sessions/conv-1")
    resp = client.post(
        "/sessions/conv-1/location",
        json={"latitude": 48.8584, "longitude": 2.2945, "accuracy_m": 12},
    )
    assert resp.status_code == 202
    assert resp.json() == {"accepted": True}


def test_inaccurate_location_is_rejected(client):
    client.post("/sessions/conv-1")
    resp = client.post(
        "/sessions/conv-1/location",
        json={"latitude": 48.8584, "longitude": 2.2945, "accuracy_m": 5000},
    )
    assert resp.json() == {"accepted": False}


def test_location_error_report(client):
    client.post("/sessions/conv-1")
    resp = client.post("/sessions/conv-1/location", json={"error": "permission_denied"})
    assert resp.status_code == 202
    assert resp.json() == {"accepted": False, "failure": "permission_denied"}
    # The session survives a location failure
    assert client.get("/sessions/conv-1").status_code == 200


def test_location_requires_coordinates(client):
    client.post("/sessions/conv-1")
    resp = client.post("/sessions/conv-1/location", json={"latitude": 48.8})
    assert resp.status_code == 422


def test_location_out_of_range(client):
    client.post("/sessions/conv-1")
    resp = client.post("/sessions/conv-1/location", json={"latitude": 120, "longitude": 0})
    assert resp.status_code == 422


def test_visibility(client):
    client.post("/sessions/conv-1")
    resp = client.post("/sessions/conv-1/visibility", json={"visible": True})
    assert resp.status_code == 202
    assert resp.json() == {"visible": True}

    windows = client.get("/sessions/conv-1").json()["open_grace_windows"]
    assert {w["kind"] for w in windows} == {"initialization", "resume"}


def test_refresh(client):
    client.post("/sessions/conv-1")
    resp = client.post("/sessions/conv-1/refresh")
    assert resp.status_code == 202
    assert resp.json() == {"queued": True}


def test_notifications_empty(client):
    client.post("/sessions/conv-1")
    resp = client.get("/sessions/conv-1/notifications")
    assert resp.status_code == 200
    assert resp.json() == []
