import json

from tests.conftest import make_line_event, make_line_payload, sign_payload


def _post(client, body: bytes, signature: str | None):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["X-Line-Signature"] = signature
    return client.post("/webhook", content=body, headers=headers)


def test_incoming_webhook_valid(client, line_client):
    body = json.dumps(make_line_payload(make_line_event(text="おはよう"))).encode()

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    line_client.reply.assert_awaited_once()
    client.app.state.turn_store.save.assert_awaited_once()


def test_incoming_webhook_invalid_signature(client, line_client):
    body = json.dumps(make_line_payload(make_line_event())).encode()

    resp = _post(client, body, sign_payload(body, secret="wrong"))
    assert resp.status_code == 401
    assert resp.json() == {"error": "bad signature"}
    line_client.reply.assert_not_called()
    client.app.state.turn_store.save.assert_not_called()


def test_incoming_webhook_missing_signature(client, line_client):
    body = json.dumps(make_line_payload(make_line_event())).encode()

    resp = _post(client, body, None)
    assert resp.status_code == 401
    line_client.reply.assert_not_called()


def test_incoming_webhook_signature_over_raw_bytes(client, line_client):
    body = json.dumps(make_line_payload(make_line_event())).encode()
    reformatted = json.dumps(json.loads(body), indent=2).encode()

    resp = _post(client, reformatted, sign_payload(body))
    assert resp.status_code == 401


def test_incoming_webhook_invalid_json(client):
    body = b"{not json"

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 400


def test_incoming_webhook_verification_ping(client, line_client):
    # The console's "Verify" button sends an empty event list.
    body = json.dumps(make_line_payload()).encode()

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    line_client.reply.assert_not_called()


def test_incoming_webhook_non_message_event(client, line_client):
    follow = {
        "type": "follow",
        "timestamp": 1700000000000,
        "replyToken": "rt",
        "source": {"type": "user", "userId": "Uuser1"},
    }
    body = json.dumps(make_line_payload(follow)).encode()

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 200
    line_client.reply.assert_not_called()


def test_incoming_webhook_group_without_mention(client, line_client):
    body = json.dumps(
        make_line_payload(make_line_event(text="今日寒いね", source_type="group"))
    ).encode()

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 200
    line_client.reply.assert_not_called()


def test_incoming_webhook_event_failure_still_ok(client, line_client):
    line_client.reply.side_effect = RuntimeError("LINE down")
    body = json.dumps(make_line_payload(make_line_event())).encode()

    resp = _post(client, body, sign_payload(body))
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_webhook_get_probe(client):
    resp = client.get("/webhook")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "endpoint": "LINE webhook (GET)"}


def test_webhook_head_probe(client):
    resp = client.head("/webhook")
    assert resp.status_code == 200
