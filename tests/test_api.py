"""
API tests through the FastAPI app.

Validates:
1. Every error uses the {"error": ..., "details"?: ...} envelope
2. Ownership: another user's sermon is a 404
3. Usage gate (402), rate limits (429) and invalid transitions (400)
4. Exports stream files with a download filename
5. Job callbacks and Stripe webhooks are signature checked
"""

import hashlib
import hmac
import json
import time

from sermonforge.api.main import app
from sermonforge.lib.content import GeneratedContentStore
from sermonforge.lib.jobs import SEND_COMPLETION_EMAIL, sign_payload

from fakes import LONG_TRANSCRIPT, OTHER_USER, SERMON_NOTES, make_sermon


NEW_SERMON = {"title": "Saved by Grace", "sermon_date": "2025-03-09", "input_type": "audio"}


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_token_is_401(client):
    app.dependency_overrides.clear()

    response = client.get("/api/sermons")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


# =============================================================================
# Sermons
# =============================================================================

def test_create_and_list(client, db):
    response = client.post("/api/sermons", json=NEW_SERMON)

    assert response.status_code == 201
    sermon = response.json()["sermon"]
    assert sermon["status"] == "draft"

    listed = client.get("/api/sermons").json()["sermons"]
    assert [s["id"] for s in listed] == [sermon["id"]]


def test_create_validation_error(client):
    response = client.post("/api/sermons", json={"sermon_date": "2025-03-09", "input_type": "audio"})

    assert response.status_code == 400
    assert response.json()["error"].startswith("title:")


def test_create_blank_title(client):
    response = client.post("/api/sermons", json={**NEW_SERMON, "title": "   "})

    assert response.status_code == 400
    assert "error" in response.json()


def test_invalid_status_filter(client):
    response = client.get("/api/sermons?status=bogus")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid status: bogus"}


def test_other_users_sermon_is_404(client, db):
    sermon = make_sermon(db, user=OTHER_USER)

    response = client.get(f"/api/sermons/{sermon['id']}")

    assert response.status_code == 404
    assert response.json() == {"error": "Sermon not found"}


def test_usage_gate_is_402(client, db):
    """Test: Two trial sermons used, the third is refused with the usage report."""
    make_sermon(db)
    make_sermon(db)

    response = client.post("/api/sermons", json=NEW_SERMON)

    assert response.status_code == 402
    body = response.json()
    assert body["usage"]["allowed"] is False
    assert body["error"] == body["usage"]["message"]


def test_process_sets_rate_limit_headers(client, db, dispatcher):
    sermon = make_sermon(db, audio_url="https://cdn.example.com/sermon.mp3")

    response = client.post(f"/api/sermons/{sermon['id']}/process")

    assert response.status_code == 200
    assert response.json()["willTranscribe"] is True
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "9"
    assert len(dispatcher.sent) == 1


def test_process_rate_limited(client, db, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "1")
    sermon = make_sermon(db, audio_url="https://cdn.example.com/sermon.mp3")

    client.post(f"/api/sermons/{sermon['id']}/process")
    response = client.post(f"/api/sermons/{sermon['id']}/process")

    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded"}
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_process_complete_sermon_is_400(client, db):
    sermon = make_sermon(db, status="complete", transcript=LONG_TRANSCRIPT)

    response = client.post(f"/api/sermons/{sermon['id']}/process")

    assert response.status_code == 400


def test_process_with_skip_transcription(client, db, dispatcher):
    sermon = make_sermon(db, audio_url="https://cdn.example.com/sermon.mp3", transcript=LONG_TRANSCRIPT)

    response = client.post(f"/api/sermons/{sermon['id']}/process", json={"skipTranscription": True})

    assert response.status_code == 200
    assert response.json()["willTranscribe"] is False
    assert dispatcher.sent[0]["data"]["skipTranscription"] is True


def test_process_skip_without_transcript_is_400(client, db, dispatcher):
    sermon = make_sermon(db, audio_url="https://cdn.example.com/sermon.mp3")

    response = client.post(f"/api/sermons/{sermon['id']}/process", json={"skipTranscription": True})

    assert response.status_code == 400
    assert response.json()["error"].startswith("skipTranscription requires a transcript")
    assert dispatcher.sent == []


def test_transcribe_then_process(client, db, dispatcher, transcriber):
    """Test: /transcribe followed by /process dispatches the generation job once."""
    sermon = make_sermon(db, audio_url="https://cdn.example.com/sermon.mp3")

    assert client.post(f"/api/sermons/{sermon['id']}/transcribe").status_code == 200
    first = client.post(f"/api/sermons/{sermon['id']}/process")
    second = client.post(f"/api/sermons/{sermon['id']}/process")

    assert first.json()["willTranscribe"] is False
    assert second.json()["alreadyProcessing"] is True
    assert len(dispatcher.sent) == 1


def test_retry(client, db):
    sermon = make_sermon(db, status="error")

    response = client.post(f"/api/sermons/{sermon['id']}/retry")

    assert response.json()["status"] == "draft"
    assert sermon["status"] == "draft"


def test_generate_is_202(client, db, dispatcher):
    sermon = make_sermon(db, transcript=LONG_TRANSCRIPT)

    response = client.post(f"/api/sermons/{sermon['id']}/generate", json={"content_type": "devotional"})

    assert response.status_code == 202
    assert response.json()["contentTypes"] == ["devotional"]
    assert dispatcher.sent[0]["data"]["contentTypes"] == ["devotional"]


# =============================================================================
# Content and exports
# =============================================================================

def test_content_get_and_update(client, db):
    sermon = make_sermon(db, status="complete")
    GeneratedContentStore(db).save(sermon["id"], "sermon_notes", SERMON_NOTES)

    response = client.get(f"/api/sermons/{sermon['id']}/content/sermon_notes")
    assert response.json()["content"]["content"] == SERMON_NOTES

    edited = {**SERMON_NOTES, "title": "Saved by Grace (edited)"}
    response = client.put(f"/api/sermons/{sermon['id']}/content/sermon_notes", json={"content": edited})
    assert response.status_code == 200
    assert len(db.rows("generated_content")) == 1
    assert db.rows("generated_content")[0]["content"]["title"] == "Saved by Grace (edited)"


def test_content_update_requires_content(client, db):
    sermon = make_sermon(db)

    response = client.put(f"/api/sermons/{sermon['id']}/content/devotional", json={"content": None})

    assert response.status_code == 400
    assert response.json() == {"error": "content is required in request body"}


def test_content_invalid_type(client, db):
    sermon = make_sermon(db)

    response = client.get(f"/api/sermons/{sermon['id']}/content/poem")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid content type: poem"}


def test_export_pdf(client, db):
    sermon = make_sermon(db, status="complete")
    GeneratedContentStore(db).save(sermon["id"], "sermon_notes", SERMON_NOTES)

    response = client.get(f"/api/sermons/{sermon['id']}/export/pdf")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'attachment; filename="Saved_by_Grace_Sermon_Notes.pdf"'
    assert response.content.startswith(b"%PDF")
    assert db.rows("analytics_events")[0]["event_data"] == {"content_type": "sermon_notes", "format": "pdf"}


def test_export_without_notes_is_404(client, db):
    sermon = make_sermon(db)

    response = client.get(f"/api/sermons/{sermon['id']}/export/docx")

    assert response.status_code == 404
    assert response.json() == {"error": "Sermon notes not found. Please generate sermon notes first."}


# =============================================================================
# Settings, onboarding, subscriptions, analytics
# =============================================================================

def test_branding_update_rejects_bad_color(client, db):
    response = client.put("/api/settings/branding", json={"primary_color": "navy"})

    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid primary color format")


def test_logo_upload(client, db):
    response = client.post(
        "/api/settings/branding/logo",
        files={"file": ("logo.png", b"\x89PNG", "image/png")},
    )

    assert response.status_code == 200
    assert response.json()["url"].startswith("https://storage.test/church-logos/user-1/")


def test_onboarding_progress(client, db):
    client.post("/api/onboarding/progress", json={"step": 2})

    assert client.get("/api/onboarding").json()["step"] == 2
    assert client.post("/api/onboarding/progress", json={"step": 9}).status_code == 400


def test_usage_and_plans(client, db):
    usage = client.get("/api/subscriptions/usage").json()
    assert usage["allowed"] is True
    assert usage["limit"] == 2

    plans = client.get("/api/subscriptions/plans").json()
    assert [p["id"] for p in plans["plans"]] == ["starter", "growth", "enterprise"]
    assert plans["trial"] == {"durationDays": 14, "sermonLimit": 2}


def test_analytics_export_csv(client, db):
    db.add(
        "analytics_events",
        user_id="user-1", sermon_id="s-1", event_type="sermon_created",
        event_data={"input_type": "audio"},
    )

    response = client.get("/api/analytics/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "sermonforge_analytics_" in response.headers["content-disposition"]
    assert response.text.split("\n")[0] == "Date,Time,Event Type,Content Type,Format,Sermon ID"


# =============================================================================
# Job callbacks
# =============================================================================

def post_job(client, payload, key="job-secret"):
    raw = json.dumps(payload).encode("utf-8")
    return client.post(
        "/api/jobs",
        content=raw,
        headers={"X-Job-Signature": sign_payload(raw, key), "Content-Type": "application/json"},
    )


def test_job_bad_signature(client, monkeypatch):
    monkeypatch.setenv("JOB_SIGNING_KEY", "job-secret")

    response = post_job(client, {"name": SEND_COMPLETION_EMAIL, "data": {}}, key="wrong")

    assert response.status_code == 401
    assert response.json() == {"error": "Invalid signature"}


def test_job_runs_handler(client, db, mailer, monkeypatch):
    monkeypatch.setenv("JOB_SIGNING_KEY", "job-secret")
    sermon = make_sermon(db, status="complete")

    response = post_job(client, {
        "name": SEND_COMPLETION_EMAIL,
        "data": {"sermonId": sermon["id"], "userId": "user-1", "sermonTitle": "Saved by Grace"},
    })

    assert response.status_code == 200
    assert response.json()["result"] == {"success": True, "email": "pastor@example.com"}
    assert mailer.sent[0][0] == "send_sermon_complete"


def test_unknown_job(client, monkeypatch):
    monkeypatch.setenv("JOB_SIGNING_KEY", "job-secret")

    response = post_job(client, {"name": "sermon/unknown"})

    assert response.status_code == 400
    assert response.json() == {"error": "Unknown job: sermon/unknown"}


# =============================================================================
# Stripe webhook
# =============================================================================

def stripe_headers(payload: str, secret: str) -> dict:
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return {"Stripe-Signature": f"t={timestamp},v1={signature}"}


def test_webhook_without_secret(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)

    response = client.post("/api/stripe/webhook", content=b"{}", headers={"Stripe-Signature": "t=1,v1=x"})

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook secret not configured"}


def test_webhook_bad_signature(client, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")

    response = client.post(
        "/api/stripe/webhook",
        content=b"{}",
        headers=stripe_headers("{}", "whsec_other"),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid signature"}


def test_webhook_marks_past_due(client, db, mailer, monkeypatch):
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    db.add("subscriptions", user_id="user-1", stripe_customer_id="cus_1",
           stripe_subscription_id="sub_1", plan_id="starter", status="active")
    payload = json.dumps({
        "id": "evt_1",
        "object": "event",
        "type": "invoice.payment_failed",
        "data": {"object": {"object": "invoice", "subscription": "sub_1", "customer": "cus_1"}},
    })

    response = client.post("/api/stripe/webhook", content=payload, headers=stripe_headers(payload, "whsec_test"))

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert db.rows("subscriptions")[0]["status"] == "past_due"
    assert mailer.sent == [("send_payment_failed", ("pastor@example.com", "Starter"))]
