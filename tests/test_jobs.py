"""
Background job tests.

Validates:
1. The processing pipeline runs transcribe -> generate -> complete
2. Handlers resume from whatever state a redelivered job finds
3. One failed content type does not stop the others
4. Only the final failed attempt moves a sermon to error
5. Callback signatures are verified
"""

import pytest

from sermonforge.lib.errors import GenerationError, ValidationError
from sermonforge.lib.jobs import (
    GENERATE_CONTENT,
    PROCESS_SERMON,
    SEND_COMPLETION_EMAIL,
    JobHandlers,
    sign_payload,
    verify_signature,
)

from fakes import (
    LONG_TRANSCRIPT,
    USER,
    MockGenerator,
    MockMailer,
    MockTranscriber,
    RecordingDispatcher,
    make_sermon,
)


ALL_TYPES = {"sermon_notes", "devotional", "discussion_guide", "social_media", "kids_version"}


@pytest.fixture
def parts():
    return {
        "generator": MockGenerator(),
        "transcriber": MockTranscriber(),
        "dispatcher": RecordingDispatcher(),
        "mailer": MockMailer(),
    }


@pytest.fixture
def handlers(db, parts):
    return JobHandlers(client=db, **parts)


def stored_types(db, sermon_id):
    return {row["content_type"] for row in db.rows("generated_content") if row["sermon_id"] == sermon_id}


# =============================================================================
# Process sermon
# =============================================================================

def test_process_sermon_full_pipeline(db, handlers, parts):
    """Test: Audio sermon is transcribed, every type generated, then completed."""
    sermon = make_sermon(db, status="processing", audio_url="https://cdn.example.com/a.mp3")

    result = handlers.handle(PROCESS_SERMON, {"sermonId": sermon["id"], "userId": USER["id"]})

    assert result["success"] is True
    assert sermon["status"] == "complete"
    assert sermon["transcript"] == LONG_TRANSCRIPT
    assert parts["transcriber"].calls == ["https://cdn.example.com/a.mp3"]
    assert stored_types(db, sermon["id"]) == ALL_TYPES
    assert db.rows("users_metadata")[0]["sermons_processed_count"] == 1

    emails = parts["dispatcher"].sent
    assert [e["name"] for e in emails] == [SEND_COMPLETION_EMAIL]
    assert emails[0]["id"] == f"completion-email-{sermon['id']}"

    generated = [e for e in db.rows("analytics_events") if e["event_type"] == "content_generated"]
    assert len(generated) == 5


def test_process_sermon_with_transcript_skips_transcription(db, handlers, parts):
    sermon = make_sermon(db, status="processing", transcript=LONG_TRANSCRIPT)

    handlers.handle(PROCESS_SERMON, {
        "sermonId": sermon["id"], "userId": USER["id"], "skipTranscription": True,
    })

    assert parts["transcriber"].calls == []
    assert sermon["status"] == "complete"


def test_process_sermon_resumes_from_transcribing(db, handlers, parts):
    """Test: A redelivered job picks up a sermon left mid-transcription."""
    sermon = make_sermon(db, status="transcribing", audio_url="https://cdn.example.com/a.mp3")

    handlers.handle(PROCESS_SERMON, {"sermonId": sermon["id"], "userId": USER["id"]})

    assert len(parts["transcriber"].calls) == 1
    assert sermon["status"] == "complete"


def test_process_sermon_resumes_from_generating(db, handlers, parts):
    sermon = make_sermon(db, status="generating", transcript=LONG_TRANSCRIPT)

    handlers.handle(PROCESS_SERMON, {"sermonId": sermon["id"], "userId": USER["id"]})

    assert parts["transcriber"].calls == []
    assert sermon["status"] == "complete"


@pytest.mark.parametrize("status", ["draft", "complete", "error"])
def test_process_sermon_skips_settled_sermons(db, handlers, parts, status):
    sermon = make_sermon(db, status=status, transcript=LONG_TRANSCRIPT)

    result = handlers.handle(PROCESS_SERMON, {"sermonId": sermon["id"], "userId": USER["id"]})

    assert result["skipped"] is True
    assert sermon["status"] == status
    assert parts["generator"].calls == []


def test_partial_generation_failure_still_completes(db, parts):
    """Test: A failed devotional does not stop the other content types."""
    parts["generator"] = MockGenerator(failing=["devotional"])
    handlers = JobHandlers(client=db, **parts)
    sermon = make_sermon(db, status="processing", transcript=LONG_TRANSCRIPT)

    result = handlers.handle(PROCESS_SERMON, {"sermonId": sermon["id"], "userId": USER["id"]})

    assert sermon["status"] == "complete"
    assert result["results"]["devotional"] is False
    assert result["results"]["sermon_notes"] is True
    assert stored_types(db, sermon["id"]) == ALL_TYPES - {"devotional"}


def test_notes_failure_retries_before_error(db, parts):
    """Test: The sermon stays active until the final attempt fails."""
    parts["generator"] = MockGenerator(failing=["sermon_notes"])
    handlers = JobHandlers(client=db, **parts)
    sermon = make_sermon(db, status="processing", transcript=LONG_TRANSCRIPT)
    data = {"sermonId": sermon["id"], "userId": USER["id"]}

    with pytest.raises(GenerationError):
        handlers.handle(PROCESS_SERMON, data, attempt=0)
    assert sermon["status"] == "generating"

    with pytest.raises(GenerationError):
        handlers.handle(PROCESS_SERMON, data, attempt=3)
    assert sermon["status"] == "error"


def test_short_transcript_fails(db, handlers):
    sermon = make_sermon(db, status="processing", transcript="short")
    data = {"sermonId": sermon["id"], "userId": USER["id"], "skipTranscription": True}

    with pytest.raises(ValidationError):
        handlers.handle(PROCESS_SERMON, data, attempt=3)
    assert sermon["status"] == "error"


def test_unknown_job(handlers):
    with pytest.raises(ValidationError, match="Unknown job"):
        handlers.handle("sermon/unknown", {})


# =============================================================================
# Generate content
# =============================================================================

def test_generate_content_regenerates_complete_sermon(db, handlers, parts):
    """Test: Regenerating a complete sermon replaces content without a status change."""
    sermon = make_sermon(db, status="complete", transcript=LONG_TRANSCRIPT)
    db.add("generated_content", sermon_id=sermon["id"], content_type="devotional", content={"old": True})

    handlers.handle(GENERATE_CONTENT, {
        "sermonId": sermon["id"], "userId": USER["id"], "contentTypes": ["devotional"],
    })

    rows = [r for r in db.rows("generated_content") if r["content_type"] == "devotional"]
    assert len(rows) == 1
    assert rows[0]["content"]["title"] == "Grace"
    assert sermon["status"] == "complete"


def test_generate_content_from_draft(db, handlers):
    sermon = make_sermon(db, status="draft", transcript=LONG_TRANSCRIPT)

    handlers.handle(GENERATE_CONTENT, {
        "sermonId": sermon["id"], "userId": USER["id"], "contentTypes": ["sermon_notes"],
    })

    assert sermon["status"] == "complete"
    assert stored_types(db, sermon["id"]) == {"sermon_notes"}


def test_generate_content_all_failed(db, parts):
    parts["generator"] = MockGenerator(failing=["devotional", "kids_version"])
    handlers = JobHandlers(client=db, **parts)
    sermon = make_sermon(db, status="complete", transcript=LONG_TRANSCRIPT)

    with pytest.raises(GenerationError):
        handlers.handle(GENERATE_CONTENT, {
            "sermonId": sermon["id"], "userId": USER["id"], "contentTypes": ["devotional", "kids_version"],
        })


# =============================================================================
# Completion email
# =============================================================================

def test_completion_email_sent(db, handlers, parts):
    sermon = make_sermon(db, status="complete")
    db.add("generated_content", sermon_id=sermon["id"], content_type="sermon_notes", content={})

    result = handlers.handle(SEND_COMPLETION_EMAIL, {
        "sermonId": sermon["id"], "userId": USER["id"], "sermonTitle": "Saved by Grace",
    })

    assert result == {"success": True, "email": USER["email"]}
    name, args = parts["mailer"].sent[0]
    assert name == "send_sermon_complete"
    assert args[3] == {"sermon_notes": True}


def test_completion_email_respects_preferences(db, handlers, parts):
    db.add("users_metadata", user_id=USER["id"], notify_processing_complete=False)

    result = handlers.handle(SEND_COMPLETION_EMAIL, {"sermonId": "s-1", "userId": USER["id"]})

    assert result["reason"] == "Notifications disabled"
    assert parts["mailer"].sent == []


# =============================================================================
# Signatures
# =============================================================================

def test_signature_round_trip():
    body = b'{"name": "sermon/process"}'
    signature = sign_payload(body, "secret")

    assert signature.startswith("sha256=")
    assert verify_signature(body, signature, "secret")
    assert not verify_signature(body + b" ", signature, "secret")
    assert not verify_signature(body, signature, "other")
    assert not verify_signature(body, None, "secret")


def test_signature_requires_key(monkeypatch):
    monkeypatch.delenv("JOB_SIGNING_KEY", raising=False)
    assert not verify_signature(b"{}", sign_payload(b"{}", ""))
