"""Tests for content resolution."""

from journeysync.services.content import (
    DEFAULT_EMAIL_BODY,
    DEFAULT_EMAIL_SUBJECT,
    EmailContent,
    OpaqueContent,
    SmsContent,
    TemplatePayload,
    first_present,
    is_publishable_type,
    resolve_content,
)


class TestFirstPresent:
    """Fallback selection."""

    def test_skips_none_and_empty_string(self):
        assert first_present(None, "", "x", "y") == "x"

    def test_keeps_falsy_non_strings(self):
        assert first_present(None, 0, 5) == 0

    def test_default_when_nothing_present(self):
        assert first_present(None, "", default="fallback") == "fallback"


class TestResolveContent:
    """Typed variants built from raw touchpoint JSON."""

    def test_email_prefers_content_fields(self):
        resolved = resolve_content(
            "email",
            {"subject": "Hi", "body": "<p>Body</p>"},
            {"subject": "Ignored", "content": "Ignored"},
        )
        assert resolved == EmailContent(subject="Hi", body="<p>Body</p>")

    def test_email_falls_back_to_config_then_html(self):
        assert resolve_content("email", {}, {"subject": "From config"}).subject == "From config"
        assert resolve_content("email", {"html": "<b>x</b>"}, {}).body == "<b>x</b>"

    def test_email_defaults(self):
        resolved = resolve_content("EMAIL", None, None)
        assert resolved.subject == DEFAULT_EMAIL_SUBJECT
        assert resolved.body == DEFAULT_EMAIL_BODY

    def test_empty_subject_falls_through(self):
        assert resolve_content("email", {"subject": ""}, {}).subject == DEFAULT_EMAIL_SUBJECT

    def test_sms_precedence(self):
        assert resolve_content("sms", {"message": "m"}, {"body": "b"}).body == "b"
        assert resolve_content("sms", {"message": "m"}, {}).body == "m"
        assert resolve_content("sms", {}, {}) == SmsContent(body="")

    def test_other_types_are_opaque(self):
        resolved = resolve_content("wait", {"days": 2}, None)
        assert isinstance(resolved, OpaqueContent)
        assert resolved.type == "wait"
        assert resolved.data == {"days": 2}


class TestPublishableTypes:
    def test_case_insensitive(self):
        assert is_publishable_type("Email")
        assert is_publishable_type("sms")
        assert not is_publishable_type("wait")
        assert not is_publishable_type(None)


class TestTemplatePayload:
    """Payload dictionaries."""

    def test_email_payload_includes_preview_only_when_set(self):
        plain = TemplatePayload("Welcome", EmailContent(subject="S", body="B"))
        assert plain.to_dict() == {"name": "Welcome", "subject": "S", "body": "B"}

        preview = TemplatePayload("Welcome", EmailContent(subject="S", body="B", preview_text="P"))
        assert preview.to_dict()["previewText"] == "P"

    def test_sms_payload(self):
        payload = TemplatePayload("Text", SmsContent(body="Hi"))
        assert payload.kind == "sms"
        assert payload.to_dict() == {"name": "Text", "body": "Hi"}
