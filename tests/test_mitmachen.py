import quopri
from datetime import datetime

import pytest

from dpvapi.mitmachen import (
    MailSender,
    MitmachenError,
    MitmachenRequest,
    compose_mitmachen,
    encode_base64_header,
    indent,
    mitmachen,
    trim_and_sanitize,
    validate_line,
)


class _RecordingSender:
    def __init__(self):
        self.calls = []

    def send_mail(self, sender, to, subject, body):
        self.calls.append((sender, to, subject, body))


def _request(**changes):
    values = dict(
        name="Ricarda Mustermann",
        email="ricarda@example.com",
        ag="bjoern",
        kompetenzen="Sehr gut",
        fragen="Keine",
    )
    values.update(changes)
    return MitmachenRequest(**values)


def test_trim_and_sanitize_escapes_html():
    assert trim_and_sanitize("  <b>\"Tom\" & 'Jerry'</b> ", 100) == (
        "&lt;b&gt;&#34;Tom&#34; &amp; &#39;Jerry&#39;&lt;/b&gt;"
    )


def test_trim_and_sanitize_counts_characters():
    assert trim_and_sanitize("ääää", 4) == "ääää"
    with pytest.raises(MitmachenError, match="maximum length is 4 chars, 5 given"):
        trim_and_sanitize("äääää", 4)


def test_indent():
    assert indent("a\nb") == (
        '<p style="border-left:.3em solid #888; padding-left: .3em; margin-left: .3em;">'
        "a<br>b</p>"
    )


def test_encode_base64_header():
    assert encode_base64_header("Grüße") == "=?utf-8?B?R3LDvMOfZQ==?="


@pytest.mark.parametrize("line", ["a\nb", "a\rb"])
def test_validate_line_rejects_breaks(line):
    with pytest.raises(MitmachenError, match="CR or LF"):
        validate_line(line)


def test_compose_mitmachen():
    now = datetime(2024, 1, 15, 9, 5)
    reply_to, to, subject, body = compose_mitmachen(
        _request(kompetenzen="Springen\n<Klettern>"), now
    )
    assert reply_to == "ricarda@example.com"
    assert to == "bjoern@example.com"
    assert subject == "[ANFRAGE] Ricarda Mustermann möchte bei Björn's VIP-Club mitmachen"
    assert "<p>Liebes Björn's VIP-Club Kommittee,</p>" in body
    assert "<p>am Monday, 15 January 2024 at 09:05 wurde folgende Anfrage" in body
    assert "Springen<br>&lt;Klettern&gt;</p>" in body
    assert '<a href="mailto:ricarda@example.com">ricarda@example.com</a>' in body


def test_compose_mitmachen_default_name():
    _, _, subject, body = compose_mitmachen(_request(name="   "), datetime(2024, 1, 15))
    assert subject.startswith("[ANFRAGE] ein Interessent möchte")
    assert "<p>ein Interessent</p>" in body


@pytest.mark.parametrize("email", ["", "no-at-sign", "a@-bad.example.com", "a@example.com\n"])
def test_compose_mitmachen_invalid_email(email):
    with pytest.raises(MitmachenError, match="invalid email"):
        compose_mitmachen(_request(email=email), datetime(2024, 1, 15))


def test_compose_mitmachen_invalid_ag():
    with pytest.raises(MitmachenError, match="invalid AG"):
        compose_mitmachen(_request(ag="unknown"), datetime(2024, 1, 15))


def test_compose_mitmachen_name_too_long():
    with pytest.raises(MitmachenError, match="invalid name"):
        compose_mitmachen(_request(name="x" * 101), datetime(2024, 1, 15))


def test_mitmachen_hands_mail_to_sender():
    sender = _RecordingSender()
    mitmachen(_request(ag="it"), sender)
    assert len(sender.calls) == 1
    reply_to, to, subject, body = sender.calls[0]
    assert reply_to == "ricarda@example.com"
    assert to == "it@example.com"
    assert subject == "[ANFRAGE] Ricarda Mustermann möchte bei IT mitmachen"
    assert "<p>Liebes IT Kommittee,</p>" in body


def test_mitmachen_invalid_request_sends_nothing():
    sender = _RecordingSender()
    with pytest.raises(MitmachenError):
        mitmachen(_request(ag="nope"), sender)
    assert sender.calls == []


def test_build_message_headers_and_body():
    body = "Grüße\n" + "x" * 120
    message = MailSender(sender_address="noreply@example.com").build_message(
        "ricarda@example.com", "it@example.com", "Grüße", body
    )
    head, payload = message.split("\r\n\r\n", 1)
    lines = head.split("\r\n")
    assert "From: noreply@example.com" in lines
    assert "To: it@example.com" in lines
    assert "Reply-To: ricarda@example.com" in lines
    assert "Subject: =?utf-8?B?R3LDvMOfZQ==?=" in lines
    assert "Content-Transfer-Encoding: quoted-printable" in lines
    assert all(len(line) <= 76 for line in payload.split("\r\n"))
    decoded = quopri.decodestring(payload.encode("ascii")).decode("utf-8")
    assert decoded.replace("\r\n", "\n") == body


def test_build_message_rejects_multiline_subject():
    with pytest.raises(MitmachenError, match="invalid subject"):
        MailSender().build_message("a@example.com", "b@example.com", "one\ntwo", "body")