"""Requests to join a working group of the association, sent by e-mail."""

from __future__ import annotations

import base64
import quopri
import re
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.utils import format_datetime

MAX_LENGTH_TEXT_AREA = 100000
MAX_LENGTH_INPUT = 100
RECIPIENT_TEMPLATE = "{ag}@example.com"

VALID_AGS = {
    "bildung": "Bildung, Forschung und Wissenschaft",
    "bjoern": "Björn's VIP-Club",
    "design": "Logo & Corporate Design",
    "finanzen": "Finanzen",
    "it": "IT",
    "lizenzen": "Lizenzen und Ausbildung",
    "oeffentlichkeit": "Öffentlichkeitsarbeit",
    "parkourparks": "Parkour-Parks",
    "satzung": "Satzung",
    "wettkampf": "Wettkampf",
}

_EMAIL = re.compile(
    r"[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*",
    re.ASCII,
)

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January", "February", "March", "April", "May", "June", "July",
    "August", "September", "October", "November", "December",
)

_BODY_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Type" content="text/html; charset=utf-8">
<style>
    body {{ font-family: Arial, sans-serif; }}
</style>
</head>
<body>
<p>Liebes {ag} Kommittee,</p>
<p>am {date} wurde folgende Anfrage an euch gestellt:</p>
<p>Ich bin <b>{name}</b> und möchte bei euch mitmachen.</p>
<p>Ich bringe folgende Kompetenzen, Erfahrungen und Referenzen mit:</p>
{kompetenzen}
<p>Ich möchte euch außerdem sagen:</p>
{fragen}
<p>Ich freue mich auf eure Antwort, oder schreibt mir unter <a href="mailto:{email}">{email}</a>.</p>
<p>Bis bald!</p>
<p>{name}</p>
</body>
</html>"""


class MitmachenError(ValueError):
    """Raised when a request is invalid or its e-mail cannot be sent."""


@dataclass
class MitmachenRequest:
    """What a person interested in a working group filled in."""

    name: str = ""
    email: str = ""
    ag: str = ""
    kompetenzen: str = ""
    fragen: str = ""


def _escape(text: str) -> str:
    return (
        text.replace("&", "&amp;")
        .replace("'", "&#39;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&#34;")
    )


def trim_and_sanitize(text: str, max_length: int) -> str:
    """Strip surrounding whitespace, enforce a length limit and escape HTML."""
    text = text.strip()
    if len(text) > max_length:
        raise MitmachenError(
            f"maximum field length exceeded - maximum length is {max_length} chars, "
            f"{len(text)} given"
        )
    return _escape(text)


def indent(content: str) -> str:
    """Render text as an indented paragraph with line breaks."""
    content = content.replace("\n", "<br>")
    return (
        '<p style="border-left:.3em solid #888; padding-left: .3em; margin-left: .3em;">'
        f"{content}</p>"
    )


def encode_base64_header(header: str) -> str:
    """Encode a header value as a UTF-8 base64 encoded word."""
    return "=?utf-8?B?" + base64.b64encode(header.encode("utf-8")).decode("ascii") + "?="


def validate_line(line: str) -> None:
    """Reject header values that contain line breaks."""
    if "\n" in line or "\r" in line:
        raise MitmachenError("smtp: A line must not contain CR or LF")


def _format_date(now: datetime) -> str:
    return (
        f"{_WEEKDAYS[now.weekday()]}, {now.day} {_MONTHS[now.month - 1]} {now.year} "
        f"at {now:%H:%M}"
    )


def compose_mitmachen(request: MitmachenRequest, now: datetime) -> tuple[str, str, str, str]:
    """Validate a request and return reply address, recipient, subject and HTML body."""
    try:
        name = trim_and_sanitize(request.name, MAX_LENGTH_INPUT)
    except MitmachenError as exc:
        raise MitmachenError(f"invalid name - {exc}") from exc
    if not _EMAIL.fullmatch(request.email):
        raise MitmachenError("invalid email - email must be a valid e-mail address")
    try:
        kompetenzen = trim_and_sanitize(request.kompetenzen, MAX_LENGTH_TEXT_AREA)
    except MitmachenError as exc:
        raise MitmachenError(f"invalid kompetenzen - {exc}") from exc
    try:
        fragen = trim_and_sanitize(request.fragen, MAX_LENGTH_TEXT_AREA)
    except MitmachenError as exc:
        raise MitmachenError(f"invalid fragen - {exc}") from exc

    if not name:
        name = "ein Interessent"

    pretty_ag = VALID_AGS.get(request.ag)
    if pretty_ag is None:
        raise MitmachenError("invalid AG provided")

    subject = f"[ANFRAGE] {name} möchte bei {pretty_ag} mitmachen"
    to = RECIPIENT_TEMPLATE.format(ag=request.ag)
    body = _BODY_TEMPLATE.format(
        ag=pretty_ag,
        date=_format_date(now),
        name=name,
        kompetenzen=indent(kompetenzen),
        fragen=indent(fragen),
        email=request.email,
    )
    return request.email, to, subject, body


class MailSender:
    """Sends HTML mails through an SMTP server."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 25,
        sender_address: str = "noreply@example.com",
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.sender_address = sender_address
        self.timeout = timeout

    def build_message(self, sender: str, to: str, subject: str, body: str) -> str:
        """Build a quoted-printable HTML message replying to the given sender."""
        for label, value in (("from", sender), ("to", to), ("subject", subject)):
            try:
                validate_line(value)
            except MitmachenError as exc:
                raise MitmachenError(f"invalid {label}: {exc}") from exc
        headers = [
            ("MIME-Version", "1.0"),
            ("Date", format_datetime(datetime.now().astimezone())),
            ("From", self.sender_address),
            ("To", to),
            ("Reply-To", sender),
            ("Subject", encode_base64_header(subject)),
            ("Content-Type", "text/html; charset=utf-8"),
            ("Content-Transfer-Encoding", "quoted-printable"),
        ]
        encoded = quopri.encodestring(body.encode("utf-8")).replace(b"\n", b"\r\n")
        head = "".join(f"{name}: {value}\r\n" for name, value in headers)
        return head + "\r\n" + encoded.decode("ascii")

    def send_mail(self, sender: str, to: str, subject: str, body: str) -> None:
        """Send an HTML mail to a single recipient."""
        message = self.build_message(sender, to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
                client.sendmail(self.sender_address, [to], message.encode("utf-8"))
        except (smtplib.SMTPException, OSError) as exc:
            raise MitmachenError(f"could not send mail: {exc}") from exc


def mitmachen(request: MitmachenRequest, sender: MailSender) -> None:
    """Validate a request to join a working group and mail it to the group."""
    reply_to, to, subject, body = compose_mitmachen(request, datetime.now())
    sender.send_mail(reply_to, to, subject, body)