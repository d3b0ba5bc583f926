"""Member clubs of the association, read from the submissions of a Nextcloud form."""

from __future__ import annotations

import base64
import json
import re
import urllib.error
import urllib.request
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import urlsplit, urlunsplit

_SUBMISSIONS_PATH = "ocs/v2.php/apps/forms/api/v2.4/submissions/"
_INTEGER = re.compile(r"[+-]?[0-9]+", re.ASCII)

_QUESTION_WEBSITE = 6
_QUESTION_MEMBERS = 8
_QUESTION_CITY = 12
_QUESTION_NAME = 13
_QUESTION_PUBLISH = 16
_QUESTION_STATE = 17


class VerbandError(RuntimeError):
    """Raised when the club list cannot be fetched or interpreted."""


@dataclass
class Verein:
    """A club as listed publicly."""

    bundesland: str = ""
    stadt: str = ""
    name: str = ""
    webseite: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundesland": self.bundesland,
            "stadt": self.stadt,
            "name": self.name,
            "webseite": self.webseite,
        }


@dataclass
class VereinDetail:
    """A club together with its number of members."""

    bundesland: str = ""
    stadt: str = ""
    name: str = ""
    webseite: str = ""
    mitglieder: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "bundesland": self.bundesland,
            "stadt": self.stadt,
            "name": self.name,
            "webseite": self.webseite,
            "mitglieder": self.mitglieder,
        }


@dataclass
class Bundesland:
    """Number of clubs and of their members in one federal state."""

    vereine: int = 0
    mitglieder: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"vereine": self.vereine, "mitglieder": self.mitglieder}


@dataclass(frozen=True)
class Answer:
    """One answer of a form submission."""

    id: int = 0
    question_id: int = 0
    text: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Answer:
        if not isinstance(data, Mapping):
            raise VerbandError("answer is not an object")
        try:
            return cls(
                id=int(_lookup(data, "id") or 0),
                question_id=int(_lookup(data, "questionId") or 0),
                text=str(_lookup(data, "text") or ""),
            )
        except (TypeError, ValueError) as exc:
            raise VerbandError(f"invalid answer: {exc}") from exc


def _lookup(data: Any, key: str) -> Any:
    """Return a field of a JSON object, matching the key case-insensitively."""
    if not isinstance(data, Mapping):
        return None
    if key in data:
        return data[key]
    wanted = key.lower()
    for name, value in data.items():
        if isinstance(name, str) and name.lower() == wanted:
            return value
    return None


def find_by_question_id(answers: Iterable[Answer], question_id: int) -> Answer:
    """Return the first answer to a question, or an empty answer."""
    return next((answer for answer in answers if answer.question_id == question_id), Answer())


def sort_vereine(vereine: list[Verein]) -> None:
    """Sort clubs in place by federal state, city and name."""
    vereine.sort(key=lambda verein: (verein.bundesland, verein.stadt, verein.name))


def normalize_url(input_url: str) -> str:
    """Give a web address a scheme (https by default) and a path."""
    text = input_url.strip()
    try:
        parts = urlsplit(text)
    except ValueError as exc:
        raise VerbandError(f"invalid url {text!r}: {exc}") from exc
    if not parts.netloc and not parts.scheme:
        return normalize_url("https://" + text)
    return urlunsplit(
        (parts.scheme or "https", parts.netloc, parts.path or "/", parts.query, parts.fragment)
    )


def _parse_members(text: str) -> int:
    text = text.strip()
    return int(text) if _INTEGER.fullmatch(text) else 0


def extract_vereine_list(response: Mapping[str, Any]) -> tuple[list[Verein], list[VereinDetail]]:
    """Collect the clubs that agreed to be listed from a form submissions response."""
    data = _lookup(_lookup(response, "ocs"), "data")
    vereine: list[Verein] = []
    details: list[VereinDetail] = []
    for submission in _lookup(data, "submissions") or []:
        answers = [Answer.from_dict(item) for item in _lookup(submission, "answers") or []]

        def text(question_id: int) -> str:
            return find_by_question_id(answers, question_id).text

        if "Ja" not in text(_QUESTION_PUBLISH):
            continue
        try:
            webseite = normalize_url(text(_QUESTION_WEBSITE))
        except VerbandError:
            webseite = ""
        bundesland = text(_QUESTION_STATE).strip()
        stadt = text(_QUESTION_CITY).strip()
        name = text(_QUESTION_NAME).strip()
        vereine.append(Verein(bundesland=bundesland, stadt=stadt, name=name, webseite=webseite))
        details.append(
            VereinDetail(
                bundesland=bundesland,
                stadt=stadt,
                name=name,
                webseite=webseite,
                mitglieder=_parse_members(text(_QUESTION_MEMBERS)),
            )
        )
    return vereine, details


def aggregate_vereine_by_bundesland(vereine: Iterable[Verein]) -> dict[str, int]:
    """Count clubs per federal state."""
    return dict(Counter(verein.bundesland for verein in vereine))


def aggregate_mitglieder_by_bundesland(vereine: Iterable[VereinDetail]) -> dict[str, int]:
    """Sum up members per federal state."""
    totals: dict[str, int] = {}
    for verein in vereine:
        totals[verein.bundesland] = totals.get(verein.bundesland, 0) + verein.mitglieder
    return totals


class VerbandClient:
    """Reads the club registration form of a Nextcloud instance."""

    def __init__(
        self,
        url: str,
        form_id: str,
        user: str,
        password: str,
        timeout: float | None = 30.0,
    ) -> None:
        self.url = url
        self.form_id = form_id
        self.user = user
        self.password = password
        self.timeout = timeout

    def _fetch(self) -> Any:
        credentials = base64.b64encode(f"{self.user}:{self.password}".encode("utf-8")).decode("ascii")
        request = urllib.request.Request(
            self.url + _SUBMISSIONS_PATH + self.form_id,
            method="GET",
            headers={
                "Authorization": "Basic " + credentials,
                "OCS-APIRequest": "true",
                "Accept": "application/json",
            },
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = response.status
                body = response.read()
        except urllib.error.HTTPError as exc:
            raise VerbandError(f"could not get vereine: status {exc.code}") from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise VerbandError(f"could not send request: {exc}") from exc
        if status != 200:
            raise VerbandError(f"could not get vereine: status {status}")
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise VerbandError(f"could not parse response: {exc}") from exc

    def get_vereine(self) -> tuple[list[Verein], list[VereinDetail]]:
        """Fetch the listed clubs, sorted, together with their details."""
        response = self._fetch()
        meta = _lookup(_lookup(response, "ocs"), "meta")
        if _lookup(meta, "status") != "ok":
            raise VerbandError(f"could not get vereine: {_lookup(meta, 'message') or ''}")
        vereine, details = extract_vereine_list(response)
        sort_vereine(vereine)
        return vereine, details

    def vereine_by_bundesland(self) -> tuple[dict[str, int], dict[str, int]]:
        """Return the number of clubs and of members per federal state."""
        vereine, details = self.get_vereine()
        return aggregate_vereine_by_bundesland(vereine), aggregate_mitglieder_by_bundesland(details)

    def bundesland_info(self) -> dict[str, Bundesland]:
        """Return club and member counts for every federal state with a club."""
        vereine, mitglieder = self.vereine_by_bundesland()
        return {
            name: Bundesland(vereine=count, mitglieder=mitglieder.get(name, 0))
            for name, count in vereine.items()
        }


def _as_list(items: Sequence[Any]) -> list[Any]:
    return list(items)