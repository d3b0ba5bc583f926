"""Markdown descriptions: title normalisation, HTML rendering and translation."""

from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from markdown_it import MarkdownIt
from markdown_it.token import Token

from dpvapi.sanitizer import sanitize_html


class TranslationError(RuntimeError):
    """Raised when a translation request fails."""


def fix_title(title: str, text: str) -> str:
    """Make the text start with a level-one heading followed by a blank line.

    If the text has no heading, the given title becomes one.
    """
    lines = text.split("\n")
    first_line = lines[0].strip()
    if not first_line.startswith("#"):
        return "# " + title.strip() + "\n\n" + text
    lines[0] = "# " + first_line.lstrip("#").strip()
    if len(lines) > 1 and lines[1]:
        lines[1] = "\n" + lines[1]
    else:
        lines[0] += "\n\n"
    return "\n".join(lines)


def get_title(text: str) -> str:
    """Return the title of a level-one heading on the first line, or an empty string."""
    line = text.split("\n")[0].strip()
    if line.startswith("# "):
        return line[2:].strip()
    return ""


def _heading_id(text: str) -> str:
    chars: list[str] = []
    future_dash = False
    for char in text:
        if char.isalpha() or char.isnumeric():
            if future_dash and chars:
                chars.append("-")
            future_dash = False
            chars.append(char.lower())
        else:
            future_dash = True
    return "".join(chars) or "empty"


def _inline_text(token: Token) -> str:
    return "".join(
        child.content
        for child in token.children or []
        if child.type in ("text", "code_inline")
    )


def _top_level_blocks(tokens: list[Token]):
    block: list[Token] = []
    depth = 0
    for token in tokens:
        block.append(token)
        depth += token.nesting
        if depth == 0:
            yield block
            block = []
    if block:
        yield block


class _Renderer:
    """Markdown renderer that keeps heading ids unique over its lifetime."""

    def __init__(self) -> None:
        self._md = MarkdownIt("commonmark", {"html": True}).enable(["table", "strikethrough"])
        self._heading_ids: dict[str, int] = {}
        self._lock = threading.Lock()

    def _unique_id(self, ident: str) -> str:
        while ident in self._heading_ids:
            count = self._heading_ids[ident]
            candidate = f"{ident}-{count + 1}"
            if candidate not in self._heading_ids:
                self._heading_ids[ident] = count + 1
                ident = candidate
            else:
                ident += "-1"
        self._heading_ids[ident] = 0
        return ident

    def _decorate_inline(self, token: Token) -> None:
        for child in token.children or []:
            if child.type == "link_open":
                href = str(child.attrGet("href") or "")
                try:
                    absolute = bool(urlsplit(href).scheme)
                except ValueError:
                    absolute = False
                if absolute:
                    child.attrSet("target", "_blank")
                    child.attrSet("rel", "nofollow noreferrer noopener")
            elif child.type == "image":
                child.attrSet("loading", "lazy")

    def render(self, text: str) -> str:
        with self._lock:
            tokens = self._md.parse(text)
            for index, token in enumerate(tokens):
                if token.type == "heading_open" and index + 1 < len(tokens):
                    ident = _heading_id(_inline_text(tokens[index + 1]))
                    token.attrSet("id", self._unique_id(ident))
                elif token.type == "inline":
                    self._decorate_inline(token)
            return "\n".join(
                self._md.renderer.render(block, self._md.options, {})
                for block in _top_level_blocks(tokens)
            )


_renderer = _Renderer()


def render(md: str | bytes) -> str:
    """Render Markdown to sanitised HTML."""
    text = md.decode("utf-8") if isinstance(md, bytes) else md
    return sanitize_html(_renderer.render(text))


def translate_document(
    text: str,
    src_lang: str,
    dest_lang: str,
    deepl_url: str,
    deepl_key: str,
    timeout: float | None = 30.0,
) -> str:
    """Translate text with the DeepL API and return the first translation."""
    try:
        parts = urlsplit(deepl_url)
        query = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError as exc:
        raise TranslationError(f"invalid DeepL url: {exc}") from exc
    query += [
        ("auth_key", deepl_key),
        ("text", text),
        ("source_lang", src_lang),
        ("target_lang", dest_lang),
    ]
    query.sort(key=lambda item: item[0])
    url = urlunsplit(parts._replace(query=urlencode(query)))
    request = urllib.request.Request(
        url, data=b"", method="POST", headers={"User-Agent": "dpv-api"}
    )
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            status = response.status
            body = response.read()
    except urllib.error.HTTPError as exc:
        status = exc.code
        body = exc.read()
    except (urllib.error.URLError, OSError, ValueError) as exc:
        raise TranslationError(f"DeepL request failed: {exc}") from exc

    body_text = body.decode("utf-8", errors="replace")
    if status != 200:
        try:
            message = json.loads(body_text).get("message", "")
        except (json.JSONDecodeError, AttributeError) as exc:
            raise TranslationError(
                f"DeepL request failed with status {status}, decoding error JSON failed: "
                f"{exc}, error message: {body_text}"
            ) from exc
        raise TranslationError(f"DeepL request failed with status {status}: {message}")
    try:
        return json.loads(body_text)["translations"][0]["text"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
        raise TranslationError(
            f"DeepL request failed with status {status}, decoding response JSON failed: "
            f"{exc}, response: {body_text}"
        ) from exc