"""Allow-list HTML sanitizer for user-generated content."""

from __future__ import annotations

import re
from html.parser import HTMLParser
from urllib.parse import urlsplit

_SKIP_CONTENT = frozenset({"script", "style", "iframe", "object", "embed", "noscript", "title"})
_VOID = frozenset({"br", "hr", "img", "wbr", "col"})
_DIGITS = re.compile(r"^[0-9]+$")

_GLOBAL_ATTRS = {"id": re.compile(r"^[a-zA-Z0-9:\-_.]+$"), "title": None}
_ELEMENT_ATTRS: dict[str, dict[str, re.Pattern[str] | None]] = {
    "a": {"href": None},
    "img": {"src": None, "alt": None, "height": _DIGITS, "width": _DIGITS,
            "loading": re.compile(r"(?i)^(lazy|eager)$")},
    "blockquote": {"cite": None},
    "code": {"class": re.compile(r"^language-[a-zA-Z0-9]+$")},
    "ol": {"start": re.compile(r"^-?[0-9]+$")},
    "td": {"colspan": _DIGITS, "rowspan": _DIGITS},
    "th": {"colspan": _DIGITS, "rowspan": _DIGITS},
}
_ALLOWED = frozenset(_ELEMENT_ATTRS) | frozenset(
    "b br caption del dd div dl dt em h1 h2 h3 h4 h5 h6 hr i ins li p pre s small "
    "span strong sub sup table tbody tfoot thead tr u ul".split()
)
_URL_ATTRS = frozenset({"href", "src", "cite"})


def _escape(text: str) -> str:
    return (
        text.replace("&", "&amp;").replace("'", "&#39;").replace("<", "&lt;")
        .replace(">", "&gt;").replace('"', "&#34;")
    )


def _url_parts(value: str):
    try:
        return urlsplit(value.strip())
    except ValueError:
        return None


class _Sanitizer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.out: list[str] = []
        self._skip = 0
        self._emitted: dict[str, list[bool]] = {}

    def _clean_attrs(self, tag: str, attrs) -> list[tuple[str, str]]:
        allowed = {**_GLOBAL_ATTRS, **_ELEMENT_ATTRS.get(tag, {})}
        cleaned: dict[str, str] = {}
        for name, raw in attrs:
            value = raw or ""
            if name in cleaned or name not in allowed:
                continue
            if name in _URL_ATTRS:
                parts = _url_parts(value)
                if not value.strip() or parts is None or parts.scheme.lower() not in {"", "http", "https", "mailto"}:
                    continue
            elif allowed[name] is not None and not allowed[name].match(value):
                continue
            cleaned[name] = value
        if tag == "a" and "href" in cleaned:
            parts = _url_parts(cleaned["href"])
            if parts and parts.scheme.lower() in {"http", "https"} and parts.netloc:
                cleaned.update(rel="nofollow noopener", target="_blank")
            else:
                cleaned["rel"] = "nofollow"
        return list(cleaned.items())

    def _open(self, tag: str, attrs, self_closing: bool) -> None:
        if tag in _SKIP_CONTENT or self._skip:
            if tag in _SKIP_CONTENT and not self_closing:
                self._skip += 1
            return
        if tag not in _ALLOWED:
            return
        cleaned = self._clean_attrs(tag, attrs)
        emit = bool(cleaned) or tag not in {"a", "span"}
        if not self_closing and tag not in _VOID:
            self._emitted.setdefault(tag, []).append(emit)
        if emit:
            rendered = "".join(f' {name}="{_escape(value)}"' for name, value in cleaned)
            self.out.append(f"<{tag}{rendered}{'/' if self_closing else ''}>")

    def handle_starttag(self, tag, attrs) -> None:
        self._open(tag, attrs, False)

    def handle_startendtag(self, tag, attrs) -> None:
        self._open(tag, attrs, True)

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_CONTENT:
            self._skip = max(0, self._skip - 1)
        elif not self._skip and tag in _ALLOWED:
            stack = self._emitted.get(tag)
            emit = stack.pop() if stack else tag not in {"a", "span"}
            if emit:
                self.out.append(f"</{tag}>")

    def handle_data(self, data: str) -> None:
        if not self._skip:
            self.out.append(_escape(data))


def sanitize_html(text: str) -> str:
    """Strip everything from HTML that is not safe in user-generated content."""
    parser = _Sanitizer()
    parser.feed(text)
    parser.close()
    return "".join(parser.out)