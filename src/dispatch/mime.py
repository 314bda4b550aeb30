# src/dispatch/mime.py
"""
MIME message construction for Gmail API sends.

Bodies are always delivered as HTML: plain text is escaped and newlines become
<br>; HTML is sanitized down to a small allow-list of formatting tags. The
subject is RFC 2047 encoded by the email package when it is not ASCII.
Attachments arrive base64-encoded and are attached as-is after decoding.
"""

from __future__ import annotations

import base64
import binascii
import html
import logging
import re
from collections.abc import Iterable
from email.message import EmailMessage
from email.policy import SMTP
from typing import Any

from bs4 import BeautifulSoup

from src.models import Attachment

log = logging.getLogger(__name__)

ALLOWED_TAGS: frozenset[str] = frozenset(
    {"p", "br", "a", "strong", "em", "b", "i", "u", "span", "div", "ul", "ol", "li"}
)
ALLOWED_ATTRS: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "target", "rel"}),
    "span": frozenset({"style"}),
    "div": frozenset({"style"}),
}
_DROP_WITH_CONTENT = ("script", "style")
_PARAGRAPH_STYLE = "margin:0;padding:0;"

_HTML_BODY_RE = re.compile(r"<[a-z][\s\S]*>", re.IGNORECASE)
_JS_SCHEME_RE = re.compile(r"^\s*javascript\s*:", re.IGNORECASE)


def is_html_body(text: str) -> bool:
    return bool(_HTML_BODY_RE.search(text or ""))


def sanitize_html(markup: str) -> str:
    """
    Keep only ALLOWED_TAGS with their ALLOWED_ATTRS.

    script/style elements are removed with their content; any other tag not
    on the allow-list is unwrapped so its text survives. Event-handler
    attributes and javascript: links never survive.
    """
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(_DROP_WITH_CONTENT):
        tag.decompose()

    for tag in soup.find_all(True):
        name = tag.name.lower()
        if name not in ALLOWED_TAGS:
            tag.unwrap()
            continue
        allowed = ALLOWED_ATTRS.get(name, frozenset())
        kept: dict[str, Any] = {}
        for attr, value in tag.attrs.items():
            attr_l = attr.lower()
            if attr_l not in allowed:
                continue
            if isinstance(value, list):
                value = " ".join(value)
            if _JS_SCHEME_RE.match(str(value)):
                continue
            kept[attr_l] = value
        tag.attrs = kept
    return str(soup)


def _inline_paragraph_styles(markup: str) -> str:
    soup = BeautifulSoup(markup, "html.parser")
    for p in soup.find_all("p"):
        if not p.contents:
            p.append(soup.new_tag("br"))
        p["style"] = _PARAGRAPH_STYLE
    return str(soup)


def body_to_html(body: str) -> str:
    if is_html_body(body):
        inner = sanitize_html(body)
    else:
        inner = html.escape(body or "").replace("\r\n", "\n").replace("\n", "<br>")
    return _inline_paragraph_styles(inner)


def build_html_document(body: str) -> str:
    return "".join(
        [
            '<!DOCTYPE html><html><head><meta charset="UTF-8"></head>',
            '<body style="margin:0;padding:0;">',
            '<div style="font-family:sans-serif;font-size:14px;line-height:1.5;color:#222222;">',
            body_to_html(body),
            "</div>",
            "</body></html>",
        ]
    )


def normalize_attachments(raw: Any) -> tuple[Attachment, ...]:
    """
    Coerce loosely-typed attachment payloads into Attachment objects.

    Entries that are not mappings with string filename/mimeType/data are
    dropped, with a warning each, rather than failing the whole message.
    """
    if isinstance(raw, (list, tuple)):
        items: Iterable[Any] = raw
    else:
        return ()

    out: list[Attachment] = []
    for idx, entry in enumerate(items):
        if isinstance(entry, Attachment):
            out.append(entry)
            continue
        if not isinstance(entry, dict):
            log.warning(
                "attachment dropped",
                extra={"index": idx, "reason": f"expected an object, got {type(entry).__name__}"},
            )
            continue
        filename = entry.get("filename")
        mime_type = entry.get("mimeType", entry.get("mime_type"))
        data = entry.get("data")
        missing = [
            key
            for key, value in (("filename", filename), ("mimeType", mime_type), ("data", data))
            if not isinstance(value, str)
        ]
        if missing:
            log.warning(
                "attachment dropped",
                extra={"index": idx, "reason": "missing or non-string " + ", ".join(missing)},
            )
            continue
        out.append(Attachment(filename=filename, mime_type=mime_type, data=data))
    return tuple(out)


def _split_mime_type(mime_type: str) -> tuple[str, str]:
    maintype, sep, subtype = (mime_type or "").strip().lower().partition("/")
    if not sep or not maintype or not subtype:
        return "application", "octet-stream"
    return maintype, subtype


def build_message(
    to: str,
    subject: str,
    body: str,
    attachments: Iterable[Attachment] = (),
) -> EmailMessage:
    """
    Build the outgoing message.

    Raises ValueError when an attachment's data is not valid base64.
    """
    msg = EmailMessage(policy=SMTP)
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(build_html_document(body), subtype="html", charset="utf-8")

    for att in attachments:
        try:
            payload = base64.b64decode(att.data, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"attachment {att.filename!r} is not valid base64") from exc
        maintype, subtype = _split_mime_type(att.mime_type)
        msg.add_attachment(payload, maintype=maintype, subtype=subtype, filename=att.filename)
    return msg


def encode_raw(msg: EmailMessage) -> str:
    """base64url without padding, as the Gmail API ``raw`` field expects."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
