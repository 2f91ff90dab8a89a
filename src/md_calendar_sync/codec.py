"""
Record codec: front-matter header plus free-form Markdown body.

A document looks like::

    ---
    color: "#FF039BE5"
    reminder: "2026-02-20 10:00"
    title: "Dentist"
    all_day: false
    ---

    Bring the insurance card.

Header values are decoded with PyYAML one key block at a time, so a single
malformed line never costs the rest of the header.  Keys the engine does not
understand are kept as raw text and written back untouched.
"""

import logging
import re
from datetime import date
from datetime import datetime
from datetime import time

import yaml

from md_calendar_sync.models import Record

_logger = logging.getLogger(__name__)

DELIMITER = "---"

KNOWN_KEYS = (
    "title",
    "start",
    "reminder",
    "end",
    "all_day",
    "location",
    "timezone",
    "color",
    "attendees",
    "reminders",
    "tags",
    "recurrence",
    "override_id",
    "system_id",
)

# Free-text keys, read as written rather than type-resolved.
TEXT_KEYS = ("title", "location", "timezone", "recurrence", "override_id")

# Header keys that tie a file to the System Store or to a point in time.
CALENDAR_FIELD_KEYS = ("start", "reminder", "end", "system_id", "recurrence", "override_id")

# A top-level "key: value" line; anything indented belongs to the key above it.
_KEY_LINE_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_\-]*)\s*:(.*)$")

# Recognised prefixes used to synthesize a header when delimiters are missing.
_FALLBACK_PREFIX_RE = re.compile(r"^(" + "|".join(KNOWN_KEYS) + r")\s*:", re.IGNORECASE)

_SCHEDULE_LINE_RE = re.compile(r"^(reminder|start)\s*:", re.IGNORECASE | re.MULTILINE)

_COLOR_RE = re.compile(r"#([0-9A-Fa-f]{8}|[0-9A-Fa-f]{6})(?![0-9A-Fa-f])")

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%dT%H:%M:%S",
)


# ---------------------------------------------------------------------------
# Scalar helpers
# ---------------------------------------------------------------------------


def parse_color(value) -> int | None:
    """Parse ``#RRGGBB`` / ``#AARRGGBB`` (or an int) into an ARGB int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value & 0xFFFFFFFF
    match = _COLOR_RE.search(str(value))
    if not match:
        return None
    digits = match.group(1)
    parsed = int(digits, 16)
    if len(digits) == 6:
        parsed |= 0xFF000000
    return parsed


def format_color(value: int) -> str:
    return f"#{value & 0xFFFFFFFF:08X}"


def format_datetime(value: datetime) -> str:
    if value.second or value.microsecond:
        return value.strftime("%Y-%m-%d %H:%M:%S")
    return value.strftime("%Y-%m-%d %H:%M")


def parse_datetime(value) -> tuple[datetime | None, bool]:
    """
    Decode a header date value.

    Returns ``(naive local datetime, date_only)``; ``(None, False)`` when the
    value cannot be understood.
    """
    if value is None:
        return None, False
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value, False
    if isinstance(value, date):
        return datetime.combine(value, time()), True

    text = _unquote(str(value).strip())
    if _DATE_ONLY_RE.match(text):
        try:
            return datetime.combine(date.fromisoformat(text), time()), True
        except ValueError:
            return None, False
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt), False
        except ValueError:
            continue
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        _logger.debug(f"Unparseable date value: {text!r}")
        return None, False
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed, False


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def _quote_list(values) -> str:
    return "[" + ", ".join(_quote(str(v)) for v in values) + "]"


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


def _as_text(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    text = str(value).strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    return [_unquote(part.strip()) for part in text.split(",") if part.strip()]


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "yes", "1")


def _as_int(value) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    text = _unquote(str(value).strip())
    return int(text) if text.lstrip("-").isdigit() else None


# ---------------------------------------------------------------------------
# Document structure
# ---------------------------------------------------------------------------


def _split(content: str) -> tuple[list[str] | None, str, bool]:
    """
    Split a document into ``(header lines, remainder, delimited)``.

    ``header lines`` is None when the document has no recognisable header.
    """
    lines = content.replace("\r\n", "\n").split("\n")
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1

    if start < len(lines) and lines[start].rstrip() == DELIMITER:
        for end in range(start + 1, len(lines)):
            if lines[end].rstrip() == DELIMITER:
                return lines[start + 1 : end], "\n".join(lines[end + 1 :]), True

    # No delimited header: collect leading lines that look like known keys.
    end = start
    while end < len(lines):
        line = lines[end]
        if _FALLBACK_PREFIX_RE.match(line):
            end += 1
        elif end > start and line[:1] in (" ", "\t") and line.strip():
            end += 1
        else:
            break
    if end == start:
        return None, "\n".join(lines), False
    return lines[start:end], "\n".join(lines[end:]), False


def _iter_blocks(header_lines: list[str]):
    """Yield ``(key, raw block text)`` for every top-level key in the header."""
    key = None
    block: list[str] = []
    for line in header_lines:
        match = _KEY_LINE_RE.match(line)
        if match:
            if key is not None:
                yield key, _join_block(block)
            key, block = match.group(1), [line]
        elif key is not None:
            block.append(line)
        elif line.strip():
            _logger.debug(f"Dropping header line outside any key: {line!r}")
    if key is not None:
        yield key, _join_block(block)


def _join_block(block: list[str]) -> str:
    while len(block) > 1 and not block[-1].strip():
        block.pop()
    return "\n".join(block)


def _decode_block(raw: str):
    """Decode one ``key: value`` block; falls back to the raw text on YAML errors."""
    try:
        loaded = yaml.safe_load(raw)
    except yaml.YAMLError:
        loaded = None
    else:
        if isinstance(loaded, dict) and len(loaded) == 1:
            return next(iter(loaded.values()))
    _, _, rest = raw.partition(":")
    return _unquote(rest.strip()) or None


def _decode_text_block(raw: str) -> str | None:
    """
    Decode a free-text value without YAML 1.1 type resolution.

    A plain single-line value is taken as written, so ``no``, ``10:30`` and
    ``Meeting #3`` stay text.  Quoted or multi-line values go through
    ``BaseLoader``, which resolves escapes but leaves every scalar a string.
    """
    _, _, rest = raw.partition(":")
    value = rest.strip()
    if not value:
        return None
    if "\n" not in value and value[0] not in "\"'[{|>":
        return value
    try:
        loaded = yaml.load(raw, Loader=yaml.BaseLoader)
    except yaml.YAMLError:
        loaded = None
    else:
        if isinstance(loaded, dict) and len(loaded) == 1:
            return _as_text(next(iter(loaded.values())))
    return _unquote(value)


def _body(remainder: str) -> str:
    lines = remainder.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    return "\n".join(lines).rstrip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse(content: str) -> Record:
    """Parse a document into a Record (link fields other than system_id unset)."""
    header_lines, remainder, _ = _split(content)
    record = Record(body=_body(remainder))
    if header_lines is None:
        return record

    values: dict[str, tuple[str, object]] = {}
    for key, raw in _iter_blocks(header_lines):
        name = key.lower()
        if name in TEXT_KEYS:
            values[name] = (raw, _decode_text_block(raw))
        elif name in KNOWN_KEYS:
            values[name] = (raw, _decode_block(raw))
        else:
            record.metadata[key] = raw

    def value(name):
        return values[name][1] if name in values else None

    record.title = _as_text(value("title")) or ""

    # reminder and start name the same field; reminder wins
    start_value = value("reminder")
    if start_value is None:
        start_value = value("start")
    record.start, date_only = parse_datetime(start_value)
    record.end, _ = parse_datetime(value("end"))
    record.all_day = date_only or (_as_bool(value("all_day")) if "all_day" in values else False)

    record.location = _as_text(value("location"))
    record.timezone = _as_text(value("timezone"))
    record.recurrence = _as_text(value("recurrence"))
    record.override_id = _as_text(value("override_id"))

    if "color" in values:
        raw, decoded = values["color"]
        # an unquoted "#..." is a YAML comment, so look at the raw line too
        record.color = parse_color(decoded) if decoded is not None else parse_color(raw)

    record.tags = _as_list(value("tags"))
    record.attendees = _as_list(value("attendees"))
    reminders = (_as_int(v) for v in _as_list(value("reminders")))
    record.reminders = [m for m in reminders if m is not None]
    record.system_id = _as_int(value("system_id"))
    return record


def serialize(record: Record) -> str:
    """Render a Record as a document with a deterministic header."""
    lines = [DELIMITER]
    if record.color is not None:
        lines.append(f"color: {_quote(format_color(record.color))}")
    if record.start is not None:
        lines.append(f"reminder: {_quote(format_datetime(record.start))}")
    if record.end is not None:
        lines.append(f"end: {_quote(format_datetime(record.end))}")
    lines.append(f"title: {_quote(record.title)}")
    lines.append(f"all_day: {'true' if record.all_day else 'false'}")
    if record.location is not None:
        lines.append(f"location: {_quote(record.location)}")
    if record.timezone is not None:
        lines.append(f"timezone: {_quote(record.timezone)}")
    if record.tags:
        lines.append(f"tags: {_quote_list(record.tags)}")
    if record.attendees:
        lines.append(f"attendees: {_quote_list(record.attendees)}")
    if record.reminders:
        lines.append(f"reminders: {_quote_list(record.reminders)}")
    if record.recurrence is not None:
        lines.append(f"recurrence: {_quote(record.recurrence)}")
    if record.override_id is not None:
        lines.append(f"override_id: {_quote(record.override_id)}")
    if record.system_id is not None:
        lines.append(f"system_id: {record.system_id}")
    lines.extend(record.metadata.values())
    lines.append(DELIMITER)

    text = "\n".join(lines) + "\n"
    if record.body:
        text += "\n" + record.body + "\n"
    return text


def strip_calendar_fields(content: str) -> str:
    """
    Remove date and link keys from a document's header, keeping everything else.

    Used when a task is retired or archived: the note survives, its schedule
    and System Store link do not.
    """
    header_lines, remainder, delimited = _split(content)
    if header_lines is None:
        return content

    kept = [
        raw
        for key, raw in _iter_blocks(header_lines)
        if key.lower() not in CALENDAR_FIELD_KEYS
    ]
    if delimited:
        header = "\n".join([DELIMITER, *kept, DELIMITER])
        return header + "\n" + remainder
    if kept:
        return "\n".join(kept) + "\n" + remainder
    return remainder


def has_schedule_line(content: str) -> bool:
    """True when the document carries a ``reminder:`` or ``start:`` line."""
    return _SCHEDULE_LINE_RE.search(content) is not None


def has_required_metadata(record: Record) -> bool:
    return record.start is not None and bool(record.title)
