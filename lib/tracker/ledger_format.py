"""
Daily ledger markdown: rendering and parsing.

File layout:
  front matter / title / "## Summary" with a "### Statistics" table /
  "## Tracks" with one pipe table, one row per processed record.

Files begun by older versions hold "### [HH:MM] Artist - Title" blocks under
"## Tracks" instead of table rows; both are parsed into ParsedRow.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from lib.tracker.errors import MalformedArchiveRowError
from lib.tracker.models import ArchiveEntry, ArchiveStatus, DailyStats

logger = logging.getLogger(__name__)

FILE_SUFFIX = "-wwoz-tracks.md"
STATS_HEADING = "### Statistics"
TRACKS_HEADING = "## Tracks"
TABLE_COLUMNS = ["ID", "Time", "Artist", "Title", "Album", "Status", "Confidence", "Spotify", "Scraped"]
TABLE_HEADER = "| " + " | ".join(TABLE_COLUMNS) + " |"
TABLE_SEPARATOR = "|" + "|".join("-" * (len(c) + 2) for c in TABLE_COLUMNS) + "|"

STATUS_LABELS = {
    ArchiveStatus.FOUND: ("✅", "Found"),
    ArchiveStatus.LOW_CONFIDENCE: ("⚠️", "Low Confidence"),
    ArchiveStatus.NOT_FOUND: ("❌", "Not Found"),
    ArchiveStatus.DUPLICATE: ("🔄", "Duplicate"),
}

# (label, DailyStats attribute)
STATS_ROWS = [
    ("Total Tracks", "total"),
    ("Successfully Found", "found"),
    ("Not Found", "not_found"),
    ("Low Confidence", "low_confidence"),
    ("Duplicates", "duplicates"),
]

_SEQ_ID_RE = re.compile(r"^(?P<clock>\d{6})-(?P<seq>\d{3,})$")
_HHMM_RE = re.compile(r"^(?P<h>\d{2}):(?P<m>\d{2})$")
_HHMMSS_RE = re.compile(r"^(?P<h>\d{2}):(?P<m>\d{2}):(?P<s>\d{2})$")
_CONFIDENCE_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)%$")
_LINK_RE = re.compile(r"^\[[^\]]*\]\((?P<url>[^)]*)\)$")
_PAREN_PERCENT_RE = re.compile(r"\((?P<value>\d+(?:\.\d+)?)%")

_LEGACY_HEADER_RE = re.compile(r"^### \[(?P<h>\d{2}):(?P<m>\d{2})\] (?P<artist>.+?) - (?P<title>.+)$")
_LEGACY_FIELD_RE = re.compile(r"^- \*\*(?P<name>[A-Za-z]+)\*\*: (?P<value>.*)$")
_LEGACY_SCRAPED_RE = re.compile(r"(?P<h>\d{2}):(?P<m>\d{2}):(?P<s>\d{2})$")


# =========================
# Parsed rows
# =========================


@dataclass(frozen=True)
class _RowBase:
    hour: int
    minute: int
    artist: str
    title: str
    album: Optional[str]
    status: ArchiveStatus
    confidence: Optional[float]
    link: Optional[str]
    line_no: int

    def unique_key(self, day: date) -> str:
        return unique_key(self.artist, self.title, self.album, day, self.hour, self.minute)


@dataclass(frozen=True)
class TableRow(_RowBase):
    """Current format: one pipe-table line."""
    sequence: int = 0
    scraped_time: str = ""


@dataclass(frozen=True)
class LegacyHeaderRow(_RowBase):
    """Superseded format: a "### [HH:MM] Artist - Title" block."""
    scraped_time: Optional[str] = None


ParsedRow = Union[TableRow, LegacyHeaderRow]


@dataclass
class ParsedLedger:
    rows: List[ParsedRow] = field(default_factory=list)
    stored_stats: Optional[DailyStats] = None
    has_table: bool = False
    malformed: List[MalformedArchiveRowError] = field(default_factory=list)

    @property
    def max_sequence(self) -> int:
        return max((r.sequence for r in self.rows if isinstance(r, TableRow)), default=0)


# =========================
# Keys / paths
# =========================


def cell_text(text: Optional[str]) -> str:
    """Text exactly as it is stored in a table cell (before escaping)."""
    return re.sub(r"[\r\n]+", " ", text or "").strip()


def unique_key(artist: str, title: str, album: Optional[str], day: date, hour: int, minute: int) -> str:
    return f"{cell_text(artist)}|{cell_text(title)}|{cell_text(album)}|{day.isoformat()}|{hour:02d}:{minute:02d}"


def entry_unique_key(entry: ArchiveEntry) -> str:
    song = entry.song
    ts = song.scraped_at
    return unique_key(song.artist, song.title, song.album, ts.date(), ts.hour, ts.minute)


def day_file_path(base_path: str | Path, day: date) -> Path:
    """<base>/YYYY/MM/YYYY-MM-DD-wwoz-tracks.md"""
    return Path(base_path) / f"{day:%Y}" / f"{day:%m}" / f"{day.isoformat()}{FILE_SUFFIX}"


def format_sequence_id(scraped_at: datetime, sequence: int) -> str:
    return f"{scraped_at:%H%M%S}-{sequence:03d}"


# =========================
# Rendering
# =========================


def escape_cell(text: Optional[str]) -> str:
    return cell_text(text).replace("\\", "\\\\").replace("|", "\\|")


def render_row(entry: ArchiveEntry, sequence: int) -> str:
    song = entry.song
    icon, label = STATUS_LABELS[entry.status]
    confidence = f"{entry.match.confidence:.1f}%" if entry.match else "-"
    url = entry.match.track.external_url if entry.match else ""
    link = f"[Open]({url})" if url else "-"
    cells = [
        format_sequence_id(song.scraped_at, sequence),
        f"{song.scraped_at:%H:%M}",
        escape_cell(song.artist),
        escape_cell(song.title),
        escape_cell(song.album),
        f"{icon} {label}",
        confidence,
        escape_cell(link),
        f"{song.scraped_at:%H:%M:%S}",
    ]
    return "| " + " | ".join(cells) + " |"


def render_stats_block(stats: DailyStats) -> List[str]:
    lines = [STATS_HEADING, "", "| Metric | Count |", "|--------|-------|"]
    for label, attr in STATS_ROWS:
        lines.append(f"| {label} | {getattr(stats, attr)} |")
    return lines


def render_template(day: date, created_at: datetime) -> str:
    day_str = day.isoformat()
    day_name = f"{day:%A}"
    lines = [
        "---",
        f'title: "WWOZ Tracks - {day_str}"',
        f'date: "{day_str}"',
        "tags:",
        "  - wwoz",
        "  - music",
        "  - radio",
        "  - new-orleans",
        'type: "daily-archive"',
        "---",
        "",
        f"# WWOZ Tracks - {day_name}, {day:%B} {day.day}, {day.year}",
        "",
        f"This archive contains all tracks scraped from WWOZ's playlist on {day_str}.",
        "",
        "## Summary",
        "",
        f"- **Date**: {day_str}",
        f"- **Day**: {day_name}",
        f"- **Archive Created**: {created_at:%Y-%m-%d %H:%M:%S}",
        "",
        *render_stats_block(DailyStats()),
        "",
        TRACKS_HEADING,
        "",
    ]
    return "\n".join(lines)


# =========================
# Editing (whole-document, line based)
# =========================


def _is_table_line(line: str) -> bool:
    return line.startswith("|")


def _is_track_table_header(line: str) -> bool:
    return [c.strip() for c in line.strip().strip("|").split("|")][:2] == ["ID", "Time"]


def replace_stats_block(text: str, stats: DailyStats) -> str:
    """Overwrite (or insert) the statistics table."""
    lines = text.split("\n")
    block = render_stats_block(stats)

    try:
        start = lines.index(STATS_HEADING)
    except ValueError:
        start = -1

    if start >= 0:
        end = start + 1
        while end < len(lines) and not lines[end].strip():
            end += 1
        while end < len(lines) and _is_table_line(lines[end]):
            end += 1
        lines[start:end] = block
    elif TRACKS_HEADING in lines:
        at = lines.index(TRACKS_HEADING)
        lines[at:at] = block + [""]
    else:
        lines.extend(["", *block])

    return "\n".join(lines)


def append_row(text: str, row_line: str) -> str:
    """Add a row at the end of the tracks table, creating the table if needed."""
    lines = text.split("\n")

    header_at = next((i for i, line in enumerate(lines) if _is_track_table_header(line)), -1)
    if header_at >= 0:
        at = header_at + 1
        while at < len(lines) and _is_table_line(lines[at]):
            at += 1
        lines.insert(at, row_line)
        return "\n".join(lines)

    while lines and not lines[-1].strip():
        lines.pop()
    if TRACKS_HEADING not in lines:
        lines.extend(["", TRACKS_HEADING])
    lines.extend(["", TABLE_HEADER, TABLE_SEPARATOR, row_line, ""])
    return "\n".join(lines)


# =========================
# Parsing
# =========================


def split_row(line: str) -> List[str]:
    """Split a pipe-table line into unescaped cells."""
    s = line.strip()
    if not (s.startswith("|") and s.endswith("|")) or len(s) < 2:
        raise ValueError("not a table row")

    cells: List[str] = []
    buf: List[str] = []
    i = 1
    while i < len(s):
        ch = s[i]
        if ch == "\\" and i + 1 < len(s) and s[i + 1] in "\\|":
            buf.append(s[i + 1])
            i += 2
            continue
        if ch == "|":
            cells.append("".join(buf).strip())
            buf = []
        else:
            buf.append(ch)
        i += 1
    if buf and "".join(buf).strip():
        raise ValueError("unterminated table row")
    return cells


def parse_status(text: str) -> Tuple[ArchiveStatus, Optional[float]]:
    """
    Status cell / legacy status line -> (status, confidence if embedded).

    Accepts "✅ Found" as well as legacy "✅ Found on Spotify (95.0% match)".
    """
    bare = re.sub(r"^[^\w]+", "", text or "").strip()
    low = bare.lower()
    m = _PAREN_PERCENT_RE.search(bare)
    confidence = float(m.group("value")) if m else None

    if low.startswith("not found"):
        return ArchiveStatus.NOT_FOUND, confidence
    if low.startswith("low confidence"):
        return ArchiveStatus.LOW_CONFIDENCE, confidence
    if low.startswith("duplicate") or low.startswith("already in playlist"):
        return ArchiveStatus.DUPLICATE, confidence
    if low.startswith("found"):
        return ArchiveStatus.FOUND, confidence
    raise ValueError(f"unknown status {text!r}")


def parse_table_row(line: str, line_no: int) -> TableRow:
    try:
        cells = split_row(line)
        if len(cells) != len(TABLE_COLUMNS):
            raise ValueError(f"expected {len(TABLE_COLUMNS)} cells, got {len(cells)}")
        seq_id, hhmm, artist, title, album, status_text, confidence_text, link_text, scraped = cells

        seq_m = _SEQ_ID_RE.match(seq_id)
        time_m = _HHMM_RE.match(hhmm)
        scraped_m = _HHMMSS_RE.match(scraped)
        if not seq_m or not time_m or not scraped_m:
            raise ValueError("bad id/time columns")
        if not artist or not title:
            raise ValueError("missing artist or title")

        status, _ = parse_status(status_text)

        confidence = None
        if confidence_text != "-":
            conf_m = _CONFIDENCE_RE.match(confidence_text)
            if not conf_m:
                raise ValueError(f"bad confidence {confidence_text!r}")
            confidence = float(conf_m.group("value"))

        link = None
        if link_text != "-":
            link_m = _LINK_RE.match(link_text)
            link = link_m.group("url") if link_m else link_text
    except ValueError as e:
        raise MalformedArchiveRowError(f"line {line_no}: {e}", line_no=line_no) from e

    return TableRow(
        hour=int(time_m.group("h")),
        minute=int(time_m.group("m")),
        artist=artist,
        title=title,
        album=album or None,
        status=status,
        confidence=confidence,
        link=link,
        line_no=line_no,
        sequence=int(seq_m.group("seq")),
        scraped_time=scraped,
    )


def parse_legacy_block(lines: List[str], start: int) -> Tuple[LegacyHeaderRow, int]:
    """
    Parse one legacy block beginning at lines[start].

    Returns:
        (row, index of the first line after the block)
    """
    header = _LEGACY_HEADER_RE.match(lines[start].rstrip())
    end = start + 1
    fields = {}
    while end < len(lines):
        line = lines[end].rstrip()
        if line.startswith("#") or _is_table_line(line):
            break
        fm = _LEGACY_FIELD_RE.match(line)
        if fm:
            fields[fm.group("name").lower()] = fm.group("value").strip()
        end += 1

    line_no = start + 1
    if not header:
        raise MalformedArchiveRowError(f"line {line_no}: bad legacy header", line_no=line_no)
    if "status" not in fields:
        raise MalformedArchiveRowError(f"line {line_no}: legacy entry without status", line_no=line_no)
    try:
        status, confidence = parse_status(fields["status"])
    except ValueError as e:
        raise MalformedArchiveRowError(f"line {line_no}: {e}", line_no=line_no) from e

    link = None
    if "spotify" in fields:
        link_m = _LINK_RE.match(fields["spotify"])
        link = link_m.group("url") if link_m else None

    scraped = None
    if "scraped" in fields:
        sm = _LEGACY_SCRAPED_RE.search(fields["scraped"])
        scraped = sm.group(0) if sm else None

    row = LegacyHeaderRow(
        hour=int(header.group("h")),
        minute=int(header.group("m")),
        artist=header.group("artist"),
        title=header.group("title"),
        album=fields.get("album") or None,
        status=status,
        confidence=confidence,
        link=link,
        line_no=line_no,
        scraped_time=scraped,
    )
    return row, end


def _parse_stats_table(lines: List[str], start: int) -> Optional[DailyStats]:
    by_label = {label: attr for label, attr in STATS_ROWS}
    values = {}
    i = start + 1
    while i < len(lines) and not lines[i].strip():
        i += 1
    while i < len(lines) and _is_table_line(lines[i]):
        try:
            cells = split_row(lines[i])
        except ValueError:
            cells = []
        if len(cells) == 2 and cells[0] in by_label:
            try:
                values[by_label[cells[0]]] = int(cells[1])
            except ValueError:
                logger.warning(f"[ledger] unreadable stats value on line {i + 1}: {lines[i]!r}")
                return None
        i += 1
    if len(values) != len(STATS_ROWS):
        return None
    return DailyStats(**values)


def parse_ledger(text: str) -> ParsedLedger:
    """
    Parse a whole day file. Malformed rows are collected, never raised.
    """
    parsed = ParsedLedger()
    lines = text.split("\n")
    in_table = False
    i = 0
    while i < len(lines):
        line = lines[i].rstrip()

        if line == STATS_HEADING:
            parsed.stored_stats = _parse_stats_table(lines, i)
            i += 1
            continue

        if _is_track_table_header(line):
            parsed.has_table = True
            in_table = True
            i += 1
            continue

        if in_table and _is_table_line(line):
            if set(line.replace("|", "").strip()) <= set("-: "):
                i += 1
                continue
            try:
                parsed.rows.append(parse_table_row(line, i + 1))
            except MalformedArchiveRowError as e:
                parsed.malformed.append(e)
            i += 1
            continue

        in_table = False
        if line.startswith("### ["):
            try:
                row, i = parse_legacy_block(lines, i)
                parsed.rows.append(row)
            except MalformedArchiveRowError as e:
                parsed.malformed.append(e)
                i += 1
            continue

        i += 1

    return parsed
