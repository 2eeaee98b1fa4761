"""Stage 1: HTML to structured plain text, keeping tables as delimited blocks."""

from __future__ import annotations

import html as html_lib
import logging
import re

from receiptsieve.models import NormalizedEmailText, RawEmailMessage, Table

logger = logging.getLogger(__name__)

TABLE_START = "=== TABLE ==="
TABLE_END = "=== END TABLE ==="
TABLE_RULE = "-" * 50

# Closing tags that end a visual line; paragraphs and headings end a block.
_LINE_TAGS = ("br", "div", "tr", "li", "table", "tbody", "thead")
_BLOCK_TAGS = ("p", "h1", "h2", "h3", "h4", "h5", "h6")


def parse_email_html(html: str | None) -> NormalizedEmailText:
    """Convert an HTML email body to clean text while preserving table layout.

    Tables are rendered before the remaining markup is stripped so that price
    and item columns survive. Never raises: unparseable markup falls back to a
    plain tag strip without table detection.
    """
    if not html or not html.strip():
        return NormalizedEmailText()

    if "<" not in html:
        return NormalizedEmailText(text=_collapse_whitespace(html_lib.unescape(html)))

    try:
        return _parse_with_soup(html)
    except Exception as e:  # bs4/lxml internals on pathological input
        logger.warning("HTML parsing failed, using loose tag strip: %s", e)
        return NormalizedEmailText(text=_loose_strip(html))


def _parse_with_soup(html: str) -> NormalizedEmailText:
    from bs4 import BeautifulSoup, NavigableString

    soup = BeautifulSoup(html, "lxml")

    for tag in soup.find_all(["style", "script", "head", "title"]):
        tag.decompose()

    # A table holding other tables is layout, not data: only innermost tables
    # become blocks, the wrappers are unwrapped afterwards.
    all_tables = soup.find_all("table")
    layout = [t for t in all_tables if t.find("table") is not None]
    layout_ids = {id(t) for t in layout}
    tables: list[Table] = []
    for table_tag in all_tables:
        if id(table_tag) in layout_ids:
            continue
        table = _parse_table(table_tag)
        if table.headers or table.rows:
            tables.append(table)
            table_tag.replace_with(NavigableString(_render_table(table)))
    for table_tag in layout:
        table_tag.unwrap()

    for br in soup.find_all("br"):
        br.replace_with(NavigableString("\n"))
    for tag in soup.find_all(_LINE_TAGS):
        tag.append(NavigableString("\n"))
    for tag in soup.find_all(_BLOCK_TAGS):
        tag.append(NavigableString("\n\n"))
    for cell in soup.find_all(["td", "th"]):
        cell.append(NavigableString(" "))

    text = soup.get_text()
    return NormalizedEmailText(
        text=_collapse_whitespace(text),
        has_structured_data=bool(tables),
        tables=tables,
    )


def _parse_table(table_tag) -> Table:
    """Extract headers and rows from a single (innermost) table element."""
    headers: list[str] = []
    rows: list[list[str]] = []

    thead = table_tag.find("thead")
    if thead is not None:
        headers = [t for t in (_cell_text(th) for th in thead.find_all(["th", "td"])) if t]

    for tr in table_tag.find_all("tr"):
        if thead is not None and tr.find_parent("thead") is thead:
            continue
        cells = _cell_texts(tr)
        if not cells or not any(cells):
            continue
        if not headers and not rows:
            headers = cells
        else:
            rows.append(cells)

    return Table(headers=headers, rows=rows)


def _cell_texts(tr) -> list[str]:
    return [_cell_text(c) for c in tr.find_all(["td", "th"])]


def _cell_text(cell) -> str:
    return re.sub(r"\s+", " ", cell.get_text(" ").replace("\xa0", " ")).strip()


def _render_table(table: Table) -> str:
    lines = ["", TABLE_START]
    if table.headers:
        lines.append(" | ".join(table.headers))
        lines.append(TABLE_RULE)
    for row in table.rows:
        lines.append(" | ".join(row))
    lines.append(TABLE_END)
    lines.append("")
    return "\n".join(lines)


def _loose_strip(html: str) -> str:
    """Regex-only approximation used when the parser gives up."""
    text = re.sub(r"<(style|script)[^>]*>.*?</\1>", "", html, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<br\s*/?>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(p|h[1-6])>", "\n\n", text, flags=re.IGNORECASE)
    text = re.sub(r"</(div|tr|li)>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]*>?", " ", text)
    return _collapse_whitespace(html_lib.unescape(text))


def _collapse_whitespace(text: str) -> str:
    text = text.replace("\xa0", " ").replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def email_body_text(message: RawEmailMessage) -> NormalizedEmailText:
    """Pick the most useful body for extraction.

    HTML with tables wins because the plain-text alternative of most receipts
    loses the column layout; otherwise the text part is preferred.
    """
    parsed = parse_email_html(message.html_body)
    if parsed.has_structured_data:
        return parsed
    if message.text_body and message.text_body.strip():
        return NormalizedEmailText(text=_collapse_whitespace(message.text_body))
    return parsed
