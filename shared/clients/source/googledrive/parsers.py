"""Plain-text rendering of Google Docs and Google Sheets API responses.

Docs headings become Markdown headings so the fragmenter can split on them;
table rows and sheet rows are rendered with " | " between cells, in blocks of
ROWS_PER_BLOCK rows separated by blank lines so the fragmenter can pack them.
"""

HEADING_PREFIXES = {
    "HEADING_1": "# ",
    "HEADING_2": "## ",
    "HEADING_3": "### ",
}
ROWS_PER_BLOCK = 20


def rows_to_blocks(rows: list[str]) -> str:
    blocks = ["\n".join(rows[start: start + ROWS_PER_BLOCK]) for start in range(0, len(rows), ROWS_PER_BLOCK)]
    return "\n\n".join(blocks)


def paragraph_to_text(paragraph: dict) -> str:
    elements = paragraph.get("elements") or []
    text = "".join((element.get("textRun") or {}).get("content", "") for element in elements).strip()
    if not text:
        return ""
    style = (paragraph.get("paragraphStyle") or {}).get("namedStyleType")
    return HEADING_PREFIXES.get(style, "") + text


def table_to_text(table: dict) -> str:
    rows: list[str] = []
    for row in table.get("tableRows") or []:
        cells = []
        for cell in row.get("tableCells") or []:
            parts = [paragraph_to_text(item["paragraph"]) for item in cell.get("content") or [] if "paragraph" in item]
            cells.append(" ".join(part for part in parts if part).strip())
        row_text = " | ".join(cells)
        if row_text.strip(" |"):
            rows.append(row_text)
    return "Table:\n" + rows_to_blocks(rows) if rows else ""


def document_to_text(document: dict) -> str:
    """Render a documents.get response body as text, blocks separated by blank lines."""
    blocks: list[str] = []
    for element in (document.get("body") or {}).get("content") or []:
        if "paragraph" in element:
            text = paragraph_to_text(element["paragraph"])
        elif "table" in element:
            text = table_to_text(element["table"])
        else:
            continue
        if text:
            blocks.append(text)
    return "\n\n".join(blocks).strip()


def spreadsheet_to_text(spreadsheet: dict) -> str:
    """Render a spreadsheets.get (includeGridData=true) response body as text, a titled run of row blocks per sheet."""
    blocks: list[str] = []
    for sheet in spreadsheet.get("sheets") or []:
        title = (sheet.get("properties") or {}).get("title") or "Untitled"
        rows: list[str] = []
        for grid in sheet.get("data") or []:
            for row in grid.get("rowData") or []:
                row_text = " | ".join(cell.get("formattedValue", "") for cell in row.get("values") or [])
                if row_text.strip(" |"):
                    rows.append(row_text)
        if rows:
            blocks.append(f"Sheet: {title}\n" + rows_to_blocks(rows))
    return "\n\n".join(blocks).strip()
