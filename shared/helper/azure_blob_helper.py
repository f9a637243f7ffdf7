"""Small helpers shared by the Azure Blob REST clients."""

from email.utils import parsedate_to_datetime
from datetime import datetime
from urllib.parse import parse_qsl, quote

AZURE_STORAGE_API_VERSION = "2021-08-06"


def parse_sas_token(sas_token: str) -> dict[str, str]:
    """Split a SAS token ("sv=...&sig=..." with or without leading "?") into query params."""
    return dict(parse_qsl(sas_token.strip().lstrip("?"), keep_blank_values=True))


def blob_path(container: str, blob_name: str) -> str:
    return f"/{quote(container)}/{quote(blob_name, safe='')}"


def parse_last_modified(header_value: str | None) -> datetime | None:
    if not header_value:
        return None
    try:
        return parsedate_to_datetime(header_value)
    except (TypeError, ValueError):
        return None
