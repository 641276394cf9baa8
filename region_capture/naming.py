"""Filenames, captions and URL list parsing."""

import datetime
import re
from typing import List, Optional

from .models import MODE_LABELS, Theme

SCHEME_PATTERN = re.compile(r'^https?://', re.IGNORECASE)
UNSAFE_PATTERN = re.compile(r'[^\w.-]+')
URL_SPLIT_PATTERN = re.compile(r'[,\s]+')
MAX_NAME_LENGTH = 80


def parse_urls(text: str) -> List[str]:
    """Split a comma, space or newline separated URL list, dropping blanks."""
    return [part.strip() for part in URL_SPLIT_PATTERN.split(text or '') if part.strip()]


def date_stamp(now: Optional[datetime.datetime] = None) -> str:
    """UTC date used in filenames and captions, e.g. ``2024-05-01``."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.strftime("%Y-%m-%d")


def url_slug(url: str) -> str:
    """URL without scheme, unsafe characters collapsed to ``_``, truncated."""
    return UNSAFE_PATTERN.sub('_', SCHEME_PATTERN.sub('', url))[:MAX_NAME_LENGTH]


def capture_filename(url: str, mode: str, date_tag: str) -> str:
    return f"{url_slug(url)}-{mode}-{date_tag}.png"


def capture_title(prefix: str, mode: str, theme: Theme) -> str:
    label = MODE_LABELS.get(mode, mode)
    return f"{prefix} • {label} • {'dark' if theme.dark else 'light'}"


def capture_caption(url: str, mode: str, date_tag: str) -> str:
    label = MODE_LABELS.get(mode, mode)
    return f"{label[0].upper()}{label[1:]} snapshot of <{url}> - {date_tag}"
