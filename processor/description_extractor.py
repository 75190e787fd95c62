"""Deterministic extraction of wine and food lists from event descriptions."""
import re
from dataclasses import dataclass, field
from typing import List

from bs4 import BeautifulSoup

MAX_HEADER_LENGTH = 60
MIN_PROSE_LENGTH = 120

WINE_KEYWORDS = ('vinuri', 'lista vinuri', 'vinurile', 'degustam', 'degustăm', 'line-up', 'wines', 'wine list')
FOOD_KEYWORDS = ('meniu', 'mancare', 'mâncare', 'pairing', 'food', 'gustare', 'preparate')
STOP_MARKERS = ('locuri limita', 'pret', 'preț', 'cost')
STOP_PREFIXES = ('rezerv', 'data:')
STOP_SYMBOLS = ('🎟️', '📅')
FLUFF_PREFIXES = ('seara', 'te asteptam', 'te așteptăm', 'ideea', 'vom', 'pentru', 'haide')

_BLOCK_END_RE = re.compile(r'<br\s*/?>|</p>|</li>|</div>|</h[1-6]>', re.IGNORECASE)
_BULLET_RE = re.compile(r'^(\d+\.|-|•|\*|\+)\s*')
_PRICE_ONLY_RE = re.compile(r'^\d+\s*(lei|ron)$', re.IGNORECASE)


@dataclass
class ExtractedLists:
    """Wine and food items found in a description."""
    wines: List[str] = field(default_factory=list)
    foods: List[str] = field(default_factory=list)


def normalize_to_lines(html: str) -> List[str]:
    """Convert an HTML description into trimmed, non-empty text lines."""
    if not html:
        return []

    processed = _BLOCK_END_RE.sub('\n', html)
    text = BeautifulSoup(processed, 'html.parser').get_text()

    lines = []
    for line in text.split('\n'):
        line = re.sub(r'\s+', ' ', line.strip())
        if line:
            lines.append(line)
    return lines


def is_wine_header(line: str) -> bool:
    if len(line) > MAX_HEADER_LENGTH:
        return False
    lower = line.lower()
    return any(keyword in lower for keyword in WINE_KEYWORDS)


def is_food_header(line: str) -> bool:
    if len(line) > MAX_HEADER_LENGTH:
        return False
    lower = line.lower()
    return any(keyword in lower for keyword in FOOD_KEYWORDS)


def is_stop_line(line: str) -> bool:
    """Footer, pricing and reservation lines, or a closing prose paragraph, end a list."""
    lower = line.lower()
    if any(marker in lower for marker in STOP_MARKERS):
        return True
    if lower.startswith(STOP_PREFIXES):
        return True
    if any(symbol in line for symbol in STOP_SYMBOLS):
        return True
    return len(line) > MIN_PROSE_LENGTH and line.endswith(('.', '!'))


def is_valid_item(line: str) -> bool:
    if len(line) < 3:
        return False
    if line.lower().startswith(FLUFF_PREFIXES):
        return False
    return not _PRICE_ONLY_RE.match(line)


def clean_item(line: str) -> str:
    """Strip leading bullets and list numbering."""
    return _BULLET_RE.sub('', line).strip()


def extract_wines_and_foods(description: str) -> ExtractedLists:
    """
    Extract wine and food line items from an event description.

    Headers switch the current section and are not items themselves; stop
    lines close the section.

    Args:
        description: Raw HTML or plain-text description

    Returns:
        ExtractedLists with wines and foods in document order
    """
    result = ExtractedLists()
    section = None

    for line in normalize_to_lines(description):
        if is_wine_header(line):
            section = 'wine'
            continue
        if is_food_header(line):
            section = 'food'
            continue

        if section is None:
            continue

        if is_stop_line(line):
            section = None
            continue

        if is_valid_item(line):
            item = clean_item(line)
            if section == 'wine':
                result.wines.append(item)
            else:
                result.foods.append(item)

    return result
