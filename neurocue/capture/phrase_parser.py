"""
Phrase File Parser

Parses trigger phrase sets from a markdown file so deployments can tune
phrasing (and common mis-transcriptions) without touching code.

Format:

    ## Start
    - "start chart"
    - `begin chart`

    ## Stop
    - "end chart"

    ## Wake
    - "hey neuro"

    ## Intent
    - "create a chart"
"""

import re
from pathlib import Path
from typing import Dict, List

# Section header aliases -> phrase set name
SECTION_ALIASES = {
    "start": "start",
    "start_phrases": "start",
    "begin": "start",
    "stop": "stop",
    "stop_phrases": "stop",
    "end": "stop",
    "wake": "wake",
    "wake_phrases": "wake",
    "wake_words": "wake",
    "intent": "intent",
    "intent_phrases": "intent",
    "intents": "intent",
}


def _normalize_section(raw_section: str) -> str:
    """Normalize section name to lowercase with underscores"""
    normalized = re.sub(r'[^a-zA-Z0-9\s_]', '', raw_section.lower())
    normalized = re.sub(r'\s+', '_', normalized.strip())
    return normalized


def _extract_phrase(line: str) -> str:
    """Pull a quoted or back-ticked phrase from a list item, or ''."""
    quote_match = re.match(r'^[-*]\s*["\']([^"\']+)["\']', line)
    if quote_match:
        return quote_match.group(1).strip()

    backtick_match = re.match(r'^[-*]?\s*`([^`]+)`', line)
    if backtick_match:
        return backtick_match.group(1).strip()

    return ""


def parse_phrases(content: str) -> Dict[str, List[str]]:
    """
    Parse phrase-set markdown into {"start": [...], "stop": [...], ...}.

    Phrases outside a recognised section are ignored, as are duplicates
    (case-insensitive) within a section.
    """
    phrases: Dict[str, List[str]] = {"start": [], "stop": [], "wake": [], "intent": []}
    seen: Dict[str, set] = {key: set() for key in phrases}
    current = None

    for line in content.split('\n'):
        line_stripped = line.strip()

        if not line_stripped or line_stripped.startswith('<!--'):
            continue

        if line_stripped.startswith('#'):
            header = line_stripped.lstrip('#').strip()
            current = SECTION_ALIASES.get(_normalize_section(header))
            continue

        if current is None:
            continue

        phrase = _extract_phrase(line_stripped)
        if not phrase:
            continue

        key = phrase.lower()
        if key not in seen[current]:
            seen[current].add(key)
            phrases[current].append(phrase)

    return phrases


def parse_phrase_file(md_path: str) -> Dict[str, List[str]]:
    """
    Parse a phrase-set markdown file.

    Raises:
        FileNotFoundError: if the file does not exist
    """
    path = Path(md_path)
    if not path.exists():
        raise FileNotFoundError(f"Phrase file not found: {md_path}")

    return parse_phrases(path.read_text(encoding='utf-8'))
