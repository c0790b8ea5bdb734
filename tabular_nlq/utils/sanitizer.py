"""
Question preprocessing applied before a question is placed in a prompt.
"""

import re

# Control characters except tab and newline, which collapse to spaces below.
_RE_CONTROL = re.compile(r'[\x00-\x08\x0b-\x1f\x7f]')
_RE_SPACES = re.compile(r'\s+')

DEFAULT_MAX_LENGTH = 2000


def clean_input(raw) -> str:
    """Drop control characters and collapse whitespace; ``None`` becomes ''."""
    if raw is None:
        return ''
    return _RE_SPACES.sub(' ', _RE_CONTROL.sub('', str(raw))).strip()


def is_too_long(question: str, max_len: int = DEFAULT_MAX_LENGTH) -> bool:
    return len(question) > max_len
