"""LinkedIn profile URL normalization.

Every prospect lookup keys on the canonical form
``https://www.linkedin.com/in/<username>`` (lower-cased username), so the
same person typed as ``linkedin.com/in/JohnDoe/``, a full https URL or a
bare ``@johndoe`` handle always lands on one record.

All functions here are total: they never raise, whatever string comes in.
"""

import re

CANONICAL_PREFIX = "https://www.linkedin.com/in/"

# Tried in order; the first match wins.
_PROFILE_PATTERNS = [
    re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/in/([^/?#]+)", re.IGNORECASE),
    re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/pub/([^/?#]+)", re.IGNORECASE),
]

_IN_MARKER = "linkedin.com/in/"
_SEGMENT_END = re.compile(r"[/?#]")
_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def _clean(url):
    return (url or "").strip().rstrip("/")


def extract_linkedin_username(url):
    """Return the lower-cased profile username, or None if the input is blank."""
    cleaned = _clean(url)
    if not cleaned:
        return None

    for pattern in _PROFILE_PATTERNS:
        match = pattern.search(cleaned)
        if match:
            return match.group(1).lower()

    lowered = cleaned.lower()
    if _IN_MARKER in lowered:
        tail = lowered.split(_IN_MARKER, 1)[1]
        segment = _SEGMENT_END.split(tail, maxsplit=1)[0].strip()
        if segment:
            return segment

    # Company, sales and bare /in/ URLs carry no profile username.
    if "linkedin.com" in lowered:
        return None

    # Anything else is a bare handle: one path segment, scheme dropped.
    handle = _SCHEME.sub("", cleaned.lstrip("@").strip())
    handle = _SEGMENT_END.split(handle, maxsplit=1)[0].strip()
    return handle.lower() or None


def normalize_linkedin_url(url):
    """Canonicalize a user-supplied LinkedIn URL.

    Returns "" for blank input. Normalizing an already-canonical URL
    returns it unchanged.
    """
    username = extract_linkedin_username(url)
    if not username:
        return ""
    return f"{CANONICAL_PREFIX}{username}"


def is_valid_linkedin_url(url):
    """Permissive check: anything mentioning linkedin.com passes."""
    return "linkedin.com" in (url or "").lower()


def same_contact(url_a, url_b):
    """True when two LinkedIn URLs point at the same person."""
    canonical_a = normalize_linkedin_url(url_a)
    canonical_b = normalize_linkedin_url(url_b)
    if canonical_a and canonical_a == canonical_b:
        return True
    username_a = extract_linkedin_username(url_a)
    return username_a is not None and username_a == extract_linkedin_username(url_b)


def ilike_escape(text):
    """Escape LIKE wildcards so user text matches literally (escape char ``\\``)."""
    return (
        (text or "")
        .replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
    )
