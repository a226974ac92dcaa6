"""Text sanitization utilities."""

import re


def sanitize_text(text: str | None, max_length: int = 500) -> str | None:
    """
    Sanitize untrusted text fields.

    Removes control characters, collapses runs of whitespace and truncates
    to max_length. Apply to: company names, business summaries, officer
    titles, industry labels, any free-text field from an upstream payload.

    Args:
        text: Text to sanitize (may be None)
        max_length: Maximum length before truncation

    Returns:
        Sanitized text or None if input was None
    """
    if text is None:
        return None

    text = str(text)

    # Control characters become spaces so words separated by \n stay separated
    text = re.sub(r"[\x00-\x1f\x7f-\x9f]", " ", text)
    text = re.sub(r"\s+", " ", text)

    if len(text) > max_length:
        text = text[:max_length].rstrip() + "..."

    return text.strip()
