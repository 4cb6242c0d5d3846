"""Pip/price conversion — pure functions, no I/O.

The backend sometimes sends trade-plan prices as pip offsets embedded in
text (``"$2.00"``, ``"$-5.00"``) relative to the liquidity-grab level quoted
in a confluence description.  Everything that parses those strings lives
here so callers only ever see absolute, formatted prices (or the raw text
when no anchor is available).
"""

import re
from typing import Iterable, Optional

from setupdesk.backend.models import Confluence, Instrument

ANCHOR_CONFLUENCE = "LIQUIDITY_GRAB"

# First decimal number in a description, e.g. "$2,648.35" or "1.08420".
_ANCHOR_RE = re.compile(r"(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+\.\d+)")

# A bare price/offset string: optional "$", optional sign, digits.
_OFFSET_RE = re.compile(r"^\s*\$?\s*([+-]?)\s*\$?\s*(\d+(?:,\d{3})*(?:\.\d+)?)\s*$")

# An unsigned number within this share of the anchor is already an absolute price.
_ABSOLUTE_BAND_RATIO = 0.5


def format_price(value: float, instrument: Instrument) -> str:
    """Format *value* as ``$`` + price at the instrument's precision."""
    return f"${value:.{instrument.precision}f}"


def extract_anchor(confluences: Iterable[Confluence]) -> Optional[float]:
    """Return the anchor price quoted by the first liquidity-grab confluence.

    Only the first number in the description is used, even when the text
    quotes several prices.

    Returns:
        The anchor price, or ``None`` when no liquidity grab is present or
        its description holds no decimal number.
    """
    for conf in confluences:
        if conf.type != ANCHOR_CONFLUENCE:
            continue
        match = _ANCHOR_RE.search(conf.description or "")
        if match is None:
            return None
        return float(match.group(1).replace(",", ""))
    return None


def _parse_signed(text: str) -> Optional[float]:
    match = _OFFSET_RE.match(text)
    if match is None:
        return None
    value = float(match.group(2).replace(",", ""))
    return -value if match.group(1) == "-" else value


def convert_offset(
    text: Optional[str],
    anchor: Optional[float],
    instrument: Instrument,
) -> Optional[str]:
    """Convert a signed pip-offset string into an absolute price string.

    Formula::

        price = anchor + offset_pips × pip_size

    Args:
        text: Offset as sent by the backend, e.g. ``"$-5.00"``.
        anchor: Reference price from :func:`extract_anchor`.
        instrument: Supplies pip size and display precision.

    Returns:
        The formatted absolute price, or *text* unchanged when there is no
        anchor or *text* is not a plain number.
    """
    if text is None or anchor is None:
        return text
    offset = _parse_signed(text)
    if offset is None:
        return text
    return format_price(anchor + offset * instrument.pip_size, instrument)


def resolve_price(
    text: Optional[str],
    confluences: Iterable[Confluence],
    instrument: Instrument,
) -> Optional[str]:
    """Render a trade-plan price string as an absolute price where possible.

    Strings that already carry an absolute price (an unsigned number within
    half the anchor of the anchor itself) are passed through, as is
    everything when no anchor exists.  Anything else is a pip offset.
    """
    if text is None:
        return None
    anchor = extract_anchor(confluences)
    if anchor is None:
        return text
    value = _parse_signed(text)
    if value is None:
        return text
    if value > 0 and abs(value - anchor) <= anchor * _ABSOLUTE_BAND_RATIO:
        return text
    return convert_offset(text, anchor, instrument)


def parse_price(text: Optional[str]) -> Optional[float]:
    """Parse a rendered price string (``"$2650.40"``) back to a float.

    Returns ``None`` for text that is not a plain price.
    """
    if text is None:
        return None
    return _parse_signed(text)
