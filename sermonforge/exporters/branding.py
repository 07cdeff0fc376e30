"""
Church branding applied to exported documents.
Colours are #RRGGBB strings; anything invalid falls back to the defaults.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Optional

from ..lib.validation import (
    DEFAULT_FONT,
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    is_valid_hex_color,
)


# font preference -> (pdf family, docx/pptx family)
FONT_MAP = {
    "inter": ("Helvetica", "Calibri"),
    "roboto": ("Helvetica", "Arial"),
    "open-sans": ("Helvetica", "Arial"),
    "lato": ("Helvetica", "Calibri"),
    "montserrat": ("Helvetica", "Calibri"),
    "poppins": ("Helvetica", "Arial"),
}

PDF_REPLACEMENTS = {
    "“": '"', "”": '"',
    "‘": "'", "’": "'",
    "—": "-", "–": "-",
    "…": "...",
    "°": " degrees ",
    "×": "x",
    "÷": "/",
}


@dataclass
class BrandingOptions:
    church_name: Optional[str] = None
    logo: Optional[bytes] = None
    primary_color: str = DEFAULT_PRIMARY_COLOR
    secondary_color: str = DEFAULT_SECONDARY_COLOR
    font_preference: str = DEFAULT_FONT

    @classmethod
    def from_settings(cls, branding: Optional[dict], logo: Optional[bytes] = None) -> "BrandingOptions":
        """Build from the branding dict stored in users_metadata."""
        branding = branding or {}
        return cls(
            church_name=branding.get("church_name"),
            logo=logo,
            primary_color=normalize_color(branding.get("primary_color"), DEFAULT_PRIMARY_COLOR),
            secondary_color=normalize_color(branding.get("secondary_color"), DEFAULT_SECONDARY_COLOR),
            font_preference=branding.get("font_preference") or DEFAULT_FONT,
        )

    @property
    def pdf_font(self) -> str:
        return FONT_MAP.get(self.font_preference, FONT_MAP[DEFAULT_FONT])[0]

    @property
    def office_font(self) -> str:
        return FONT_MAP.get(self.font_preference, FONT_MAP[DEFAULT_FONT])[1]


def normalize_color(value: Optional[str], fallback: str) -> str:
    if not is_valid_hex_color(value):
        return fallback
    return value.upper()


def hex_to_rgb(value: Optional[str], fallback: tuple = (30, 58, 138)) -> tuple:
    if not is_valid_hex_color(value):
        return fallback
    h = value.lstrip("#")
    return int(h[0:2], 16), int(h[2:4], 16), int(h[4:6], 16)


def lighten(value: str, percent: float = 50) -> str:
    """Move each channel `percent`% of the way to white."""
    r, g, b = hex_to_rgb(value)

    def up(c):
        return min(255, c + int((255 - c) * (percent / 100)))

    return "#{:02X}{:02X}{:02X}".format(up(r), up(g), up(b))


def hex_digits(value: str) -> str:
    """'#1e3a8a' -> '1E3A8A' for python-docx / python-pptx RGBColor.from_string."""
    return value.lstrip("#").upper()


def clean_pdf_text(text: Optional[str]) -> str:
    """
    Make text safe for the built-in PDF fonts: typographic punctuation to ASCII,
    accents stripped, anything else outside ASCII dropped.
    """
    text = str(text or "")
    for char, replacement in PDF_REPLACEMENTS.items():
        text = text.replace(char, replacement)
    text = unicodedata.normalize("NFKD", text)
    text = text.encode("ascii", "ignore").decode("ascii")
    return re.sub(r"\s+", " ", text).strip()


def safe_filename(title: Optional[str], suffix: str) -> str:
    """Every non-alphanumeric character in the title becomes '_'."""
    return re.sub(r"[^A-Za-z0-9]", "_", title or "Sermon") + suffix


def widen_blanks(text: str) -> str:
    return text.replace("_____", "_______________")
