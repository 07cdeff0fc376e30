"""
PowerPoint export of sermon notes, built with python-pptx.

16:9 deck (10in x 5.625in): a title slide, one slide per section that
overflows onto "(cont.)" slides, then Discussion Questions and Application
Points slides.
"""

import logging
import math
from io import BytesIO

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Inches, Pt

from ..lib.errors import ExportError
from .branding import BrandingOptions, hex_digits, lighten, widen_blanks


logger = logging.getLogger(__name__)

SLIDE_WIDTH = 10
SLIDE_HEIGHT = 5.625
MAX_Y = 5.0

TEXT = "1F2937"
TEXT_LIGHT = "6B7280"
SUCCESS = "10B981"
WHITE = "FFFFFF"

BLANK_LAYOUT = 6


def _rgb(hex6: str) -> RGBColor:
    return RGBColor.from_string(hex6)


class _Deck:
    """Small drawing helpers over a Presentation."""

    def __init__(self, branding: BrandingOptions):
        self.prs = Presentation()
        self.prs.slide_width = Inches(SLIDE_WIDTH)
        self.prs.slide_height = Inches(SLIDE_HEIGHT)
        self.font = branding.office_font
        self.primary = hex_digits(branding.primary_color)
        self.secondary = hex_digits(branding.secondary_color)
        self.accent = hex_digits(lighten(branding.primary_color, 90))

    def slide(self, background: str = WHITE):
        slide = self.prs.slides.add_slide(self.prs.slide_layouts[BLANK_LAYOUT])
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = _rgb(background)
        return slide

    def rect(self, slide, x, y, w, h, color: str):
        shape = slide.shapes.add_shape(MSO_SHAPE.RECTANGLE, Inches(x), Inches(y), Inches(w), Inches(h))
        shape.fill.solid()
        shape.fill.fore_color.rgb = _rgb(color)
        shape.line.fill.background()
        return shape

    def text(self, slide, text, x, y, w, h, size, color=TEXT, bold=False, italic=False,
             align=PP_ALIGN.LEFT, anchor=MSO_ANCHOR.TOP):
        box = slide.shapes.add_textbox(Inches(x), Inches(y), Inches(w), Inches(h))
        frame = box.text_frame
        frame.word_wrap = True
        frame.vertical_anchor = anchor
        paragraph = frame.paragraphs[0]
        paragraph.alignment = align
        run = paragraph.add_run()
        run.text = text
        run.font.name = self.font
        run.font.size = Pt(size)
        run.font.bold = bold
        run.font.italic = italic
        run.font.color.rgb = _rgb(color)
        return box

    def header_slide(self, title: str, color: str, continued: bool = False):
        slide = self.slide()
        height = 0.8 if continued else 1.0
        self.rect(slide, 0, 0, SLIDE_WIDTH, height, color)
        self.text(
            slide,
            f"{title} (cont.)" if continued else title,
            0.5, 0.15 if continued else 0.2, 9, 0.5 if continued else 0.6,
            24 if continued else 32,
            color=WHITE, bold=True, anchor=MSO_ANCHOR.MIDDLE,
        )
        return slide, (1.1 if continued else 1.3)

    def to_bytes(self) -> bytes:
        buffer = BytesIO()
        self.prs.save(buffer)
        return buffer.getvalue()


def _estimate_height(text: str, chars_per_line: int, line_height: float, minimum: float) -> float:
    lines = math.ceil(len(text) / chars_per_line) if text else 1
    return max(minimum, lines * line_height)


def _title_slide(deck: _Deck, title: str, date: str, branding: BrandingOptions) -> None:
    slide = deck.slide(deck.accent)
    has_logo = False

    if branding.logo:
        try:
            slide.shapes.add_picture(BytesIO(branding.logo), Inches(4.25), Inches(0.3), Inches(1.5), Inches(1.5))
            has_logo = True
        except (ValueError, OSError) as e:
            logger.warning("Skipping logo in PPTX: %s", e)

    if branding.church_name:
        deck.text(
            slide, branding.church_name, 0.5, 1.9 if has_logo else 0.5, 9, 0.5, 16,
            color=TEXT_LIGHT, align=PP_ALIGN.CENTER,
        )

    top = 2.5 if has_logo else (1.5 if branding.church_name else 2.0)
    deck.text(
        slide, title, 0.5, top, 9, 1.5, 40,
        color=deck.primary, bold=True, align=PP_ALIGN.CENTER, anchor=MSO_ANCHOR.MIDDLE,
    )
    deck.rect(slide, 3.5, top + 1.5, 3, 0.03, deck.secondary)
    deck.text(
        slide, date, 0.5, top + 1.6, 9, 0.5, 18,
        color=TEXT_LIGHT, italic=True, align=PP_ALIGN.CENTER,
    )


def _list_slides(deck: _Deck, title: str, color: str, items: list, numbered: bool) -> None:
    slide, y = deck.header_slide(title, color)
    for index, item in enumerate(items):
        height = _estimate_height(item, 50, 0.4, 0.6)
        if y + height > MAX_Y and index > 0:
            slide, y = deck.header_slide(title, color, continued=True)
        label = f"{index + 1}. {item}" if numbered else f"• {item}"
        deck.text(slide, label, 0.5, y, 9, height + 0.2, 15)
        y += height + 0.35


def generate_sermon_notes_pptx(title: str, date: str, content: dict, branding: BrandingOptions = None) -> bytes:
    branding = branding or BrandingOptions()
    try:
        deck = _Deck(branding)
        deck.prs.core_properties.author = branding.church_name or "SermonForge"
        deck.prs.core_properties.title = title or ""
        deck.prs.core_properties.subject = "Sermon Notes"

        _title_slide(deck, title or "", date or "", branding)

        for index, section in enumerate(content.get("sections") or [], start=1):
            heading = f"{index}. {section.get('title') or ''}"
            slide, y = deck.header_slide(heading, deck.primary)

            for point_index, point in enumerate(section.get("points") or []):
                text = point.get("text") or ""
                blank = bool(point.get("blank"))
                answer = point.get("answer") if blank else None
                height = _estimate_height(text, 55, 0.35, 0.5)
                needed = height + (0.8 if answer else 0.4)

                if y + needed > MAX_Y and point_index > 0:
                    slide, y = deck.header_slide(heading, deck.primary, continued=True)

                deck.text(slide, f"• {widen_blanks(text) if blank else text}", 0.5, y, 9, height + 0.2, 16)
                if blank:
                    y += height + 0.25
                    if answer:
                        deck.text(slide, f"(Answer: {answer})", 1.0, y, 8, 0.35, 11, color=TEXT_LIGHT, italic=True)
                        y += 0.5
                    else:
                        y += 0.25
                else:
                    y += height + 0.35

        questions = content.get("discussion_questions") or []
        if questions:
            _list_slides(deck, "Discussion Questions", deck.secondary, questions, numbered=True)

        application = content.get("application_points") or []
        if application:
            _list_slides(deck, "Application Points", SUCCESS, application, numbered=False)

        return deck.to_bytes()
    except Exception as e:
        logger.error("Sermon notes PPTX failed: %s", e)
        raise ExportError("Failed to generate PowerPoint", details=str(e))
