"""
PDF exports built with reportlab.

Letter pages, 20mm margins, a branded header (logo + church name), the
content, and a "Page i of n" footer on every page.
"""

import logging
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import (
    HRFlowable,
    Image,
    KeepTogether,
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from ..lib.errors import ExportError
from .branding import BrandingOptions, clean_pdf_text, hex_to_rgb, lighten, widen_blanks


logger = logging.getLogger(__name__)

MARGIN = 20 * mm
CONTENT_WIDTH = letter[0] - 2 * MARGIN
LOGO_SIZE = 15 * mm

GREY = colors.Color(100 / 255, 100 / 255, 100 / 255)
LIGHT_GREY = colors.Color(120 / 255, 120 / 255, 120 / 255)
RULE_GREY = colors.Color(200 / 255, 200 / 255, 200 / 255)

# Discussion guide section colours: (background, text)
GUIDE_COLORS = {
    "icebreaker": ((240, 248, 255), (30, 64, 175)),
    "scripture": ((243, 232, 255), (109, 40, 217)),
    "application": ((240, 253, 244), (22, 101, 52)),
    "activity": ((255, 247, 237), (194, 65, 12)),
    "prayer": ((253, 242, 248), (157, 23, 77)),
    "resources": ((243, 244, 246), (55, 65, 81)),
}
APPLICATION_BOX = ((240, 255, 240), (22, 101, 52))


def _rgb(triple: tuple) -> colors.Color:
    return colors.Color(triple[0] / 255, triple[1] / 255, triple[2] / 255)


def _text(value) -> str:
    """Clean for the core fonts, then escape for Paragraph markup."""
    return escape(clean_pdf_text(value))


class NumberedCanvas(canvas.Canvas):
    """Defers page output so the footer can show the total page count."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        self.setFont("Helvetica-Oblique", 9)
        self.setFillColor(colors.Color(150 / 255, 150 / 255, 150 / 255))
        self.drawCentredString(letter[0] / 2, 10 * mm, f"Page {self._pageNumber} of {total}")


class _Styles:
    """Paragraph styles for one export, in the branding font."""

    def __init__(self, branding: BrandingOptions):
        regular = branding.pdf_font
        bold = f"{regular}-Bold"
        italic = f"{regular}-Oblique"

        self.church = ParagraphStyle("Church", fontName=regular, fontSize=10, leading=12, textColor=GREY)
        self.title = ParagraphStyle("Title", fontName=bold, fontSize=18, leading=22, spaceAfter=3)
        self.date = ParagraphStyle("Date", fontName=italic, fontSize=10, leading=12, textColor=GREY, spaceAfter=12)
        self.section = ParagraphStyle(
            "Section", fontName=bold, fontSize=13, leading=16,
            textColor=colors.Color(30 / 255, 30 / 255, 30 / 255), spaceBefore=6, spaceAfter=4,
        )
        self.point = ParagraphStyle(
            "Point", fontName=regular, fontSize=11, leading=15,
            leftIndent=10 * mm, bulletIndent=3 * mm, spaceAfter=2,
        )
        self.answer = ParagraphStyle(
            "Answer", fontName=regular, fontSize=9, leading=11,
            leftIndent=10 * mm, textColor=LIGHT_GREY, spaceAfter=2,
        )
        self.box_header = ParagraphStyle("BoxHeader", fontName=bold, fontSize=12, leading=14)
        self.body = ParagraphStyle("Body", fontName=regular, fontSize=10, leading=14, leftIndent=4 * mm, spaceAfter=3)
        self.bullet = ParagraphStyle(
            "Bullet", fontName=regular, fontSize=10, leading=14,
            leftIndent=12 * mm, bulletIndent=6 * mm, spaceAfter=3,
        )
        self.reference = ParagraphStyle(
            "Reference", fontName=regular, fontSize=9, leading=11, leftIndent=10 * mm, spaceAfter=5,
        )


def _logo_flowable(logo: bytes):
    try:
        ImageReader(BytesIO(logo))
    except Exception as e:
        # SVG and corrupt images cannot be embedded; the header falls back to the name
        logger.warning("Skipping logo in PDF: %s", e)
        return None
    return Image(BytesIO(logo), width=LOGO_SIZE, height=LOGO_SIZE)


def _header(branding: BrandingOptions, styles: _Styles, church_name=None) -> list:
    story = []
    church_name = church_name or branding.church_name
    logo = _logo_flowable(branding.logo) if branding.logo else None
    name = Paragraph(_text(church_name), styles.church) if church_name else None

    if logo is not None:
        row = [logo, name or ""]
        table = Table([row], colWidths=[LOGO_SIZE + 5 * mm, CONTENT_WIDTH - LOGO_SIZE - 5 * mm])
        table.setStyle(TableStyle([
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("LEFTPADDING", (0, 0), (-1, -1), 0),
        ]))
        story.append(table)
        story.append(Spacer(1, 3 * mm))
    elif name is not None:
        story.append(name)
        story.append(Spacer(1, 4 * mm))

    story.append(HRFlowable(width="100%", thickness=0.5, color=RULE_GREY, spaceAfter=10 * mm))
    return story


def _box_header(text: str, background: tuple, foreground: tuple, styles: _Styles) -> Table:
    style = ParagraphStyle("BoxHeaderColored", parent=styles.box_header, textColor=_rgb(foreground))
    table = Table([[Paragraph(escape(text), style)]], colWidths=[CONTENT_WIDTH])
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), _rgb(background)),
        ("LEFTPADDING", (0, 0), (-1, -1), 2 * mm),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ]))
    return table


def _build(story: list, title: str) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=letter,
        leftMargin=MARGIN,
        rightMargin=MARGIN,
        topMargin=MARGIN,
        bottomMargin=MARGIN,
        title=clean_pdf_text(title),
        author="SermonForge",
    )
    doc.build(story, canvasmaker=NumberedCanvas)
    return buffer.getvalue()


def generate_sermon_notes_pdf(title: str, date: str, content: dict, branding: BrandingOptions = None) -> bytes:
    """
    Sermon notes: numbered sections of points, fill-in blanks with answer
    lines, then shaded Discussion Questions and Application Points boxes.
    """
    branding = branding or BrandingOptions()
    try:
        styles = _Styles(branding)
        story = _header(branding, styles)
        story.append(Paragraph(_text(title), styles.title))
        story.append(Paragraph(_text(date), styles.date))

        for index, section in enumerate(content.get("sections") or [], start=1):
            block = [Paragraph(f"{index}. {_text(section.get('title'))}", styles.section)]
            for point in section.get("points") or []:
                text = _text(point.get("text"))
                if point.get("blank"):
                    text = widen_blanks(text)
                block.append(Paragraph(text, styles.point, bulletText="-"))
                if point.get("blank") and point.get("answer"):
                    block.append(Paragraph(f"(Answer: {_text(point['answer'])})", styles.answer))
            story.append(KeepTogether(block[:2]))
            story.extend(block[2:])
            story.append(Spacer(1, 6 * mm))

        questions = content.get("discussion_questions") or []
        if questions:
            primary = hex_to_rgb(branding.primary_color)
            secondary_light = hex_to_rgb(lighten(branding.secondary_color, 85))
            story.append(Spacer(1, 4 * mm))
            story.append(_box_header("Discussion Questions", secondary_light, primary, styles))
            story.append(Spacer(1, 3 * mm))
            for index, question in enumerate(questions, start=1):
                story.append(Paragraph(f"{index}. {_text(question)}", styles.body))

        application = content.get("application_points") or []
        if application:
            story.append(Spacer(1, 6 * mm))
            story.append(_box_header("Application Points", *APPLICATION_BOX, styles))
            story.append(Spacer(1, 3 * mm))
            for point in application:
                story.append(Paragraph(_text(point), styles.bullet, bulletText=">"))

        return _build(story, title)
    except Exception as e:
        logger.error("Sermon notes PDF failed: %s", e)
        raise ExportError("Failed to generate PDF", details=str(e))


def generate_discussion_guide_pdf(
    content: dict, date: str, branding: BrandingOptions = None
) -> bytes:
    """Discussion guide: icebreaker, scripture study, application, activity, prayer, resources."""
    branding = branding or BrandingOptions()
    try:
        styles = _Styles(branding)
        story = _header(branding, styles)
        story.append(Paragraph(_text(content.get("title")), styles.title))
        story.append(Paragraph(_text(date), styles.date))

        def heading(label, key):
            story.append(Spacer(1, 3 * mm))
            story.append(_box_header(label, *GUIDE_COLORS[key], styles))
            story.append(Spacer(1, 3 * mm))

        if content.get("icebreaker"):
            heading("Icebreaker", "icebreaker")
            story.append(Paragraph(_text(content["icebreaker"]), styles.body))

        study = content.get("scripture_study") or []
        if study:
            heading("Scripture Study", "scripture")
            reference_style = ParagraphStyle(
                "ScriptureRef", parent=styles.reference, textColor=_rgb(GUIDE_COLORS["scripture"][1])
            )
            for index, item in enumerate(study, start=1):
                story.append(Paragraph(
                    f"<b>{index}.</b> {_text(item.get('question'))}", styles.body
                ))
                if item.get("scripture_reference"):
                    story.append(Paragraph(_text(item["scripture_reference"]), reference_style))

        questions = content.get("application_questions") or []
        if questions:
            heading("Application Questions", "application")
            for index, question in enumerate(questions, start=1):
                story.append(Paragraph(f"{index}. {_text(question)}", styles.body))

        if content.get("group_activity"):
            heading("Group Activity", "activity")
            story.append(Paragraph(_text(content["group_activity"]), styles.body))

        prayer = content.get("prayer_points") or []
        if prayer:
            heading("Prayer Focus", "prayer")
            for point in prayer:
                story.append(Paragraph(_text(point), styles.bullet, bulletText="-"))

        resources = content.get("additional_resources") or []
        if resources:
            heading("Additional Resources", "resources")
            for resource in resources:
                story.append(Paragraph(_text(resource), styles.bullet, bulletText="-"))

        return _build(story, content.get("title") or "Discussion Guide")
    except Exception as e:
        logger.error("Discussion guide PDF failed: %s", e)
        raise ExportError("Failed to generate PDF", details=str(e))
