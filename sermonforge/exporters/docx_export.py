"""
Word exports built with python-docx.
Same content as the PDFs; headings take the church's primary colour and the
body uses the branding font.
"""

import logging
from io import BytesIO

from docx import Document
from docx.image.exceptions import UnrecognizedImageError
from docx.shared import Inches, Pt, RGBColor

from ..lib.errors import ExportError
from .branding import BrandingOptions, hex_digits, widen_blanks


logger = logging.getLogger(__name__)

GREY = RGBColor(0x64, 0x64, 0x64)
LIGHT_GREY = RGBColor(0x78, 0x78, 0x78)
GREEN = RGBColor(0x16, 0x65, 0x34)
PURPLE = RGBColor(0x6D, 0x28, 0xD9)


def _new_document(branding: BrandingOptions) -> Document:
    doc = Document()
    normal = doc.styles["Normal"]
    normal.font.name = branding.office_font
    normal.font.size = Pt(11)
    for section in doc.sections:
        section.left_margin = section.right_margin = Inches(0.8)
        section.top_margin = section.bottom_margin = Inches(0.8)
    return doc


def _add_header(doc: Document, branding: BrandingOptions) -> None:
    if branding.logo:
        try:
            doc.add_picture(BytesIO(branding.logo), width=Inches(0.6))
        except (UnrecognizedImageError, ValueError) as e:
            logger.warning("Skipping logo in DOCX: %s", e)

    if branding.church_name:
        p = doc.add_paragraph()
        run = p.add_run(branding.church_name)
        run.font.size = Pt(10)
        run.font.color.rgb = GREY


def _add_title(doc: Document, title: str, date: str, branding: BrandingOptions) -> None:
    p = doc.add_paragraph()
    run = p.add_run(title or "")
    run.bold = True
    run.font.size = Pt(18)
    run.font.color.rgb = RGBColor.from_string(hex_digits(branding.primary_color))

    p = doc.add_paragraph()
    run = p.add_run(date or "")
    run.italic = True
    run.font.size = Pt(10)
    run.font.color.rgb = GREY


def _add_heading(doc: Document, text: str, color: RGBColor, size: int = 13) -> None:
    p = doc.add_paragraph()
    p.paragraph_format.space_before = Pt(12)
    run = p.add_run(text)
    run.bold = True
    run.font.size = Pt(size)
    run.font.color.rgb = color


def _add_small(doc: Document, text: str, color: RGBColor, italic: bool = False) -> None:
    p = doc.add_paragraph()
    p.paragraph_format.left_indent = Inches(0.5)
    run = p.add_run(text)
    run.italic = italic
    run.font.size = Pt(9)
    run.font.color.rgb = color


def _to_bytes(doc: Document) -> bytes:
    buffer = BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def generate_sermon_notes_docx(title: str, date: str, content: dict, branding: BrandingOptions = None) -> bytes:
    branding = branding or BrandingOptions()
    primary = RGBColor.from_string(hex_digits(branding.primary_color))
    secondary = RGBColor.from_string(hex_digits(branding.secondary_color))
    try:
        doc = _new_document(branding)
        _add_header(doc, branding)
        _add_title(doc, title, date, branding)

        for index, section in enumerate(content.get("sections") or [], start=1):
            _add_heading(doc, f"{index}. {section.get('title') or ''}", primary)
            for point in section.get("points") or []:
                text = point.get("text") or ""
                if point.get("blank"):
                    text = widen_blanks(text)
                doc.add_paragraph(text, style="List Bullet")
                if point.get("blank") and point.get("answer"):
                    _add_small(doc, f"(Answer: {point['answer']})", LIGHT_GREY, italic=True)

        questions = content.get("discussion_questions") or []
        if questions:
            _add_heading(doc, "Discussion Questions", secondary, size=14)
            for question in questions:
                doc.add_paragraph(question, style="List Number")

        application = content.get("application_points") or []
        if application:
            _add_heading(doc, "Application Points", GREEN, size=14)
            for point in application:
                doc.add_paragraph(point, style="List Bullet")

        return _to_bytes(doc)
    except Exception as e:
        logger.error("Sermon notes DOCX failed: %s", e)
        raise ExportError("Failed to generate DOCX", details=str(e))


def generate_discussion_guide_docx(content: dict, date: str, branding: BrandingOptions = None) -> bytes:
    branding = branding or BrandingOptions()
    primary = RGBColor.from_string(hex_digits(branding.primary_color))
    try:
        doc = _new_document(branding)
        _add_header(doc, branding)
        _add_title(doc, content.get("title") or "Discussion Guide", date, branding)

        if content.get("icebreaker"):
            _add_heading(doc, "Icebreaker", primary)
            doc.add_paragraph(content["icebreaker"])

        study = content.get("scripture_study") or []
        if study:
            _add_heading(doc, "Scripture Study", primary)
            for item in study:
                doc.add_paragraph(item.get("question") or "", style="List Number")
                if item.get("scripture_reference"):
                    _add_small(doc, item["scripture_reference"], PURPLE)

        questions = content.get("application_questions") or []
        if questions:
            _add_heading(doc, "Application Questions", primary)
            for question in questions:
                doc.add_paragraph(question, style="List Number")

        if content.get("group_activity"):
            _add_heading(doc, "Group Activity", primary)
            doc.add_paragraph(content["group_activity"])

        prayer = content.get("prayer_points") or []
        if prayer:
            _add_heading(doc, "Prayer Focus", primary)
            for point in prayer:
                doc.add_paragraph(point, style="List Bullet")

        resources = content.get("additional_resources") or []
        if resources:
            _add_heading(doc, "Additional Resources", primary)
            for resource in resources:
                doc.add_paragraph(resource, style="List Bullet")

        return _to_bytes(doc)
    except Exception as e:
        logger.error("Discussion guide DOCX failed: %s", e)
        raise ExportError("Failed to generate DOCX", details=str(e))
