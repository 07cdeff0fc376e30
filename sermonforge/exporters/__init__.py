from .branding import BrandingOptions, safe_filename
from .csv_export import analytics_filename, build_analytics_csv
from .docx_export import generate_discussion_guide_docx, generate_sermon_notes_docx
from .pdf_export import generate_discussion_guide_pdf, generate_sermon_notes_pdf
from .pptx_export import generate_sermon_notes_pptx

__all__ = [
    "BrandingOptions",
    "analytics_filename",
    "build_analytics_csv",
    "generate_discussion_guide_docx",
    "generate_discussion_guide_pdf",
    "generate_sermon_notes_docx",
    "generate_sermon_notes_pdf",
    "generate_sermon_notes_pptx",
    "safe_filename",
]
