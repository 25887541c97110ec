"""
Page rasterising and form filling.

PyMuPDF renders a page into a PNG surface for the overlay; pypdf writes
field values back into the template to produce a filled snapshot.
"""

import io
from typing import Any, Dict, Mapping

import pymupdf
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from pypdf.generic import NameObject

from formplay.core.exceptions import ParseError
from formplay.core.logging import logger
from formplay.pdf.fields import OFF_STATE, FieldType, parse_form
from formplay.pdf.overlay import RasterSurface


def rasterize_page(data: bytes, page_number: int = 1, scale: float = 1.5) -> RasterSurface:
    """
    Render one page of a PDF to PNG.

    Args:
        data: PDF bytes
        page_number: 1-indexed page to render
        scale: Zoom applied uniformly to both axes

    Returns:
        RasterSurface holding the PNG bytes and pixel size
    """
    try:
        doc = pymupdf.open(stream=data, filetype="pdf")
    except (pymupdf.FileDataError, RuntimeError, ValueError) as e:
        raise ParseError(f"Malformed PDF document: {e}") from e

    with doc:
        if not 1 <= page_number <= doc.page_count:
            raise ParseError(f"PDF has no page {page_number}")
        page = doc[page_number - 1]
        pixmap = page.get_pixmap(matrix=pymupdf.Matrix(scale, scale), annots=False)
        surface = RasterSurface(
            width=pixmap.width,
            height=pixmap.height,
            image=pixmap.tobytes("png"),
        )

    logger.debug(f"Rasterized page {page_number} at scale {scale}: {surface.width}x{surface.height}")
    return surface


def _pdf_value(value: Any, field_type: FieldType) -> Any:
    if field_type == FieldType.CHECKBOX:
        if value in (False, "", None):
            return NameObject(f"/{OFF_STATE}")
        return NameObject(f"/{value}")
    if isinstance(value, list):
        return ", ".join(value)
    return "" if value is None else str(value)


def fill_form(template: bytes, values: Mapping[str, Any]) -> bytes:
    """
    Write field values into a copy of the template.

    Unknown names and push buttons are skipped. Checkbox values are export
    values; ``True`` selects the widget's own export value.

    Returns:
        Bytes of the filled PDF
    """
    form = parse_form(template)

    try:
        writer = PdfWriter(clone_from=PdfReader(io.BytesIO(template)))
        if "/AcroForm" not in writer.root_object:
            logger.warning("Template has no AcroForm; returning it unfilled")
            return template
        writer.set_need_appearances_writer(True)

        for page_index, page in enumerate(writer.pages):
            page_values: Dict[str, Any] = {}
            for descriptor in form.fields_on(page_index + 1):
                if descriptor.name not in values or descriptor.type == FieldType.BUTTON:
                    continue
                value = values[descriptor.name]
                if descriptor.type == FieldType.CHECKBOX and value is True:
                    value = descriptor.export_value or "Yes"
                page_values[descriptor.name] = _pdf_value(value, descriptor.type)
            if page_values:
                writer.update_page_form_field_values(page, page_values, auto_regenerate=False)

        out = io.BytesIO()
        writer.write(out)
    except (PyPdfError, ValueError, KeyError, TypeError) as e:
        raise ParseError(f"Could not fill PDF form: {e}") from e

    return out.getvalue()
