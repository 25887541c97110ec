"""PDF form processing: field extraction, overlay construction, rasterising and filling."""

from formplay.pdf.fields import (
    FieldDescriptor,
    FieldType,
    PageInfo,
    ParsedForm,
    UNNAMED_FIELD,
    extract_fields,
    parse_form,
)
from formplay.pdf.overlay import (
    OverlayElement,
    OverlayRenderer,
    OverlaySession,
    PageTransform,
    RasterSurface,
)
from formplay.pdf.render import fill_form, rasterize_page

__all__ = [
    "FieldDescriptor",
    "FieldType",
    "PageInfo",
    "ParsedForm",
    "UNNAMED_FIELD",
    "extract_fields",
    "parse_form",
    "OverlayElement",
    "OverlayRenderer",
    "OverlaySession",
    "PageTransform",
    "RasterSurface",
    "fill_form",
    "rasterize_page",
]
