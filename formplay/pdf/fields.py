"""
PDF form field extraction.

Walks every page's widget annotations with pypdf and turns them into a flat,
ordered list of :class:`FieldDescriptor` objects. Order is page order, then
annotation order within the page, so parsing identical bytes twice always
yields equal lists.

Widgets without a ``/T`` anywhere in their parent chain are named
:data:`UNNAMED_FIELD`. Callers that key values by name will merge all such
widgets into one entry; the extractor logs a warning when that happens.
"""

import io
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pypdf import PdfReader
from pypdf.errors import PyPdfError
from pypdf.generic import ArrayObject, DictionaryObject, NameObject

from formplay.core.exceptions import ParseError
from formplay.core.logging import logger

UNNAMED_FIELD = "unnamed"

# Field flag bits (PDF 32000-1, table 221/226).
FF_READ_ONLY = 1 << 0
FF_REQUIRED = 1 << 1
FF_RADIO = 1 << 15
FF_PUSHBUTTON = 1 << 16

OFF_STATE = "Off"

# Widget annotations reference their field dictionary through /Parent;
# guards against malformed, cyclic parent chains.
_MAX_PARENT_DEPTH = 32


class FieldType(str, Enum):
    TEXT = "text"
    CHECKBOX = "checkbox"
    CHOICE = "choice"
    BUTTON = "button"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FieldDescriptor:
    """One interactive region of a PDF form. Rect is (x1, y1, x2, y2) in PDF user space."""

    name: str
    type: FieldType
    page: int
    rect: Tuple[float, float, float, float]
    value: Any = ""
    options: Tuple[str, ...] = ()
    export_value: Optional[str] = None
    max_length: Optional[int] = None
    required: bool = False
    read_only: bool = False
    raw_type: Optional[str] = None

    @property
    def width(self) -> float:
        return self.rect[2] - self.rect[0]

    @property
    def height(self) -> float:
        return self.rect[3] - self.rect[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.value,
            "page": self.page,
            "rect": list(self.rect),
            "value": self.value,
            "options": list(self.options),
            "export_value": self.export_value,
            "max_length": self.max_length,
            "required": self.required,
            "read_only": self.read_only,
        }


@dataclass(frozen=True)
class PageInfo:
    """Page geometry from the media box, in PDF user space units."""

    number: int
    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0


@dataclass
class ParsedForm:
    """Result of parsing one PDF load. Not meant to outlive that load."""

    pages: List[PageInfo] = field(default_factory=list)
    fields: List[FieldDescriptor] = field(default_factory=list)

    def page(self, number: int) -> PageInfo:
        for info in self.pages:
            if info.number == number:
                return info
        raise IndexError(f"PDF has no page {number}")

    def fields_on(self, number: int) -> List[FieldDescriptor]:
        return [f for f in self.fields if f.page == number]

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


def _inherited(annotation: DictionaryObject, key: str) -> Any:
    node = annotation
    for _ in range(_MAX_PARENT_DEPTH):
        if node is None:
            return None
        if key in node:
            return node[key]
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return None


def _full_name(annotation: DictionaryObject) -> Optional[str]:
    parts = []
    node = annotation
    for _ in range(_MAX_PARENT_DEPTH):
        if node is None:
            break
        name = node.get("/T")
        if name:
            parts.append(str(name))
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return ".".join(reversed(parts)) if parts else None


def _name_value(value: Any) -> str:
    text = str(value)
    return text[1:] if isinstance(value, NameObject) else text


def _plain(value: Any) -> Any:
    value = value.get_object() if hasattr(value, "get_object") else value
    if isinstance(value, NameObject):
        return _name_value(value)
    if isinstance(value, ArrayObject):
        return [_plain(v) for v in value]
    return str(value)


def _export_value(annotation: DictionaryObject) -> Optional[str]:
    appearance = annotation.get("/AP")
    if appearance is None:
        return None
    normal = appearance.get_object().get("/N")
    if normal is None:
        return None
    normal = normal.get_object()
    if not isinstance(normal, DictionaryObject):
        return None
    for state in normal.keys():
        if _name_value(NameObject(state)) != OFF_STATE:
            return _name_value(NameObject(state))
    return None


def _options(raw: Any) -> Tuple[str, ...]:
    if raw is None:
        return ()
    options = []
    for entry in raw.get_object():
        entry = entry.get_object()
        if isinstance(entry, ArrayObject) and len(entry) >= 2:
            # [export value, display value]; show the display value
            options.append(str(entry[1].get_object()) or str(entry[0].get_object()))
        else:
            options.append(str(entry))
    return tuple(options)


def _classify(raw_type: Optional[str], flags: int) -> FieldType:
    if raw_type == "/Tx":
        return FieldType.TEXT
    if raw_type == "/Ch":
        return FieldType.CHOICE
    if raw_type == "/Btn":
        if flags & FF_PUSHBUTTON:
            return FieldType.BUTTON
        # Radio widgets behave like checkboxes carrying their own export value.
        return FieldType.CHECKBOX
    return FieldType.UNKNOWN


def _rect(annotation: DictionaryObject) -> Tuple[float, float, float, float]:
    raw = annotation.get("/Rect")
    if raw is None:
        return (0.0, 0.0, 0.0, 0.0)
    x1, y1, x2, y2 = (float(v) for v in raw.get_object())
    return (min(x1, x2), min(y1, y2), max(x1, x2), max(y1, y2))


def _descriptor(annotation: DictionaryObject, page_number: int) -> FieldDescriptor:
    raw_type = _inherited(annotation, "/FT")
    raw_type = str(raw_type) if raw_type is not None else None
    flags = int(_inherited(annotation, "/Ff") or 0)
    field_type = _classify(raw_type, flags)

    value = _inherited(annotation, "/V")
    if value is None:
        value = _inherited(annotation, "/DV")
    value = _plain(value) if value is not None else ""

    max_length = _inherited(annotation, "/MaxLen")
    return FieldDescriptor(
        name=_full_name(annotation) or UNNAMED_FIELD,
        type=field_type,
        page=page_number,
        rect=_rect(annotation),
        value=value,
        options=_options(_inherited(annotation, "/Opt")) if field_type == FieldType.CHOICE else (),
        export_value=_export_value(annotation) if field_type == FieldType.CHECKBOX else None,
        max_length=int(max_length) if max_length is not None else None,
        required=bool(flags & FF_REQUIRED),
        read_only=bool(flags & FF_READ_ONLY),
        raw_type=raw_type,
    )


def parse_form(data: bytes) -> ParsedForm:
    """
    Parse PDF bytes into page geometry and field descriptors.

    Args:
        data: Raw PDF bytes

    Returns:
        ParsedForm for this load only

    Raises:
        ParseError: If the bytes are not a well-formed PDF
    """
    if not data:
        raise ParseError("Empty PDF document")

    parsed = ParsedForm()
    try:
        reader = PdfReader(io.BytesIO(data))
        for index, page in enumerate(reader.pages):
            number = index + 1
            box = page.mediabox
            parsed.pages.append(PageInfo(
                number=number,
                x0=float(box.left),
                y0=float(box.bottom),
                x1=float(box.right),
                y1=float(box.top),
            ))
            annotations = page.get("/Annots")
            if annotations is None:
                continue
            for ref in annotations.get_object():
                annotation = ref.get_object()
                if annotation.get("/Subtype") != "/Widget":
                    continue
                parsed.fields.append(_descriptor(annotation, number))
    except ParseError:
        raise
    except (PyPdfError, ValueError, TypeError, KeyError, AttributeError) as e:
        logger.warning(f"Failed to parse PDF form: {e}")
        raise ParseError(f"Malformed PDF document: {e}") from e

    unnamed = sum(1 for f in parsed.fields if f.name == UNNAMED_FIELD)
    if unnamed > 1:
        logger.warning(f"{unnamed} widgets have no field name and share the key '{UNNAMED_FIELD}'")

    logger.debug(f"Parsed PDF form: {len(parsed.pages)} pages, {len(parsed.fields)} fields")
    return parsed


def extract_fields(data: bytes) -> List[FieldDescriptor]:
    """Return the ordered field descriptors of a PDF."""
    return parse_form(data).fields
