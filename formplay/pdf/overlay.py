"""
Interactive form overlay.

Positions one element per form field on top of a rendered page raster and
wires element events to a change callback. All state for one
load-and-render lives in an :class:`OverlaySession`; nothing is cached at
module level, so concurrent requests never see each other's fields.

Geometry: PDF user space has its origin bottom-left, rasters top-left. A
single scale factor, raster width / page width, is applied to both axes.
"""

from dataclasses import dataclass, field
from html import escape
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from formplay.core.exceptions import ValidationError
from formplay.core.logging import logger
from formplay.pdf.fields import FieldDescriptor, FieldType, PageInfo, ParsedForm, OFF_STATE

ChangeCallback = Callable[[str, Any], None]

MAX_FONT_SIZE = 16.0
FONT_HEIGHT_RATIO = 0.8


@dataclass(frozen=True)
class RasterSurface:
    """A rendered page image of known pixel size."""

    width: int
    height: int
    image: Optional[bytes] = None
    mime_type: str = "image/png"


@dataclass(frozen=True)
class Box:
    left: float
    top: float
    width: float
    height: float


class PageTransform:
    """Maps PDF user-space rectangles onto raster pixels."""

    def __init__(self, page: PageInfo, surface: RasterSurface):
        if page.width <= 0:
            raise ValueError(f"Page {page.number} has no width")
        self.page = page
        self.surface = surface

    @property
    def scale(self) -> float:
        return self.surface.width / self.page.width

    def _px(self, length: float) -> float:
        # multiply before dividing so full-width spans land exactly on the raster width
        return length * self.surface.width / self.page.width

    def to_box(self, rect: Tuple[float, float, float, float]) -> Box:
        x1, y1, x2, y2 = rect
        return Box(
            left=self._px(x1 - self.page.x0),
            top=self._px(self.page.y1 - y2),
            width=self._px(x2 - x1),
            height=self._px(y2 - y1),
        )


@dataclass
class OverlayElement:
    """
    One positioned control bound to a form field.

    ``kind`` is the host element: ``input``, ``checkbox``, ``select``,
    ``button`` or ``placeholder``. Event methods mirror the DOM events the
    browser host forwards; they are no-ops when the element is disabled.
    """

    descriptor: FieldDescriptor
    kind: str
    box: Box
    value: Any
    disabled: bool
    on_change: ChangeCallback
    options: Tuple[str, ...] = ()
    title: Optional[str] = None
    attached: bool = True
    _last_emitted: Any = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def interactive(self) -> bool:
        return self.attached and not self.disabled and self.kind != "placeholder"

    @property
    def checked(self) -> bool:
        return self.kind == "checkbox" and _is_checked(self.value, self.descriptor)

    @property
    def font_size(self) -> float:
        return min(self.box.height * FONT_HEIGHT_RATIO, MAX_FONT_SIZE)

    def _emit(self, value: Any) -> None:
        self._last_emitted = value
        self.on_change(self.name, value)

    def input(self, text: str) -> bool:
        """Keystroke in a text control."""
        if not self.interactive or self.kind != "input":
            return False
        max_length = self.descriptor.max_length
        if max_length is not None and len(text) > max_length:
            text = text[:max_length]
        if text == self.value:
            return False
        self.value = text
        self._emit(text)
        return True

    def blur(self) -> bool:
        """Focus left a text control; the current value is authoritative."""
        if not self.interactive or self.kind != "input":
            return False
        if self.value == self._last_emitted:
            return False
        self._emit(self.value)
        return True

    def toggle(self, checked: bool) -> bool:
        """Checkbox state change. Emits the export value, never a bare boolean."""
        if not self.interactive or self.kind != "checkbox":
            return False
        new_value = (self.descriptor.export_value or "Yes") if checked else OFF_STATE
        if new_value == self.value:
            return False
        self.value = new_value
        self._emit(new_value)
        return True

    def select(self, option: str) -> bool:
        if not self.interactive or self.kind != "select":
            return False
        if option != "" and option not in self.options:
            raise ValidationError(f"'{option}' is not an option of field '{self.name}'")
        if option == self.value:
            return False
        self.value = option
        self._emit(option)
        return True

    def click(self) -> bool:
        """Push button activation. The emitted value is a signal, not data."""
        if not self.interactive or self.kind != "button":
            return False
        self.on_change(self.name, True)
        return True

    def style(self) -> str:
        return (
            f"position:absolute;left:{self.box.left:.2f}px;top:{self.box.top:.2f}px;"
            f"width:{self.box.width:.2f}px;height:{self.box.height:.2f}px"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "type": self.descriptor.type.value,
            "left": self.box.left,
            "top": self.box.top,
            "width": self.box.width,
            "height": self.box.height,
            "value": self.value,
            "checked": self.checked,
            "options": list(self.options),
            "disabled": self.disabled,
            "font_size": self.font_size,
            "title": self.title,
        }

    def to_html(self) -> str:
        name = escape(self.name, quote=True)
        disabled = " disabled" if self.disabled else ""
        if self.kind == "input":
            max_length = self.descriptor.max_length
            max_attr = f' maxlength="{max_length}"' if max_length is not None else ""
            control = (
                f'<input type="text" name="{name}" value="{escape(str(self.value), quote=True)}"'
                f'{max_attr} style="width:100%;height:100%;font-size:{self.font_size:.1f}px"{disabled}>'
            )
        elif self.kind == "checkbox":
            checked = " checked" if self.checked else ""
            export = escape(self.descriptor.export_value or "Yes", quote=True)
            control = (
                f'<input type="checkbox" name="{name}" value="{export}"'
                f' style="width:100%;height:100%"{checked}{disabled}>'
            )
        elif self.kind == "select":
            options = ['<option value=""></option>']
            for option in self.options:
                selected = " selected" if option == self.value else ""
                text = escape(option, quote=True)
                options.append(f'<option value="{text}"{selected}>{text}</option>')
            control = (
                f'<select name="{name}" style="width:100%;height:100%;'
                f'font-size:{self.font_size:.1f}px"{disabled}>{"".join(options)}</select>'
            )
        elif self.kind == "button":
            control = f'<button type="button" name="{name}" style="width:100%;height:100%"{disabled}></button>'
        else:
            control = (
                f'<div class="field-unsupported" title="{escape(self.title or "", quote=True)}"'
                ' style="width:100%;height:100%;background-color:rgba(255,0,0,0.15);'
                'outline:1px dashed rgba(255,0,0,0.6)"></div>'
            )
        return f'<div class="overlay-field" data-field="{name}" style="{self.style()}">{control}</div>'


def _is_checked(value: Any, descriptor: FieldDescriptor) -> bool:
    if value is True:
        return True
    if value in (None, False, "", OFF_STATE):
        return False
    return descriptor.export_value is not None and value == descriptor.export_value


_KINDS = {
    FieldType.TEXT: "input",
    FieldType.CHECKBOX: "checkbox",
    FieldType.CHOICE: "select",
    FieldType.BUTTON: "button",
}


class OverlayRenderer:
    """Builds and tears down the overlay for one raster surface."""

    def __init__(self, surface: RasterSurface):
        self.surface = surface
        self.elements: List[OverlayElement] = []

    def teardown(self) -> None:
        for element in self.elements:
            element.attached = False
        self.elements = []

    def render(
        self,
        page: PageInfo,
        fields: List[FieldDescriptor],
        values: Mapping[str, Any],
        on_change: ChangeCallback,
        read_only: bool = False,
    ) -> List[OverlayElement]:
        """
        Replace any existing overlay with one element per field.

        Args:
            page: Geometry of the rendered page
            fields: Descriptors for fields on that page
            values: Current values by field name; unset names fall back to the parsed default
            on_change: Called once per committed value change
            read_only: Render every element disabled, still showing its value

        Returns:
            The new elements, in field order
        """
        self.teardown()
        transform = PageTransform(page, self.surface)

        for descriptor in fields:
            kind = _KINDS.get(descriptor.type, "placeholder")
            value = values[descriptor.name] if descriptor.name in values else descriptor.value
            if value is None:
                value = ""
            element = OverlayElement(
                descriptor=descriptor,
                kind=kind,
                box=transform.to_box(descriptor.rect),
                value=value,
                disabled=read_only or kind == "placeholder",
                on_change=on_change,
                options=descriptor.options if kind == "select" else (),
                title=(
                    f"Unsupported field type: {descriptor.raw_type or descriptor.type.value}"
                    if kind == "placeholder" else None
                ),
            )
            element._last_emitted = value
            self.elements.append(element)

        logger.debug(
            f"Rendered overlay for page {page.number}: {len(self.elements)} elements"
            f"{' (read-only)' if read_only else ''}"
        )
        return self.elements

    def element(self, name: str) -> OverlayElement:
        for element in self.elements:
            if element.name == name:
                return element
        raise KeyError(name)

    def to_html(self) -> str:
        body = "".join(element.to_html() for element in self.elements)
        return (
            f'<div class="form-overlay" style="position:absolute;left:0;top:0;'
            f'width:{self.surface.width}px;height:{self.surface.height}px">{body}</div>'
        )


class OverlaySession:
    """
    State of a single load-and-render: the parsed template, the value store
    and the renderer. Create one per request; discard it afterwards.
    """

    def __init__(
        self,
        form: ParsedForm,
        surface: RasterSurface,
        page_number: int = 1,
        saved_values: Optional[Mapping[str, Any]] = None,
        read_only: bool = False,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.form = form
        self.page = form.page(page_number)
        self.read_only = read_only
        self.renderer = OverlayRenderer(surface)
        self._listener = on_change
        self.changes: List[Tuple[str, Any]] = []

        self.values: Dict[str, Any] = {f.name: f.value for f in form.fields}
        if saved_values:
            self.values.update(saved_values)

    def _handle_change(self, name: str, value: Any) -> None:
        self.changes.append((name, value))
        descriptor = next((f for f in self.form.fields if f.name == name), None)
        if descriptor is None or descriptor.type != FieldType.BUTTON:
            self.values[name] = value
        if self._listener is not None:
            self._listener(name, value)

    def render(self) -> List[OverlayElement]:
        return self.renderer.render(
            self.page,
            self.form.fields_on(self.page.number),
            self.values,
            self._handle_change,
            read_only=self.read_only,
        )

    def field_values(self) -> Dict[str, Any]:
        """Values suitable for ``form_data.fields``; push buttons carry no data."""
        data_fields = {f.name for f in self.form.fields if f.type != FieldType.BUTTON}
        return {k: v for k, v in self.values.items() if k in data_fields}

    def close(self) -> None:
        self.renderer.teardown()

    def to_dict(self) -> Dict[str, Any]:
        surface = self.renderer.surface
        return {
            "page": self.page.number,
            "page_count": len(self.form.pages),
            "width": surface.width,
            "height": surface.height,
            "scale": PageTransform(self.page, surface).scale,
            "read_only": self.read_only,
            "elements": [e.to_dict() for e in self.renderer.elements],
            "html": self.renderer.to_html(),
        }
