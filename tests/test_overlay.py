"""
Tests for the interactive form overlay.
"""

import pytest

from formplay.core.exceptions import ValidationError
from formplay.pdf.fields import FieldDescriptor, FieldType, PageInfo, parse_form
from formplay.pdf.overlay import OverlayRenderer, OverlaySession, PageTransform, RasterSurface

LETTER = PageInfo(number=1, x0=0, y0=0, x1=612, y1=792)


@pytest.fixture
def surface() -> RasterSurface:
    # 1.5x zoom of a letter page
    return RasterSurface(width=918, height=1188)


def test_transform_flips_y_axis(surface):
    box = PageTransform(LETTER, surface).to_box((72, 700, 272, 720))

    assert box.left == pytest.approx(108.0)
    assert box.top == pytest.approx(108.0)
    assert box.width == pytest.approx(300.0)
    assert box.height == pytest.approx(30.0)


def test_transform_full_width_span_is_exact():
    surface = RasterSurface(width=1000, height=1294)
    box = PageTransform(LETTER, surface).to_box((0, 0, 612, 792))

    assert box.left == 0
    assert box.width == 1000
    assert box.top == 0


def test_transform_honours_page_origin():
    page = PageInfo(number=1, x0=10, y0=20, x1=110, y1=220)
    box = PageTransform(page, RasterSurface(width=200, height=400)).to_box((10, 200, 60, 220))

    assert box.left == 0
    assert box.top == 0
    assert box.width == 100
    assert box.height == 40


def test_session_renders_one_element_per_field(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    elements = session.render()

    kinds = {e.name: e.kind for e in elements}
    assert kinds == {
        "name": "input",
        "agree": "checkbox",
        "color": "select",
        "reset": "button",
        "address.city": "input",
        "signature": "placeholder",
    }


def test_saved_values_override_defaults(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface, saved_values={"name": "Peter", "agree": "Yes"})
    session.render()

    assert session.renderer.element("name").value == "Peter"
    assert session.renderer.element("agree").checked is True
    assert session.renderer.element("color").value == "Red"


def test_text_input_emits_changes(form_pdf, surface):
    changes = []
    session = OverlaySession(parse_form(form_pdf), surface, on_change=lambda n, v: changes.append((n, v)))
    session.render()
    name = session.renderer.element("name")

    assert name.input("Bill Lumbergh") is True
    assert name.blur() is False
    assert changes == [("name", "Bill Lumbergh")]
    assert session.field_values()["name"] == "Bill Lumbergh"


def test_text_input_respects_max_length(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    name = session.renderer.element("name")

    name.input("x" * 50)

    assert name.value == "x" * 20


def test_checkbox_emits_export_value(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    agree = session.renderer.element("agree")

    agree.toggle(True)
    assert session.values["agree"] == "Yes"
    agree.toggle(False)
    assert session.values["agree"] == "Off"
    assert session.changes == [("agree", "Yes"), ("agree", "Off")]


def test_select_rejects_unknown_option(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    color = session.renderer.element("color")

    assert color.select("Blue") is True
    assert session.values["color"] == "Blue"
    with pytest.raises(ValidationError):
        color.select("Purple")


def test_button_click_is_not_data(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()

    assert session.renderer.element("reset").click() is True
    assert session.changes == [("reset", True)]
    assert "reset" not in session.field_values()


def test_read_only_disables_every_element(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface, saved_values={"name": "Milton"}, read_only=True)
    elements = session.render()

    assert all(e.disabled for e in elements)
    name = session.renderer.element("name")
    assert name.value == "Milton"
    assert name.input("stapler") is False
    assert session.renderer.element("agree").toggle(True) is False
    assert session.changes == []


def test_placeholder_is_visible_and_inert(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    placeholder = session.renderer.element("signature")

    assert placeholder.disabled is True
    assert placeholder.click() is False
    assert "field-unsupported" in placeholder.to_html()
    assert "/Sig" in placeholder.title


def test_rerender_replaces_previous_overlay(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    first = session.render()
    second = session.render()

    assert len(second) == len(first)
    assert all(not e.attached for e in first)
    assert first[0].input("late keystroke") is False
    assert session.changes == []


def test_close_tears_down(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    session.close()

    assert session.renderer.elements == []


def test_html_escapes_values(surface):
    descriptor = FieldDescriptor(name='a"b', type=FieldType.TEXT, page=1, rect=(0, 0, 100, 20))
    renderer = OverlayRenderer(surface)
    renderer.render(LETTER, [descriptor], {'a"b': "<script>"}, lambda n, v: None)

    html = renderer.to_html()
    assert "<script>" not in html
    assert "&lt;script&gt;" in html
    assert 'data-field="a&quot;b"' in html


def test_sessions_do_not_share_state(form_pdf, surface):
    form = parse_form(form_pdf)
    first = OverlaySession(form, surface, saved_values={"name": "Peter"})
    second = OverlaySession(form, surface, saved_values={"name": "Samir"})
    first.render()
    second.render()

    first.renderer.element("name").input("Michael")

    assert second.values["name"] == "Samir"
    assert second.renderer.element("name").value == "Samir"


def test_to_dict_lists_elements(form_pdf, surface):
    session = OverlaySession(parse_form(form_pdf), surface)
    session.render()
    data = session.to_dict()

    assert data["page"] == 1
    assert data["page_count"] == 1
    assert data["scale"] == pytest.approx(1.5)
    assert len(data["elements"]) == 6
    assert data["html"].startswith('<div class="form-overlay"')
