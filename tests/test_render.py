"""
Tests for page rasterising and form filling.
"""

import pytest

from formplay.core.exceptions import ParseError
from formplay.pdf.fields import parse_form
from formplay.pdf.render import fill_form, rasterize_page

from conftest import build_form_pdf

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def test_rasterize_page_scales_both_axes(form_pdf):
    surface = rasterize_page(form_pdf, page_number=1, scale=1.5)

    assert surface.width == 918
    assert surface.height == 1188
    assert surface.mime_type == "image/png"
    assert surface.image.startswith(PNG_SIGNATURE)


def test_rasterize_second_page(two_page_pdf):
    surface = rasterize_page(two_page_pdf, page_number=2, scale=1.0)

    assert (surface.width, surface.height) == (612, 792)


def test_rasterize_missing_page(form_pdf):
    with pytest.raises(ParseError):
        rasterize_page(form_pdf, page_number=5)


def test_rasterize_garbage():
    with pytest.raises(ParseError):
        rasterize_page(b"definitely not a pdf")


def test_fill_form_writes_values(form_pdf):
    filled = fill_form(form_pdf, {
        "name": "Peter Gibbons",
        "agree": "Yes",
        "color": "Green",
        "address.city": "Austin",
        "reset": True,
        "not_a_field": "ignored",
    })

    fields = {f.name: f for f in parse_form(filled).fields}
    assert fields["name"].value == "Peter Gibbons"
    assert fields["agree"].value == "Yes"
    assert fields["color"].value == "Green"
    assert fields["address.city"].value == "Austin"


def test_fill_form_checkbox_true_uses_export_value(form_pdf):
    filled = fill_form(form_pdf, {"agree": True})

    agree = next(f for f in parse_form(filled).fields if f.name == "agree")
    assert agree.value == "Yes"


def test_fill_form_leaves_template_untouched(form_pdf):
    original = bytes(form_pdf)
    fill_form(form_pdf, {"name": "Milton"})

    assert form_pdf == original
    assert parse_form(form_pdf).fields[0].value == "Bill"


def test_fill_form_without_acroform_returns_template():
    plain = build_form_pdf(with_acroform=False)

    assert fill_form(plain, {"name": "x"}) == plain
