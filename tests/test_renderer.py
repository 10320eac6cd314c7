"""Real reportlab rendering of a voucher."""

from voucherpay.services.vouchers.renderer import FALLBACK_TEMPLATE, VoucherRenderer, fill_placeholders

CONTEXT = {
    "doc_id": "doc-1",
    "date": "2026-10-18 12:00 UTC",
    "service_name": "Yoga <unlimited> & more",
    "price": "6 480",
    "visits": "12",
    "freezing": "30",
    "phone": "79991234567",
    "email": "a@b.com",
    "voucher_url": "https://shop.test/voucher?doc=doc-1&token=abc",
}


def test_render_produces_pdf_with_bundled_template():
    """The packaged template renders to a PDF."""

    pdf = VoucherRenderer().render(CONTEXT, qr_payload=CONTEXT["voucher_url"])
    assert pdf.startswith(b"%PDF")


def test_unreadable_template_falls_back(tmp_path):
    """A missing template falls back to the inline one."""

    renderer = VoucherRenderer(template_path=str(tmp_path / "missing.txt"))
    assert renderer.load_template() == FALLBACK_TEMPLATE
    assert renderer.render(CONTEXT, qr_payload="x").startswith(b"%PDF")


def test_missing_logo_is_skipped(tmp_path):
    """An unreadable logo is skipped, not fatal."""

    renderer = VoucherRenderer(logo_path=str(tmp_path / "logo.png"))
    assert renderer.render(CONTEXT, qr_payload="x").startswith(b"%PDF")


def test_placeholders_are_escaped():
    """Placeholder values are escaped for reportlab markup."""

    assert fill_placeholders("{{service_name}}", CONTEXT) == "Yoga &lt;unlimited&gt; &amp; more"
