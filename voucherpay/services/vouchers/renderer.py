"""Voucher PDF rendering with reportlab.

Templates are plain text: one reportlab paragraph (mini-markup) per line,
`{{name}}` placeholders, `# ` for the title line, `[[logo]]` and `[[qr]]`
marker lines for the images, blank lines for spacing.
"""

from io import BytesIO
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer

from voucherpay.common.logging import logger

DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "templates" / "voucher.txt"
FALLBACK_TEMPLATE = "# Voucher\nDocument: {{doc_id}}\nService: {{service_name}}\n[[qr]]"
FONT_NAME = "VoucherFont"
QR_SIZE = 45 * mm
LOGO_WIDTH = 40 * mm


def fill_placeholders(template: str, context: dict[str, str]) -> str:
    for key, value in context.items():
        template = template.replace("{{" + key + "}}", escape(value or ""))
    return template


class VoucherRenderer:
    """Renders the voucher for one paid order into PDF bytes."""

    def __init__(self, template_path: str = "", logo_path: str = "", font_path: str = "") -> None:
        self.template_path = Path(template_path) if template_path else DEFAULT_TEMPLATE_PATH
        self.logo_path = logo_path
        self.font_name = self._register_font(font_path)

    @staticmethod
    def _register_font(font_path: str) -> str | None:
        if not font_path:
            return None
        try:
            pdfmetrics.registerFont(TTFont(FONT_NAME, font_path))
        except Exception as exc:
            logger.warning("voucher font not loaded path=%s error=%s", font_path, exc)
            return None
        return FONT_NAME

    def load_template(self) -> str:
        try:
            return self.template_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("voucher template unreadable path=%s error=%s", self.template_path, exc)
            return FALLBACK_TEMPLATE

    def _logo(self) -> Image | None:
        if not self.logo_path:
            return None
        try:
            width, height = ImageReader(self.logo_path).getSize()
        except Exception as exc:
            logger.warning("voucher logo unreadable path=%s error=%s", self.logo_path, exc)
            return None
        return Image(self.logo_path, width=LOGO_WIDTH, height=LOGO_WIDTH * height / width)

    @staticmethod
    def _qr(payload: str) -> Drawing:
        widget = QrCodeWidget(payload)
        widget.barLevel = "L"
        x0, y0, x1, y1 = widget.getBounds()
        drawing = Drawing(QR_SIZE, QR_SIZE, transform=[QR_SIZE / (x1 - x0), 0, 0, QR_SIZE / (y1 - y0), 0, 0])
        drawing.add(widget)
        return drawing

    def render(self, context: dict[str, str], qr_payload: str) -> bytes:
        styles = getSampleStyleSheet()
        body, title = styles["BodyText"], styles["Title"]
        if self.font_name:
            body.fontName = title.fontName = self.font_name

        story = []
        for line in fill_placeholders(self.load_template(), context).splitlines():
            line = line.strip()
            if not line:
                story.append(Spacer(1, 4 * mm))
            elif line == "[[logo]]":
                logo = self._logo()
                if logo is not None:
                    story.append(logo)
            elif line == "[[qr]]":
                story.append(self._qr(qr_payload))
            elif line.startswith("# "):
                story.append(Paragraph(line[2:], title))
            else:
                story.append(Paragraph(line, body))

        buffer = BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, title=f"Voucher {context.get('doc_id', '')}")
        doc.build(story)
        return buffer.getvalue()
