"""Fake renderer — deterministic PDF output for testing and development.

Produces a tiny but well-formed PDF whose body lists the invoice number,
order number and total. Can be configured to fail, or to stall until
released so tests can interleave other operations with a render.
"""

import threading

from orders.errors import RenderError
from orders.rendering.port import InvoiceRendererPort


class FakeRenderer(InvoiceRendererPort):
    """Fake renderer that always succeeds by default."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Renderer unavailable"
        self.delay_seconds = 0.0
        self.gate: threading.Event | None = None
        self.started = threading.Event()
        self.rendered: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Renderer unavailable",
        delay_seconds: float = 0.0,
    ):
        """Configure the fake renderer behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.delay_seconds = delay_seconds

    def hold(self) -> threading.Event:
        """Make the next renders wait until the returned event is set."""
        self.gate = threading.Event()
        self.started.clear()
        return self.gate

    def render(self, invoice_data: dict) -> bytes:
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.delay_seconds:
            threading.Event().wait(self.delay_seconds)
        if not self.should_succeed:
            raise RenderError(self.failure_reason, invoice_number=invoice_data.get("invoice_number"))

        self.rendered.append(invoice_data)
        return _minimal_pdf(
            [
                f"Invoice {invoice_data.get('invoice_number', '')}",
                f"Order {invoice_data.get('order_number', '')}",
                f"Total {invoice_data.get('total', 0):.2f} {invoice_data.get('currency', '')}",
            ]
        )


def _minimal_pdf(lines: list[str]) -> bytes:
    text = " ".join(line.replace("(", "[").replace(")", "]") for line in lines)
    stream = f"BT /F1 12 Tf 72 720 Td ({text}) Tj ET".encode("latin-1", "replace")
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_at = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_at)
    return bytes(out)
