"""Renderer port — abstract interface for invoice document rendering.

Adapters turn a plain dict of invoice data into PDF bytes. The registry
programs against the port and bounds each call with a deadline.
"""

from abc import ABC, abstractmethod


class InvoiceRendererPort(ABC):
    """Abstract interface for invoice renderers."""

    @abstractmethod
    def render(self, invoice_data: dict) -> bytes:
        """Render an invoice document.

        ``invoice_data`` carries the invoice number, order number, dates,
        customer address, line items and pricing summary.

        Returns:
            The PDF document as bytes.

        Raises:
            RenderError: if the document could not be produced.
        """
        ...
