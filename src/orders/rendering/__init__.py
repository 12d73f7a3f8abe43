"""Invoice renderer abstraction — pluggable PDF rendering."""

from orders.config import get_settings

_renderer_instance = None


def get_renderer():
    """Return the configured invoice renderer (singleton).

    Uses FakeRenderer by default. Configure via the INVOICE_RENDERER
    setting.
    """
    global _renderer_instance
    if _renderer_instance is None:
        adapter = get_settings().invoice_renderer
        if adapter == "fake":
            from orders.rendering.fake_adapter import FakeRenderer

            _renderer_instance = FakeRenderer()
        else:
            raise ValueError(f"Unknown invoice renderer: {adapter}")
    return _renderer_instance


def set_renderer(renderer) -> None:
    """Install a specific renderer (e.g. a test double)."""
    global _renderer_instance
    _renderer_instance = renderer


def reset_renderer():
    """Reset the renderer singleton (useful for testing)."""
    global _renderer_instance
    _renderer_instance = None
