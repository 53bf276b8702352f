from donation_pages.rendering.dispatcher import RenderedBlock, render

__all__ = ["RenderedBlock", "render"]
