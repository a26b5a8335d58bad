"""Sample image tools MCP server for exercising toolchat end to end."""

import io
import json

from mcp.server.fastmcp import FastMCP, Image
from PIL import Image as PILImage
from PIL import ImageColor

_PALETTE = {
    "sunset": ["#ff5e62", "#ff9966", "#ffd86f"],
    "ocean": ["#003973", "#1c92d2", "#e5e5be"],
    "forest": ["#134e5e", "#3a7d44", "#71b280"],
}


def _png_bytes(img: PILImage.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


mcp = FastMCP("Image Tools")


@mcp.tool()
def color_swatch(color: str = "teal", width: int = 32, height: int = 16) -> Image:
    """Render a solid swatch of a CSS colour name or hex code (e.g. teal, #ff8800)."""
    rgb = ImageColor.getrgb(color)
    img = PILImage.new("RGB", (max(1, width), max(1, height)), rgb)
    return Image(data=_png_bytes(img), format="png")


@mcp.tool()
def gradient(palette: str = "sunset", width: int = 48, height: int = 16) -> Image:
    """Render a horizontal gradient through one of the named palettes (sunset, ocean, forest)."""
    stops = [ImageColor.getrgb(c) for c in _PALETTE.get(palette, _PALETTE["sunset"])]
    width = max(2, width)
    img = PILImage.new("RGB", (width, max(1, height)))
    segments = len(stops) - 1
    for x in range(width):
        pos = x / (width - 1) * segments
        i = min(int(pos), segments - 1)
        t = pos - i
        a, b = stops[i], stops[i + 1]
        rgb = tuple(round(a[k] + (b[k] - a[k]) * t) for k in range(3))
        for y in range(img.height):
            img.putpixel((x, y), rgb)
    return Image(data=_png_bytes(img), format="png")


@mcp.tool()
def describe_palette(palette: str = "") -> str:
    """List the colours in a named palette, or all palettes when empty."""
    if palette:
        if palette not in _PALETTE:
            return json.dumps({"error": f"Unknown palette: {palette}"})
        return json.dumps({palette: _PALETTE[palette]}, indent=2)
    return json.dumps(_PALETTE, indent=2)


if __name__ == "__main__":
    mcp.run(transport="stdio")
