import io
import logging

from PIL import Image, UnidentifiedImageError
from rich.color import Color
from rich.console import Console
from rich.style import Style
from rich.text import Text

from .errors import PayloadDecodeError

logger = logging.getLogger(__name__)

UPPER_HALF_BLOCK = "▀"


class TerminalImageRenderer:
    """Prints raster images inline using coloured half-block characters.

    Each character cell shows two vertically stacked pixels: the foreground
    colour paints the upper one, the background colour the lower one.
    """

    def __init__(self, console: Console, max_width: int = 80) -> None:
        self._console = console
        self._max_width = max(1, max_width)

    def to_text(self, data: bytes) -> Text:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img = img.convert("RGB")
                width = min(self._max_width, self._console.width, img.width)
                height = max(2, round(img.height * width / img.width))
                if height % 2:
                    height += 1
                img = img.resize((width, height))
                pixels = img.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise PayloadDecodeError(f"Image data could not be decoded: {e}") from e

        text = Text()
        for y in range(0, height, 2):
            if y:
                text.append("\n")
            for x in range(width):
                style = Style(
                    color=Color.from_rgb(*pixels[x, y]),
                    bgcolor=Color.from_rgb(*pixels[x, y + 1]),
                )
                text.append(UPPER_HALF_BLOCK, style=style)
        return text

    def render(self, data: bytes) -> None:
        """Render image bytes (PNG, JPEG, GIF, ...) to the console."""
        text = self.to_text(data)
        self._console.print(text)
        logger.debug("Rendered image of %d bytes", len(data))
