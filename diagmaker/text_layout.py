import logging
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple

from diagmaker import config

Vec2 = Tuple[float, float]


class FontMetrics(Protocol):
    """Per-character glyph metrics, in font pixels.

    `advance` may raise KeyError for a character the source has no glyph for.
    """

    def advance(self, char: str) -> Vec2: ...

    def bitmap_size(self, char: str) -> Vec2: ...

    def bitmap_offset(self, char: str) -> Vec2: ...


@dataclass
class FragmentLayout:
    text: str
    offset: Vec2  # From the node anchor (box centre) to the fragment origin
    width: float


@dataclass
class NodeLayout:
    fragments: List[FragmentLayout] = field(default_factory=list)
    size: Vec2 = (0.0, 0.0)

    @property
    def line_count(self) -> int:
        return len(self.fragments)


def clamp_text(text: str, limit: int = config.MAX_TEXT_BYTES, what: str = "text") -> str:
    """Truncates text to at most `limit` UTF-8 bytes without splitting a character."""
    text = str(text)
    try:
        encoded = text.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates, e.g. from a "\ud800" escape in a JSON document.
        logging.warning(f"Node {what} holds characters with no UTF-8 encoding. Replacing them.")
        encoded = text.encode("utf-8", errors="replace")
        text = encoded.decode("utf-8")
    if len(encoded) <= limit:
        return text
    clamped = encoded[:limit].decode("utf-8", errors="ignore")
    logging.warning(
        f"Node {what} is {len(encoded)} bytes, over the {limit} byte limit. Truncated to {len(clamped.encode('utf-8'))} bytes."
    )
    return clamped


def split_lines(text: str) -> List[str]:
    """Splits on newlines, dropping empty lines, up to MAX_TEXT_LINES."""
    lines = [line for line in text.split("\n") if line]
    if len(lines) > config.MAX_TEXT_LINES:
        logging.warning(
            f"Text has {len(lines)} lines; only the first {config.MAX_TEXT_LINES} are laid out."
        )
        lines = lines[: config.MAX_TEXT_LINES]
    return lines


def display_lines(text: str) -> List[str]:
    # Lines are laid out top-to-bottom in reverse of the order they were typed.
    # Saved documents depend on this appearance; keep it.
    return list(reversed(split_lines(text)))


class TextLayout:
    def __init__(
        self,
        metrics: FontMetrics,
        scale: float = config.TEXT_SCALE,
        padding: float = config.BOX_PADDING,
        line_spacing: float = config.LINE_SPACING,
    ):
        self.metrics = metrics
        self.scale = float(scale)
        self.padding = float(padding)
        self.line_spacing = float(line_spacing)

    @property
    def line_height(self) -> float:
        return self.metrics.bitmap_size(config.LINE_HEIGHT_GLYPH)[1] * self.scale

    def _advance(self, char: str) -> float:
        try:
            return self.metrics.advance(char)[0]
        except KeyError:
            # Unknown glyphs take no space
            return 0.0

    def line_width(self, line: str) -> float:
        return sum(self._advance(ch) for ch in line) * self.scale

    def layout(self, text: str) -> NodeLayout:
        lines = display_lines(text)
        widths = [self.line_width(line) for line in lines]
        max_width = max(widths, default=0.0)

        box_width = max_width + 2 * self.padding
        box_height = self.line_height * len(lines) + 2 * self.padding

        fragments: List[FragmentLayout] = []
        y_offset = self.padding
        for line, width in zip(lines, widths):
            offset = (-box_width / 2 + self.padding, -box_height / 2 + y_offset)
            fragments.append(FragmentLayout(text=line, offset=offset, width=width))
            y_offset += self.line_height * self.line_spacing

        return NodeLayout(fragments=fragments, size=(box_width, box_height))
