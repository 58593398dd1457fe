import logging
import os
from typing import Any, Dict, Optional

from PyQt6.QtCore import QLineF, QPointF, QRectF, Qt
from PyQt6.QtGui import QBrush, QColor, QFont, QFontDatabase, QFontMetricsF, QPen
from PyQt6.QtWidgets import (
    QGraphicsItem,
    QGraphicsLineItem,
    QGraphicsRectItem,
    QGraphicsScene,
    QGraphicsSimpleTextItem,
)

from diagmaker import config
from diagmaker.text_layout import Vec2


class FontLoadError(RuntimeError):
    pass


def load_font(font_file: Optional[str] = config.FONT_FILE) -> QFont:
    """Returns the editor font. A configured font file that cannot be loaded is fatal."""
    family = config.FONT_FAMILY
    if font_file:
        if not os.path.isfile(font_file):
            raise FontLoadError(f"Font file not found: {font_file}")
        font_id = QFontDatabase.addApplicationFont(font_file)
        if font_id == -1:
            raise FontLoadError(f"Failed to load font: {font_file}")
        families = QFontDatabase.applicationFontFamilies(font_id)
        if not families:
            raise FontLoadError(f"Font file {font_file} holds no font families.")
        family = families[0]
        logging.info(f"Loaded font family '{family}' from {font_file}.")
    font = QFont(family)
    font.setPixelSize(config.FONT_PIXEL_SIZE)
    return font


class QtFontMetrics:
    """Glyph metrics from QFontMetricsF, in the shape of FreeType's advance/bitmap data."""

    def __init__(self, font: QFont):
        self._metrics = QFontMetricsF(font)
        self._bounds: Dict[str, QRectF] = {}

    def _tight(self, char: str) -> QRectF:
        rect = self._bounds.get(char)
        if rect is None:
            rect = self._metrics.tightBoundingRect(char)
            self._bounds[char] = rect
        return rect

    def has_glyph(self, char: str) -> bool:
        return self._metrics.inFontUcs4(ord(char))

    def advance(self, char: str) -> Vec2:
        if not self.has_glyph(char):
            return (0.0, 0.0)
        return (self._metrics.horizontalAdvance(char), 0.0)

    def bitmap_size(self, char: str) -> Vec2:
        rect = self._tight(char)
        return (rect.width(), rect.height())

    def bitmap_offset(self, char: str) -> Vec2:
        rect = self._tight(char)
        return (rect.left(), -rect.top())


def _pen(color: str, width: float = 0.0) -> QPen:
    pen = QPen(QColor(color), width)
    if width == 0.0:
        pen.setCosmetic(True)
    return pen


class SceneRenderer:
    """Graph visuals as QGraphicsScene items, in world units."""

    def __init__(self, scene: QGraphicsScene, font: QFont):
        self.scene = scene
        self.font = font

    def create_node_visual(self, position: Vec2, scale: Vec2) -> QGraphicsRectItem:
        w, h = scale
        item = QGraphicsRectItem(-w / 2, -h / 2, w, h)
        item.setPos(QPointF(*position))
        item.setBrush(QBrush(QColor(config.NODE_FILL_COLOR)))
        item.setPen(_pen(config.NODE_BORDER_COLOR))
        item.setZValue(1)
        self.scene.addItem(item)
        return item

    def create_text_visual(self, text: str, position: Vec2, scale: float) -> QGraphicsSimpleTextItem:
        item = QGraphicsSimpleTextItem(text)
        item.setFont(self.font)
        item.setBrush(QBrush(QColor(config.NODE_TEXT_COLOR)))
        item.setScale(scale)
        item.setPos(QPointF(*position))
        item.setZValue(2)
        self.scene.addItem(item)
        return item

    def create_line_visual(self, p0: Vec2, p1: Vec2) -> QGraphicsLineItem:
        item = QGraphicsLineItem(QLineF(QPointF(*p0), QPointF(*p1)))
        item.setPen(_pen(config.EDGE_COLOR, config.EDGE_PEN_WIDTH))
        item.setZValue(0)
        self.scene.addItem(item)
        return item

    def update_line_visual(self, handle: QGraphicsLineItem, p0: Vec2, p1: Vec2):
        line = QLineF(QPointF(*p0), QPointF(*p1))
        if handle.line() != line:
            handle.setLine(line)

    def move_visual(self, handle: QGraphicsItem, position: Vec2):
        handle.setPos(QPointF(*position))

    def set_outline(self, handle: QGraphicsRectItem, color: str):
        handle.setPen(_pen(color))

    def _remove(self, handle: Any):
        if handle is not None and handle.scene() is self.scene:
            self.scene.removeItem(handle)

    def destroy_node_visual(self, handle: QGraphicsRectItem):
        self._remove(handle)

    def destroy_text_visual(self, handle: QGraphicsSimpleTextItem):
        self._remove(handle)

    def destroy_line_visual(self, handle: QGraphicsLineItem):
        self._remove(handle)


def style_cursor(item: QGraphicsRectItem):
    item.setBrush(QBrush(QColor(config.CURSOR_COLOR)))
    item.setPen(QPen(Qt.PenStyle.NoPen))
    item.setZValue(3)
