import sys
import os
import logging
from typing import Optional, Tuple

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

from PyQt6.QtWidgets import (
    QApplication,
    QMainWindow,
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QLineEdit,
    QTextEdit,
    QFileDialog,
    QLabel,
    QGraphicsView,
    QGraphicsScene,
    QSplitter,
    QGroupBox,
    QFormLayout,
    QMessageBox,
)
from PyQt6.QtGui import (
    QAction,
    QCloseEvent,
    QColor,
    QContextMenuEvent,
    QKeyEvent,
    QKeySequence,
    QMouseEvent,
    QPainter,
    QWheelEvent,
)
from PyQt6.QtCore import Qt, QPointF, QTimer

from diagmaker import codec, config
from diagmaker.connect import ConnectionProtocol
from diagmaker.context import EditorContext
from diagmaker.graph import GraphStore
from diagmaker.qt_backend import (
    FontLoadError,
    QtFontMetrics,
    SceneRenderer,
    load_font,
    style_cursor,
)


class CanvasView(QGraphicsView):
    """World-space canvas. Left = select/drag, right = connect, middle = new node."""

    def __init__(
        self,
        scene: QGraphicsScene,
        editor: "DiagmakerEditor",
        parent: Optional[QWidget] = None,
    ):
        super().__init__(scene, parent)
        self.editor = editor
        self.setRenderHint(QPainter.RenderHint.Antialiasing)
        self.setDragMode(QGraphicsView.DragMode.ScrollHandDrag)
        self.setTransformationAnchor(QGraphicsView.ViewportAnchor.AnchorUnderMouse)
        self.setResizeAnchor(QGraphicsView.ViewportAnchor.AnchorUnderMouse)
        self.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.setMouseTracking(True)
        self._zoom_factor_base = config.VIEW_ZOOM_FACTOR
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.scale(config.VIEW_PIXELS_PER_UNIT, config.VIEW_PIXELS_PER_UNIT)

    def _world_pos(self, event: QMouseEvent) -> Tuple[float, float]:
        scene_pos = self.mapToScene(event.position().toPoint())
        return (scene_pos.x(), scene_pos.y())

    def wheelEvent(self, event: QWheelEvent):
        angle = event.angleDelta().y()
        if angle == 0:
            event.ignore()
            return
        factor = self._zoom_factor_base if angle > 0 else 1.0 / self._zoom_factor_base
        current_scale = self.transform().m11()
        if (factor > 1.0 and current_scale * factor > config.VIEW_MAX_ZOOM) or (
            factor < 1.0 and current_scale * factor < config.VIEW_MIN_ZOOM
        ):
            event.ignore()
            return
        self.scale(factor, factor)
        event.accept()

    def mousePressEvent(self, event: QMouseEvent):
        pos = self._world_pos(event)
        button = event.button()
        if button == Qt.MouseButton.LeftButton:
            if self.editor.handle_primary_press(pos):
                event.accept()
                return
        elif button == Qt.MouseButton.RightButton:
            self.editor.handle_secondary_press(pos)
            event.accept()
            return
        elif button == Qt.MouseButton.MiddleButton:
            self.editor.handle_tertiary_press(pos)
            event.accept()
            return
        super().mousePressEvent(event)

    def mouseMoveEvent(self, event: QMouseEvent):
        if self.editor.handle_pointer_move(self._world_pos(event)):
            event.accept()
        else:
            super().mouseMoveEvent(event)

    def mouseReleaseEvent(self, event: QMouseEvent):
        if event.button() == Qt.MouseButton.LeftButton and self.editor.handle_primary_release():
            event.accept()
        else:
            super().mouseReleaseEvent(event)

    def contextMenuEvent(self, event: QContextMenuEvent):
        # Right click is the connect button.
        event.accept()

    def keyPressEvent(self, event: QKeyEvent):
        if event.key() in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
            self.editor.delete_selected_node()
            event.accept()
        elif event.key() == Qt.Key.Key_Escape:
            self.editor.cancel_connection()
            event.accept()
        else:
            super().keyPressEvent(event)


class DiagmakerEditor(QMainWindow):
    def __init__(self, font=None):
        super().__init__()
        self.scene = QGraphicsScene()
        self.scene.setBackgroundBrush(QColor(config.SCENE_BACKGROUND_COLOR))
        font = font if font is not None else load_font()
        self.renderer = SceneRenderer(self.scene, font)
        self.context = EditorContext(metrics=QtFontMetrics(font), renderer=self.renderer)
        self.store = GraphStore(self.context)
        style_cursor(self.store.cursor.visual)
        self.connection = ConnectionProtocol(self.store)

        self.current_project_path: Optional[str] = None
        self.unsaved_changes: bool = False
        self._dragging: bool = False
        self._last_pointer: Optional[Tuple[float, float]] = None
        self._text_edit_timer = QTimer()
        self._text_edit_timer.setSingleShot(True)
        self._text_edit_timer.setInterval(config.TEXT_EDIT_COMMIT_DELAY_MS)
        self._text_edit_timer.timeout.connect(self._commit_text_edit)
        self._pending_text_node: Optional[int] = None
        self._frame_timer = QTimer()
        self._frame_timer.setInterval(config.FRAME_INTERVAL_MS)
        self._frame_timer.timeout.connect(self._on_frame)
        self.props_widget: Optional[QWidget] = None
        self.node_text_edit: Optional[QTextEdit] = None
        self.node_event_edit: Optional[QLineEdit] = None
        self.view: Optional[CanvasView] = None
        self.setup_ui()
        self._update_window_title()
        self._frame_timer.start()
        logging.info("Diagmaker editor initialized.")

    @property
    def selected(self) -> Optional[int]:
        return self.context.selected

    def _update_window_title(self):
        project_name = (
            os.path.basename(self.current_project_path)
            if self.current_project_path
            else "Untitled"
        )
        saved_marker = "*" if self.unsaved_changes else ""
        self.setWindowTitle(f"{config.APP_NAME} - {project_name}{saved_marker}")

    def _mark_unsaved(self, changed: bool = True):
        if changed != self.unsaved_changes:
            self.unsaved_changes = changed
            self._update_window_title()
            logging.debug(f"Unsaved changes status set to: {self.unsaved_changes}")

    def setup_ui(self):
        self.setWindowTitle(config.APP_NAME)
        self.setGeometry(100, 100, 1600, 900)
        self.statusBar()

        central_widget = QWidget()
        self.setCentralWidget(central_widget)
        main_layout = QHBoxLayout(central_widget)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        main_layout.addWidget(splitter)

        self.view = CanvasView(self.scene, self, self)
        splitter.addWidget(self.view)

        self.props_widget = QWidget()
        props_layout = QVBoxLayout(self.props_widget)
        props_layout.setContentsMargins(5, 5, 5, 5)
        self.props_widget.setFixedWidth(350)
        splitter.addWidget(self.props_widget)

        node_group = QGroupBox("Inspector")
        node_form = QFormLayout()
        self.node_text_edit = QTextEdit()
        self.node_text_edit.setAcceptRichText(False)
        self.node_text_edit.setMinimumHeight(150)
        self.node_text_edit.textChanged.connect(self._on_text_changed_in_panel)
        self.node_event_edit = QLineEdit()
        self.node_event_edit.textChanged.connect(self._on_event_changed_in_panel)
        node_form.addRow("Text:", self.node_text_edit)
        node_form.addRow("Event:", self.node_event_edit)
        node_group.setLayout(node_form)
        props_layout.addWidget(node_group)
        props_layout.addWidget(
            QLabel(
                "Middle-Click: New node.\nLeft-Click: Select / drag.\nRight-Click two nodes: Connect.\nDelete: Remove selected node."
            )
        )
        props_layout.addStretch()

        self._setup_menubar()
        self.update_properties_panel()

    def _setup_menubar(self):
        menubar = self.menuBar()

        file_menu = menubar.addMenu("&File")
        new_action = QAction("&New", self)
        new_action.setShortcut(QKeySequence.StandardKey.New)
        new_action.triggered.connect(self.new_file)
        file_menu.addAction(new_action)
        open_action = QAction("&Load...", self)
        open_action.setShortcut(QKeySequence.StandardKey.Open)
        open_action.triggered.connect(self.load_project)
        file_menu.addAction(open_action)
        save_action = QAction("&Save", self)
        save_action.setShortcut(QKeySequence.StandardKey.Save)
        save_action.triggered.connect(self.save_project)
        file_menu.addAction(save_action)
        save_as_action = QAction("Save &As...", self)
        save_as_action.setShortcut(QKeySequence.StandardKey.SaveAs)
        save_as_action.triggered.connect(self.save_project_as)
        file_menu.addAction(save_as_action)
        file_menu.addSeparator()
        export_action = QAction("&Export...", self)
        export_action.triggered.connect(self.export_project)
        file_menu.addAction(export_action)
        file_menu.addSeparator()
        exit_action = QAction("&Exit", self)
        exit_action.setShortcut(QKeySequence.StandardKey.Quit)
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

        help_menu = menubar.addMenu("&Help")
        manual_action = QAction("&Manual", self)
        manual_action.triggered.connect(self.show_manual)
        help_menu.addAction(manual_action)
        about_action = QAction("&About", self)
        about_action.triggered.connect(self.show_about_dialog)
        help_menu.addAction(about_action)

    # --- Frame tick ---

    def _on_frame(self):
        self.store.sync_lines()
        self.context.release_queue.advance_frame()

    # --- Pointer input ---

    def handle_pointer_move(self, pos: Tuple[float, float]) -> bool:
        self.store.move_cursor(pos)
        if not self._dragging or self.selected is None or self._last_pointer is None:
            return False
        delta = (pos[0] - self._last_pointer[0], pos[1] - self._last_pointer[1])
        self._last_pointer = pos
        self.store.move_node(self.selected, delta)
        self._mark_unsaved()
        return True

    def handle_primary_press(self, pos: Tuple[float, float]) -> bool:
        index = self.store.node_at(pos)
        if index is None:
            return False
        self.select_node(index)
        self._dragging = True
        self._last_pointer = pos
        return True

    def handle_primary_release(self) -> bool:
        was_dragging = self._dragging
        self._dragging = False
        self._last_pointer = None
        return was_dragging

    def handle_secondary_press(self, pos: Tuple[float, float]):
        index = self.store.node_at(pos)
        if index is None:
            return
        self._commit_text_edit()
        try:
            overlay = self.connection.click(index)
        except IndexError as e:
            logging.exception(f"Connection click on stale node {index}: {e}")
            self.connection.cancel()
            return
        if overlay is not None:
            self._mark_unsaved()
            self.statusBar().showMessage(f"Connected node {overlay.source} -> {overlay.target}.", 3000)
        else:
            self.statusBar().showMessage(f"Right-click a second node to connect from node {index}.")
        self._refresh_highlights()

    def handle_tertiary_press(self, pos: Tuple[float, float]):
        self.store.append_node(config.DEFAULT_NODE_TEXT, pos)
        self._mark_unsaved()
        self._refresh_highlights()

    def cancel_connection(self):
        self.connection.cancel()
        self.statusBar().clearMessage()
        self._refresh_highlights()

    # --- Selection & inspector ---

    def select_node(self, index: Optional[int]):
        if index == self.selected:
            return
        self._commit_text_edit()
        self.context.selected = index
        self.update_properties_panel()
        self._refresh_highlights()

    def delete_selected_node(self):
        index = self.selected
        if index is None:
            return
        # A pending edit belongs to the node being deleted.
        self._text_edit_timer.stop()
        self._pending_text_node = None
        self._dragging = False
        self.store.remove_node_at(index)
        self._mark_unsaved()
        self.update_properties_panel()
        self._refresh_highlights()

    def _refresh_highlights(self):
        pending = self.connection.first
        for index in range(self.store.node_count):
            anchor = self.store.anchor_for(index)
            if index == pending:
                color = config.PENDING_CONNECTION_COLOR
            elif index == self.selected:
                color = config.NODE_SELECTED_BORDER_COLOR
            else:
                color = config.NODE_BORDER_COLOR
            self.renderer.set_outline(anchor.visual, color)

    def update_properties_panel(self):
        index = self.selected
        enabled = index is not None
        self.node_text_edit.blockSignals(True)
        self.node_event_edit.blockSignals(True)
        if enabled:
            node = self.store.node(index)
            self.node_text_edit.setPlainText(node.text)
            self.node_event_edit.setText(node.event)
        else:
            self.node_text_edit.clear()
            self.node_event_edit.clear()
        self.node_text_edit.setEnabled(enabled)
        self.node_event_edit.setEnabled(enabled)
        self.node_text_edit.blockSignals(False)
        self.node_event_edit.blockSignals(False)

    def _on_text_changed_in_panel(self):
        if self.selected is None:
            self._text_edit_timer.stop()
            self._pending_text_node = None
            return
        self._pending_text_node = self.selected
        self._text_edit_timer.start()

    def _commit_text_edit(self):
        self._text_edit_timer.stop()
        index, self._pending_text_node = self._pending_text_node, None
        if index is None or index != self.selected:
            return
        new_text = self.node_text_edit.toPlainText()
        if self.store.node(index).text == new_text:
            return
        self.store.update_node_text(index, new_text)
        self._mark_unsaved()
        self._refresh_highlights()

    def _on_event_changed_in_panel(self):
        if self.selected is None:
            return
        self.store.set_event(self.selected, self.node_event_edit.text())
        self._mark_unsaved()

    # --- Files ---

    def _confirm_discard(self, question: str) -> bool:
        if not self.unsaved_changes:
            return True
        reply = QMessageBox.question(
            self,
            "Unsaved Changes",
            question,
            QMessageBox.StandardButton.Discard | QMessageBox.StandardButton.Cancel,
            QMessageBox.StandardButton.Cancel,
        )
        return reply != QMessageBox.StandardButton.Cancel

    def new_file(self) -> bool:
        self._commit_text_edit()
        if not self._confirm_discard("Discard current unsaved changes?"):
            logging.info("New file action cancelled by user.")
            return False
        logging.info("Creating new document...")
        self.store.clear()
        self.current_project_path = None
        self._mark_unsaved(False)
        self.update_properties_panel()
        self._update_window_title()
        return True

    def load_project(self):
        self._commit_text_edit()
        if not self._confirm_discard("Loading will discard current unsaved changes. Continue?"):
            return
        file_path, _ = QFileDialog.getOpenFileName(
            self, "Load Dialogue Tree", "", config.SAVE_FILE_FILTER
        )
        if not file_path:
            return
        if not codec.load_from_file(self.store, file_path):
            QMessageBox.critical(
                self,
                "Load Failed",
                f"Could not load:\n{file_path}\n\nThe current dialogue tree was left unchanged.",
            )
            return
        self.current_project_path = file_path
        self._mark_unsaved(False)
        self.update_properties_panel()
        self._refresh_highlights()
        self._update_window_title()
        logging.info(f"Document loaded successfully: {self.store.node_count} nodes.")

    def save_project_as(self) -> bool:
        self._commit_text_edit()
        default_name = f"{config.DEFAULT_FILE_BASENAME}{config.SAVE_FILE_EXTENSION}"
        start_dir = (
            os.path.dirname(self.current_project_path)
            if self.current_project_path
            else ""
        )
        file_path, _ = QFileDialog.getSaveFileName(
            self,
            "Save Dialogue Tree As",
            os.path.join(start_dir, default_name),
            config.SAVE_FILE_FILTER,
        )
        if not file_path:
            logging.info("Save As cancelled by user.")
            return False
        self.current_project_path = codec.ensure_extension(file_path, config.SAVE_FILE_EXTENSION)
        self._update_window_title()
        return self.save_project()

    def save_project(self) -> bool:
        self._commit_text_edit()
        if not self.current_project_path:
            return self.save_project_as()
        if not codec.save_to_file(self.store, self.current_project_path):
            QMessageBox.critical(
                self, "Save Failed", f"Could not save to:\n{self.current_project_path}"
            )
            return False
        self._mark_unsaved(False)
        logging.info("Document saved successfully.")
        return True

    def export_project(self) -> bool:
        self._commit_text_edit()
        if not self.store.node_count:
            QMessageBox.warning(self, "Export Error", "There are no nodes to export.")
            return False
        base = (
            os.path.splitext(self.current_project_path)[0]
            if self.current_project_path
            else config.DEFAULT_FILE_BASENAME
        )
        file_path, _ = QFileDialog.getSaveFileName(
            self,
            "Export Dialogue Tree",
            f"{base}{config.EXPORT_FILE_EXTENSION}",
            config.EXPORT_FILE_FILTER,
        )
        if not file_path:
            logging.info("Export cancelled by user.")
            return False
        file_path = codec.ensure_extension(file_path, config.EXPORT_FILE_EXTENSION)
        if not codec.export_to_file(self.store, file_path):
            QMessageBox.critical(self, "Export Failed", f"Could not export to:\n{file_path}")
            return False
        self.statusBar().showMessage(f"Exported to {file_path}", 5000)
        return True

    def closeEvent(self, event: QCloseEvent):
        logging.debug("Close event triggered.")
        self._commit_text_edit()
        if self.unsaved_changes:
            reply = QMessageBox.question(
                self,
                "Unsaved Changes",
                "You have unsaved changes. Save before closing?",
                QMessageBox.StandardButton.Save
                | QMessageBox.StandardButton.Discard
                | QMessageBox.StandardButton.Cancel,
                QMessageBox.StandardButton.Save,
            )
            if reply == QMessageBox.StandardButton.Cancel:
                event.ignore()
                return
            if reply == QMessageBox.StandardButton.Save and not self.save_project():
                event.ignore()
                return
        self._frame_timer.stop()
        self.context.release_queue.flush()
        event.accept()

    def show_manual(self):
        QMessageBox.information(self, "Manual", config.MANUAL_TEXT)

    def show_about_dialog(self):
        about_text = f"""<b>{config.APP_NAME}</b><br><br>Version: {config.APP_VERSION}<br>A small editor for dialogue trees.<br><br>Uses PyQt6."""
        QMessageBox.about(self, f"About {config.APP_NAME} v{config.APP_VERSION}", about_text)


def main() -> int:
    app = QApplication(sys.argv)
    app.setApplicationName(config.APP_NAME)
    app.setApplicationVersion(config.APP_VERSION)

    try:
        font = load_font()
    except FontLoadError as e:
        logging.critical(f"Startup failed: {e}")
        QMessageBox.critical(None, f"{config.APP_NAME} - Startup Failed", str(e))
        return 1

    editor = DiagmakerEditor(font)
    editor.store.append_node(config.STARTUP_NODE_TEXT, config.STARTUP_NODE_POSITION)
    editor._mark_unsaved(False)
    editor.show()
    if editor.view:
        editor.view.centerOn(QPointF(*config.STARTUP_NODE_POSITION))
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
