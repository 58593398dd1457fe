from typing import Optional, Tuple

# --- Application Identification ---
APP_NAME = "Diagmaker"
APP_VERSION = "1.0"

# --- Key Mapping Configuration ---
# Defines how node attributes map to keys in SAVE (.diagsv) and EXPORT (.diag) documents.
# This allows changing internal variable names without breaking saved files.
DOCUMENT_KEY_MAP = {
    "position": "position",
    "text": "text",
    "event": "event",
    "connections": "connections",
}
# Automatically create the reverse mapping for loading documents
DOCUMENT_REVERSE_KEY_MAP = {v: k for k, v in DOCUMENT_KEY_MAP.items()}

def get_document_key(internal_key: str) -> str:
    """Safely gets the document key for an internal attribute name."""
    return DOCUMENT_KEY_MAP.get(internal_key, internal_key) # Fallback to internal name if not mapped

# --- Node Limits ---
MAX_TEXT_BYTES = 1024                      # Upper bound (UTF-8 bytes) for a node's text and event
MAX_TEXT_LINES = 100                       # Lines beyond this are not laid out
DEFAULT_NODE_TEXT = "Hello world"          # Text of nodes created with the middle mouse button
STARTUP_NODE_TEXT = "Hello, world!"        # Node present in a fresh editor
STARTUP_NODE_POSITION: Tuple[float, float] = (0.0, 1.0)

# --- Text Layout ---
TEXT_SCALE = 0.01                          # Font pixels -> world units
BOX_PADDING = 0.4                          # World-unit padding on every side of a node box
LINE_SPACING = 1.2                         # Vertical step between fragments, in line heights
LINE_HEIGHT_GLYPH = "A"                    # Glyph whose bitmap height defines one line
CURSOR_SCALE: Tuple[float, float] = (0.2, 0.2)  # Size of the cursor marker (anchor slot 0)

# --- Font ---
FONT_FILE: Optional[str] = None            # Path to a .ttf/.otf to load at startup. None = system font.
FONT_FAMILY = "DejaVu Sans"                # Used when FONT_FILE is None
FONT_PIXEL_SIZE = 48                       # Rasterisation size; TEXT_SCALE maps it to world units

# --- Visuals & Colors ---
# Stored as strings so the core modules never import Qt. The editor turns them into QColor.
NODE_FILL_COLOR = "#808080"                # Grey node boxes
NODE_BORDER_COLOR = "#A9A9A9"
NODE_SELECTED_BORDER_COLOR = "#FFFFFF"
NODE_TEXT_COLOR = "#000000"                # Black text
CURSOR_COLOR = "#F0E68C"
EDGE_COLOR = "#FFFFFF"
EDGE_PEN_WIDTH = 0.03                      # World units
PENDING_CONNECTION_COLOR = "orange"        # Border of the node waiting for a second right click
SCENE_BACKGROUND_COLOR = "#000000"

# --- View ---
VIEW_PIXELS_PER_UNIT = 100.0               # Initial zoom: one world unit in screen pixels
VIEW_ZOOM_FACTOR = 1.15                    # Zoom factor per mouse wheel step
VIEW_MIN_ZOOM = 5.0
VIEW_MAX_ZOOM = 2000.0

# --- Behavior ---
FRAME_INTERVAL_MS = 16                     # Frame tick: line refresh and deferred visual release
FRAMES_IN_FLIGHT = 2                       # Frames that may still reference a visual after removal
TEXT_EDIT_COMMIT_DELAY_MS = 300            # Debounce before a text edit rebuilds the node

# --- File Settings ---
SAVE_FILE_EXTENSION = ".diagsv"
EXPORT_FILE_EXTENSION = ".diag"
SAVE_FILE_FILTER = f"Diagmaker Save Files (*{SAVE_FILE_EXTENSION});;All Files (*)"
EXPORT_FILE_FILTER = f"Diagmaker Export Files (*{EXPORT_FILE_EXTENSION});;All Files (*)"
DEFAULT_FILE_BASENAME = "untitled"
JSON_INDENT = 2                            # Indentation spaces for saved JSON files

# --- Manual ---
MANUAL_TEXT: str = (
    "DIAGMAKER MANUAL:\n\n"
    "Diagmaker is an application which allows you make dialogue trees.\n"
    "You can make a dialogue node by pressing middle click,\n"
    "you can move these nodes around by dragging them with left click.\n"
    "You can connect these nodes up to one another by pressing a node with right click,\n"
    "and then pressing right click on the one you want to connect it to.\n"
    "If you left click a node, you will select it and will be able to see it in the inspector.\n"
    "Each node has two properties, text and an event.\n"
    "You can modify both within the inspector.\n"
    "The event is not shown in the program but only in the inspector.\n"
    "If you want to delete a node, then select it and press delete."
)

# --- Export Document Shape ---
# Fields written per node. Export omits position, so it cannot restore a layout.
SAVE_FIELDS: Tuple[str, ...] = ("position", "text", "event", "connections")
EXPORT_FIELDS: Tuple[str, ...] = ("text", "event", "connections")

DEFAULT_POSITION: Tuple[float, float] = (0.0, 0.0)  # Used when a document element has no position
