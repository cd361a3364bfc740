"""MCP tool definitions. Pushes map commands onto a thread-safe queue."""

import json
import queue
import threading
from typing import Optional
from mcp.server.fastmcp import FastMCP

from canvas import TOOLS
from mapsketch.config import PATH_STYLES


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def create_mcp_server(command_queue: queue.Queue, width: int = 720, height: int = 360) -> FastMCP:
    mcp = FastMCP("mapsketch")

    # Local mirror so get_canvas_info can respond without a round trip
    _size = [width, height]
    _tool = ["sculpt"]

    def _send(cmd: dict):
        command_queue.put(cmd)

    def _configure(**changes) -> dict:
        changes = {k: v for k, v in changes.items() if v is not None}
        if changes:
            _send({"action": "set_config", "changes": changes})
        return changes

    def _request_response(cmd: dict, timeout: float = 10.0):
        """Send a command to the main thread and wait for a response."""
        event = threading.Event()
        result: dict = {}
        cmd["_event"] = event
        cmd["_result"] = result
        command_queue.put(cmd)
        if not event.wait(timeout):
            raise TimeoutError("Main thread did not respond in time")
        if "error" in result:
            raise RuntimeError(result["error"])
        return result["data"]

    @mcp.tool()
    def get_canvas_info() -> str:
        """Get map dimensions and the active tool."""
        return f"Map: {_size[0]}x{_size[1]}, tool: {_tool[0]}"

    @mcp.tool()
    def set_tool(tool: str) -> str:
        """Select the active tool: sculpt (raise land), river (carve water), sea,
        paint (texture fill), path (dotted/dashed trails), asset, text or move."""
        if tool not in TOOLS:
            return f"Unknown tool {tool!r}; choose one of {', '.join(TOOLS)}"
        _tool[0] = tool
        _send({"action": "set_tool", "tool": tool})
        return f"Tool set to {tool}"

    @mcp.tool()
    def configure_brush(size: Optional[float] = None, opacity: Optional[float] = None,
                        falloff_width: Optional[float] = None,
                        roughness: Optional[float] = None) -> str:
        """Set brush radius (1-200 px), opacity, edge falloff and edge roughness
        (the last three are percentages 0-100; falloff >= 95 gives a hard edge,
        roughness 0 gives a perfect circle)."""
        changes = _configure(
            brush_size=None if size is None else clamp(size, 1, 200),
            brush_opacity=None if opacity is None else clamp(opacity, 0, 100),
            falloff_width=None if falloff_width is None else clamp(falloff_width, 0, 100),
            edge_roughness=None if roughness is None else clamp(roughness, 0, 100),
        )
        return f"Brush updated: {changes}"

    @mcp.tool()
    def set_colors(terrain: Optional[str] = None, flat_paint: Optional[str] = None,
                   path: Optional[str] = None, ocean: Optional[str] = None) -> str:
        """Set hex colors (#rrggbb) for land, flat texture paint, paths and the ocean."""
        changes = _configure(terrain_color=terrain, flat_color=flat_paint,
                             path_color=path, ocean_color=ocean)
        return f"Colors updated: {changes}"

    @mcp.tool()
    def configure_path(style: Optional[str] = None, spacing: Optional[float] = None) -> str:
        """Set path style ('dots' or 'dashed') and mark spacing as a multiple of brush size."""
        if style is not None and style not in PATH_STYLES:
            return f"Unknown path style {style!r}"
        changes = _configure(path_style=style,
                             path_spacing=None if spacing is None else clamp(spacing, 0.1, 10))
        return f"Path updated: {changes}"

    @mcp.tool()
    def set_organic_river(enabled: bool) -> str:
        """Let river width swell and narrow along the stroke."""
        _configure(organic_river=enabled)
        return f"Organic river {'enabled' if enabled else 'disabled'}"

    @mcp.tool()
    def set_shallow_water(color: Optional[str] = None, enabled: Optional[bool] = None) -> str:
        """Configure the glowing shallow-water band around coastlines."""
        changes = _configure(shallow_water_color=color, shallow_water_enabled=enabled)
        return f"Shallow water updated: {changes}"

    @mcp.tool()
    def set_texture(source: Optional[str] = None, eraser: Optional[bool] = None) -> str:
        """Choose the pattern image (file path or data URI) painted by the paint tool.
        An empty source disables the pattern; eraser=True makes the brush remove it."""
        changes = {}
        if source is not None:
            changes["active_texture"] = source or None
        if eraser is not None:
            changes["texture_eraser"] = eraser
        if changes:
            _send({"action": "set_config", "changes": changes})
        return f"Texture updated: {changes}"

    @mcp.tool()
    def set_ocean_texture(source: Optional[str] = None) -> str:
        """Tile an image over the ocean in exports (empty source removes it)."""
        _send({"action": "set_config", "changes": {"ocean_texture": source or None}})
        return "Ocean texture updated"

    @mcp.tool()
    def stroke(points: list[list[float]]) -> str:
        """Drag the active tool through a list of [x, y] map coordinates."""
        _send({"action": "stroke", "points": points})
        return f"Stroked {_tool[0]} through {len(points)} points"

    @mcp.tool()
    def place_asset(source: str, x: float, y: float, scale: float = 1.0,
                    rotation: float = 0.0, flip_x: bool = False) -> str:
        """Place a decorative image centred at (x, y). Returns its id."""
        ident = _request_response({"action": "place_asset", "src": source, "x": x, "y": y,
                                   "scale": clamp(scale, 0.1, 10), "rotation": rotation,
                                   "flip_x": flip_x})
        return f"Placed asset {ident}"

    @mcp.tool()
    def scatter_assets(sources: list[str], points: list[list[float]], density: int = 5,
                       brush_radius: float = 100, size_variation: float = 30,
                       base_scale: float = 100, place_on_top: bool = True) -> str:
        """Spray random picks from `sources` along a drag through `points`
        (density 1-100, sizes in percent)."""
        count = _request_response({
            "action": "scatter_assets", "sources": sources, "points": points,
            "density": int(clamp(density, 1, 100)), "brush_radius": brush_radius,
            "size_variation": clamp(size_variation, 0, 100),
            "base_scale": clamp(base_scale, 10, 300), "place_on_top": place_on_top,
        })
        return f"Scattered {count} assets"

    @mcp.tool()
    def update_asset(asset_id: int, x: Optional[float] = None, y: Optional[float] = None,
                     rotation: Optional[float] = None, scale: Optional[float] = None,
                     flip_x: Optional[bool] = None) -> str:
        """Move, rotate, scale or flip a placed asset."""
        cmd = {"action": "update_asset", "id": asset_id}
        for key, value in (("x", x), ("y", y), ("rotation", rotation),
                           ("scale", scale), ("flip_x", flip_x)):
            if value is not None:
                cmd[key] = value
        _request_response(cmd)
        return f"Updated asset {asset_id}"

    @mcp.tool()
    def remove_asset(asset_id: int) -> str:
        """Delete a placed asset."""
        _request_response({"action": "remove_asset", "id": asset_id})
        return f"Removed asset {asset_id}"

    @mcp.tool()
    def add_label(text: str, x: float, y: float, size: int = 15, rotation: float = 0.0,
                  curvature: float = 0.0, color: str = "#ffffff",
                  has_outline: bool = True) -> str:
        """Add a text label. Non-zero curvature bends it along an arc
        (positive bends down at the ends, negative up). Returns its id."""
        ident = _request_response({
            "action": "add_label", "text": text, "x": x, "y": y,
            "size": int(clamp(size, 4, 200)), "rotation": rotation,
            "curvature": curvature, "color": color, "has_outline": has_outline,
        })
        return f"Added label {ident}"

    @mcp.tool()
    def update_label(label_id: int, text: Optional[str] = None, x: Optional[float] = None,
                     y: Optional[float] = None, size: Optional[int] = None,
                     rotation: Optional[float] = None, curvature: Optional[float] = None,
                     color: Optional[str] = None, has_outline: Optional[bool] = None) -> str:
        """Edit a label's text, position or style."""
        cmd = {"action": "update_label", "id": label_id}
        for key, value in (("text", text), ("x", x), ("y", y), ("size", size),
                           ("rotation", rotation), ("curvature", curvature),
                           ("color", color), ("has_outline", has_outline)):
            if value is not None:
                cmd[key] = value
        _request_response(cmd)
        return f"Updated label {label_id}"

    @mcp.tool()
    def remove_label(label_id: int) -> str:
        """Delete a label."""
        _request_response({"action": "remove_label", "id": label_id})
        return f"Removed label {label_id}"

    @mcp.tool()
    def select_at(x: float, y: float) -> str:
        """Select the asset (asset tool) or label (text tool) under (x, y)."""
        action = "select_label" if _tool[0] == "text" else "select_asset"
        ident = _request_response({"action": action, "x": x, "y": y})
        return f"Selected {ident}" if ident is not None else "Nothing selected"

    @mcp.tool()
    def new_map(width: int, height: int, name: str = "My World") -> str:
        """Start a blank map of the given size (clears history)."""
        width, height = int(clamp(width, 16, 4096)), int(clamp(height, 16, 4096))
        _size[:] = [width, height]
        _send({"action": "new_map", "width": width, "height": height, "name": name})
        return f"New map {name!r} {width}x{height}"

    @mcp.tool()
    def clear_map() -> str:
        """Erase all land, paint, paths, assets and labels."""
        _send({"action": "clear"})
        return "Map cleared"

    @mcp.tool()
    def undo() -> str:
        """Undo the last map operation."""
        _send({"action": "undo"})
        return "Undo performed"

    @mcp.tool()
    def redo() -> str:
        """Redo the last undone operation."""
        _send({"action": "redo"})
        return "Redo performed"

    @mcp.tool()
    def save_project(file_path: str) -> str:
        """Save the map (layers, settings, assets, labels) as a JSON project file."""
        return _request_response({"action": "save_project", "path": file_path})

    @mcp.tool()
    def load_project(file_path: str) -> str:
        """Open a JSON project file, replacing the current map."""
        result = _request_response({"action": "load_project", "path": file_path})
        _size[:] = _request_response({"action": "get_size"})
        return result

    @mcp.tool()
    def export_image(file_path: Optional[str] = None) -> str:
        """Flatten the map and write it as a JPEG (default: <name>_export.jpg)."""
        return _request_response({"action": "export_image", "path": file_path})

    @mcp.tool()
    def get_canvas_pixels(x: Optional[int] = None, y: Optional[int] = None,
                          width: Optional[int] = None, height: Optional[int] = None) -> str:
        """Return RGB pixel data of the flattened map as a JSON 2D array of [r,g,b] values
        (row-major). Request a small region; the full map is very large."""
        cmd: dict = {"action": "get_pixels"}
        if x is not None:
            cmd["x"] = x
        if y is not None:
            cmd["y"] = y
        if width is not None:
            cmd["w"] = width
        if height is not None:
            cmd["h"] = height
        pixels = _request_response(cmd)
        return json.dumps(pixels)

    return mcp
