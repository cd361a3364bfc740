"""Map state holder: tool config, assets, labels and undo history around a MapEngine."""

import copy
import math
import random
from pathlib import Path

import numpy as np
import pygame

from mapsketch.annotations import Asset, Label
from mapsketch.compositing import parse_color
from mapsketch.config import HEIGHT, WIDTH, ToolConfig
from mapsketch.engine import MapEngine, export_filename
from mapsketch.errors import ProjectError
from mapsketch.layers import surface_to_arrays
from mapsketch.project import Project, dump_project, load_project

TOOLS = ("sculpt", "river", "sea", "paint", "path", "asset", "text", "move")

# Which engine paint mode each tool drives
TOOL_PAINT_MODES = {
    "sculpt": "terrain",
    "river": "river",
    "sea": "sea",
    "paint": "texture",
    "path": "path",
}

_WATER_FIELDS = {"shallow_water_color", "shallow_water_enabled"}


class MapCanvas:
    MAX_UNDO = 20

    def __init__(self, width: int = WIDTH, height: int = HEIGHT, name: str = "My World",
                 rng: random.Random = None):
        self.rng = rng or random.Random()
        self.name = name
        self.engine = MapEngine(self.rng)
        self.engine.init(width, height)
        self.config = ToolConfig()
        self.active_tool = "sculpt"
        self.assets: list[Asset] = []
        self.labels: list[Label] = []
        self.selected_asset_id = None
        self.selected_label_id = None
        self._next_id = 1
        self._undo_stack: list[tuple] = []
        self._redo_stack: list[tuple] = []
        self._display: pygame.Surface = None
        self._display_dirty = True
        self.engine.update_shallow_water(self.config.shallow_water_color,
                                         self.config.shallow_water_enabled)

    @property
    def width(self) -> int:
        return self.engine.size[0]

    @property
    def height(self) -> int:
        return self.engine.size[1]

    # --- History ---

    def _history_entry(self) -> tuple:
        return (self.engine.capture(), copy.deepcopy(self.assets), copy.deepcopy(self.labels))

    def _save_undo(self):
        self._redo_stack.clear()
        if len(self._undo_stack) >= self.MAX_UNDO:
            self._undo_stack.pop(0)
        self._undo_stack.append(self._history_entry())

    def _apply_history(self, entry: tuple):
        snapshot, assets, labels = entry
        # Raises SnapshotError with the layers untouched
        self.engine.restore(snapshot, self.width, self.height)
        self.assets, self.labels = copy.deepcopy(assets), copy.deepcopy(labels)
        self._refresh_water()
        self._redraw_annotations()

    def undo(self) -> bool:
        if not self._undo_stack:
            return False
        current = self._history_entry()
        self._apply_history(self._undo_stack[-1])
        # Stacks only move once the entry has been applied
        self._undo_stack.pop()
        self._redo_stack.append(current)
        return True

    def redo(self) -> bool:
        if not self._redo_stack:
            return False
        current = self._history_entry()
        self._apply_history(self._redo_stack[-1])
        self._redo_stack.pop()
        self._undo_stack.append(current)
        return True

    def execute(self, cmd: dict):
        action = cmd.get("action")
        method = getattr(self, f"_do_{action}", None)
        if method is None:
            raise ValueError(f"Unknown action: {action}")
        result = method(cmd)
        self._display_dirty = True
        return result

    # --- Helpers ---

    def _new_id(self) -> int:
        ident = self._next_id
        self._next_id += 1
        return ident

    def _refresh_water(self):
        self.engine.update_shallow_water(self.config.shallow_water_color,
                                         self.config.shallow_water_enabled)

    def _redraw_annotations(self):
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)
        self.engine.draw_labels(self.labels, self.selected_label_id, self.active_tool)

    def _find_asset(self, ident):
        for a in self.assets:
            if a.id == ident:
                return a
        raise ValueError(f"No asset with id {ident}")

    def _find_label(self, ident):
        for label in self.labels:
            if label.id == ident:
                return label
        raise ValueError(f"No label with id {ident}")

    @staticmethod
    def _interpolate(x1, y1, x2, y2, spacing=3) -> list[tuple[float, float]]:
        """Return evenly-spaced points along a line segment (end point excluded)."""
        dx, dy = x2 - x1, y2 - y1
        dist = math.hypot(dx, dy)
        steps = max(1, int(dist / spacing))
        return [(x1 + dx * t / steps, y1 + dy * t / steps) for t in range(1, steps + 1)]

    # --- State operations (no undo) ---

    def _do_set_config(self, cmd: dict):
        changes = cmd["changes"]
        # Validates every value first; a rejected command leaves the config as it was
        self.config.update(**changes)
        if "active_texture" in changes:
            self.engine.set_texture(self.config.active_texture)
        if _WATER_FIELDS & set(changes):
            self._refresh_water()

    def _do_set_tool(self, cmd: dict):
        tool = cmd["tool"]
        if tool not in TOOLS:
            raise ValueError(f"Unknown tool: {tool}")
        self.active_tool = tool
        self.config.paint_mode = TOOL_PAINT_MODES.get(tool, "none")
        self._redraw_annotations()

    def _do_select_asset(self, cmd: dict):
        x, y = cmd["x"], cmd["y"]
        # Topmost (last drawn) first
        found = next((a for a in reversed(self.assets) if a.contains(x, y)), None)
        self.selected_asset_id = found.id if found else None
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)
        return self.selected_asset_id

    def _do_select_label(self, cmd: dict):
        x, y = cmd["x"], cmd["y"]
        found = next((label for label in self.labels
                      if math.hypot(label.x - x, label.y - y) < label.size * 3), None)
        self.selected_label_id = found.id if found else None
        self.engine.draw_labels(self.labels, self.selected_label_id, self.active_tool)
        return self.selected_label_id

    # --- Drawing operations (save undo first) ---

    def _do_stroke(self, cmd: dict):
        """Paint a stroke through the given points with the current config."""
        points = [tuple(p) for p in cmd["points"]]
        if not points:
            return
        self._save_undo()
        mode = self.config.paint_mode
        x0, y0 = points[0]
        self.engine.begin_stroke(x0, y0)
        if mode == "path":
            for (x1, y1), (x2, y2) in zip(points, points[1:]):
                self.engine.draw_path_segment(x1, y1, x2, y2, self.config)
        else:
            # Dense samples stand in for the pointer events a UI would deliver
            spacing = max(1.0, self.config.brush_size / 4)
            self.engine.apply_paint(x0, y0, self.config)
            for (x1, y1), (x2, y2) in zip(points, points[1:]):
                for px, py in self._interpolate(x1, y1, x2, y2, spacing):
                    self.engine.apply_paint(px, py, self.config)
        self.engine.end_stroke()
        if mode in ("terrain", "river"):
            self._refresh_water()

    def _do_place_asset(self, cmd: dict):
        self._save_undo()
        src = cmd["src"]
        w, h = self.engine.load_asset_image(src).get_size()
        asset = Asset(id=self._new_id(), src=src, x=cmd["x"], y=cmd["y"],
                      rotation=cmd.get("rotation", 0.0), scale=cmd.get("scale", 1.0),
                      flip_x=cmd.get("flip_x", False), width=w, height=h)
        self.assets.append(asset)
        self.selected_asset_id = asset.id
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)
        return asset.id

    def _do_scatter_assets(self, cmd: dict):
        """Asset brush: drop random batches of images along a drag."""
        sources = cmd["sources"]
        points = [tuple(p) for p in cmd["points"]]
        if not sources or not points:
            return 0
        self._save_undo()
        density = max(1, cmd.get("density", 5))
        radius = cmd.get("brush_radius", 100)
        variation = cmd.get("size_variation", 30) / 100
        base = cmd.get("base_scale", 100) / 100
        on_top = cmd.get("place_on_top", True)

        threshold = 50 / density
        count = math.ceil(density / 2)
        placed: list[Asset] = []
        traveled = 1000.0  # the first point always paints
        last = points[0]
        for x, y in points:
            traveled += math.hypot(x - last[0], y - last[1])
            last = (x, y)
            if traveled < threshold:
                continue
            traveled = 0.0
            for _ in range(count):
                src = self.rng.choice(sources)
                angle = self.rng.random() * math.pi * 2
                r = math.sqrt(self.rng.random()) * radius
                scale = base * (1 + (self.rng.random() * 2 - 1) * variation)
                w, h = self.engine.load_asset_image(src).get_size()
                placed.append(Asset(id=self._new_id(), src=src,
                                    x=x + math.cos(angle) * r, y=y + math.sin(angle) * r,
                                    scale=max(0.1, scale), flip_x=self.rng.random() > 0.5,
                                    width=w, height=h))
        self.assets = self.assets + placed if on_top else placed + self.assets
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)
        return len(placed)

    def _do_update_asset(self, cmd: dict):
        asset = self._find_asset(cmd["id"])
        self._save_undo()
        for key in ("x", "y", "rotation", "scale", "flip_x"):
            if key in cmd:
                setattr(asset, key, cmd[key])
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)

    def _do_remove_asset(self, cmd: dict):
        asset = self._find_asset(cmd["id"])
        self._save_undo()
        self.assets.remove(asset)
        if self.selected_asset_id == asset.id:
            self.selected_asset_id = None
        self.engine.draw_assets(self.assets, self.selected_asset_id, self.active_tool)

    def _do_add_label(self, cmd: dict):
        parse_color(cmd.get("color", "#ffffff"))
        self._save_undo()
        label = Label(id=self._new_id(), text=cmd["text"], x=cmd["x"], y=cmd["y"],
                      rotation=cmd.get("rotation", 0.0), curvature=cmd.get("curvature", 0.0),
                      size=cmd.get("size", 15), color=cmd.get("color", "#ffffff"),
                      has_outline=cmd.get("has_outline", True))
        self.labels.append(label)
        self.selected_label_id = label.id
        self.engine.draw_labels(self.labels, self.selected_label_id, self.active_tool)
        return label.id

    def _do_update_label(self, cmd: dict):
        label = self._find_label(cmd["id"])
        if "color" in cmd:
            parse_color(cmd["color"])
        self._save_undo()
        for key in ("text", "x", "y", "rotation", "curvature", "size", "color", "has_outline"):
            if key in cmd:
                setattr(label, key, cmd[key])
        self.engine.draw_labels(self.labels, self.selected_label_id, self.active_tool)

    def _do_remove_label(self, cmd: dict):
        label = self._find_label(cmd["id"])
        self._save_undo()
        self.labels.remove(label)
        if self.selected_label_id == label.id:
            self.selected_label_id = None
        self.engine.draw_labels(self.labels, self.selected_label_id, self.active_tool)

    def _do_clear(self, cmd: dict):
        self._save_undo()
        self.engine.clear()
        self.assets, self.labels = [], []
        self.selected_asset_id = self.selected_label_id = None
        self._refresh_water()

    def _do_new_map(self, cmd: dict):
        """Start over at a new size; history does not survive a resize."""
        self.engine.init(cmd["width"], cmd["height"])
        self.name = cmd.get("name", self.name)
        self.assets, self.labels = [], []
        self.selected_asset_id = self.selected_label_id = None
        self._undo_stack.clear()
        self._redo_stack.clear()
        self.engine.set_texture(self.config.active_texture)
        self._refresh_water()

    def _do_undo(self, cmd: dict):
        return self.undo()

    def _do_redo(self, cmd: dict):
        return self.redo()

    # --- Files ---

    def to_project(self) -> Project:
        state = self.config.to_dict()
        state["assets"] = [a.to_dict() for a in self.assets]
        state["labels"] = [label.to_dict() for label in self.labels]
        return Project(name=self.name, width=self.width, height=self.height,
                       state=state, snapshot=self.engine.capture())

    def _do_save_project(self, cmd: dict):
        path = Path(cmd["path"])
        path.write_text(dump_project(self.to_project()), encoding="utf-8")
        return f"Project saved to {path}"

    def _do_load_project(self, cmd: dict):
        """Replace the map with a project file; nothing changes if it fails to parse."""
        project = load_project(Path(cmd["path"]).read_text(encoding="utf-8"))
        try:
            config = ToolConfig.from_dict(project.state)
        except ValueError as e:
            raise ProjectError(f"Bad tool settings in project: {e}") from e
        assets = [Asset.from_dict(d) for d in project.state.get("assets", [])]
        labels = [Label.from_dict(d) for d in project.state.get("labels", [])]

        engine = MapEngine(self.rng)
        engine.init(project.width, project.height)
        engine.set_texture(config.active_texture)
        engine.restore(project.snapshot, project.width, project.height)

        self.engine, self.config, self.name = engine, config, project.name
        self.assets, self.labels = assets, labels
        self.selected_asset_id = self.selected_label_id = None
        self.active_tool = "sculpt"
        ids = [int(item.id) for item in assets + labels if isinstance(item.id, (int, float))]
        self._next_id = max(ids, default=0) + 1
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._refresh_water()
        self._redraw_annotations()
        return f"Loaded {project.name} ({project.width}x{project.height})"

    def _do_export_image(self, cmd: dict):
        path = Path(cmd.get("path") or export_filename(self.name))
        data = self.engine.export_image(self.config.ocean_color, self.config.ocean_texture)
        path.write_bytes(data)
        return f"Exported map to {path}"

    # --- Read-only operations (no undo) ---

    def get_display_surface(self) -> pygame.Surface:
        if self._display_dirty or self._display is None:
            self._display = self.engine.composite(self.config.ocean_color,
                                                  self.config.ocean_texture)
            self._display_dirty = False
        return self._display

    def get_pixels_rgb(self, x: int = 0, y: int = 0,
                       w: int = None, h: int = None) -> list[list[list[int]]]:
        """Return a 2D list of [r, g, b] values (row-major) for the given region."""
        if w is None:
            w = self.width - x
        if h is None:
            h = self.height - y
        # Clamp to canvas bounds
        x = max(0, min(x, self.width - 1))
        y = max(0, min(y, self.height - 1))
        w = min(w, self.width - x)
        h = min(h, self.height - y)
        rgb, _ = surface_to_arrays(self.get_display_surface())
        region = np.round(rgb[y:y + h, x:x + w] * 255).astype(int)
        return region.tolist()
