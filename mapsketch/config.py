"""Tool configuration handed to the engine on every paint call."""

from dataclasses import dataclass, fields, asdict
from typing import Optional

from mapsketch.compositing import parse_color

WIDTH, HEIGHT = 720, 360

PAINT_MODES = ("terrain", "river", "sea", "texture", "path", "text", "asset", "none")
PATH_STYLES = ("dots", "dashed")
COLOR_FIELDS = ("terrain_color", "flat_color", "path_color", "shallow_water_color", "ocean_color")

# Snake-case field -> key used in the saved project "state" block.
_STATE_KEYS = {
    "paint_mode": "paintMode",
    "terrain_color": "terrainColor",
    "flat_color": "selectedTexture",
    "brush_size": "brushSize",
    "brush_opacity": "brushBlur",
    "falloff_width": "blurWidth",
    "edge_roughness": "roughness",
    "active_texture": "activeTexture",
    "texture_eraser": "isTextureEraser",
    "path_color": "pathColor",
    "path_spacing": "pathSpacing",
    "path_style": "pathStyle",
    "organic_river": "isOrganicRiver",
    "shallow_water_color": "shallowWaterColor",
    "shallow_water_enabled": "isShallowWaterEnabled",
    "ocean_color": "oceanColor",
    "ocean_texture": "oceanTexture",
}


@dataclass
class ToolConfig:
    paint_mode: str = "terrain"
    terrain_color: str = "#edc9af"
    flat_color: str = "#2d5a27"
    brush_size: float = 15
    brush_opacity: float = 100      # percent
    falloff_width: float = 50       # percent, >= 95 means hard edge
    edge_roughness: float = 40      # percent, 0 means circular stamp
    active_texture: Optional[str] = None
    texture_eraser: bool = False
    path_color: str = "#ffffff"
    path_spacing: float = 2.5
    path_style: str = "dots"
    organic_river: bool = False
    shallow_water_color: str = "#38bdf8"
    shallow_water_enabled: bool = True
    ocean_color: str = "#1e3a8a"
    ocean_texture: Optional[str] = None

    @property
    def opacity(self) -> float:
        return self.brush_opacity / 100

    def update(self, **changes) -> "ToolConfig":
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        if "paint_mode" in changes and changes["paint_mode"] not in PAINT_MODES:
            raise ValueError(f"Unknown paint mode: {changes['paint_mode']}")
        if "path_style" in changes and changes["path_style"] not in PATH_STYLES:
            raise ValueError(f"Unknown path style: {changes['path_style']}")
        for name in COLOR_FIELDS:
            if name in changes:
                parse_color(changes[name])
        # Nothing is assigned until every value has been checked
        for name, value in changes.items():
            setattr(self, name, value)
        return self

    def to_dict(self) -> dict:
        """Serialize to the camelCase state block stored in project files."""
        return {_STATE_KEYS[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, state: dict) -> "ToolConfig":
        return cls().update(**{name: state[key] for name, key in _STATE_KEYS.items()
                               if key in state})
