"""Project files: a JSON envelope around the tool state and a layer snapshot.

Layout (version 3)::

    {"meta": {"version": 3, "width": W, "height": H, "name": "..."},
     "state": {...tool config, assets, labels...},
     "layers": {"map": <data uri>, "mask": <data uri>,
                "textureMask": <data uri, optional>, "path": <data uri>}}
"""

import json
from dataclasses import dataclass

from mapsketch.errors import ProjectError
from mapsketch.images import from_data_uri, to_data_uri
from mapsketch.snapshot import Snapshot

VERSION = 3


@dataclass
class Project:
    name: str
    width: int
    height: int
    state: dict
    snapshot: Snapshot
    version: int = VERSION


def dump_project(project: Project) -> str:
    layers = {
        "map": to_data_uri(project.snapshot.terrain),
        "mask": to_data_uri(project.snapshot.land_mask),
        "path": to_data_uri(project.snapshot.path),
    }
    if project.snapshot.texture_mask is not None:
        layers["textureMask"] = to_data_uri(project.snapshot.texture_mask)
    return json.dumps({
        "meta": {"version": VERSION, "width": project.width,
                 "height": project.height, "name": project.name},
        "state": project.state,
        "layers": layers,
    })


def load_project(text: str) -> Project:
    """Parse a project document. Older files without textureMask are accepted."""
    try:
        data = json.loads(text)
        meta = data["meta"]
        layers = data["layers"]
        width, height = int(meta["width"]), int(meta["height"])
        texture_mask = layers.get("textureMask")
        snapshot = Snapshot(
            land_mask=from_data_uri(layers["mask"]),
            terrain=from_data_uri(layers["map"]),
            path=from_data_uri(layers["path"]),
            texture_mask=from_data_uri(texture_mask) if texture_mask else None,
        )
        return Project(
            name=meta.get("name", "Untitled"),
            width=width,
            height=height,
            state=data.get("state") or {},
            snapshot=snapshot,
            version=meta.get("version", VERSION),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise ProjectError(f"Malformed project file: {e}") from e
