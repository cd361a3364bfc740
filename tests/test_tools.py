import asyncio
import queue
import threading

import pytest

from tools import clamp, create_mcp_server


@pytest.fixture
def command_queue():
    return queue.Queue()


@pytest.fixture
def mcp(command_queue):
    return create_mcp_server(command_queue, 200, 120)


def _call(mcp, name, **arguments):
    return asyncio.run(mcp.call_tool(name, arguments))


def _drain(command_queue):
    items = []
    while not command_queue.empty():
        items.append(command_queue.get_nowait())
    return items


def _answer(command_queue, data):
    """Play the main loop: reply to the next bridged request with data."""
    seen = []

    def respond():
        cmd = command_queue.get(timeout=5)
        seen.append({k: v for k, v in cmd.items() if not k.startswith("_")})
        cmd["_result"]["data"] = data
        cmd["_event"].set()

    thread = threading.Thread(target=respond, daemon=True)
    thread.start()
    return thread, seen


def test_clamp():
    assert clamp(5, 0, 3) == 3
    assert clamp(-1, 0, 3) == 0
    assert clamp(2, 0, 3) == 2


def test_tools_are_registered(mcp):
    names = {tool.name for tool in asyncio.run(mcp.list_tools())}
    assert {"set_tool", "configure_brush", "stroke", "place_asset", "scatter_assets",
            "add_label", "undo", "redo", "save_project", "load_project",
            "export_image", "get_canvas_pixels"} <= names


def test_set_tool_queues_command(mcp, command_queue):
    _call(mcp, "set_tool", tool="river")
    assert _drain(command_queue) == [{"action": "set_tool", "tool": "river"}]


def test_set_tool_rejects_unknown_tool(mcp, command_queue):
    _call(mcp, "set_tool", tool="lasso")
    assert _drain(command_queue) == []


def test_configure_brush_clamps_and_skips_missing(mcp, command_queue):
    _call(mcp, "configure_brush", size=500, roughness=-3)
    assert _drain(command_queue) == [
        {"action": "set_config", "changes": {"brush_size": 200, "edge_roughness": 0}}]


def test_configure_path_rejects_unknown_style(mcp, command_queue):
    _call(mcp, "configure_path", style="wavy")
    assert _drain(command_queue) == []
    _call(mcp, "configure_path", style="dashed")
    assert _drain(command_queue) == [
        {"action": "set_config", "changes": {"path_style": "dashed"}}]


def test_empty_texture_source_disables_pattern(mcp, command_queue):
    _call(mcp, "set_texture", source="")
    assert _drain(command_queue) == [
        {"action": "set_config", "changes": {"active_texture": None}}]


def test_stroke_passes_points(mcp, command_queue):
    _call(mcp, "stroke", points=[[1, 2], [3, 4]])
    assert _drain(command_queue) == [{"action": "stroke", "points": [[1, 2], [3, 4]]}]


def test_new_map_clamps_size(mcp, command_queue):
    _call(mcp, "new_map", width=10, height=99999)
    cmd, = _drain(command_queue)
    assert (cmd["width"], cmd["height"]) == (16, 4096)


def test_place_asset_waits_for_main_thread(mcp, command_queue):
    thread, seen = _answer(command_queue, 7)
    _call(mcp, "place_asset", source="tree.png", x=10, y=20, scale=50)
    thread.join(timeout=5)
    assert seen == [{"action": "place_asset", "src": "tree.png", "x": 10, "y": 20,
                     "scale": 10, "rotation": 0.0, "flip_x": False}]


def test_select_at_follows_active_tool(mcp, command_queue):
    _call(mcp, "set_tool", tool="text")
    _drain(command_queue)
    thread, seen = _answer(command_queue, None)
    _call(mcp, "select_at", x=5, y=6)
    thread.join(timeout=5)
    assert seen[0]["action"] == "select_label"


def test_get_canvas_pixels_sends_region(mcp, command_queue):
    thread, seen = _answer(command_queue, [[[1, 2, 3]]])
    _call(mcp, "get_canvas_pixels", x=4, y=5, width=1, height=1)
    thread.join(timeout=5)
    assert seen == [{"action": "get_pixels", "x": 4, "y": 5, "w": 1, "h": 1}]
