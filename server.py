"""Entry point: starts MCP server thread + pygame main loop."""

import os
# Suppress pygame welcome message before importing; it prints to stdout
# which would corrupt the MCP stdio JSON-RPC stream.
os.environ["PYGAME_HIDE_SUPPORT_PROMPT"] = "1"

import logging
import queue
import sys
import threading

import pygame
from canvas import MapCanvas
from mapsketch.config import HEIGHT, WIDTH
from tools import create_mcp_server

TOOLBAR_H = 40
WINDOW_H = HEIGHT + TOOLBAR_H
FPS = 30

# Toolbar colours
TB_BG = (30, 41, 59)
TB_BTN = (71, 85, 105)
TB_BTN_HOVER = (100, 116, 139)
TB_TEXT = (241, 245, 249)

logger = logging.getLogger("mapsketch.server")


def run_mcp_server(mcp_server):
    """Daemon thread target: runs the MCP stdio server."""
    mcp_server.run(transport="stdio")


def _export(canvas: MapCanvas):
    """Toolbar button: write <name>_export.jpg into the working directory."""
    try:
        logger.info(canvas.execute({"action": "export_image"}))
    except OSError as e:
        logger.error("Export failed: %s", e)


def _handle_request(cmd: dict, canvas: MapCanvas):
    """Process a request/response command from the MCP tool thread."""
    event: threading.Event = cmd.pop("_event")
    result: dict = cmd.pop("_result")
    action = cmd.get("action")
    try:
        if action == "get_pixels":
            result["data"] = canvas.get_pixels_rgb(
                cmd.get("x", 0), cmd.get("y", 0),
                cmd.get("w"), cmd.get("h"),
            )
        elif action == "get_size":
            result["data"] = [canvas.width, canvas.height]
        else:
            result["data"] = canvas.execute(cmd)
    except Exception as e:
        logger.warning("Request %s failed: %s", action, e)
        result["error"] = str(e)
    finally:
        event.set()


def main():
    # stdout belongs to the MCP stream
    logging.basicConfig(stream=sys.stderr, level=logging.INFO,
                        format="%(asctime)s %(name)s %(levelname)s: %(message)s")

    # Shared command queue between MCP thread and pygame main thread
    command_queue = queue.Queue()

    mcp_server = create_mcp_server(command_queue, WIDTH, HEIGHT)

    mcp_thread = threading.Thread(target=run_mcp_server, args=(mcp_server,), daemon=True)
    mcp_thread.start()

    # Initialize pygame on the main thread
    pygame.init()
    screen = pygame.display.set_mode((WIDTH, WINDOW_H))
    pygame.display.set_caption("Mapsketch")
    clock = pygame.time.Clock()

    canvas = MapCanvas(WIDTH, HEIGHT)

    font = pygame.font.SysFont(None, 24)
    export_btn_rect = pygame.Rect(10, 8, 80, 26)

    running = True
    while running:
        mouse_pos = pygame.mouse.get_pos()

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.MOUSEBUTTONDOWN and event.button == 1:
                if export_btn_rect.collidepoint(event.pos):
                    _export(canvas)

        # Drain all pending commands from the queue
        while True:
            try:
                cmd = command_queue.get_nowait()
            except queue.Empty:
                break

            # Request/response bridge commands have an _event key
            if "_event" in cmd:
                _handle_request(cmd, canvas)
            else:
                try:
                    canvas.execute(cmd)
                except Exception as e:
                    logger.error("Command %s failed: %s", cmd.get("action"), e)

        # A loaded project or new map can change the window size
        if screen.get_size() != (canvas.width, canvas.height + TOOLBAR_H):
            screen = pygame.display.set_mode((canvas.width, canvas.height + TOOLBAR_H))

        # --- Render ---
        pygame.draw.rect(screen, TB_BG, (0, 0, canvas.width, TOOLBAR_H))
        btn_color = TB_BTN_HOVER if export_btn_rect.collidepoint(mouse_pos) else TB_BTN
        pygame.draw.rect(screen, btn_color, export_btn_rect, border_radius=4)
        label = font.render("Export", True, TB_TEXT)
        screen.blit(label, label.get_rect(center=export_btn_rect.center))
        title = font.render(f"{canvas.name} · {canvas.active_tool}", True, TB_TEXT)
        screen.blit(title, (export_btn_rect.right + 16, 12))

        # Map (offset below toolbar)
        screen.blit(canvas.get_display_surface(), (0, TOOLBAR_H))
        pygame.display.flip()
        clock.tick(FPS)

    pygame.quit()


if __name__ == "__main__":
    main()
