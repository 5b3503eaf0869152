"""
WebSocket game server for human vs AI squad tactics.

Each connection owns one session. Inbound JSON messages map onto the
scheduler's command interface; every core event is pushed back out as JSON.
"""

import os
import json
import asyncio
import logging
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

import websockets

from engine import create_session, load_rules, MapLoadError, GameEvent
from engine.session import DEFAULT_MAP, PLAYER_FACTION, AI_FACTION

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class GameSession:
    """Wraps one engine session and forwards its events to a socket."""

    def __init__(self, send_json):
        self.send_json = send_json
        self.session = None
        self.outbox: list[dict] = []

    def initialize(self, map_path: str, seed=None, max_turns=None):
        rules = load_rules(os.environ.get("TACTICS_RULES"))
        self.session = create_session(
            map_path,
            rules=rules,
            player_faction=PLAYER_FACTION,
            ai_faction=AI_FACTION,
            ai_factions=(AI_FACTION,),
            seed=seed,
            max_turns=max_turns,
        )
        self.session.events.subscribe_all(self._on_event)
        logger.info(
            f"Game initialized: human={PLAYER_FACTION}, AI={AI_FACTION}, "
            f"map={self.session.map_data.name}"
        )

    def _on_event(self, event: GameEvent):
        # Events fire synchronously inside the engine; flush after each command
        self.outbox.append(event.to_dict())

    async def flush(self):
        pending, self.outbox = self.outbox, []
        for event in pending:
            await self.send_json("event", event)
        await self.send_json("state", self.session.scheduler.snapshot())

    async def dispatch(self, msg: dict):
        """Route one client command into the scheduler."""
        scheduler = self.session.scheduler
        msg_type = msg.get("type", "")

        if msg_type == "select_unit":
            await scheduler.select_unit(msg.get("unit_id", ""))
        elif msg_type == "move":
            await scheduler.request_move(int(msg["col"]), int(msg["row"]))
        elif msg_type == "action":
            await scheduler.request_action(msg.get("kind", ""))
        elif msg_type == "target":
            await scheduler.request_target(int(msg["col"]), int(msg["row"]))
        elif msg_type == "hover":
            scheduler.hover_tile(int(msg["col"]), int(msg["row"]))
        elif msg_type == "cancel":
            scheduler.cancel()
        else:
            return False
        return True


# ── WebSocket Game Server ──


async def handle_websocket(websocket):
    """Handle a single WebSocket connection (one game session)."""
    game = None

    async def send_json(msg_type: str, data: dict):
        await websocket.send(json.dumps({"type": msg_type, **data}, default=str))

    try:
        async for raw in websocket:
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await send_json("error", {"message": "Invalid JSON"})
                continue

            msg_type = msg.get("type", "")

            if msg_type == "start_game":
                map_path = msg.get("map") or os.environ.get("TACTICS_MAP", str(DEFAULT_MAP))
                game = GameSession(send_json)
                try:
                    game.initialize(map_path, seed=msg.get("seed"), max_turns=msg.get("max_turns"))
                except MapLoadError as e:
                    logger.error(f"Map load failed: {e}")
                    game = None
                    await send_json("error", {"message": f"Map load failed: {e}"})
                    continue

                await send_json("game_init", {
                    "map": {
                        "name": game.session.map_data.name,
                        "grid_size": list(game.session.map_data.grid_size),
                        "tile_size": game.session.map_data.tile_size,
                    },
                    "player_faction": PLAYER_FACTION,
                    "ai_faction": AI_FACTION,
                })
                await game.session.scheduler.start_game()
                await game.flush()
                continue

            if game is None:
                await send_json("error", {"message": "No game in progress"})
                continue

            try:
                handled = await game.dispatch(msg)
            except (KeyError, TypeError, ValueError):
                await send_json("error", {"message": f"Malformed {msg_type} message"})
                continue

            if not handled:
                await send_json("error", {"message": f"Unknown message type: {msg_type}"})
                continue

            await game.flush()

    except websockets.exceptions.ConnectionClosed:
        logger.info("Client disconnected")


async def main():
    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8765"))

    logger.info(f"Starting server on ws://{host}:{port}")

    async with websockets.serve(
        handle_websocket,
        host,
        port,
        max_size=1024 * 1024,
    ):
        await asyncio.Future()  # run forever


if __name__ == "__main__":
    asyncio.run(main())
