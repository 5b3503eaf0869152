"""
Headless game runner for the squad tactics simulation.

Plays both factions with the rule-based planner and writes a JSON log of
every core event.
"""

import os
import sys
import json
import asyncio
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).parent / ".env")

from engine import create_session, load_rules, MapLoadError, GameEvent
from engine.events import TurnStarted
from engine.session import DEFAULT_MAP, PLAYER_FACTION, AI_FACTION

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class TacticsSimulation:
    """Runs one AI-vs-AI session to completion."""

    def __init__(
        self,
        map_path: Path | str = DEFAULT_MAP,
        rules_path: Optional[Path | str] = None,
        seed: Optional[int] = None,
        max_turns: int = 30,
        log_dir: str = "logs",
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(exist_ok=True)

        logger.info("Loading rules...")
        self.rules = load_rules(rules_path)

        logger.info(f"Loading map {map_path}...")
        self.session = create_session(
            map_path,
            rules=self.rules,
            ai_factions=(PLAYER_FACTION, AI_FACTION),
            seed=seed,
            max_turns=max_turns,
        )
        self.seed = seed

        # Game log
        self.game_log: list[dict] = []
        self.start_time: Optional[datetime] = None
        self.session.events.subscribe_all(self._on_event)
        self.session.events.subscribe(TurnStarted, self._on_turn_start)

    def _on_event(self, event: GameEvent):
        self._log_event(event.name, event.to_dict())

    def _on_turn_start(self, event: TurnStarted):
        logger.info(f"\n{'='*60}")
        logger.info(f"TURN {event.turn}")
        logger.info(f"{'='*60}")
        units = self.session.units
        for faction in (PLAYER_FACTION, AI_FACTION):
            agent = self.session.scheduler.agents[faction]
            order = agent.choose_activation_order(units.get_alive_units(faction))
            logger.info(f"{faction} priority: {[u.id for u in order]}")

    async def run_game(self) -> dict:
        """Run until one side is eliminated or the turn limit is hit."""
        self.start_time = datetime.now()
        self._log_event("game_start", {
            "map": self.session.map_data.name if self.session.map_data else None,
            "seed": self.seed,
            "units": [u.to_dict() for u in self.session.units.units],
        })

        await self.session.scheduler.start_game()

        results = self._compile_results()
        self._log_event("game_end", results)
        self._save_game_log()
        return results

    def _compile_results(self) -> dict:
        state = self.session.state
        units = self.session.units
        return {
            "turns_played": state.turn,
            "winner": state.winner,
            "surviving_forces": {
                faction: len(units.get_alive_units(faction))
                for faction in (PLAYER_FACTION, AI_FACTION)
            },
            "duration": str(datetime.now() - self.start_time) if self.start_time else None,
        }

    def _log_event(self, event_type: str, data: dict):
        self.game_log.append({
            "timestamp": datetime.now().isoformat(),
            "event": event_type,
            "data": data,
        })

    def _save_game_log(self):
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = self.log_dir / f"game_{timestamp}.json"

        with open(log_path, "w") as f:
            json.dump(self.game_log, f, indent=2, default=str)

        logger.info(f"Game log saved to: {log_path}")


def main():
    """Run a headless tactics simulation."""
    import argparse

    seed_env = os.environ.get("TACTICS_SEED")

    parser = argparse.ArgumentParser(description="Squad Tactics Simulation")
    parser.add_argument("--map", default=os.environ.get("TACTICS_MAP", str(DEFAULT_MAP)),
                        help="Map file (JSON or YAML)")
    parser.add_argument("--rules", default=os.environ.get("TACTICS_RULES"),
                        help="Rules YAML (default: data/rules.yaml)")
    parser.add_argument("--seed", type=int, default=int(seed_env) if seed_env else None,
                        help="RNG seed for reproducible games")
    parser.add_argument("--max-turns", type=int, default=30, help="Turn limit (draw when reached)")
    parser.add_argument("--log-dir", default="logs", help="Log directory path")

    args = parser.parse_args()

    try:
        sim = TacticsSimulation(
            map_path=args.map,
            rules_path=args.rules,
            seed=args.seed,
            max_turns=args.max_turns,
            log_dir=args.log_dir,
        )
    except MapLoadError as e:
        logger.error(f"Could not start session: {e}")
        sys.exit(1)

    results = asyncio.run(sim.run_game())

    print("\n" + "="*60)
    print("FINAL RESULTS")
    print("="*60)
    print(f"Turns played: {results['turns_played']}")
    print(f"Winner: {results['winner']}")
    for faction, alive in results["surviving_forces"].items():
        print(f"Surviving {faction}: {alive}")
    print(f"Duration: {results['duration']}")


if __name__ == "__main__":
    main()
