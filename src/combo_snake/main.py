# src/combo_snake/main.py
from __future__ import annotations
import argparse
import csv
import logging
import os
from typing import Tuple

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")
import pygame  # type: ignore

from .autopilot import Autopilot
from .clock import AdaptiveFrameTimer, FrameTimer
from .config import GameConfig, SPEED_PRESETS, get_speed_preset
from .engine import GameEngine
from .scheduler import FrameScheduler, PerformanceStats, PygameFrameHost
from .score import GameScore


def run_session(seconds: float, fps: int, preset: str, seed: int, adaptive: bool = False,
                verbose: bool = False) -> Tuple[GameEngine, GameScore]:
    """
    Play one headless session with the autopilot until game over or until
    `seconds` of frame time have run. Returns the engine and its final score.
    """
    host = PygameFrameHost(fps)
    engine = GameEngine(GameConfig(seed=seed), speed_config=get_speed_preset(preset).config, time_source=host.now)
    pilot = Autopilot(seed=seed, wander=0.05)
    timer = AdaptiveFrameTimer(fps) if adaptive else FrameTimer(fps)

    def on_update(delta: float) -> None:
        pilot.steer(engine)
        alive = engine.update(delta)
        if not alive or scheduler.get_runtime() >= seconds * 1000:
            scheduler.stop()

    def on_performance(stats: PerformanceStats) -> None:
        if verbose:
            print(f"[PERF] fps={stats.fps:.1f} target={stats.target_fps:.0f} "
                  f"stable={stats.is_stable} frames={stats.frame_count}")

    if verbose:
        engine.speed.on_speed_change(
            lambda e: print(f"[SPEED] {e.reason.value}: level={e.speed_level} target={e.target_speed:.0f}ms")
        )
        engine.combo.subscribe(
            lambda e: print(f"[COMBO] {e.type.value} {list(e.sequence)}")
        )

    scheduler = FrameScheduler(host, on_update, on_performance_update=on_performance, timer=timer)
    scheduler.start()
    host.run()
    return engine, engine.score.get_score_breakdown()


def main():
    parser = argparse.ArgumentParser(description="Run headless combo-snake sessions with the autopilot.")
    parser.add_argument("--episodes", type=int, default=1)
    parser.add_argument("--seconds", type=float, default=20.0, help="frame-time limit per session")
    parser.add_argument("--fps", type=int, default=60)
    parser.add_argument("--preset", type=str, default="normal", choices=sorted(SPEED_PRESETS))
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--adaptive", action="store_true", help="let the target FPS follow measured performance")
    parser.add_argument("--out", type=str, default=None, help="optional CSV file for per-episode results")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    pygame.init()
    try:
        rows = [("ep", "steps", "score", "combos", "max_level", "collision")]
        print("ep,steps,score,combos,max_level,collision")
        for ep in range(1, args.episodes + 1):
            engine, score = run_session(args.seconds, args.fps, args.preset, args.seed + ep - 1,
                                        adaptive=args.adaptive, verbose=args.verbose)
            collision = engine.collision_result.type.value if engine.collision_result else "none"
            max_level = engine.speed.get_statistics().max_level_reached
            print(f"{ep},{engine.steps},{score.current_score},{score.total_combos},{max_level},{collision}")
            rows.append((ep, engine.steps, score.current_score, score.total_combos, max_level, collision))
    finally:
        pygame.quit()

    if args.out:
        os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
        with open(args.out, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerows(rows)
        print(f"\nSaved results → {args.out}")


if __name__ == "__main__":
    main()
