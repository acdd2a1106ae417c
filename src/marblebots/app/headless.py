from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import World
from ..sim.types.metrics import TickMetrics

logger = logging.getLogger(__name__)


_BASIC_HEADER = [
    "tick",
    "population",
    "moving",
    "idle",
    "collisions",
    "tick_ms",
]

_DETAILED_HEADER = [
    "tick",
    "population",
    "moving",
    "idle",
    "collisions",
    "tick_ms",
    "moving_ratio",
    "idle_ratio",
    "mean_known",
    "formation_radius_cv",
    "mean_radius",
    "anchor_x",
    "anchor_y",
    "anchor_heading",
    "top_rule",
    "top_rule_count",
    "tick_ms_per_agent",
]


def _format_basic_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        metrics.population,
        metrics.moving,
        metrics.idle,
        metrics.collisions,
        f"{tick_ms:.3f}",
    ]


def _format_detailed_row(world: World, metrics: TickMetrics, tick_ms: float) -> list[object]:
    population = metrics.population
    agents = world.agents
    if population <= 0:
        moving_ratio = 0.0
        idle_ratio = 0.0
        tick_ms_per_agent = 0.0
        mean_radius = 0.0
    else:
        moving_ratio = metrics.moving / population
        idle_ratio = metrics.idle / population
        tick_ms_per_agent = tick_ms / population
        cx = sum(agent.position.x for agent in agents) / population
        cy = sum(agent.position.y for agent in agents) / population
        mean_radius = sum(math.hypot(agent.position.x - cx, agent.position.y - cy) for agent in agents) / population

    if metrics.rule_counts:
        top_rule, top_rule_count = max(metrics.rule_counts.items(), key=lambda item: (item[1], item[0]))
    else:
        top_rule, top_rule_count = "", 0

    anchor = world.agent(World.ANCHOR_ID)
    return [
        metrics.tick,
        population,
        metrics.moving,
        metrics.idle,
        metrics.collisions,
        f"{tick_ms:.3f}",
        f"{moving_ratio:.4f}",
        f"{idle_ratio:.4f}",
        f"{metrics.mean_known:.4f}",
        f"{metrics.formation_radius_cv:.4f}",
        f"{mean_radius:.4f}",
        f"{anchor.position.x:.4f}",
        f"{anchor.position.y:.4f}",
        f"{anchor.heading:.4f}",
        top_rule,
        top_rule_count,
        f"{tick_ms_per_agent:.4f}",
    ]


def _percentile(sorted_values: list[float], percentile: float) -> float:
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    pos = (len(sorted_values) - 1) * percentile
    low = int(math.floor(pos))
    high = int(math.ceil(pos))
    if low == high:
        return float(sorted_values[low])
    weight = pos - low
    return float(sorted_values[low] + (sorted_values[high] - sorted_values[low]) * weight)


def _summary_stats(values: list[float]) -> dict[str, float]:
    if not values:
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p95": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    count = len(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / count),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p95": _percentile(sorted_values, 0.95),
        "p99": _percentile(sorted_values, 0.99),
    }


def _settled_tick(moving_series: list[int]) -> int:
    """First tick after which no agent moved again, or -1 if the swarm never settled."""
    settled = -1
    for tick, moving in enumerate(moving_series):
        if moving > 0:
            settled = -1
        elif settled < 0:
            settled = tick
    return settled


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    log_format: str = "detailed",
    summary_path: Optional[Path] = None,
    summary_window: int = 500,
    config_path: Optional[Path] = None,
    formation: Optional[str] = None,
) -> World:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed

    log_mode = log_format.lower().strip()
    if log_mode not in {"basic", "detailed"}:
        raise ValueError(f"Unknown log format: {log_format}")

    world = World(config)
    if formation is not None:
        world.set_formation(formation_type=formation)
    logger.info(
        "headless run: %d steps, seed %d, %d agents, %s formation",
        steps,
        config.seed,
        len(world.agents),
        config.formation.formation_type.value,
    )

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_DETAILED_HEADER if log_mode == "detailed" else _BASIC_HEADER)

    tick_ms_series: list[float] = []
    moving_series: list[int] = []
    cv_series: list[float] = []
    collision_series: list[int] = []
    rule_totals: dict[str, int] = {}

    try:
        for tick in range(steps):
            metrics = world.step(tick)
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms

            if summary_path:
                tick_ms_series.append(tick_ms)
                moving_series.append(metrics.moving)
                cv_series.append(metrics.formation_radius_cv)
                collision_series.append(metrics.collisions)
                for name, count in metrics.rule_counts.items():
                    rule_totals[name] = rule_totals.get(name, 0) + count

            if writer:
                if log_mode == "detailed":
                    writer.writerow(_format_detailed_row(world, metrics, tick_ms))
                else:
                    writer.writerow(_format_basic_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()

    if summary_path:
        window = max(1, int(summary_window))
        tail_slice = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "population": len(world.agents),
            "formation": config.formation.formation_type.value,
            "log_format": log_mode,
            "deterministic_log": deterministic_log,
            "tick_ms": _summary_stats(tick_ms_series),
            "moving": _summary_stats([float(v) for v in moving_series]),
            "formation_radius_cv": _summary_stats(cv_series),
            "collisions": {"total": sum(collision_series), "peak": max(collision_series, default=0)},
            "rule_totals": dict(sorted(rule_totals.items())),
            "settled_tick": _settled_tick(moving_series),
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail_slice]),
                "moving": _summary_stats([float(v) for v in moving_series[tail_slice]]),
                "formation_radius_cv": _summary_stats(cv_series[tail_slice]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
        logger.info("summary written to %s", summary_path)
    return world


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless marblebots swarm simulation")
    parser.add_argument("--steps", type=int, default=3000)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file")
    parser.add_argument(
        "--formation",
        choices=["circle", "polygon"],
        default=None,
        help="Override the formation type from the configuration.",
    )
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write metrics")
    parser.add_argument(
        "--log-format",
        choices=["basic", "detailed"],
        default="detailed",
        help="CSV format to write when --log is provided.",
    )
    parser.add_argument(
        "--summary",
        type=Path,
        default=None,
        help="Optional JSON file to write summary stats for the run.",
    )
    parser.add_argument(
        "--summary-window",
        type=int,
        default=500,
        help="Tail window size (ticks) for summary stats.",
    )
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity for the run.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        log_format=args.log_format,
        summary_path=args.summary,
        summary_window=args.summary_window,
        config_path=args.config,
        formation=args.formation,
    )


if __name__ == "__main__":
    main()
