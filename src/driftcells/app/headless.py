from __future__ import annotations

import argparse
import csv
import json
import logging
import math
from pathlib import Path
from typing import Optional

from ..sim.core.config import SimulationConfig
from ..sim.core.world import Simulation
from ..sim.types.metrics import TickMetrics
from ..sim.types.modes import TargetMode

logger = logging.getLogger(__name__)

_HEADER = [
    "tick",
    "elapsed",
    "population",
    "respawns",
    "mean_step",
    "max_step",
    "target_x",
    "target_y",
    "cells",
    "tessellation_ok",
    "degenerate_failures",
    "tick_ms",
]


def _format_row(metrics: TickMetrics, tick_ms: float) -> list[object]:
    return [
        metrics.tick,
        f"{metrics.elapsed:.4f}",
        metrics.population,
        metrics.respawns,
        f"{metrics.mean_step:.4f}",
        f"{metrics.max_step:.4f}",
        f"{metrics.target_x:.4f}",
        f"{metrics.target_y:.4f}",
        metrics.cells,
        int(metrics.tessellation_ok),
        metrics.degenerate_failures,
        f"{tick_ms:.3f}",
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
        return {"min": 0.0, "max": 0.0, "avg": 0.0, "p50": 0.0, "p90": 0.0, "p99": 0.0}
    sorted_values = sorted(values)
    return {
        "min": float(sorted_values[0]),
        "max": float(sorted_values[-1]),
        "avg": float(sum(values) / len(values)),
        "p50": _percentile(sorted_values, 0.50),
        "p90": _percentile(sorted_values, 0.90),
        "p99": _percentile(sorted_values, 0.99),
    }


def run_headless(
    steps: int,
    seed: Optional[int],
    log_path: Optional[Path],
    deterministic_log: bool = False,
    config_path: Optional[Path] = None,
    target_mode: Optional[str] = None,
    summary_path: Optional[Path] = None,
    summary_window: int = 500,
) -> Simulation:
    config = SimulationConfig.from_yaml(config_path) if config_path else SimulationConfig()
    if seed is not None:
        config.seed = seed
    simulation = Simulation(config)
    if target_mode is not None:
        simulation.set_target_mode(TargetMode(target_mode))

    writer = None
    csv_file = None
    if log_path:
        csv_file = Path(log_path).open("w", newline="")
        writer = csv.writer(csv_file)
        writer.writerow(_HEADER)

    tick_ms_series: list[float] = []
    mean_step_series: list[float] = []
    respawn_total = 0
    failed_ticks = 0

    try:
        for _ in range(steps):
            output = simulation.tick(config.time_step)
            metrics = output.metrics
            if metrics is None:
                continue
            tick_ms = 0.0 if deterministic_log else metrics.tick_duration_ms
            tick_ms_series.append(tick_ms)
            mean_step_series.append(metrics.mean_step)
            respawn_total += metrics.respawns
            if output.tessellation_error is not None:
                failed_ticks += 1
            if writer:
                writer.writerow(_format_row(metrics, tick_ms))
    finally:
        if csv_file:
            csv_file.close()
        simulation.close()

    logger.info("ran %d ticks: %d respawns, %d degenerate tessellations", steps, respawn_total, failed_ticks)

    if summary_path:
        window = max(1, int(summary_window))
        tail = slice(max(0, len(tick_ms_series) - window), len(tick_ms_series))
        summary = {
            "steps": steps,
            "seed": config.seed,
            "noise_seed": simulation.noise.seed,
            "agent_count": config.agent_count,
            "target_mode": simulation.target_mode.value,
            "deterministic_log": deterministic_log,
            "respawns": respawn_total,
            "degenerate_ticks": failed_ticks,
            "tick_ms": _summary_stats(tick_ms_series),
            "mean_step": _summary_stats(mean_step_series),
            "tail_window": {
                "window": window,
                "tick_ms": _summary_stats(tick_ms_series[tail]),
                "mean_step": _summary_stats(mean_step_series[tail]),
            },
        }
        Path(summary_path).write_text(json.dumps(summary, indent=2))
    return simulation


def main() -> None:
    parser = argparse.ArgumentParser(description="Headless drifting-cells simulation")
    parser.add_argument("--steps", type=int, default=600)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--config", type=Path, default=None, help="YAML simulation config")
    parser.add_argument("--target-mode", choices=[mode.value for mode in TargetMode], default=None)
    parser.add_argument("--log", type=Path, default=None, help="CSV file to write per-tick metrics")
    parser.add_argument("--summary", type=Path, default=None, help="Optional JSON summary of the run.")
    parser.add_argument("--summary-window", type=int, default=500, help="Tail window size (ticks) for summary stats.")
    parser.add_argument(
        "--deterministic-log",
        action="store_true",
        help="Write deterministic CSV (tick_ms is forced to 0.000 so identical seeds match).",
    )
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_headless(
        args.steps,
        args.seed,
        args.log,
        deterministic_log=args.deterministic_log,
        config_path=args.config,
        target_mode=args.target_mode,
        summary_path=args.summary,
        summary_window=args.summary_window,
    )


if __name__ == "__main__":
    main()
