#!/usr/bin/env python3
"""
Terraced Terrain - Orchestrator

Build terrain jobs from JSON config files or command-line flags, tick the
scheduler until every job is done, and export meshes plus a run summary.

Usage:
    python src/run_all.py --shape planar --depth 4 --terraces 0.2 0.4 0.6 0.8
    python src/run_all.py --config configs/island.json configs/moon.json --format ply
    python src/run_all.py --shape spherical --seeds 1 2 3 --output outputs/moons
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional
from datetime import datetime

from tqdm import tqdm

# Add src to path
sys.path.insert(0, str(Path(__file__).parent))

from common.config import TerrainConfig, TerrainType, SchedulerConfig, MeshMetadata
from common.io import save_mesh
from common.mesh_ops import compute_mesh_stats
from terrain.jobs import TerrainScheduler, TerrainResult, GenerationPhase

logger = logging.getLogger(__name__)

# Scheduler phases per job, including the NOT_STARTED hand-off
PHASES_PER_JOB = len(GenerationPhase) - 1


def build_configs(args: argparse.Namespace) -> List[TerrainConfig]:
    """Configs from --config files, or one per --seeds entry from the flags."""
    if args.config:
        return [TerrainConfig.from_json(path) for path in args.config]

    seeds = args.seeds or [args.seed]
    configs = []
    for seed in seeds:
        configs.append(TerrainConfig.from_relative_terraces(
            args.terraces,
            terrain_type=TerrainType(args.shape),
            sides=args.sides,
            radius=args.radius,
            min_height=args.min_height,
            max_height=args.max_height,
            depth=args.depth,
            seed=seed,
            base_frequency=args.frequency,
            octaves=args.octaves,
            persistence=args.persistence,
            lacunarity=args.lacunarity,
        ))
    return configs


def make_metadata(job_id: str, result: TerrainResult) -> MeshMetadata:
    return MeshMetadata(
        job_id=job_id,
        terrain_type=result.terrain_type.value,
        n_triangles=result.n_triangles,
        n_vertices=result.n_vertices,
        n_cap_faces=result.n_cap_faces,
        n_wall_faces=result.n_wall_faces,
        n_bands=result.n_bands,
        generation_params=result.config.to_dict()
    )


def run_all(
    configs: List[TerrainConfig],
    scheduler_config: SchedulerConfig,
    output_format: str = "glb",
    show_progress: bool = True
) -> dict:
    """
    Generate and export every configured terrain.

    Args:
        configs: One TerrainConfig per job
        scheduler_config: Limits and output directory
        output_format: Mesh file suffix (glb, ply, obj)
        show_progress: Show a tqdm bar over scheduler ticks

    Returns:
        Summary dictionary
    """
    output_dir = Path(scheduler_config.output_dir)
    summary = {
        "timestamp": datetime.now().isoformat(),
        "scheduler": scheduler_config.to_dict(),
        "jobs": [],
        "errors": []
    }

    scheduler = TerrainScheduler(scheduler_config)
    job_ids = [scheduler.submit(config, job_id=f"terrain_{i:03d}") for i, config in enumerate(configs)]

    with tqdm(total=PHASES_PER_JOB, desc="Generating", unit="phase", disable=not show_progress) as bar:
        while scheduler.active_job_ids():
            scheduler.tick()
            bar.update(1)
            bar.set_postfix(done=scheduler.status_summary()["completed"])

    for job_id in job_ids:
        state = scheduler.status(job_id)
        job_summary = {"job_id": job_id, "status": state.to_dict()}

        if state.has_error:
            logger.error(f"Job {job_id} failed in {state.phase.value}: {state.error}")
            summary["errors"].append({"job_id": job_id, "phase": state.phase.value, "error": state.error})
        else:
            result = scheduler.get_result(job_id)
            metadata = make_metadata(job_id, result)
            mesh_path = output_dir / "meshes" / f"{job_id}.{output_format}"
            try:
                mesh = result.to_trimesh()
                job_summary["stats"] = compute_mesh_stats(mesh)
                save_mesh(mesh, mesh_path, metadata)
                job_summary["mesh"] = str(mesh_path)
                job_summary["metadata"] = metadata.to_dict()
            except Exception as e:
                logger.error(f"Export of {job_id} failed: {e}")
                summary["errors"].append({"job_id": job_id, "phase": "export", "error": str(e)})

        summary["jobs"].append(job_summary)

    summary["status"] = scheduler.status_summary()
    for job_id in job_ids:
        scheduler.release(job_id)

    return summary


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Terraced Terrain - Generate stepped terrain meshes"
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        nargs="+",
        help="TerrainConfig JSON files (one job each); overrides the shape flags"
    )
    parser.add_argument("--shape", choices=[t.value for t in TerrainType], default="planar")
    parser.add_argument("--sides", type=int, default=6, help="Polygon sides (planar, 3-10)")
    parser.add_argument("--radius", type=float, default=10.0)
    parser.add_argument("--min-height", type=float, default=0.0)
    parser.add_argument("--max-height", type=float, default=10.0)
    parser.add_argument("--depth", type=int, default=3, help="Subdivision passes")
    parser.add_argument("--seed", type=int, default=12345)
    parser.add_argument("--seeds", type=int, nargs="+", help="Generate one job per seed")
    parser.add_argument("--frequency", type=float, default=0.1)
    parser.add_argument("--octaves", type=int, default=4)
    parser.add_argument("--persistence", type=float, default=0.5)
    parser.add_argument("--lacunarity", type=float, default=2.0)
    parser.add_argument(
        "--terraces", "-t",
        type=float,
        nargs="*",
        default=[0.2, 0.4, 0.6, 0.8],
        help="Relative terrace heights in [0, 1]"
    )
    parser.add_argument(
        "--max-triangles",
        type=int,
        default=100000,
        help="Fragmentation triangle limit"
    )
    parser.add_argument(
        "--format", "-f",
        choices=["glb", "ply", "obj"],
        default="glb",
        help="Mesh export format"
    )
    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=Path("outputs"),
        help="Output directory"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose logging"
    )

    args = parser.parse_args(argv)

    # Setup logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    configs = build_configs(args)
    scheduler_config = SchedulerConfig(max_triangles=args.max_triangles, output_dir=args.output)

    logger.info(f"Generating {len(configs)} terrains")
    logger.info(f"Output: {args.output}")

    summary = run_all(configs, scheduler_config, output_format=args.format)

    # Save summary
    summary_path = args.output / "run_summary.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2)

    logger.info(f"Summary saved to: {summary_path}")

    n_errors = len(summary["errors"])
    n_success = len(summary["jobs"]) - n_errors
    logger.info(f"COMPLETE: {n_success} successful, {n_errors} errors")

    if n_errors > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
