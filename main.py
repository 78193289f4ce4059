#!/usr/bin/env python3
"""Motion-capture similarity — dataset file → Dice-voxel distance matrix."""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mocapsim.modules.dice_voxels import EngineConfig, VoxelConfig
from mocapsim.pipeline import PipelineConfig, SimilarityPipeline
from mocapsim.shared.constants import DEFAULT_DATA_PATH, SENTINEL_DISTANCE

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)-8s  %(message)s", datefmt="%H:%M:%S")


def _args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Dice-voxel motion similarity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python main.py data/mocap/animations.txt --max 200 --neighbors 5\n"
            "  python main.py animations.txt --output outputs/dist.npy --clusters 10\n"
        ),
    )
    p.add_argument("data", nargs="?", default=DEFAULT_DATA_PATH)
    p.add_argument("--max", dest="max_animations", type=int, default=-1)
    p.add_argument("--workers", type=int, default=None)
    p.add_argument("--neighbors", type=int, default=5)
    p.add_argument("--clusters", type=int, default=0)
    p.add_argument("--output", default=None)
    p.add_argument("--clip", action="store_true", help="clamp out-of-grid voxels instead of dropping them")
    p.add_argument("--no-progress", dest="progress", action="store_false")
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args()


def main() -> None:
    args = _args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    config = PipelineConfig(
        data_path=args.data,
        max_animations=args.max_animations,
        engine=EngineConfig(
            voxel=VoxelConfig(out_of_bounds="clip" if args.clip else "discard"),
            max_workers=args.workers,
        ),
        neighbors=args.neighbors,
        clusters=args.clusters,
        output_path=args.output,
        show_progress=args.progress,
    )
    pipeline = SimilarityPipeline(config)
    try:
        result = pipeline.run()
    finally:
        pipeline.close()

    matrix = result["matrix"]
    known = (matrix < SENTINEL_DISTANCE).sum()
    print(f"\nmatrix   → {matrix.shape[0]}×{matrix.shape[1]}  ({known} finite cells)")
    if "precision_at_k" in result:
        print(f"P@{args.neighbors}     : {result['precision_at_k']:.3f}")
    for anim_id, neighbors in list(result["neighbors"].items())[:10]:
        print(f"  {anim_id:>5} → {neighbors}")
    if result["clusters"] is not None:
        print(f"clusters : {len(set(result['clusters'].tolist()))}")
    if result.get("output_path"):
        print(f"saved    → {result['output_path']}")


if __name__ == "__main__":
    main()
