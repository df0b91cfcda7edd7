"""
Main entry point for depth map fusion

Fuses the depth/similarity maps computed for one view at several scales
into a single full resolution map, coarsest first.

Usage:
    python -m depthfusion.run_fusion <cameras.npz> <maps_dir> --view <index> [options]

Examples:
    python -m depthfusion.run_fusion cams.npz depthMaps --view 3 --scales 4 2 1
    python -m depthfusion.run_fusion cams.npz depthMaps --view 0 --step 2 --no-image
"""
import argparse
import logging
import sys
from pathlib import Path

from .core import DepthSimMap, NpzMapCodec, load_multi_view_params
from .core.utils import EFileType, get_file_name_from_index


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Fuse multi-scale depth/similarity maps of a view')
    parser.add_argument('cameras', help='Camera parameters (.npz with K, R, t, width, height)')
    parser.add_argument('input_dir', help='Folder holding {view}_depthMap[_scaleN].npz files')
    parser.add_argument('--view', type=int, required=True,
                        help='Index of the view to fuse')
    parser.add_argument('--scales', type=int, nargs='+', default=[4, 2, 1],
                        help='Scales of the maps to fuse, coarsest first')
    parser.add_argument('--step', type=int, default=1,
                        help='Step the input maps were computed with')
    parser.add_argument('--output', type=str, default=None,
                        help='Output directory (default: <input_dir>/fused)')
    parser.add_argument('--sim-thr', type=float, default=-2.0,
                        help='Similarity upper bound for the preview (< -1: automatic)')
    parser.add_argument('--no-image', action='store_true',
                        help='Skip the preview image')
    parser.add_argument('--verbose', action='store_true',
                        help='Debug logging')
    return parser.parse_args(argv)


def fuse_view(mp, codec, input_dir, rc, scales, step=1):
    """
    Fuse the maps of view `rc` written at each scale into a scale 1 / step 1 map

    Scales missing from `input_dir` are skipped.

    Returns:
        (fused DepthSimMap, list of scales actually fused)
    """
    fused = DepthSimMap(rc, mp, scale=1, step=1)
    used = []

    for scale in sorted(set(scales), reverse=True):
        depth_path = Path(get_file_name_from_index(input_dir, rc, EFileType.depthMap, scale))
        sim_path = Path(get_file_name_from_index(input_dir, rc, EFileType.simMap, scale))
        if not depth_path.exists() or not sim_path.exists():
            print(f"  Scale {scale}: no maps, skipped")
            continue

        level = DepthSimMap(rc, mp, scale=scale, step=step)
        level.load(codec, input_dir, scale)
        fused.add11(level)
        used.append(scale)

        max_depth, min_depth = level.get_max_min_depth()
        print(f"  Scale {scale}: {level.width}x{level.height} cells, depth [{min_depth:.2f}, {max_depth:.2f}]")

    return fused, used


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(name)s %(levelname)s: %(message)s'
    )

    cameras_path = Path(args.cameras)
    input_dir = Path(args.input_dir)
    output_dir = Path(args.output) if args.output else input_dir / 'fused'

    # Check paths
    if not cameras_path.exists():
        print(f"ERROR: Camera file not found: {cameras_path}")
        sys.exit(1)

    if not input_dir.exists():
        print(f"ERROR: Input directory not found: {input_dir}")
        sys.exit(1)

    mp = load_multi_view_params(str(cameras_path))
    if args.view not in mp:
        print(f"ERROR: View {args.view} not in camera file ({len(mp)} views)")
        sys.exit(1)

    output_dir.mkdir(parents=True, exist_ok=True)

    print("=" * 60)
    print("DEPTH MAP FUSION")
    print("=" * 60)
    print(f"View: {args.view}")
    print(f"Input: {input_dir}")
    print(f"Output: {output_dir}")
    print(f"Scales: {' -> '.join(str(s) for s in sorted(set(args.scales), reverse=True))}, step {args.step}")
    print()

    codec = NpzMapCodec()
    fused, used = fuse_view(mp, codec, str(input_dir), args.view, args.scales, args.step)

    if not used:
        print("No depth maps found for this view!")
        sys.exit(1)

    depth_output = output_dir / f"{args.view}_depthMap.npz"
    sim_output = output_dir / f"{args.view}_simMap.npz"
    fused.save_refine(codec, str(depth_output), str(sim_output))

    image_output = None
    if not args.no_image:
        image_output = output_dir / f"{args.view}_depthSim.png"
        if not fused.save_to_image(str(image_output), sim_thr=args.sim_thr):
            image_output = None

    # Summary
    max_depth, min_depth = fused.get_max_min_depth()
    print("\n" + "=" * 60)
    print("DONE!")
    print("=" * 60)
    print(f"Results saved to: {output_dir}")
    print(f"  - {depth_output.name}: {fused.width}x{fused.height}")
    print(f"  - {sim_output.name}")
    if image_output is not None:
        print(f"  - {image_output.name}: preview")
    print(f"  Depth range: [{min_depth:.3f}, {max_depth:.3f}]")
    print(f"  Depth percentiles: 1% {fused.get_percentile_depth(0.01):.3f}, "
          f"50% {fused.get_percentile_depth(0.5):.3f}, 90% {fused.get_percentile_depth(0.9):.3f}")


if __name__ == '__main__':
    main()
