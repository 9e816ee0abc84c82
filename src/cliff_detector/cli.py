"""Command-line interface for the cliff detector."""

import argparse
import json
import logging
import sys
from pathlib import Path

from cliff_detector.config import DetectorConfig
from cliff_detector.detector import CliffDetector
from cliff_detector.errors import CliffDetectorError
from cliff_detector.frame import load_depth_image, save_depth_image
from cliff_detector.projection import load_camera_info

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    # Silence noisy third-party loggers
    for name in ("matplotlib", "PIL"):
        logging.getLogger(name).setLevel(logging.WARNING)


def init_command(config_path: Path, force: bool = False) -> DetectorConfig:
    """Write a configuration file with all default parameters.

    Args:
        config_path: Path where the config YAML will be saved.
        force: Overwrite an existing file.

    Returns:
        The default configuration that was written.
    """
    if config_path.exists() and not force:
        print(
            f"Error: Config file already exists: {config_path} "
            "(use --force to overwrite)",
            file=sys.stderr,
        )
        sys.exit(1)

    config = DetectorConfig()
    config.to_yaml(config_path)
    print(f"[OK] Configuration saved to: {config_path}")
    return config


def detect_command(
    config_path: Path,
    camera_info_path: Path,
    depth_paths: list[Path],
    output_path: Path | None = None,
    annotated_dir: Path | None = None,
    plot_dir: Path | None = None,
    verbose: bool = False,
) -> list[dict]:
    """Detect cliffs in one or more depth images.

    Args:
        config_path: Path to the detector config YAML file.
        camera_info_path: Path to the CameraInfo YAML/JSON file.
        depth_paths: 16-bit depth PNG files, processed in order.
        output_path: JSON file for the polygons. Printed to stdout if None.
        annotated_dir: Directory for annotated depth PNGs (optional).
        plot_dir: Directory for rendered detection figures (optional).
        verbose: If True, set logging to DEBUG level.

    Returns:
        Serialized polygons, one per depth image.
    """
    # 1. Configure logging
    _configure_logging(verbose)

    # 2. Load config and camera model
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}", file=sys.stderr)
        sys.exit(1)

    try:
        config = DetectorConfig.from_yaml(config_path)
    except Exception as e:
        print(f"Error: Failed to load config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        camera_model = load_camera_info(camera_info_path)
    except (OSError, CliffDetectorError) as e:
        print(f"Error: Failed to load camera info: {e}", file=sys.stderr)
        sys.exit(1)

    detector = CliffDetector(config)
    if annotated_dir is not None:
        detector.params.set_publish_depth_enable(True)

    # 3. Run detection frame by frame
    polygons = []
    for depth_path in depth_paths:
        try:
            frame = load_depth_image(depth_path, stamp=depth_path.stat().st_mtime)
            result = detector.detect(frame, camera_model)
        except (OSError, CliffDetectorError) as e:
            print(f"Error: {depth_path}: {e}", file=sys.stderr)
            sys.exit(1)

        logger.info(
            "%s: %d cliff blocks, %d boundary points",
            depth_path.name,
            result.classification.num_cliff_blocks,
            len(result.polygon),
        )
        polygons.append(result.polygon.to_dict())

        if annotated_dir is not None and result.annotated_depth is not None:
            save_depth_image(
                annotated_dir / f"{depth_path.stem}_cliff.png", result.annotated_depth
            )

        if plot_dir is not None:
            from cliff_detector.visualization import render_detection

            render_detection(
                frame.data, result, plot_dir / f"{depth_path.stem}_cliff.png"
            )

    # 4. Write polygons
    text = json.dumps({"frames": polygons}, indent=2)
    if output_path is None:
        print(text)
    else:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text + "\n")
        print(f"[OK] Polygons saved to: {output_path}")

    return polygons


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="cliff-detector",
        description="Detect descending floor discontinuities in depth images",
    )
    subparsers = parser.add_subparsers(dest="command")

    # init subcommand
    init_parser = subparsers.add_parser(
        "init",
        help="Write a config file with default detector parameters",
    )
    init_parser.add_argument(
        "config",
        type=Path,
        help="Output path for the config YAML file",
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file",
    )

    # detect subcommand
    detect_parser = subparsers.add_parser(
        "detect",
        help="Detect cliffs in 16-bit depth images",
    )
    detect_parser.add_argument(
        "config",
        type=Path,
        help="Path to detector config YAML file",
    )
    detect_parser.add_argument(
        "camera_info",
        type=Path,
        help="Path to CameraInfo YAML/JSON file",
    )
    detect_parser.add_argument(
        "depth",
        type=Path,
        nargs="+",
        help="16-bit depth PNG file(s) in millimeters",
    )
    detect_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write polygons to this JSON file (default: stdout)",
    )
    detect_parser.add_argument(
        "--annotated-dir",
        type=Path,
        default=None,
        help="Write depth images with cliff blocks marked to this directory",
    )
    detect_parser.add_argument(
        "--plot-dir",
        type=Path,
        default=None,
        help="Write rendered detection figures to this directory",
    )
    detect_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Dispatch
    if args.command == "init":
        init_command(config_path=args.config, force=args.force)
    elif args.command == "detect":
        detect_command(
            config_path=args.config,
            camera_info_path=args.camera_info,
            depth_paths=args.depth,
            output_path=args.output,
            annotated_dir=args.annotated_dir,
            plot_dir=args.plot_dir,
            verbose=args.verbose,
        )
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
