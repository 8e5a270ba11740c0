"""Command-line interface for Photo Retoucher."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import pydantic

from .adapters.gemini_adapter import GeminiImageService
from .application.services.session import EditingSession, collect_image_files
from .config import RETRY_CONFIG
from .domain.entities.asset import AssetStatus
from .domain.value_objects.config import EngineConfig
from .domain.value_objects.options import (
    AspectRatio,
    OutputResolution,
    ProjectSettings,
    SkyReplacement,
)
from .exceptions import RetoucherError
from .utils.env import load_api_key, setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="photo-retoucher",
        description="Batch retouching of architectural photos with a generative image model"
    )

    parser.add_argument("input", help="Input image or folder")
    parser.add_argument("-o", "--output", required=True, help="Output folder")

    parser.add_argument(
        "-r", "--resolution",
        choices=[r.value for r in OutputResolution],
        default=OutputResolution.RES_2K.value,
        help="Output resolution (default: 2K)"
    )

    parser.add_argument(
        "-a", "--aspect-ratio",
        choices=[a.value for a in AspectRatio],
        default=AspectRatio.ORIGINAL.value,
        help="Output aspect ratio; ORIGINAL keeps the closest match to each source"
    )

    parser.add_argument(
        "-p", "--extra-prompt",
        default="",
        help="Additional notes sent with every request"
    )

    parser.add_argument(
        "-c", "--context",
        default="",
        help="Project context, e.g. 'Modern villa, Scandinavian interior'"
    )

    parser.add_argument(
        "--sky",
        choices=[s.value for s in SkyReplacement if s is not SkyReplacement.CUSTOM],
        default=SkyReplacement.OFF.value,
        help="Sky replacement preset"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    # Dispatch settings
    dispatch_group = parser.add_argument_group("Dispatch options")
    dispatch_group.add_argument(
        "-j", "--max-concurrency",
        type=int,
        metavar="N",
        help="Maximum requests in flight at once (default: unbounded)"
    )
    dispatch_group.add_argument(
        "--max-retries",
        type=int,
        default=RETRY_CONFIG.max_retries,
        metavar="N",
        help=f"Retries for rate-limited or overloaded requests (default: {RETRY_CONFIG.max_retries})"
    )
    dispatch_group.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Give up on a single attempt after this many seconds (counts as retryable)"
    )

    # Masked edit
    mask_group = parser.add_argument_group("Masked edit options")
    mask_group.add_argument(
        "--mask",
        type=Path,
        help="PNG mask (same size as the input, strokes on transparency); needs a single input file"
    )
    mask_group.add_argument(
        "--mask-prompt",
        help="What to paint inside the mask; omit to remove the masked object"
    )

    return parser


def main(args: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    # Setup logging
    setup_logging(logging.DEBUG if parsed.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    if parsed.mask_prompt and not parsed.mask:
        parser.error("--mask-prompt requires --mask")

    try:
        files = collect_image_files(parsed.input)
        if parsed.mask and len(files) != 1:
            logger.error("A masked edit needs exactly one input image")
            return 1

        config = EngineConfig(
            max_retries=parsed.max_retries,
            max_concurrency=parsed.max_concurrency,
            attempt_timeout_s=parsed.timeout,
        )
        settings = ProjectSettings(project_context=parsed.context, extra_prompt=parsed.extra_prompt)
        api_key = load_api_key()
        if not api_key:
            logger.error("No API key found. Set GEMINI_API_KEY or store one in the system keyring.")
            return 1

        session = EditingSession(
            GeminiImageService.from_config(config, api_key=api_key),
            config=config,
            settings=settings,
        )
        session.update_options(
            resolution=OutputResolution(parsed.resolution),
            aspect_ratio=AspectRatio(parsed.aspect_ratio),
            sky_replacement=SkyReplacement(parsed.sky),
        )
        session.add_files(files)
    except (RetoucherError, pydantic.ValidationError) as e:
        logger.error(str(e))
        return 1

    logger.info(f"Processing {len(files)} image(s) with {config.model_id}...")

    try:
        if parsed.mask:
            asset_id = session.registry.ids()[0]
            mask = parsed.mask.read_bytes()
            asyncio.run(session.submit_masked_edit(asset_id, mask, parsed.mask_prompt))
        else:
            result = asyncio.run(session.start_batch())
            logger.info(
                f"Batch finished in {result.processing_time_ms / 1000:.1f}s "
                f"({result.attempts} request(s))"
            )
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 1
    except RetoucherError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Could not read mask: {e}")
        return 1

    written = session.export_results(parsed.output)
    for path in written:
        logger.info(f"  Saved: {path.name}")

    # Summary
    logger.info("=" * 50)
    failed = session.registry.with_status(AssetStatus.ERROR)
    if failed:
        logger.warning(f"Completed: {len(written)}/{len(files)} succeeded")
        for asset in failed:
            logger.error(f"  - {asset.name}: {asset.error_message}")
        return 1

    logger.info(f"Completed: All {len(files)} images processed successfully")
    return 0


if __name__ == "__main__":
    sys.exit(main())
