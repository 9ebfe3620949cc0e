"""
Command-line interface for the listing optimizer.
"""
import argparse
import asyncio
import json
import sys
import logging
from pathlib import Path
from typing import Optional

from .models import (
    BatchInput,
    GenerationMode,
    GenerationOptions,
    GenerationRequest,
    ProductData,
)
from .config import (
    DEFAULT_MAX_PROVIDER_SWITCHES,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TRAINING_FILE,
    get_all_platforms,
    load_provider_descriptors,
)
from .errors import ListingError
from .feedback import JsonTrainingStore
from .orchestrator import create_orchestrator


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )


def load_config(config_path: str) -> BatchInput:
    """Load batch configuration from JSON file."""
    with open(config_path) as f:
        data = json.load(f)
    return BatchInput.model_validate(data)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="listing-optimizer",
        description="Generate SEO-optimized marketplace listings with provider fallback.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Optimize an existing listing for Amazon
  python -m listing_optimizer --title "Steel Water Bottle" --description "Keeps drinks cold" \\
      --keywords water bottle insulated --platform amazon

  # Batch from config file
  python -m listing_optimizer --config requests.json --output results.json

  # Show configured backends
  python -m listing_optimizer --list-providers
        """
    )

    input_group = parser.add_argument_group("Input Options")
    input_group.add_argument("--title", help="Current product title")
    input_group.add_argument("--description", "-d", help="Current product description")
    input_group.add_argument("--category", "-c", help="Product category (optional)")
    input_group.add_argument(
        "--keywords", "-k",
        nargs="+",
        default=[],
        help="Target keywords"
    )
    input_group.add_argument(
        "--config",
        help="Path to JSON config file for batch processing"
    )

    gen_group = parser.add_argument_group("Generation Options")
    gen_group.add_argument(
        "--platform", "-p",
        default="amazon",
        choices=get_all_platforms(),
        help="Target marketplace (default: amazon)"
    )
    gen_group.add_argument(
        "--mode", "-m",
        default=GenerationMode.OPTIMIZE.value,
        choices=[m.value for m in GenerationMode],
        help="Generation mode (default: optimize)"
    )
    gen_group.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Retries against the same backend (default: {DEFAULT_MAX_RETRIES})"
    )
    gen_group.add_argument(
        "--max-switches",
        type=int,
        default=DEFAULT_MAX_PROVIDER_SWITCHES,
        help=f"Backends tried per request (default: {DEFAULT_MAX_PROVIDER_SWITCHES})"
    )

    output_group = parser.add_argument_group("Output Options")
    output_group.add_argument(
        "--output", "-o",
        help="Output file path (default: stdout)"
    )
    output_group.add_argument(
        "--compact",
        action="store_true",
        help="Compact JSON output"
    )

    train_group = parser.add_argument_group("Training Feedback")
    train_group.add_argument(
        "--training-file",
        default=DEFAULT_TRAINING_FILE,
        help=f"Training examples file (default: {DEFAULT_TRAINING_FILE})"
    )
    train_group.add_argument(
        "--show-training",
        action="store_true",
        help="Show training store statistics and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="List configured backends and exit"
    )
    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test the selected backend and exit"
    )

    return parser


async def run_batch(orchestrator, requests: list[GenerationRequest], options: GenerationOptions) -> list[dict]:
    """Generate every request in order, recording failures instead of stopping."""
    logger = logging.getLogger(__name__)
    results = []
    try:
        for request in requests:
            title = request.product.title or "(untitled)"
            logger.info(f"Processing: {title} [{request.platform}]")
            try:
                result = await orchestrator.generate(request, options)
            except ListingError as e:
                logger.error(f"Generation failed for {title}: {e}")
                results.append({"success": False, "error": str(e)})
                continue

            if result.quality_score:
                logger.info(
                    f"  {result.provider}: {result.quality_score.percentage}% "
                    f"({result.quality_score.grade.value}), {len(result.warnings)} warning(s)"
                )
            results.append({"success": True, **result.model_dump(mode="json")})
    finally:
        await orchestrator.aclose()
    return results


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.show_training:
        stats = JsonTrainingStore(args.training_file).get_stats()
        print(json.dumps(stats, indent=2))
        return 0

    if args.list_providers:
        descriptors = load_provider_descriptors()
        if not descriptors:
            print("No backends configured", file=sys.stderr)
            return 1
        for d in descriptors:
            print(f"{d.priority}. {d.backend_id} ({d.model})")
        return 0

    try:
        orchestrator = create_orchestrator(training_file=args.training_file)
    except ListingError as e:
        logger.error(str(e))
        return 1

    if args.test_connection:
        status = asyncio.run(orchestrator.test_connection())
        if status["success"]:
            print(f"Connection successful! ({status['provider']})")
            return 0
        print(f"Connection failed ({status['provider']}): {status['message']}", file=sys.stderr)
        return 1

    if args.config:
        logger.info(f"Loading config from: {args.config}")
        batch_input = load_config(args.config)
        requests = batch_input.requests
        options = batch_input.options or GenerationOptions(
            max_retries=args.max_retries,
            max_provider_switches=args.max_switches,
        )
    elif args.title or args.description:
        requests = [GenerationRequest(
            platform=args.platform,
            mode=GenerationMode(args.mode),
            product=ProductData(
                title=args.title,
                description=args.description,
                category=args.category,
                keywords=tuple(args.keywords),
            ),
        )]
        options = GenerationOptions(
            max_retries=args.max_retries,
            max_provider_switches=args.max_switches,
        )
    else:
        parser.error("Either --config or --title/--description is required")
        return 1

    logger.info(f"Generating listings for {len(requests)} product(s)")
    results = asyncio.run(run_batch(orchestrator, requests, options))

    if len(results) == 1:
        output_data = results[0]
    else:
        output_data = {
            "results": results,
            "total_products": len(results),
            "all_succeeded": all(r["success"] for r in results),
        }

    indent = None if args.compact else 2
    output_json = json.dumps(output_data, indent=indent, ensure_ascii=False)

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w") as f:
            f.write(output_json)
        logger.info(f"Output written to: {args.output}")
    else:
        print(output_json)

    return 0 if all(r["success"] for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
