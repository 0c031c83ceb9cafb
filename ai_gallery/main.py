"""
Main entry point for the AI Gallery service.
"""

import asyncio
import json
import sys
import argparse
from pydantic import ValidationError
from .processor import GalleryProcessor, ProcessorError
from .config import Settings
from .logging import setup_logging, get_logger
from .server import run_server


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AI Gallery - image catalog with AI-generated titles, descriptions and tags"
    )

    parser.add_argument(
        "--mode",
        choices=["serve", "list", "annotate", "pending"],
        default="serve",
        help="What to do (default: serve)"
    )

    parser.add_argument(
        "images",
        nargs="*",
        metavar="IMAGE",
        help="Image names to annotate (annotate mode only)"
    )

    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of images to annotate (pending mode only)"
    )

    parser.add_argument(
        "--test-connection",
        action="store_true",
        help="Test connection to the model server and exit"
    )

    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the metadata database and exit"
    )

    return parser.parse_args(argv)


def run_list(processor: GalleryProcessor) -> int:
    """Print the catalog listing as JSON."""
    entries = processor.list_images()
    print(json.dumps({"images": [entry.to_response() for entry in entries]}, indent=2))
    return 0


def run_annotate(processor: GalleryProcessor, names) -> int:
    """Annotate the given images one by one."""
    logger = get_logger("main")

    if not names:
        logger.error("❌ No image names given")
        return 1

    failed = 0
    for name in names:
        try:
            result = processor.annotate_image(name)
            print(json.dumps(result.model_dump(), indent=2))
        except Exception as e:
            logger.error(f"❌ Annotation of '{name}' failed: {e}")
            failed += 1

    return 1 if failed else 0


def run_pending(processor: GalleryProcessor, limit=None) -> int:
    """Annotate every image that has no metadata yet."""
    batch_result = processor.annotate_pending(limit=limit)
    return 1 if batch_result.failed else 0


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)

    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    # Setup logging
    setup_logging(settings)
    logger = get_logger("main")

    logger.info(f"🚀 Starting AI Gallery in {args.mode} mode")

    processor = None
    try:
        # Initialize processor
        processor = GalleryProcessor(settings)
        processor.initialize()

        # Handle special commands
        if args.test_connection:
            logger.info(f"🔍 Testing connection to {settings.get_ollama_base_url()}")
            if processor.test_connection():
                logger.info("✅ Connection test successful")
                return 0
            else:
                logger.error("❌ Connection test failed")
                return 1

        if args.init_db:
            logger.info(f"✅ Database ready: {settings.database_path}")
            return 0

        if args.mode == "list":
            return run_list(processor)

        if args.mode == "annotate":
            return run_annotate(processor, args.images)

        if args.mode == "pending":
            return run_pending(processor, args.limit)

        asyncio.run(run_server(processor))
        return 0

    except ProcessorError as e:
        logger.error(f"❌ Processor error: {str(e)}")
        return 1
    except KeyboardInterrupt:
        logger.info("⏹️  Service interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"❌ Unexpected error: {str(e)}")
        return 1
    finally:
        if processor is not None:
            processor.close()


if __name__ == "__main__":
    sys.exit(main())
