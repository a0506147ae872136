import argparse
import asyncio
import json
import logging
import sys
import time

from core.errors import QuotaExceeded, ValidationError
from services.config import load_config
from services.logging import setup_logging
from workflows.pipeline_factory import create_services


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one buying-intent analysis")
    parser.add_argument("--targets", nargs="+", required=True,
                        help="Communities to fetch posts from")
    parser.add_argument("--keywords", nargs="+", required=True,
                        help="Keywords to look for")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.debug else logging.INFO)
    logger = logging.getLogger(__name__)

    config = load_config()
    services = create_services(config)
    orchestrator = services.orchestrator

    logger.info("Starting analysis run")

    try:
        request = orchestrator.validate(args.targets, args.keywords)
        await orchestrator.rate_limiter.check_budget()
    except (ValidationError, QuotaExceeded) as e:
        logger.error(f"Request rejected: {e}")
        await services.close()
        return 2

    try:
        status = await services.tracker.create_request(request.targets, request.keywords)
        await orchestrator.run(status.id, request, source_meta="cli")
        final = await services.tracker.get_request_status(status.id)
    finally:
        await services.close()

    print(json.dumps(final.model_dump(mode="json"), indent=2))

    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time}")
    return 0 if final.status == "completed" else 1


def entrypoint() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    entrypoint()
