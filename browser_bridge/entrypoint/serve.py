import argparse
import logging

import uvloop

from browser_bridge.config import config_loader
from browser_bridge.server import BridgeServer

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the Playwright bridge host")
    parser.add_argument("--config", default=None, help="path to the bridge YAML config")
    parser.add_argument("--url", default=None, help="page to open once the browser is up")
    parser.add_argument("--headed", action="store_true", help="show the browser window")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    config = config_loader(args.config)
    if args.url:
        config.server.url = args.url
    if args.headed:
        config.server.headless = False
    logger.info(f"Loaded config from {config.config_path or 'defaults'}")

    server = BridgeServer(config)
    try:
        uvloop.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
