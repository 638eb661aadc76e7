#!/usr/bin/env python3
"""
Command line entry point for the crawler.
"""

import argparse
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

from arachnid import __version__
from arachnid.crawler.core import Crawler
from arachnid.exceptions import CrawlerError
from arachnid.utils.config import AppConfig, load_config
from arachnid.utils.logger import log_system_info, setup_logging
from arachnid.utils.monitoring import CrawlMetrics


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.crawler: Optional[Crawler] = None
        self.logger = logging.getLogger(__name__)

    def setup_signal_handlers(self):
        """Stop the crawl cleanly on SIGINT/SIGTERM."""
        def signal_handler(signum, frame):
            self.logger.info(f"Received signal {signum}, stopping after the current page...")
            if self.crawler:
                self.crawler.stop_crawl()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def run(self, args: argparse.Namespace) -> int:
        """Run the crawler."""
        try:
            config = load_config(args.config) if Path(args.config).exists() else AppConfig()
        except CrawlerError as e:
            print(f"Error: {e}")
            return 1

        setup_logging(config.logging, enable_json=args.json_logs)
        if args.verbose:
            log_system_info()

        overrides = {}
        if args.threads is not None:
            overrides['threads'] = args.threads
        if args.depth_limit is not None:
            overrides['depth_limit'] = args.depth_limit
        if args.delay is not None:
            overrides['delay'] = args.delay
        if args.redis:
            overrides['storage'] = args.redis
        if args.resume:
            overrides['force_start'] = False
        if args.clean_db_only:
            overrides['clean_db_only'] = True
        if args.verbose:
            overrides['verbose'] = True

        seed_urls = args.urls or config.seed_urls
        if not seed_urls and not args.clean_db_only:
            self.logger.error("No seed URLs given on the command line or in the configuration")
            return 1

        try:
            options = config.crawl_options(**overrides)

            metrics = CrawlMetrics()
            if config.monitoring.metrics_enabled:
                metrics.start_server(config.monitoring.prometheus_port)

            self.logger.info("=== CRAWLER STARTING ===")
            self.logger.info(f"Seed URLs: {seed_urls}")
            self.logger.info(f"Threads: {options.threads}")
            self.logger.info(f"Depth limit: {options.depth_limit}")
            self.logger.info(f"Delay: {options.delay}s")

            self.crawler = Crawler(
                seed_urls,
                metrics=metrics,
                redis_config=asdict(config.redis),
                **{name: getattr(options, name) for name in options.option_names()}
            )
            self.setup_signal_handlers()
            self.crawler.run()

        except CrawlerError as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        summary = metrics.summary()
        print(f"Crawled {int(summary['pages_crawled'])} pages "
              f"({int(summary['fetch_errors'])} errors) in {summary['runtime_seconds']:.1f}s")
        self.logger.info("=== CRAWLER FINISHED ===")
        return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Multi-threaded web crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py http://example.com/                 # Crawl with defaults
  python main.py --config my_config.yaml             # Seeds and options from YAML
  python main.py --depth-limit 2 http://example.com/ # Two links deep
  python main.py --redis redis://localhost:6379/0 --resume
        """
    )

    parser.add_argument('urls', nargs='*', help='Seed URLs (override the configuration file)')
    parser.add_argument('--config', default='config.yaml',
                        help='Path to configuration file (default: config.yaml)')
    parser.add_argument('--threads', type=int, help='Number of fetch workers')
    parser.add_argument('--depth-limit', type=int, help='Maximum link depth to follow')
    parser.add_argument('--delay', type=float, help='Seconds between requests (forces one worker)')
    parser.add_argument('--redis', metavar='URL',
                        help="Store pages in Redis ('redis' or a redis:// URL)")
    parser.add_argument('--resume', action='store_true',
                        help='Keep the existing store and resume pending links')
    parser.add_argument('--clean-db-only', action='store_true',
                        help='Empty the page store and exit')
    parser.add_argument('--json-logs', action='store_true', help='Log in JSON format')
    parser.add_argument('--verbose', action='store_true', help='Log every page')
    parser.add_argument('--version', action='version', version=f'arachnid {__version__}')

    args = parser.parse_args()

    app = CrawlerApp()
    try:
        return app.run(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
