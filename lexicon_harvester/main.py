"""
Command-line entry point for the lexicon harvester.
"""

import sys
import json
import signal
import argparse
import asyncio
from pathlib import Path
from typing import Optional, Dict, Any, List

from lexicon_harvester.crawlers import ExtractorRegistry, PlaywrightSessionProvider, default_registry
from lexicon_harvester.data import read_input_keys
from lexicon_harvester.pipeline import (
    BatchScheduler,
    CheckpointStore,
    RunSummary,
    SessionPool,
    SessionProvider
)
from lexicon_harvester.utils.errors import ConfigurationError, HarvesterError, handle_error
from lexicon_harvester.utils.logging import get_logger, setup_logging
from config import ConfigManager, SystemConfig


logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CANCELLED = 130


class HarvesterApp:
    """Wires configuration, extractor, session pool, checkpoint and scheduler for one run."""

    def __init__(
        self,
        config: SystemConfig,
        registry: Optional[ExtractorRegistry] = None,
        provider: Optional[SessionProvider] = None
    ):
        """
        Args:
            config: Fully resolved configuration
            registry: Extractor registry (default: built-in extractors)
            provider: Session provider (default: headless Chromium)
        """
        self.config = config

        registry = registry or default_registry
        self.extractor = registry.create(config.extractor, config.extractor_options)
        self.pool = SessionPool(provider or PlaywrightSessionProvider(config.browser))
        self.checkpoint = CheckpointStore(
            config.dataset.output_path,
            self.extractor.schema,
            encoding=config.dataset.encoding
        )
        self.scheduler = BatchScheduler(
            extractor=self.extractor,
            pool=self.pool,
            checkpoint=self.checkpoint,
            config=config.pipeline
        )

    @property
    def summary(self) -> RunSummary:
        return self.scheduler.summary

    def request_stop(self) -> None:
        self.scheduler.request_stop()

    async def run(self) -> RunSummary:
        """
        Read the input keys and run the pipeline; the session is always released.

        Raises:
            DatasetError: If the input cannot be read or the output cannot be written
        """
        dataset = self.config.dataset
        try:
            logger.info(f"Reading input from {dataset.input_path}")
            keys = read_input_keys(dataset.input_path, dataset.key_column, dataset.encoding)
            logger.info(f"Loaded {len(keys)} keys from input")

            return await self.scheduler.run(keys)
        finally:
            await self.pool.close()


async def run_with_signals(app: HarvesterApp) -> int:
    """
    Run the app with SIGINT/SIGTERM handling.

    The first signal stops after the in-flight batch is persisted; the
    second cancels in-flight work.

    Returns:
        Exit code
    """
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    received: List[int] = []

    def on_signal(signum: int) -> None:
        received.append(signum)
        if len(received) == 1:
            logger.info(f"Received signal {signum}, finishing the current batch before exiting")
            app.request_stop()
        else:
            logger.warning(f"Received signal {signum} again, cancelling in-flight work")
            main_task.cancel()

    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig} not supported on this platform")

    try:
        await app.run()
        return EXIT_OK
    except asyncio.CancelledError:
        if not received:
            raise
        app.summary.interrupted = True
        logger.warning("Run cancelled; the in-flight batch was not saved")
        return EXIT_CANCELLED
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


def create_cli_parser() -> argparse.ArgumentParser:
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(
        prog='lexicon-harvester',
        description='Resumable batch extraction of dictionary entries into a CSV dataset',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lexicon-harvester --input vocabulary.csv --output translated-full.csv
  lexicon-harvester --config config.json --concurrency 3 --batch-size 10
  lexicon-harvester --output-format json --log-file logs/harvester.log
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Path to configuration file (default: config.json if present)'
    )

    # Dataset options
    parser.add_argument('--input', '-i', type=str, help='Input CSV with the keys to process')
    parser.add_argument('--output', '-o', type=str, help='Output CSV (also the checkpoint)')
    parser.add_argument('--key-column', type=str, help='Input column holding the keys')

    # Pipeline options
    parser.add_argument('--concurrency', type=int, help='Concurrent extractions per batch')
    parser.add_argument('--batch-size', type=int, help='Keys per batch')
    parser.add_argument('--max-retries', type=int, help='Retries per key after the first attempt')

    parser.add_argument(
        '--headful',
        action='store_true',
        help='Show the browser window'
    )

    parser.add_argument(
        '--output-format',
        type=str,
        choices=['json', 'text'],
        default='text',
        help='Output format for the run summary (default: text)'
    )

    # Logging options
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override log level from configuration'
    )

    parser.add_argument('--log-file', type=str, help='Also write logs to this file (rotated daily)')

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output (equivalent to --log-level DEBUG)'
    )

    return parser


def load_config(args: argparse.Namespace) -> SystemConfig:
    """
    Resolve configuration: file or environment first, then command-line overrides.

    Raises:
        ConfigurationError: If the configuration is missing or invalid
    """
    if args.config:
        if not Path(args.config).exists():
            raise ConfigurationError(f"Configuration file not found: {args.config}")
        manager = ConfigManager(args.config)
    else:
        manager = ConfigManager()

    config = manager.load_config()

    if args.input:
        config.dataset.input_path = args.input
    if args.output:
        config.dataset.output_path = args.output
    if args.key_column:
        config.dataset.key_column = args.key_column

    if args.concurrency is not None:
        config.pipeline.concurrency = args.concurrency
    if args.batch_size is not None:
        config.pipeline.batch_size = args.batch_size
    if args.max_retries is not None:
        config.pipeline.max_retries = args.max_retries
    config.pipeline.validate()

    if args.headful:
        config.browser.headless = False

    if args.verbose:
        config.log_level = 'DEBUG'
    elif args.log_level:
        config.log_level = args.log_level
    if args.log_file:
        config.log_file = args.log_file

    return config


def format_output(data: Any, format_type: str) -> str:
    """Format output data according to specified format."""
    if format_type == 'json':
        return json.dumps(data, indent=2, default=str, ensure_ascii=False)

    if isinstance(data, dict):
        lines = []
        for key, value in data.items():
            if isinstance(value, dict):
                lines.append(f"{key}:")
                for sub_key, sub_value in value.items():
                    lines.append(f"  {sub_key}: {sub_value}")
            elif isinstance(value, list):
                lines.append(f"{key}: {', '.join(map(str, value))}")
            else:
                lines.append(f"{key}: {value}")
        return '\n'.join(lines)
    if isinstance(data, list):
        return '\n'.join(map(str, data))
    return str(data)


def run_cli(
    argv: Optional[List[str]] = None,
    registry: Optional[ExtractorRegistry] = None,
    provider: Optional[SessionProvider] = None
) -> int:
    """Parse arguments, run the pipeline and print the summary; returns the exit code."""
    parser = create_cli_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except HarvesterError as e:
        setup_logging('INFO')
        logger.error(f"Configuration error: {e.message} {e.details or ''}")
        print(format_output({'error': e.message, **e.details}, args.output_format))
        return EXIT_FAILURE

    setup_logging(config.log_level, config.log_file, config.log_retention_days)

    try:
        app = HarvesterApp(config, registry=registry, provider=provider)
    except HarvesterError as e:
        logger.error(f"Failed to initialize: {e.message}")
        print(format_output({'error': e.message, **e.details}, args.output_format))
        return EXIT_FAILURE

    exit_code = EXIT_OK
    error: Optional[Dict[str, Any]] = None
    try:
        exit_code = asyncio.run(run_with_signals(app))
    except HarvesterError as e:
        handle_error(e, logger, {"stage": "run", "output": config.dataset.output_path}, reraise=False)
        error = {'error': e.message, **e.details}
        exit_code = EXIT_FAILURE
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        app.summary.interrupted = True
        exit_code = EXIT_CANCELLED

    result = app.summary.to_dict()
    if error:
        result.update(error)
    print(format_output(result, args.output_format))
    return exit_code


def main():
    """Main entry point with command-line interface."""
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
