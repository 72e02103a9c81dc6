#!/usr/bin/env python3
"""
Purge Hook

Turns a content mutation event into the list of cache keys to delete.

Usage:
    isr-purge event.yml
    echo '{"event": "post_updated", "entity_type": "post", "entity_id": 42}' | isr-purge -

Keys are printed one per line on stdout so the artifact store (or a shell
pipeline) can delete them. A purge log record goes to the log.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import IO, Any, List, Optional

import yaml

from .config import IsrConfig, load_config
from .invalidation import InvalidationResolver
from .observability import PurgeLogRecord

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/isr.defaults.yml"


def read_event(source: str, stdin: IO[str]) -> Any:
    """Load an event document (YAML or JSON) from a file, or stdin for '-'."""
    if source == "-":
        return yaml.safe_load(stdin)
    with Path(source).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def resolve_config(config_path: Optional[str]) -> IsrConfig:
    """Explicit config path must exist; the default one is optional."""
    if config_path:
        return load_config(config_path)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_config(DEFAULT_CONFIG_PATH)
    logger.debug("No config file found, using built-in defaults")
    return IsrConfig()


def purge_keys_for(payload: Any, resolver: InvalidationResolver) -> PurgeLogRecord:
    result = resolver.resolve(payload)
    return PurgeLogRecord.from_result(result, estimated_keys=resolver.estimate_count(payload))


def main(argv: Optional[List[str]] = None, stdin: Optional[IO[str]] = None, stdout: Optional[IO[str]] = None) -> int:
    """Entry point for the isr-purge command."""
    parser = argparse.ArgumentParser(prog="isr-purge", description="Resolve a mutation event into cache keys to purge")
    parser.add_argument("event", nargs="?", default="-", help="event file (YAML or JSON), '-' for stdin")
    parser.add_argument("--config", default=None, help=f"config file (default: {DEFAULT_CONFIG_PATH} if present)")
    args = parser.parse_args(argv)

    try:
        config = resolve_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
        logger.error(f"Failed to load config: {e}")
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        payload = read_event(args.event, stdin or sys.stdin)
        record = purge_keys_for(payload, InvalidationResolver.from_config(config))
    except (OSError, yaml.YAMLError, TypeError, ValueError) as e:
        logger.error(f"Failed to resolve invalidation event: {e}")
        return 1

    log_payload = record.to_dict()

    out = stdout or sys.stdout
    for key in record.purge_keys:
        out.write(key + "\n")

    logger.info(record.reason)
    logger.debug(json.dumps(log_payload))
    return 0


if __name__ == "__main__":
    sys.exit(main())
