from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import AppConfig, config_path, load_config, split_csv
from .pipeline import run_pipeline, search_opportunities
from .store import GrantStore

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="grant-discovery", description="Grant opportunity discovery and matching"
    )
    parser.add_argument("--config", help="Path to config.toml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Discover, score and import opportunities"),
        ("search", "Discover and score opportunities without importing"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--modules", help="Comma-separated taxonomy tags (default: all)")
        sub.add_argument("--sources", help="Comma-separated source names (default: all)")
        sub.add_argument("--historical", action="store_true", help="Include historical awards")
        sub.add_argument("--state", help="Two-letter state code for disaster declarations")
    subparsers.add_parser("serve", help="Serve the HTTP trigger and admin endpoints")

    args = parser.parse_args(argv)
    config = load_config(config_path(args.config))
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "serve":
        return _serve(config)

    options = {
        "tags": split_csv(args.modules),
        "source_names": split_csv(args.sources),
        "include_historical": args.historical,
        "state": args.state,
    }
    if args.command == "search":
        result = search_opportunities(config, **options)
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    store = GrantStore(config.store.database_url, echo=config.store.echo)
    store.create_schema()
    try:
        summary = run_pipeline(config, store, **options)
    except Exception:
        logger.exception("Discovery run failed")
        return 1
    finally:
        store.close()

    if summary.errors:
        print("Warnings:", file=sys.stderr)
        for error in summary.errors:
            print(f"- {error}", file=sys.stderr)
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def _serve(config: AppConfig) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
