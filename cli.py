from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from typing import Any, Dict, Sequence

from pom_retrieval.config import RetrievalConfig
from pom_retrieval.engine import build_cache, build_search_engine
from pom_retrieval.hybrid.models import SearchResponse, SearchScope
from pom_retrieval.hybrid.hybrid_index import HybridSearchEngine
from pom_retrieval.settings import load_env_file


def _serialize_response(response: SearchResponse) -> Dict[str, Any]:
    return {
        "query": response.request.query,
        "scope": response.request.scope.value,
        "total_matches": response.total_matches,
        "duration_ms": round(response.duration_ms, 3),
        "error_message": response.error_message,
        "results": [
            {
                "id": result.id,
                "type": result.type.value,
                "name": result.name,
                "description": result.description,
                "url": result.url,
                "similarity_score": result.similarity_score,
                "matched_utterance": result.matched_utterance,
                "context": asdict(result.context),
            }
            for result in response.results
        ],
    }


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


async def _initialized_engine(config: RetrievalConfig) -> HybridSearchEngine:
    engine = build_search_engine(config)
    await engine.initialize()
    return engine


async def _run_search(config: RetrievalConfig, args: argparse.Namespace) -> int:
    engine = await _initialized_engine(config)
    response = await engine.search(
        args.query,
        max_results=args.max_results,
        min_similarity_threshold=(
            args.min_similarity if args.min_similarity is not None else config.min_embedding_threshold
        ),
        scope=SearchScope(args.scope),
        timeout=args.timeout,
    )
    _print_json(_serialize_response(response))
    return 0 if response.ok else 1


async def _run_stats(config: RetrievalConfig) -> int:
    engine = await _initialized_engine(config)
    _print_json(asdict(engine.get_index_statistics()))
    return 0


async def _run_match_url(config: RetrievalConfig, url: str) -> int:
    engine = build_search_engine(config)
    model = await engine.find_model_by_url(url)
    if model is None:
        print(f"No page object model matches {url}", file=sys.stderr)
        return 1
    print(model.name)
    return 0


def _run_cache_stats(config: RetrievalConfig) -> int:
    stats = build_cache(config).get_statistics()
    payload = asdict(stats)
    payload.update(
        total_size_mb=round(stats.total_size_mb, 3),
        max_size_mb=round(stats.max_size_mb, 3),
        usage_percentage=round(stats.usage_percentage, 2),
    )
    _print_json(payload)
    return 0


def _run_cache_clear(config: RetrievalConfig) -> int:
    removed = build_cache(config).clear()
    print(f"Removed {removed} cache entries")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search page object model utterances")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Dotenv file with POM_* settings to export before loading configuration",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    search = subparsers.add_parser("search", help="Run a hybrid search and print JSON results")
    search.add_argument("query")
    search.add_argument("--max-results", type=int, default=10)
    search.add_argument(
        "--min-similarity",
        type=float,
        default=None,
        help="Cosine threshold for documents without lexical overlap (defaults to config)",
    )
    search.add_argument(
        "--scope", choices=[scope.value for scope in SearchScope], default=SearchScope.ALL.value
    )
    search.add_argument("--timeout", type=float, default=None, help="Search timeout in seconds")

    subparsers.add_parser("stats", help="Index all models and print utterance counts")
    subparsers.add_parser("cache-stats", help="Print embedding cache statistics")
    subparsers.add_parser("cache-clear", help="Delete every embedding cache entry")

    match_url = subparsers.add_parser("match-url", help="Print the model matching a URL")
    match_url.add_argument("url")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.env_file and not load_env_file(args.env_file):
        parser.error(f"Env file not found: {args.env_file}")
    config = RetrievalConfig()

    if args.command == "search":
        return asyncio.run(_run_search(config, args))
    if args.command == "stats":
        return asyncio.run(_run_stats(config))
    if args.command == "match-url":
        return asyncio.run(_run_match_url(config, args.url))
    if args.command == "cache-stats":
        return _run_cache_stats(config)
    if args.command == "cache-clear":
        return _run_cache_clear(config)

    parser.error(f"Unknown command {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
