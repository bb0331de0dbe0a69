"""
Command-Line Interface for the News RAG Query Cache

Provides CLI commands for:
- Serving the HTTP API
- Feed ingestion
- Cached question answering
- Cache warming (once or on a schedule)
- Trending topics, session history and statistics
"""

import sys
import time
import argparse
import logging

import schedule

from .main_pipeline import NewsQuerySystem


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def cmd_serve(args):
    """Handle the serve command."""
    from .api.app import create_app

    system = NewsQuerySystem()
    app = create_app(system, start=not args.no_warm)
    port = args.port or system.config.port

    print(f"Serving on http://{args.host}:{port}/api/v1/data")
    try:
        app.run(host=args.host, port=port, threaded=True)
    finally:
        system.shutdown()


def cmd_ingest(args):
    """Handle the ingest command."""
    system = NewsQuerySystem()
    system.start(warm=False)

    print(f"Ingesting {len(system.config.get_feed_urls())} feed(s)")
    start_time = time.time()
    articles = system.ingest_news(show_progress=True)

    print(f"\n{'='*60}")
    print("Ingestion Summary:")
    print(f"  Articles embedded: {len(articles)}")
    print(f"  Processing time: {time.time() - start_time:.2f}s")
    print(f"{'='*60}")


def cmd_ask(args):
    """Handle the ask command."""
    system = NewsQuerySystem()
    system.start(warm=False)

    print(f"Question: {args.question}")
    print()

    start_time = time.time()
    result = system.ask(args.question, top_k=args.top_k, session_id=args.session)

    print("Answer:")
    print(f"{result.answer}")
    print()

    if not args.no_sources and result.passages:
        print("Sources:")
        for i, passage in enumerate(result.passages, 1):
            print(f"  [{i}] {passage.title} ({passage.score:.3f})")
            print(f"      {passage.link}")
        print()

    source = "cache" if result.served_from_cache else "computed"
    print(f"Response time: {time.time() - start_time:.2f}s ({source})")


def _print_report(report):
    print(
        f"Warmed {report.warmed}/{report.candidates} candidates "
        f"({report.skipped} already cached, {report.failed} failed) "
        f"in {report.duration:.2f}s"
    )


def cmd_warm(args):
    """Handle the warm command."""
    system = NewsQuerySystem()
    system.start(warm=False)

    def run_once():
        _print_report(system.warm_cache())

    run_once()
    if not args.every:
        return

    print(f"Warming every {args.every} minute(s). Press Ctrl+C to stop.")
    schedule.every(args.every).minutes.do(run_once)
    while True:
        schedule.run_pending()
        time.sleep(1)


def cmd_trending(args):
    """Handle the trending command."""
    system = NewsQuerySystem()
    system.start(warm=False)

    candidates = system.trending_miner.mine(sample_size=args.sample_size)
    if not candidates:
        print("No trending topics found.")
        return

    print(f"Found {len(candidates)} trending topic(s):\n")
    for i, candidate in enumerate(candidates, 1):
        print(f"[{i}] {candidate.query_text}")


def cmd_history(args):
    """Handle the history command."""
    system = NewsQuerySystem()

    history = system.session_store.get_history(args.session)
    if not history:
        print("No history for this session.")
        return

    for i, entry in enumerate(history, 1):
        print(f"[{i}] {entry.timestamp}  {entry.query}")
        print(f"    {entry.answer[:200]}")
        print()


def cmd_clear_history(args):
    """Handle the clear-history command."""
    system = NewsQuerySystem()
    system.session_store.clear_session(args.session)
    print(f"✓ Session cleared: {args.session}")


def cmd_stats(args):
    """Handle the stats command."""
    system = NewsQuerySystem()

    stats = system.get_stats()

    print("="*60)
    print("System Statistics")
    print("="*60)
    print(f"Collection: {stats['collection']}")
    print(f"Total Articles: {stats['total_articles']}")
    print(f"Cache Backend: {stats['cache_backend']}")
    print()

    print("Embedding Cache:")
    cache_stats = stats['embedding_cache_stats']
    print(f"  Cache Size: {cache_stats.get('cache_size', 0)}")
    print(f"  Hit Rate: {cache_stats.get('hit_rate', 0):.2%}")
    print()

    print("Popular Queries:")
    if not stats['popular_queries']:
        print("  (none yet)")
    for item in stats['popular_queries']:
        print(f"  {item['count']:>5.0f}  {item['query']}")
    print("="*60)


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description='News RAG Query Cache - cached question answering over news feeds',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest the configured feeds
  python -m newsrag.cli ingest

  # Ask a question
  python -m newsrag.cli ask "What is happening in world news?"

  # Warm the cache every 30 minutes
  python -m newsrag.cli warm --every 30

  # Serve the HTTP API
  python -m newsrag.cli serve --port 8080
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    serve_parser = subparsers.add_parser(
        'serve',
        help='Serve the HTTP API'
    )
    serve_parser.add_argument(
        '--host',
        default='0.0.0.0',
        help='Bind address (default: 0.0.0.0)'
    )
    serve_parser.add_argument(
        '--port',
        type=int,
        help='Port (default: PORT from the environment)'
    )
    serve_parser.add_argument(
        '--no-warm',
        action='store_true',
        help='Skip cache warming on startup'
    )
    serve_parser.set_defaults(func=cmd_serve)

    ingest_parser = subparsers.add_parser(
        'ingest',
        help='Fetch, embed and index the configured feeds'
    )
    ingest_parser.set_defaults(func=cmd_ingest)

    ask_parser = subparsers.add_parser(
        'ask',
        help='Ask a question and get an AI-generated answer'
    )
    ask_parser.add_argument(
        'question',
        help='Question to ask'
    )
    ask_parser.add_argument(
        '--top-k',
        type=int,
        default=None,
        help='Number of passages to retrieve (default: TOP_K_DEFAULT)'
    )
    ask_parser.add_argument(
        '--session',
        help='Session ID to record the exchange under'
    )
    ask_parser.add_argument(
        '--no-sources',
        action='store_true',
        help='Hide source passages'
    )
    ask_parser.set_defaults(func=cmd_ask)

    warm_parser = subparsers.add_parser(
        'warm',
        help='Pre-compute answers for popular and trending queries'
    )
    warm_parser.add_argument(
        '--every',
        type=int,
        metavar='MINUTES',
        help='Keep running and warm on this interval'
    )
    warm_parser.set_defaults(func=cmd_warm)

    trending_parser = subparsers.add_parser(
        'trending',
        help='Show trending topics mined from recent titles'
    )
    trending_parser.add_argument(
        '--sample-size',
        type=int,
        default=50,
        help='Number of recent articles to scan (default: 50)'
    )
    trending_parser.set_defaults(func=cmd_trending)

    history_parser = subparsers.add_parser(
        'history',
        help='Show a session\'s query history'
    )
    history_parser.add_argument(
        '--session',
        required=True,
        help='Session ID'
    )
    history_parser.set_defaults(func=cmd_history)

    clear_parser = subparsers.add_parser(
        'clear-history',
        help='Delete a session\'s query history'
    )
    clear_parser.add_argument(
        '--session',
        required=True,
        help='Session ID'
    )
    clear_parser.set_defaults(func=cmd_clear_history)

    stats_parser = subparsers.add_parser(
        'stats',
        help='Display system statistics'
    )
    stats_parser.set_defaults(func=cmd_stats)

    # Parse arguments
    args = parser.parse_args()

    # Setup logging
    setup_logging(args.verbose)

    # Execute command
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
