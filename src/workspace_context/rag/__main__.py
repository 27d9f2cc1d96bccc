"""CLI for building, querying and watching the workspace context index.

The index lives in memory; use --export / --snapshot to carry it between runs.

Usage:
    python -m workspace_context.rag index [--repo DIR] [--export FILE]
    python -m workspace_context.rag query "how is auth handled" [--snapshot FILE]
    python -m workspace_context.rag stats [--snapshot FILE]
    python -m workspace_context.rag watch [--debounce SECONDS] [--export FILE]
"""

import argparse
import sys
import time
from pathlib import Path

from ..config import config
from ..llm import get_llm_client
from ..logging_config import setup_logging
from ..tools.gitignore import load_ignore_patterns, should_ignore
from ..workspace import set_workspace_root
from .manager import SOURCE_EXTENSIONS, ContextManager, ContextOptions


def _add_repo_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--repo",
        type=str,
        default=".",
        help="Workspace root directory (default: current directory)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build, query and watch the workspace context index"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    index_parser = subparsers.add_parser("index", help="Index the workspace")
    _add_repo_argument(index_parser)
    index_parser.add_argument("--export", type=str, help="Write the index snapshot to this file")

    query_parser = subparsers.add_parser("query", help="Retrieve context for a query")
    query_parser.add_argument("query", type=str, help="Natural language query")
    _add_repo_argument(query_parser)
    query_parser.add_argument("--max-results", type=int, default=5, help="Maximum context pieces (default: 5)")
    query_parser.add_argument("--snapshot", type=str, help="Load the index from this snapshot first")
    query_parser.add_argument(
        "--no-embeddings",
        action="store_true",
        help="Skip embeddings and use LLM-assisted file selection",
    )

    stats_parser = subparsers.add_parser("stats", help="Show index statistics")
    _add_repo_argument(stats_parser)
    stats_parser.add_argument("--snapshot", type=str, help="Snapshot to inspect")

    watch_parser = subparsers.add_parser("watch", help="Re-index when files change")
    _add_repo_argument(watch_parser)
    watch_parser.add_argument("--debounce", type=int, default=10, help="Debounce time in seconds (default: 10)")
    watch_parser.add_argument("--export", type=str, help="Rewrite this snapshot after every re-index")

    return parser


def create_manager(repo_root: Path, with_embeddings: bool = True) -> ContextManager:
    return ContextManager(
        workspace_root=repo_root,
        llm_client=get_llm_client(with_embeddings=with_embeddings),
        model_name=config["llm"]["model"],
        options=ContextOptions.from_config(),
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the context CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(config["log_level"], config["log_file"])
    repo_root = Path(args.repo).resolve()
    set_workspace_root(repo_root)

    try:
        if args.command == "index":
            print(f"Indexing workspace: {repo_root}")
            manager = create_manager(repo_root)
            stats = manager.index_workspace()
            print("\n✓ Index built successfully!")
            print(f"  Files indexed: {stats['files_indexed']}")
            print(f"  Chunks indexed: {stats['chunks_indexed']}")
            print(f"  Time taken: {stats['time_taken']:.2f}s")
            if args.export:
                manager.export_index(args.export)
                print(f"  Snapshot written to: {args.export}")
            return 0

        elif args.command == "query":
            manager = create_manager(repo_root, with_embeddings=not args.no_embeddings)
            if args.snapshot:
                manager.load_index(args.snapshot)
            response = manager.retrieve_context(args.query, args.max_results)
            print(response.content)
            return 0

        elif args.command == "stats":
            manager = create_manager(repo_root, with_embeddings=False)
            if args.snapshot:
                manager.load_index(args.snapshot)
            stats = manager.get_stats()
            print("\n📊 Index Statistics")
            print("=" * 50)
            print(f"  Workspace: {repo_root}")
            print(f"  Documents: {stats['vector_store_size']}")
            print(f"  Dimension: {manager.vector_store.dimension or 'unset'}")
            if stats["last_index_time"]:
                print(f"  Last index: {stats['last_index_time'].strftime('%Y-%m-%d %H:%M:%S %Z')}")
            else:
                print("  Last index: Never")
            print("=" * 50)
            return 0

        elif args.command == "watch":
            manager = create_manager(repo_root)
            print(f"👀 Watching for file changes in: {repo_root}")
            print(f"   Debounce: {args.debounce}s")
            print("   Press Ctrl+C to stop")
            return watch_files(manager, debounce_seconds=args.debounce, export_path=args.export)

    except KeyboardInterrupt:
        print("\n\n👋 Stopped")
        return 0
    except Exception as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1

    return 1


def watch_files(manager: ContextManager, debounce_seconds: int = 10, export_path: str | None = None) -> int:
    """Re-index whenever source files change, after changes settle.

    Args:
        manager: Manager whose index is kept fresh
        debounce_seconds: Quiet time required after the last change
        export_path: Optional snapshot file rewritten after each re-index

    Returns:
        Exit code
    """
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    repo_root = manager.workspace_root
    ignore_rules = load_ignore_patterns(repo_root)

    state = {"pending": 0, "last_change": 0.0}

    class IndexInvalidationHandler(FileSystemEventHandler):
        def on_any_event(self, event):
            if event.is_directory:
                return
            path = Path(str(event.src_path))
            if path.suffix.lower() not in SOURCE_EXTENSIONS:
                return
            if should_ignore(path, repo_root, ignore_rules):
                return
            if export_path and path.resolve() == Path(export_path).resolve():
                return
            state["pending"] += 1
            state["last_change"] = time.time()

    def reindex() -> None:
        stats = manager.index_workspace()
        print(f"✓ Index updated: {stats['files_indexed']} files, {stats['chunks_indexed']} chunks ({stats['time_taken']:.2f}s)")
        if export_path:
            manager.export_index(export_path)

    reindex()

    observer = Observer()
    observer.schedule(IndexInvalidationHandler(), str(repo_root), recursive=True)
    observer.start()
    print("✓ Watching started")

    try:
        while True:
            time.sleep(1)
            if state["pending"] and time.time() - state["last_change"] >= debounce_seconds:
                print(f"\n🔄 Re-indexing ({state['pending']} change(s))...")
                state["pending"] = 0
                manager.invalidate_index()
                try:
                    reindex()
                except Exception as e:
                    print(f"❌ Update failed: {e}")
    except KeyboardInterrupt:
        pass
    finally:
        observer.stop()
        observer.join()
    return 0


if __name__ == "__main__":
    sys.exit(main())
