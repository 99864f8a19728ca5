"""
DeepRecall command line

    deeprecall index              Index the context folder
    deeprecall query "question"   Show the best-matching chunks
    deeprecall watch              Index, then keep the index in sync with the folder
    deeprecall stats              Document and chunk counts
"""

import argparse
import os
import sys
import time
from typing import List, Optional

from dotenv import load_dotenv

from .config import DeepRecallConfig, EmbeddingConfig, RetrievalConfig, WatcherConfig
from .errors import DeepRecallError
from .log import setup_logging
from .service import ContextService


def build_config(args: argparse.Namespace) -> DeepRecallConfig:
    data_dir = args.data_dir
    return DeepRecallConfig(
        folder=args.folder,
        embeddings=EmbeddingConfig(
            model=args.model,
            cache_dir=os.path.join(data_dir, "cache")
        ),
        retrieval=RetrievalConfig(
            top_k=getattr(args, "top_k", 5),
            similarity_threshold=getattr(args, "threshold", 0.3),
            db_path=os.path.join(data_dir, "vectors.db")
        ),
        watcher=WatcherConfig(debounce_seconds=getattr(args, "debounce", 2.0))
    )


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deeprecall", description="Semantic search over a local document folder")
    parser.add_argument('-f', '--folder', default='./context', help='Folder with documents to index')
    parser.add_argument('-d', '--data-dir', default='.deeprecall', help='Where the cache and vector store live')
    parser.add_argument('-m', '--model', default='text-embedding-3-small', help='Embedding model')
    parser.add_argument('--log-level', default='info', help='debug, info, warning or error')
    parser.add_argument('--log-file', help='Also write logs to this file')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('index', help='Index the context folder')

    query = subparsers.add_parser('query', help='Search the index')
    query.add_argument('text', help='Query text')
    query.add_argument('-k', '--top-k', type=int, default=5, help='Maximum number of results')
    query.add_argument('-t', '--threshold', type=float, default=0.3, help='Minimum similarity')

    watch = subparsers.add_parser('watch', help='Index and keep watching for changes')
    watch.add_argument('--debounce', type=float, default=2.0, help='Quiet period in seconds before reindexing')

    subparsers.add_parser('stats', help='Show index statistics')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = create_parser().parse_args(argv)
    logger = setup_logging(args.log_level, args.log_file)

    try:
        service = ContextService(build_config(args), logger=logger)
    except DeepRecallError as e:
        logger.error("Startup failed: %s", e)
        return 1

    with service:
        try:
            if args.command == 'index':
                results = service.index_directory()
                stats = service.get_stats()
                print(f"Indexed {len(results)} files: {stats.total_documents} documents, {stats.total_chunks} chunks")

            elif args.command == 'query':
                results = service.retrieve(args.text)
                if not results:
                    print("No relevant context found.")
                for result in results:
                    print(f"[{result.rank}] {result.score:.3f}  {result.chunk.metadata.source}")
                    print(f"    {result.chunk.content.strip()[:300]}")

            elif args.command == 'watch':
                service.index_directory()
                service.start_watching()
                print(f"Watching {service.folder} (Ctrl+C to stop)")
                try:
                    while True:
                        time.sleep(1)
                except KeyboardInterrupt:
                    print("\nStopped watching")

            elif args.command == 'stats':
                stats = service.get_stats()
                print(f"Documents: {stats.total_documents}")
                print(f"Chunks:    {stats.total_chunks}")

        except DeepRecallError as e:
            logger.error("%s failed: %s", args.command, e)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
