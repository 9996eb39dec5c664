"""
Command-line runner for the legacy document clustering pipeline.

Builds the collaborators from configured credentials and runs one
operation against an import session:

    python run_pipeline.py pipeline <session_id> [--stages cluster name]
    python run_pipeline.py recluster <session_id>
    python run_pipeline.py merge-preview <session_id>
    python run_pipeline.py merge <session_id>
    python run_pipeline.py status <session_id>
"""
import argparse
import asyncio
import logging
import sys
from typing import List

from config.settings import get_settings
from clustering.pipeline import ALL_STAGES, DocumentClusteringPipeline
from consolidation.smart_merger import SmartMerger
from core.exceptions import ClusteringError, ConfigurationError
from core.logger import configure_logging
from core.session_manager import SessionManager
from embedding.openai_embedder import OpenAIEmbedder
from labeling.llm_client import OpenRouterClient
from reclustering.reclusterer import ReclusterEngine
from storage.supabase_client import get_supabase_store

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Legacy document clustering pipeline")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("pipeline", help="Run clustering stages for a session")
    run.add_argument("session_id")
    run.add_argument(
        "--stages",
        nargs="+",
        choices=ALL_STAGES,
        default=None,
        help="Stages to run, in pipeline order (default: all)"
    )

    for name, help_text in (
        ("recluster", "Re-cluster reviewer-reclassified documents"),
        ("merge-preview", "Print AI merge suggestions without applying them"),
        ("merge", "Apply AI merge suggestions"),
        ("status", "Show the pipeline status of a session"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("session_id")

    return parser


def _check_credentials(services: List[str]):
    missing = [s for s in get_settings().get_missing_secrets() if s in services]
    if missing:
        raise ConfigurationError(
            "Missing credentials for: " + ", ".join(missing),
            missing_keys=missing
        )


async def run_command(args: argparse.Namespace) -> int:
    """
    Execute one parsed command.

    Returns:
        Process exit code
    """
    store = get_supabase_store()
    sessions = SessionManager(store)

    if args.command == "status":
        status = sessions.get_status(args.session_id)
        print(status.value if status else "not started")
        return 0

    _check_credentials(["OpenRouter"])
    llm_client = OpenRouterClient()
    try:
        return await _run_with_llm(args, store, sessions, llm_client)
    finally:
        logger.info("LLM usage: %s", llm_client.get_stats())


async def _run_with_llm(args, store, sessions, llm_client) -> int:
    if args.command == "pipeline":
        _check_credentials(["OpenAI"])
        pipeline = DocumentClusteringPipeline(
            store, OpenAIEmbedder(), llm_client, sessions=sessions
        )
        result = await pipeline.run(
            args.session_id,
            stages=args.stages,
            progress_callback=lambda p: logger.info(
                "[%s] %d/%d %s", p.stage.value, p.current, p.total, p.message
            )
        )
        print("Completed stages: " + ", ".join(result.completed_stages))
        return 0

    if args.command == "recluster":
        stats = await ReclusterEngine(store, llm_client, sessions=sessions).recluster(args.session_id)
        print(stats.to_dict())
        return 0

    merger = SmartMerger(store, llm_client)
    analysis = await merger.analyze_clusters(args.session_id)
    print(merger.preview_merges(analysis))

    if args.command == "merge":
        if analysis.fallback_reason:
            logger.error("Merge analysis unavailable: %s", analysis.fallback_reason)
            return 1
        result = await merger.execute_merges(args.session_id, analysis.merge_groups)
        for error in result.errors:
            print(f"ERROR: {error}")
        print(f"Merged {result.merged_count} group(s); {result.new_cluster_count} clusters remain")
        return 0 if result.success else 1

    return 0


def main(argv: List[str] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or get_settings().pipeline.log_level)

    try:
        return asyncio.run(run_command(args))
    except ConfigurationError as e:
        logger.error("%s", e.message)
        return 2
    except ClusteringError as e:
        logger.error("%s (%s)", e.message, e.details)
        return 1


if __name__ == "__main__":
    sys.exit(main())
