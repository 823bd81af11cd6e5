from __future__ import annotations as _annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import logfire
from pydantic import BaseModel, Field
from pydantic_graph import BaseNode, End, Graph, GraphRunContext

from cluster_extractor import ClusterExtractor
from corpus_loader import CorpusLoader
from graph_index import GraphIndex
from inference_client import AgentInferenceClient, InferenceClient
from rebuild_persister import PersistResult, RebuildPersister
from relationship_miner import RelationshipMiner, Sleep
from session_config import RuntimeConfig, get_config, get_store_path
from session_entities import Cluster, Corpus, VoiceSession
from session_errors import ErrorLog
from session_export import export_sessions
from session_ledger import AuditLedger, RunStats, RunTracker
from session_relationships import RelationshipEdge
from session_store import SessionStore
from session_synthesizer import SessionSynthesizer


logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Linear run stages. A run only ever moves forward or fails."""
    INIT = "init"
    LOADED = "loaded"
    GRAPH_BUILT = "graph_built"
    SESSIONS_GENERATED = "sessions_generated"
    PERSISTED = "persisted"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineDeps:
    """Everything a run talks to, passed in explicitly."""

    store: SessionStore
    client: InferenceClient
    config: RuntimeConfig = field(default_factory=get_config)
    sleep: Sleep = asyncio.sleep
    id_factory: Optional[Callable[[str, List[str]], str]] = None
    error_log: ErrorLog = field(default_factory=ErrorLog)

    @property
    def ledger(self) -> AuditLedger:
        return AuditLedger(self.store, self.config.pipeline.bot_name)


@dataclass
class PipelineState:
    """Output of each completed stage, consumed whole by the next one."""

    stage: PipelineStage = PipelineStage.INIT
    corpus: Optional[Corpus] = None
    edges: List[RelationshipEdge] = field(default_factory=list)
    failed_batches: int = 0
    graph: Optional[GraphIndex] = None
    clusters: List[Cluster] = field(default_factory=list)
    sessions: List[VoiceSession] = field(default_factory=list)
    persisted: Optional[PersistResult] = None


class PipelineSummary(BaseModel):
    """Counters reported at the end of a run."""

    run_id: Optional[int] = None
    questions_processed: int = 0
    relationships_mined: int = 0
    relationships_saved: int = 0
    failed_batches: int = 0
    clusters: int = 0
    sessions_generated: int = 0
    sessions_saved: int = 0
    errors: Dict[str, Any] = Field(default_factory=dict)


@dataclass
class LoadCorpus(BaseNode[PipelineState, PipelineDeps]):
    """Node that reads eligible questions grouped by channel."""

    async def run(self, ctx: GraphRunContext[PipelineState, PipelineDeps]) -> BuildGraph:
        with logfire.span('load_corpus_node') as span:
            ctx.state.corpus = CorpusLoader(ctx.deps.store).load()
            ctx.state.stage = PipelineStage.LOADED
            span.set_attribute('questions', len(ctx.state.corpus.questions))
            return BuildGraph()


@dataclass
class BuildGraph(BaseNode[PipelineState, PipelineDeps]):
    """Node that mines relationships and indexes them."""

    async def run(self, ctx: GraphRunContext[PipelineState, PipelineDeps]) -> GenerateSessions:
        with logfire.span('build_graph_node') as span:
            miner = RelationshipMiner(
                ctx.deps.client,
                config=ctx.deps.config.pipeline,
                sleep=ctx.deps.sleep,
                error_log=ctx.deps.error_log,
            )
            mined = await miner.mine(ctx.state.corpus.by_channel)
            ctx.state.edges = mined.edges
            ctx.state.failed_batches = mined.failed_batches
            ctx.state.graph = GraphIndex.from_edges(mined.edges)
            ctx.state.stage = PipelineStage.GRAPH_BUILT

            span.set_attribute('edges', len(mined.edges))
            span.set_attribute('failed_batches', mined.failed_batches)
            return GenerateSessions()


@dataclass
class GenerateSessions(BaseNode[PipelineState, PipelineDeps]):
    """Node that clusters each channel and names a session per cluster."""

    async def run(self, ctx: GraphRunContext[PipelineState, PipelineDeps]) -> PersistRebuild:
        with logfire.span('generate_sessions_node') as span:
            extractor = ClusterExtractor(ctx.deps.config.pipeline)
            ctx.state.clusters = extractor.extract_all(ctx.state.corpus.by_channel, ctx.state.graph)

            synthesizer = SessionSynthesizer(
                ctx.deps.client,
                config=ctx.deps.config.pipeline,
                id_factory=ctx.deps.id_factory,
                error_log=ctx.deps.error_log,
            )
            ctx.state.sessions = await synthesizer.synthesize_all(ctx.state.clusters)
            ctx.state.stage = PipelineStage.SESSIONS_GENERATED

            span.set_attribute('clusters', len(ctx.state.clusters))
            span.set_attribute('sessions', len(ctx.state.sessions))
            return PersistRebuild()


@dataclass
class PersistRebuild(BaseNode[PipelineState, PipelineDeps, PipelineSummary]):
    """Node that replaces the stored generation with the new one."""

    async def run(self, ctx: GraphRunContext[PipelineState, PipelineDeps]) -> End[PipelineSummary]:
        with logfire.span('persist_rebuild_node') as span:
            persister = RebuildPersister(
                ctx.deps.store,
                ctx.deps.ledger,
                config=ctx.deps.config.pipeline,
                error_log=ctx.deps.error_log,
            )
            result = persister.persist(ctx.state.edges, ctx.state.sessions)
            ctx.state.persisted = result
            ctx.state.stage = PipelineStage.PERSISTED

            summary = PipelineSummary(
                questions_processed=len(ctx.state.corpus.questions),
                relationships_mined=len(ctx.state.edges),
                relationships_saved=result.saved_relationships,
                failed_batches=ctx.state.failed_batches,
                clusters=len(ctx.state.clusters),
                sessions_generated=len(ctx.state.sessions),
                sessions_saved=result.saved_sessions,
                errors=ctx.deps.error_log.get_error_summary(),
            )
            span.set_attribute('relationships_saved', summary.relationships_saved)
            span.set_attribute('sessions_saved', summary.sessions_saved)
            return End(summary)


session_graph = Graph(
    nodes=(LoadCorpus, BuildGraph, GenerateSessions, PersistRebuild),
    state_type=PipelineState,
)


async def run_pipeline(deps: PipelineDeps, state: Optional[PipelineState] = None) -> PipelineSummary:
    """Run the whole pipeline once, recording the run in bot_runs.

    Any exception escaping a stage marks the run failed and is re-raised.
    """
    state = state or PipelineState()
    with logfire.span('session_builder.run') as span:
        deps.store.init_tables()
        tracker = RunTracker(deps.store, deps.config.pipeline.bot_name)
        run = tracker.start_run()
        span.set_attribute('run_id', run.id)

        try:
            result = await session_graph.run(LoadCorpus(), state=state, deps=deps)
        except Exception as e:
            failed_at = state.stage
            state.stage = PipelineStage.FAILED
            processed = len(state.corpus.questions) if state.corpus else 0
            tracker.fail_run(run.id, e, RunStats(processed=processed))
            logfire.error('Session builder failed', stage=failed_at.value, error=str(e))
            raise

        summary = result.output
        summary.run_id = run.id
        stats = RunStats(
            processed=summary.questions_processed,
            created=summary.sessions_saved,
            deleted=state.persisted.deleted_sessions if state.persisted else 0,
        )
        tracker.update_stats(run.id, stats)
        tracker.complete_run(run.id, stats, {
            'message': 'Session Builder completed',
            'relationships': summary.relationships_saved,
            'sessions': summary.sessions_saved,
            'errors': summary.errors.get('total_errors', 0),
        })
        state.stage = PipelineStage.DONE

        span.set_attribute('sessions_saved', summary.sessions_saved)
        logfire.info('Session builder completed', **summary.model_dump(exclude={'errors'}))
        return summary


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    # 'if-token-present' means nothing is sent unless logfire is configured
    logfire.configure(send_to_logfire='if-token-present')
    logfire.instrument_pydantic_ai()


def print_summary(summary: PipelineSummary):
    print('\n=== Summary ===')
    print(f'Questions processed: {summary.questions_processed}')
    print(f'Relationships created: {summary.relationships_saved}')
    print(f'Sessions created: {summary.sessions_saved}')
    if summary.failed_batches:
        print(f'Failed inference batches: {summary.failed_batches}')
    if summary.errors.get('total_errors'):
        print(f'Recoverable errors: {summary.errors["total_errors"]}')


async def build_command(args, config: RuntimeConfig) -> int:
    store = SessionStore(get_store_path(args.db), config=config)
    client = AgentInferenceClient(model=args.model, config=config.inference)
    try:
        summary = await run_pipeline(PipelineDeps(store=store, client=client, config=config))
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        store.close()

    print_summary(summary)
    return 0


def export_command(args, config: RuntimeConfig) -> int:
    store = SessionStore(get_store_path(args.db), config=config)
    try:
        result = export_sessions(store, args.output or config.app.export_path)
    except Exception as e:
        logger.error(f"Export failed: {e}")
        return 1
    finally:
        store.close()

    print(f'Exported {result.total} sessions to {result.path}')
    for channel, count in result.by_channel.items():
        print(f'  {channel}: {count} sessions')
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Build question relationships and voice sessions"
    )
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    build_parser = subparsers.add_parser('build', help='Mine relationships and rebuild sessions')
    build_parser.add_argument('--db', help='Path of the sqlite database')
    build_parser.add_argument('--model', help='pydantic_ai model identifier')

    export_parser = subparsers.add_parser('export', help='Export sessions to JSON')
    export_parser.add_argument('--db', help='Path of the sqlite database')
    export_parser.add_argument('--output', help='Destination JSON file')

    subparsers.add_parser('mermaid', help='Print the pipeline as a mermaid diagram')

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'mermaid':
        print(session_graph.mermaid_code(start_node=LoadCorpus))
        return 0

    config = get_config()
    configure_logging(config.log_level)
    logfire.info('Session builder configuration', **config.to_dict())

    if args.command == 'build':
        return asyncio.run(build_command(args, config))
    return export_command(args, config)


if __name__ == '__main__':
    sys.exit(main())
