"""
Relationship mining over the question corpus.

Each channel is split into fixed-size batches and one inference call per batch
proposes typed, scored edges. Candidates are validated against the batch and
the channel before they are accepted. A batch whose call fails or whose
response cannot be decoded contributes no edges; the run continues.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import logfire
from pydantic import BaseModel, Field

from inference_client import InferenceClient, decode_candidate_edges
from session_config import PipelineConfig, get_config
from session_entities import Question
from session_errors import ErrorLog, ErrorTier
from session_relationships import CandidateEdge, RelationshipEdge, bound_strength


logger = logging.getLogger(__name__)


Sleep = Callable[[float], Awaitable[None]]


class MiningResult(BaseModel):
    """Edges accepted across all channels plus batch counters."""

    edges: List[RelationshipEdge] = Field(default_factory=list)
    batches: int = Field(default=0, ge=0)
    failed_batches: int = Field(default=0, ge=0)


def build_relationship_prompt(batch: List[Question], channel_questions: List[Question]) -> str:
    """Prompt enumerating the batch, with the rest of the channel as allowed targets."""
    batch_ids = {q.id for q in batch}
    lines = []
    for i, q in enumerate(batch, 1):
        keywords = ', '.join(q.voice_keywords[:5])
        lines.append(f"{i}. [{q.id}] {q.question[:100]}... (keywords: {keywords})")

    others = [q for q in channel_questions if q.id not in batch_ids]
    context = '\n'.join(f"- [{q.id}] {q.question[:60]}" for q in others)

    return f"""Analyze these interview questions and find which ones are closely related.

Questions:
{chr(10).join(lines)}

Other questions in the same channel (valid targets):
{context or '- none'}

Find pairs of questions that:
1. Cover the same concept at different depths (prerequisite -> follow_up)
2. Are about closely related topics (related)
3. One dives deeper into a subtopic of another (deeper_dive)

Return ONLY a valid JSON array (no markdown):
[
  {{"source": "q-xxx", "target": "q-yyy", "type": "prerequisite|follow_up|related|deeper_dive", "strength": 70}}
]

Rules:
- Only include pairs with strength >= 60
- source must be a question ID from the numbered list
- target must be a question ID from either list
- Max 10 relationships per batch
- Strength: 60-70 = somewhat related, 70-85 = closely related, 85-100 = very closely related"""


class RelationshipMiner:
    """Proposes and validates relationship edges with throttled inference calls."""

    def __init__(
        self,
        client: InferenceClient,
        config: Optional[PipelineConfig] = None,
        sleep: Sleep = asyncio.sleep,
        error_log: Optional[ErrorLog] = None
    ):
        self.client = client
        self.config = config or get_config().pipeline
        self.sleep = sleep
        self.error_log = error_log if error_log is not None else ErrorLog()

    def validate_candidates(
        self,
        candidates: List[CandidateEdge],
        batch: List[Question],
        channel_questions: List[Question]
    ) -> List[RelationshipEdge]:
        """Keep candidates whose endpoints are known and whose strength passes."""
        batch_ids = {q.id for q in batch}
        channel_ids = {q.id for q in channel_questions}
        accepted = []

        for candidate in candidates:
            if candidate.source not in batch_ids:
                continue
            if candidate.target not in channel_ids:
                continue
            if candidate.source == candidate.target:
                continue
            if bound_strength(candidate.strength) < self.config.min_strength:
                continue
            accepted.append(RelationshipEdge.from_candidate(candidate))

        return accepted

    async def mine_batch(
        self,
        channel: str,
        batch: List[Question],
        channel_questions: List[Question]
    ) -> Optional[List[RelationshipEdge]]:
        """Mine one batch. Returns None when the batch failed."""
        with logfire.span('relationship_miner.batch') as span:
            span.set_attribute('channel', channel)
            span.set_attribute('batch_size', len(batch))
            prompt = build_relationship_prompt(batch, channel_questions)
            try:
                response = await self.client.complete(prompt)
                candidates = decode_candidate_edges(response)
            except Exception as e:
                self.error_log.record(
                    e,
                    ErrorTier.PER_UNIT,
                    stage='relationship_mining',
                    channel=channel,
                    batch=[q.id for q in batch],
                )
                logger.error(f"Error finding relationships in {channel}: {e}")
                return None

            edges = self.validate_candidates(candidates, batch, channel_questions)
            span.set_attribute('candidates', len(candidates))
            span.set_attribute('accepted', len(edges))
            return edges

    async def mine(self, by_channel: Dict[str, List[Question]]) -> MiningResult:
        """Mine every channel large enough, one batch at a time."""
        result = MiningResult()
        first_batch = True

        with logfire.span('relationship_miner.mine') as span:
            for channel, questions in by_channel.items():
                if len(questions) < self.config.min_channel_for_mining:
                    logger.info(f"Skipping {channel}: only {len(questions)} questions")
                    continue

                logfire.info('Mining channel', channel=channel, questions=len(questions))
                size = self.config.batch_size
                for start in range(0, len(questions), size):
                    if not first_batch and self.config.batch_pause_seconds > 0:
                        await self.sleep(self.config.batch_pause_seconds)
                    first_batch = False

                    batch = questions[start:start + size]
                    edges = await self.mine_batch(channel, batch, questions)
                    result.batches += 1
                    if edges is None:
                        result.failed_batches += 1
                        continue
                    result.edges.extend(edges)

            span.set_attribute('batches', result.batches)
            span.set_attribute('failed_batches', result.failed_batches)
            span.set_attribute('edges', len(result.edges))
            logfire.info(
                'Relationship mining finished',
                edges=len(result.edges),
                batches=result.batches,
                failed_batches=result.failed_batches,
            )
        return result
