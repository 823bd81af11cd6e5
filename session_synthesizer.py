"""
Turns clusters into voice sessions.

Members are ordered by difficulty for a natural progression and the inference
capability names the session. When that call fails or its response does not
decode, the session is named after its most common sub-channel instead.
"""

from __future__ import annotations

import hashlib
import logging
import random
import re
import string
import time
from collections import Counter
from typing import Callable, List, Optional

import logfire

from cluster_extractor import sort_by_difficulty
from inference_client import InferenceClient, decode_session_topic
from session_config import PipelineConfig, get_config
from session_entities import Cluster, Difficulty, Question, SessionTopic, VoiceSession
from session_errors import ErrorLog, ErrorTier


logger = logging.getLogger(__name__)


_ID_ALPHABET = string.ascii_lowercase + string.digits


def random_session_id(channel: str, question_ids: List[str]) -> str:
    """vs-<channel>-<epoch ms>-<4 random chars>; differs on every call."""
    suffix = ''.join(random.choices(_ID_ALPHABET, k=4))
    return f"vs-{channel}-{int(time.time() * 1000)}-{suffix}"


def stable_session_id(channel: str, question_ids: List[str]) -> str:
    """vs-<channel>-<hash of sorted member ids>; identical for identical membership."""
    digest = hashlib.sha256('|'.join(sorted(question_ids)).encode('utf-8')).hexdigest()
    return f"vs-{channel}-{digest[:12]}"


def humanize_label(label: str) -> str:
    """'event-loop_basics' -> 'Event Loop Basics'."""
    spaced = re.sub(r"[-_]+", " ", label).strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def fallback_topic(questions: List[Question], channel: str) -> SessionTopic:
    """Topic from the most common sub-channel, description from the channel."""
    counts = Counter(q.sub_channel for q in questions if q.sub_channel)
    label = counts.most_common(1)[0][0] if counts else channel
    return SessionTopic(
        topic=humanize_label(label) or channel,
        description=f"Practice session covering {channel} concepts",
    )


def build_topic_prompt(questions: List[Question], channel: str) -> str:
    question_texts = '\n- '.join(q.question[:80] for q in questions)
    return f"""Create a topic name and description for a voice interview session containing these questions:

Questions:
- {question_texts}

Channel: {channel}

Return ONLY valid JSON (no markdown):
{{
  "topic": "Short topic name (3-6 words)",
  "description": "One sentence describing what this session covers"
}}"""


class SessionSynthesizer:
    """Builds one VoiceSession per cluster."""

    def __init__(
        self,
        client: InferenceClient,
        config: Optional[PipelineConfig] = None,
        id_factory: Optional[Callable[[str, List[str]], str]] = None,
        error_log: Optional[ErrorLog] = None
    ):
        self.client = client
        self.config = config or get_config().pipeline
        if id_factory is None:
            id_factory = stable_session_id if self.config.stable_session_ids else random_session_id
        self.id_factory = id_factory
        self.error_log = error_log if error_log is not None else ErrorLog()

    async def name_session(self, questions: List[Question], channel: str) -> SessionTopic:
        """Ask for a topic and description, falling back on any failure."""
        try:
            response = await self.client.complete(build_topic_prompt(questions, channel))
            return decode_session_topic(response)
        except Exception as e:
            self.error_log.record(
                e,
                ErrorTier.PER_UNIT,
                stage='session_synthesis',
                channel=channel,
                questions=[q.id for q in questions],
            )
            logger.error(f"Error generating session topic for {channel}: {e}")
            return fallback_topic(questions, channel)

    async def synthesize(self, cluster: Cluster) -> VoiceSession:
        with logfire.span('session_synthesizer.synthesize') as span:
            members = sort_by_difficulty(cluster.questions)[:self.config.session_max_questions]
            span.set_attribute('channel', cluster.channel)
            span.set_attribute('origin', cluster.origin.value)
            span.set_attribute('questions', len(members))

            topic = await self.name_session(members, cluster.channel)
            question_ids = [q.id for q in members]

            session = VoiceSession(
                id=self.id_factory(cluster.channel, question_ids),
                topic=topic.topic,
                description=topic.description,
                channel=cluster.channel,
                difficulty=Difficulty.hardest([q.difficulty for q in members]),
                question_ids=question_ids,
                total_questions=len(members),
                estimated_minutes=len(members) * self.config.minutes_per_question,
            )
            span.set_attribute('session_id', session.id)
            logfire.info(
                'Session generated',
                topic=session.topic,
                channel=session.channel,
                total_questions=session.total_questions,
            )
            return session

    async def synthesize_all(self, clusters: List[Cluster]) -> List[VoiceSession]:
        sessions = []
        for cluster in clusters:
            sessions.append(await self.synthesize(cluster))
        return sessions
