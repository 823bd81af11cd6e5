"""
Loads the eligible question corpus from the store.
"""

import logging
import sqlite3
from typing import List

import logfire
from pydantic import ValidationError

from session_entities import Corpus, Question
from session_errors import CorpusUnavailableError
from session_store import SessionStore


logger = logging.getLogger(__name__)


CORPUS_QUERY = """
    SELECT id, question, answer, explanation, channel, sub_channel, difficulty, tags, voice_keywords
    FROM questions
    WHERE voice_suitable = 1
    AND status = 'active'
    AND voice_keywords IS NOT NULL
    ORDER BY channel, sub_channel
"""


class CorpusLoader:
    """Reads active, voice-suitable questions grouped by channel."""

    def __init__(self, store: SessionStore):
        self.store = store

    def load(self) -> Corpus:
        """Load the corpus. Any store failure is fatal and is not retried."""
        with logfire.span('corpus_loader.load') as span:
            try:
                rows = self.store.fetch_all(CORPUS_QUERY)
            except sqlite3.Error as e:
                logfire.error('Question corpus unreadable', error=str(e))
                raise CorpusUnavailableError(f"Cannot read question corpus: {e}") from e

            questions: List[Question] = []
            skipped = 0
            for row in rows:
                try:
                    questions.append(Question.from_row(row))
                except (ValidationError, ValueError) as e:
                    skipped += 1
                    logger.warning(f"Skipping malformed question {row['id']}: {e}")

            corpus = Corpus.from_questions(questions, skipped_rows=skipped)

            span.set_attribute('questions', len(questions))
            span.set_attribute('channels', len(corpus.by_channel))
            span.set_attribute('skipped_rows', skipped)
            logfire.info(
                'Loaded voice-suitable questions',
                questions=len(questions),
                channels=corpus.channels,
            )
            return corpus
