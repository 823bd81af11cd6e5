"""
Text-inference client and strict response decoding.

The builder treats inference as an opaque prompt-in/text-out capability. The
default client runs a pydantic_ai agent and retries failed calls; responses
are decoded against pydantic schemas, and anything that does not validate is
reported as unparsable.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import List, Optional, Protocol, Union

import logfire
from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.models import Model
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from session_config import InferenceConfig, get_config
from session_entities import SessionTopic
from session_errors import InferenceError, UnparsableResponseError
from session_relationships import CandidateEdge, candidate_edges_adapter


logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You analyse technical interview questions. "
    "Always answer with raw JSON only, without markdown or commentary."
)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


class InferenceClient(Protocol):
    """Anything that turns a prompt into response text."""

    async def complete(self, prompt: str) -> str:
        ...


class AgentInferenceClient:
    """Inference client backed by a pydantic_ai agent with retries."""

    def __init__(
        self,
        model: Optional[Union[str, Model]] = None,
        config: Optional[InferenceConfig] = None
    ):
        self.config = config or get_config().inference
        self.model = model or self.config.model
        self._agent: Optional[Agent] = None
        self.calls = 0

    @property
    def agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                self.model,
                output_type=str,
                system_prompt=SYSTEM_PROMPT,
                defer_model_check=True,
            )
        return self._agent

    async def complete(self, prompt: str) -> str:
        """Run the prompt, retrying failures up to the configured attempts."""
        with logfire.span('inference_client.complete') as span:
            span.set_attribute('prompt_length', len(prompt))
            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(self.config.max_retries),
                    wait=wait_exponential(
                        multiplier=self.config.retry_min_wait,
                        min=self.config.retry_min_wait,
                        max=self.config.retry_max_wait,
                    ),
                    retry=retry_if_exception_type(Exception),
                    before_sleep=before_sleep_log(logger, logging.WARNING),
                    reraise=True,
                ):
                    with attempt:
                        self.calls += 1
                        result = await asyncio.wait_for(
                            self.agent.run(prompt),
                            timeout=self.config.request_timeout,
                        )
            except Exception as e:
                span.set_attribute('error', str(e))
                raise InferenceError(f"Inference call failed: {e}") from e

            span.set_attribute('response_length', len(result.output))
            return result.output


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    text = text.strip()
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def decode_candidate_edges(text: Optional[str]) -> List[CandidateEdge]:
    """Decode a JSON array of candidate edges or raise UnparsableResponseError."""
    if not text or not text.strip():
        raise UnparsableResponseError("Empty relationship response", raw=text)
    try:
        return candidate_edges_adapter.validate_json(strip_code_fence(text))
    except ValidationError as e:
        raise UnparsableResponseError(
            f"Relationship response does not match schema: {e.error_count()} error(s)",
            raw=text
        ) from e


def decode_session_topic(text: Optional[str]) -> SessionTopic:
    """Decode a topic/description object or raise UnparsableResponseError."""
    if not text or not text.strip():
        raise UnparsableResponseError("Empty topic response", raw=text)
    try:
        return SessionTopic.model_validate_json(strip_code_fence(text))
    except ValidationError as e:
        raise UnparsableResponseError(
            f"Topic response does not match schema: {e.error_count()} error(s)",
            raw=text
        ) from e
