"""LLM-backed choice module.

Renders the candidate set (indexed), the trigger, the agent's attributes and
the information that survived the pipeline into a prompt, and asks the model
for an ``LLMChoiceResponse``. The returned index is mapped back to the
candidate object, so the containment guarantee still holds.
"""

from __future__ import annotations

import json
import os
from typing import Any, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .choice import BaseChoiceModule, ChoiceContext, EvaluationDimension, Scorer
from .config import Config
from .errors import ChoiceError
from .llm_utils import call_llm_with_retries
from .logging_utils import LOG_TAG_LLM, log_llm
from .schemas import Trigger, TriggerType, describe_choice


DEFAULT_SYSTEM_PROMPT = (
    "You are simulating a consumer making a purchase or adoption decision. "
    "Stay in character: weigh the options using the consumer's attributes and "
    "only the information they have received. Answer with the index of the "
    "chosen option, or null to postpone the decision."
)


class LLMChoiceResponse(BaseModel):
    choice_index: Optional[int] = Field(
        None, description="Index into the listed options; null defers the decision"
    )
    reasoning: str = ""


class LLMChoiceModule(BaseChoiceModule):
    """Choice module that delegates the pick to an LLM.

    Provider and model default to Config.LLM_PROVIDER / Config.LLM_MODEL.
    Empty candidate sets never reach the LLM.
    """

    name = "LLMChoiceModule"

    def __init__(
        self,
        *,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_attempts: int = 3,
        triggers: Optional[Iterable[TriggerType]] = None,
        dimensions: Optional[Sequence[EvaluationDimension]] = None,
        scorer: Optional[Scorer] = None,
    ) -> None:
        super().__init__(triggers=triggers, dimensions=dimensions, scorer=scorer)
        self.llm_provider = llm_provider or Config.LLM_PROVIDER
        self.llm_model = llm_model or Config.LLM_MODEL
        self.system_prompt = system_prompt
        self.max_attempts = max_attempts
        self.last_reasoning: Optional[str] = None

    def render_prompt(self, choices: Sequence[Any], context: ChoiceContext, trigger: Trigger) -> str:
        attrs = context.attributes
        lines: List[str] = [
            f"Tick: {context.tick}",
            f"Trigger: {trigger.display_name}",
        ]
        if trigger.payload:
            lines.append(f"Trigger details: {json.dumps(trigger.payload, default=str, sort_keys=True)}")
        lines.append("")
        lines.append("Consumer attributes:")
        lines.append(
            json.dumps(
                {
                    "psychological": attrs.psychological,
                    "socioeconomic": attrs.socioeconomic,
                    "owns": attrs.stock_variables,
                },
                sort_keys=True,
            )
        )
        lines.append("")
        lines.append("Information received:")
        if context.information:
            for item in context.information:
                lines.append(
                    f"- [{item.topic}] (reliability {item.reliability:.2f}) "
                    f"{json.dumps(item.payload, default=str)}"
                )
        else:
            lines.append("- (none)")
        lines.append("")
        lines.append("Options:")
        for index, choice in enumerate(choices):
            lines.append(f"{index}. {describe_choice(choice)}")
        lines.append("")
        lines.append('Respond with JSON: {"choice_index": <int or null>, "reasoning": "<short>"}')
        return "\n".join(lines)

    def make_choice(self, choices, context, trigger):
        if not choices:
            return None

        user_prompt = self.render_prompt(choices, context, trigger)
        debug_llm = os.getenv("DEBUG_LLM", "").lower() in ("1", "true", "yes")
        if debug_llm:
            print(f"\n{'='*80}")
            print(f"[LLM CHOICE] Agent: {context.agent_id}")
            print(f"{'='*80}")
            print(self.system_prompt)
            print(f"{'-'*80}")
            print(user_prompt)
            print(f"{'='*80}\n")
        else:
            log_llm(f"  {LOG_TAG_LLM} [Choice] Asking {self.llm_model} for agent {context.agent_id}")

        response = call_llm_with_retries(
            system_prompt=self.system_prompt,
            user_prompt=user_prompt,
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            response_model=LLMChoiceResponse,
            max_attempts=self.max_attempts,
        )
        self.last_reasoning = response.reasoning

        if debug_llm:
            print(f"[LLM RESPONSE] index={response.choice_index} reasoning={response.reasoning}")

        if response.choice_index is None:
            return None
        if not 0 <= response.choice_index < len(choices):
            raise ChoiceError(
                f"LLM picked option {response.choice_index}, but only {len(choices)} were offered",
                agent_id=context.agent_id,
                trigger_id=trigger.trigger_id,
            )
        return choices[response.choice_index]


__all__ = ["DEFAULT_SYSTEM_PROMPT", "LLMChoiceResponse", "LLMChoiceModule"]
