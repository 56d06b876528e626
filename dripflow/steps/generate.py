"""Generative text step."""

from __future__ import annotations

import json
from typing import Optional

from ..contracts import ExecutionContext, GenerateConfig
from ..errors import StepExecutionError
from ..integrations.base import GenerativeClient
from ..templates import render_template
from .base import StepExecutor, StepResult

DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant in a CRM workflow. "
    "Return useful structured data as JSON."
)


def build_user_prompt(config: GenerateConfig, context: ExecutionContext) -> str:
    prompt = render_template(config.description, context.contact)
    contact = json.dumps(context.contact, default=str)
    outputs = json.dumps(context.outputs, default=str)
    return f"{prompt}\n\nContact: {contact}\nPrevious outputs: {outputs}"


class GenerateExecutor(StepExecutor[GenerateConfig]):
    kind = "generate"

    def __init__(
        self,
        generator: Optional[GenerativeClient],
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._generator = generator
        self._system_prompt = system_prompt

    async def execute(self, config: GenerateConfig, context: ExecutionContext) -> StepResult:
        if self._generator is None:
            raise StepExecutionError("No generative client configured")
        result = await self._generator.generate(
            self._system_prompt, build_user_prompt(config, context)
        )
        return StepResult(output=result)
