# planner.py
# Turns a free-text issue into an ordered list of proposed ToolCalls.
#
# Planners are producers only. Nothing they return is trusted: the engine
# re-checks every name against the live catalog and validates every
# argument object before running anything.

import json
import logging

from openai import OpenAI, OpenAIError

from remedy_gate.config import Settings
from remedy_gate.models import ToolCall, ToolDescriptor

logger = logging.getLogger(__name__)

PLANNER_SYSTEM_PROMPT = """\
You are a Windows repair planner. Only propose allowed tools using function \
calls with JSON arguments that match the provided JSON Schemas. Do not invent \
tools. Prefer read-only diagnostics before changes. Propose the smallest set of \
steps that plausibly resolves the issue, in the order they should run.\
"""


def _user_prompt(issue: str, facts: str | None) -> str:
    lines = [f"Issue: {issue}"]
    if facts:
        lines.append(f"Additional facts: {facts}")
    lines.append("")
    lines.append("Return function/tool calls that use only the provided tools.")
    return "\n".join(lines)


def tools_payload(descriptors: list[ToolDescriptor]) -> list[dict]:
    """Export catalog descriptors in the chat-completions `tools` format."""
    return [
        {
            "type": "function",
            "function": {
                "name": d.name,
                "description": d.description,
                "parameters": d.argument_schema,
            },
        }
        for d in descriptors
    ]


# ---------------------------------------------------------------------------
# Rule-based planner
# ---------------------------------------------------------------------------


class RulePlanner:
    """Keyword rules. Deterministic and offline."""

    def plan(self, issue: str, facts: str | None, descriptors: list[ToolDescriptor]) -> list[ToolCall]:
        text = issue.lower()
        steps: list[ToolCall] = []

        if "outlook" in text or "office" in text:
            if any(k in text for k in ("crash", "start", "won't open", "wont open")):
                steps.append(
                    ToolCall(tool_name="DisableOutlookAddins", arguments={"Scope": "CurrentUser", "BackupRegistry": True})
                )
                steps.append(
                    ToolCall(tool_name="CreateTestOutlookProfile", arguments={"ProfileName": "RemedyGateTestProfile"})
                )

        if any(k in text for k in ("proxy", "winhttp", "http", "ssl")):
            steps.append(ToolCall(tool_name="ResetWinHTTP", arguments={"ResetProxy": True, "ImportIEProxy": False}))
        elif any(k in text for k in ("network", "internet", "wifi")):
            steps.append(ToolCall(tool_name="ResetNetworkAdapter", arguments={}))
        elif any(k in text for k in ("disk", "space", "full")):
            steps.append(ToolCall(tool_name="CleanDiskSpace", arguments={}))
        else:
            steps.append(ToolCall(tool_name="CheckSystemHealth", arguments={}))

        return steps


# ---------------------------------------------------------------------------
# LLM planner
# ---------------------------------------------------------------------------


class LLMPlanner:
    """OpenAI-compatible function-calling planner."""

    def __init__(self, settings: Settings, client: OpenAI | None = None) -> None:
        self._model = settings.openai_model
        self._client = client or OpenAI(base_url=settings.openai_base_url, api_key=settings.openai_api_key)

    def plan(self, issue: str, facts: str | None, descriptors: list[ToolDescriptor]) -> list[ToolCall]:
        response = self._client.chat.completions.create(
            model=self._model,
            temperature=0.1,
            messages=[
                {"role": "system", "content": PLANNER_SYSTEM_PROMPT},
                {"role": "user", "content": _user_prompt(issue, facts)},
            ],
            tools=tools_payload(descriptors),
            tool_choice="auto",
        )
        if not response.choices:
            return []

        steps: list[ToolCall] = []
        for call in response.choices[0].message.tool_calls or []:
            function = getattr(call, "function", None)
            if function is None:
                continue
            try:
                arguments = json.loads(function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Skipping tool call %r with malformed arguments", function.name)
                continue
            steps.append(ToolCall(tool_name=function.name, arguments=arguments))
        return steps


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class Planner:
    """LLM planning when a key is configured, rules otherwise or on any LLM failure."""

    def __init__(self, settings: Settings, llm: LLMPlanner | None = None, rules: RulePlanner | None = None) -> None:
        self._rules = rules or RulePlanner()
        if llm is None and settings.openai_api_key:
            llm = LLMPlanner(settings)
        self._llm = llm

    def plan(self, issue: str, facts: str | None, descriptors: list[ToolDescriptor]) -> list[ToolCall]:
        if self._llm is not None:
            try:
                return self._llm.plan(issue, facts, descriptors)
            except (OpenAIError, ValueError, AttributeError) as exc:
                logger.warning("LLM planning failed; falling back to rules: %s", exc)
        return self._rules.plan(issue, facts, descriptors)
