# MCP prompt templates.
# Created: 2026-09-23

from __future__ import annotations

from dataclasses import dataclass, field

from mcp import types

from workspace_gateway.errors import ErrorKind, GatewayError


@dataclass
class PromptTemplate:
    name: str
    description: str
    template: str
    arguments: list[types.PromptArgument] = field(default_factory=list)
    defaults: dict[str, str] = field(default_factory=dict)

    def to_prompt(self) -> types.Prompt:
        return types.Prompt(name=self.name, description=self.description, arguments=self.arguments)

    def render(self, arguments: dict[str, str]) -> types.GetPromptResult:
        missing = [a.name for a in self.arguments if a.required and not arguments.get(a.name)]
        if missing:
            raise GatewayError(
                f"Missing required prompt argument(s) for {self.name}: {', '.join(missing)}",
                ErrorKind.VALIDATION,
            )
        values = {**self.defaults, **{k: str(v) for k, v in arguments.items() if v}}
        text = self.template.format_map(_Blank(values))
        return types.GetPromptResult(
            description=self.description,
            messages=[
                types.PromptMessage(role="user", content=types.TextContent(type="text", text=text))
            ],
        )


class _Blank(dict):
    def __missing__(self, key: str) -> str:
        return ""


PROMPTS: dict[str, PromptTemplate] = {
    p.name: p
    for p in (
        PromptTemplate(
            name="schedule_meeting",
            description="Help schedule a meeting",
            template=(
                "Schedule a meeting about: {topic}. Participants: {participants}. Check free/busy "
                "first and propose a slot before creating the event."
            ),
            arguments=[
                types.PromptArgument(name="topic", description="Meeting subject", required=True),
                types.PromptArgument(
                    name="participants",
                    description="Comma separated attendee emails",
                    required=False,
                ),
            ],
            defaults={"participants": "to be decided"},
        ),
        PromptTemplate(
            name="daily_agenda",
            description="Get the agenda for a day",
            template="Show my agenda for {date}, grouped by morning, afternoon and evening.",
            arguments=[
                types.PromptArgument(name="date", description="YYYY-MM-DD", required=False)
            ],
            defaults={"date": "today"},
        ),
        PromptTemplate(
            name="summarize_inbox",
            description="Summarize recent email",
            template=(
                "Summarize the messages in my inbox matching '{query}' "
                "and list any action items."
            ),
            arguments=[
                types.PromptArgument(
                    name="query", description="Gmail search query", required=False
                )
            ],
            defaults={"query": "is:unread newer_than:1d"},
        ),
    )
}


def get_prompt(name: str, arguments: dict[str, str] | None = None) -> types.GetPromptResult:
    template = PROMPTS.get(name)
    if template is None:
        raise GatewayError(f"Unknown prompt: {name}", ErrorKind.VALIDATION)
    return template.render(dict(arguments or {}))
