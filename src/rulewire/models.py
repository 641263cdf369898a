"""Data model for rules, actions, and execution outcomes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class WebhookAction(BaseModel):
    """Outbound HTTP call fired when a rule matches."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: Literal["webhook"] = "webhook"
    id: str | None = Field(None, description="Action identifier used in metadata")
    url: str = Field(..., description="Target URL")
    method: str = Field("POST", description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Extra request headers")
    timeout: int | None = Field(
        None, ge=1000, le=30000, description="Per-attempt timeout override in ms"
    )
    retries: int | None = Field(None, ge=0, le=10, description="Maximum attempts override")
    transform: dict[str, str] | None = Field(
        None, description="Output key -> dot-path into the input record"
    )
    include_metadata: bool = Field(True, description="Attach a metadata block to the payload")

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()


# Closed set of action kinds. Adding a kind means adding a model here and a
# branch in ActionExecutor.execute_action.
Action = WebhookAction

ACTION_TYPES: dict[str, type[BaseModel]] = {"webhook": WebhookAction}


class Rule(BaseModel):
    """A named condition with the actions to fire when it holds."""

    model_config = ConfigDict(populate_by_name=True, frozen=False)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    condition: Any = Field(
        ...,
        validation_alias=AliasChoices("condition", "conditions"),
        description="Expression tree",
    )
    actions: list[WebhookAction | dict[str, Any]] = Field(default_factory=list)
    schedule: str | None = Field(None, description="Six-field cron expression")
    is_active: bool = Field(True, validation_alias=AliasChoices("is_active", "isActive"))
    scheduled_input: dict[str, Any] | None = Field(
        None,
        validation_alias=AliasChoices("scheduled_input", "scheduledInput"),
        description="Static input merged over the synthesized scheduled input",
    )
    description: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @field_validator("actions", mode="before")
    @classmethod
    def _parse_known_actions(cls, value: Any) -> Any:
        """Turn known action kinds into models; leave unknown kinds as raw dicts."""
        if not isinstance(value, list):
            return value
        parsed = []
        for item in value:
            if isinstance(item, dict) and item.get("type") in ACTION_TYPES:
                parsed.append(ACTION_TYPES[item["type"]].model_validate(item))
            else:
                parsed.append(item)
        return parsed

    @field_validator("schedule", mode="before")
    @classmethod
    def _blank_schedule_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_scheduled(self) -> bool:
        return self.is_active and self.schedule is not None


@dataclass(frozen=True)
class ActionContext:
    """Provenance of an action run, sent as headers and used in logs."""

    rule_id: str | None = None
    rule_name: str | None = None
    event: str | None = None
    trigger: str | None = None

    @classmethod
    def for_rule(cls, rule: Rule, event: str | None = None, trigger: str | None = None):
        return cls(rule_id=rule.id, rule_name=rule.name, event=event, trigger=trigger)


class ActionResult(BaseModel):
    """Outcome of one action; failures are data, never exceptions."""

    action_id: str | None = None
    action_type: str | None = None
    url: str | None = None
    success: bool
    status_code: int | None = None
    body: Any = None
    attempt: int = 0
    elapsed_ms: float = 0.0
    error: str | None = None
    error_code: str | None = None


@dataclass(frozen=True)
class EvaluationOutcome:
    """Result of evaluating one condition.

    ``matched`` is always a bool. ``error`` is set when evaluation failed and
    was degraded to a non-match, which keeps "evaluated false" and "failed to
    evaluate" apart for observability.
    """

    matched: bool
    error: str | None = None
    error_code: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class BatchResult(BaseModel):
    """One rule's entry in a batch evaluation."""

    rule_id: str
    rule_name: str | None = None
    matched: bool
    error: str | None = None


class ExecutionRecord(BaseModel):
    """Append-only audit entry of one evaluation (and execution, if matched)."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    rule_id: str
    matched: bool
    executed_at: datetime = Field(default_factory=_utcnow)
    input: dict[str, Any] = Field(default_factory=dict)
    duration_ms: float = 0.0
    error: str | None = None


class RuleLogCount(BaseModel):
    """Execution record counts for one rule."""

    rule_id: str
    count: int
    matched_count: int


class LogStats(BaseModel):
    """Aggregate view of the execution log.

    ``top_rules`` lists the rules with the most records, busiest first.
    """

    total: int = 0
    matched: int = 0
    unmatched: int = 0
    errors: int = 0
    top_rules: list[RuleLogCount] = Field(default_factory=list)
