"""Rulewire Error Hierarchy.

Structured exception types for the rule execution pipeline.
"""

from __future__ import annotations


class RulewireError(Exception):
    """Base error for all Rulewire exceptions."""

    code = "RULEWIRE_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(RulewireError):
    """Settings are invalid; the only error allowed to escape start-up."""

    code = "CONFIGURATION_ERROR"


# Condition Errors
class StructuralError(RulewireError):
    """Base error for malformed condition trees."""

    code = "STRUCTURAL_ERROR"


class NotAnObjectError(StructuralError):
    """A node is neither a literal nor an operator application."""

    code = "NOT_AN_OBJECT"

    def __init__(self, message: str, node_type: str = None):
        super().__init__(message, {"node_type": node_type})
        self.node_type = node_type


class CyclicReferenceError(StructuralError):
    """A node (transitively) contains itself."""

    code = "CYCLIC_REFERENCE"


class UnknownOperatorError(StructuralError):
    """A recognized operator is used in a malformed node."""

    code = "UNKNOWN_OPERATOR"

    def __init__(self, message: str, operator: str = None):
        super().__init__(message, {"operator": operator})
        self.operator = operator


class InvalidArgumentsError(StructuralError):
    """Operator arity or argument type contract violated."""

    code = "INVALID_ARGUMENTS"

    def __init__(self, operator: str, reason: str):
        super().__init__(f"Invalid arguments for '{operator}': {reason}", {"operator": operator})
        self.operator = operator
        self.reason = reason


class EvaluationError(RulewireError):
    """Runtime failure while evaluating a structurally valid tree."""

    code = "EVALUATION_ERROR"


# Scheduling Errors
class InvalidCronExpressionError(RulewireError):
    """Cron expression rejected at schedule time."""

    code = "INVALID_CRON"

    def __init__(self, expression: str, reason: str = None):
        message = f"Invalid cron expression: {expression}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message, {"expression": expression, "reason": reason})
        self.expression = expression
        self.reason = reason


# Action Errors
class ActionError(RulewireError):
    """Base error for action execution failures."""

    code = "ACTION_ERROR"


class UnsupportedActionTypeError(ActionError):
    """Action carries a type tag with no executor."""

    code = "UNSUPPORTED_ACTION_TYPE"

    def __init__(self, action_type: str = None):
        super().__init__(f"Unsupported action type: {action_type}", {"type": action_type})
        self.action_type = action_type


class WebhookTransientFailure(ActionError):
    """Network error, timeout, 5xx or 429; eligible for retry."""

    code = "WEBHOOK_TRANSIENT"

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code


class WebhookTerminalFailure(ActionError):
    """Client error other than 429, or retries exhausted."""

    code = "WEBHOOK_TERMINAL"

    def __init__(self, message: str, status_code: int = None, attempts: int = 0):
        super().__init__(message, {"status_code": status_code, "attempts": attempts})
        self.status_code = status_code
        self.attempts = attempts


# Transport Errors
class TransportError(RulewireError):
    """Outbound HTTP call failed before a response was received."""

    code = "TRANSPORT_ERROR"


class TransportTimeoutError(TransportError):
    """Outbound HTTP call exceeded its timeout."""

    code = "TIMEOUT"


# Store Errors
class RuleNotFoundError(RulewireError):
    """Rule lookup failed."""

    code = "RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        super().__init__(f"Rule with ID '{rule_id}' not found", {"rule_id": rule_id})
        self.rule_id = rule_id


class DuplicateRuleError(RulewireError):
    """Rule name already taken."""

    code = "DUPLICATE_RULE"

    def __init__(self, name: str):
        super().__init__(f"Rule with name '{name}' already exists", {"name": name})
        self.name = name
