"""Action executor.

Turns a matched rule's actions into outbound HTTP calls with bounded retry
and capped exponential backoff. Every failure is returned as a failed
``ActionResult``; nothing raises out of ``run``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from rulewire import __version__
from rulewire.actions.clock import Clock, SystemClock
from rulewire.actions.retry import RetryPolicy
from rulewire.actions.transport import HTTPClientConfig, RequestsTransport, Transport
from rulewire.config.settings import Settings
from rulewire.errors import (
    RulewireError,
    TransportError,
    UnsupportedActionTypeError,
    WebhookTerminalFailure,
    WebhookTransientFailure,
)
from rulewire.models import (
    ACTION_TYPES,
    SUPPORTED_METHODS,
    ActionContext,
    ActionResult,
    WebhookAction,
)
from rulewire.utils.paths import get_path

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 1000


class ActionExecutor:
    """Runs actions against a transport.

    Args:
        transport: HTTP transport; a pooled requests transport by default
        clock: Time source for timestamps, durations and backoff sleeps
        retry_policy: Default attempts and backoff; actions may override attempts
        default_timeout_ms: Per-attempt timeout when an action sets none
        user_agent: User-Agent header value
        max_workers: Thread pool size for concurrent runs
    """

    def __init__(
        self,
        transport: Transport | None = None,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        default_timeout_ms: int = 10000,
        user_agent: str = "Rulewire/1.0",
        max_workers: int = 4,
    ):
        self.transport = transport or RequestsTransport()
        self.clock = clock or SystemClock()
        self.retry_policy = retry_policy or RetryPolicy()
        self.default_timeout_ms = default_timeout_ms
        self.user_agent = user_agent
        self.max_workers = max_workers

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Transport | None = None,
        clock: Clock | None = None,
    ) -> ActionExecutor:
        """Build an executor from application settings."""
        if transport is None:
            transport = RequestsTransport(
                config=HTTPClientConfig(
                    pool_connections=settings.http_pool_connections,
                    pool_maxsize=settings.http_pool_maxsize,
                )
            )
        return cls(
            transport=transport,
            clock=clock,
            retry_policy=RetryPolicy(
                max_attempts=max(1, settings.webhook_max_retries),
                base_delay_ms=settings.webhook_backoff_base_ms,
                max_delay_ms=settings.webhook_backoff_max_ms,
            ),
            default_timeout_ms=settings.webhook_timeout_ms,
            user_agent=settings.webhook_user_agent,
        )

    def run(
        self,
        actions: Iterable[WebhookAction | Mapping[str, Any]],
        data: Mapping[str, Any] | None,
        context: ActionContext | None = None,
        concurrent: bool = False,
    ) -> list[ActionResult]:
        """Execute every action and return one result per action, in input order.

        Actions are independent: one failure never cancels the others. With
        ``concurrent=True`` they are dispatched on a thread pool.
        """
        actions = list(actions)
        context = context or ActionContext()
        data = data if data is not None else {}

        if not concurrent or len(actions) < 2:
            return [self.execute_action(action, data, context) for action in actions]

        workers = min(self.max_workers, len(actions))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rulewire-action") as pool:
            # map() yields in submission order
            return list(pool.map(lambda a: self.execute_action(a, data, context), actions))

    execute_actions = run

    def execute_action(
        self,
        action: WebhookAction | Mapping[str, Any],
        data: Mapping[str, Any],
        context: ActionContext | None = None,
    ) -> ActionResult:
        """Dispatch one action on its type. Never raises."""
        context = context or ActionContext()
        start = self.clock.monotonic()
        try:
            model = self._coerce(action)
            if isinstance(model, WebhookAction):
                return self.execute_webhook(model, data, context)
            raise UnsupportedActionTypeError(getattr(model, "type", None))
        except RulewireError as e:
            return self._failed(action, start, e.message, e.code)
        except ValidationError as e:
            return self._failed(action, start, f"Invalid action: {e}", "INVALID_ACTION")
        except Exception as e:
            logger.exception(f"Unexpected error executing action: {e}")
            return self._failed(action, start, str(e), "ACTION_ERROR")

    def execute_webhook(
        self,
        action: WebhookAction,
        data: Mapping[str, Any],
        context: ActionContext | None = None,
    ) -> ActionResult:
        """Deliver one webhook with bounded retries.

        2xx/3xx succeeds. 4xx other than 429 fails after a single attempt.
        Network errors, timeouts, 5xx and 429 are retried until the attempt
        budget is spent.
        """
        context = context or ActionContext()
        policy = self.retry_policy.with_max_attempts(action.retries)
        timeout_ms = action.timeout or self.default_timeout_ms
        headers = self.build_headers(action, context)
        payload = self.build_payload(data, action)
        log_extra = {"rule_id": context.rule_id, "url": action.url, "method": action.method}

        start = self.clock.monotonic()
        attempt = 0
        while True:
            attempt += 1
            status_code = None
            body = None
            try:
                response = self.transport.send(
                    action.method, action.url, headers, payload, timeout_ms / 1000
                )
            except TransportError as e:
                failure = WebhookTransientFailure(e.message)
            else:
                status_code = response.status_code
                body = _parse_body(response.body)
                if status_code < 400:
                    elapsed = self._elapsed_ms(start)
                    logger.info(
                        f"Webhook executed successfully: {action.method} {action.url} "
                        f"-> {status_code} (attempt {attempt})",
                        extra={
                            **log_extra,
                            "status_code": status_code,
                            "attempt": attempt,
                            "duration_ms": elapsed,
                        },
                    )
                    return ActionResult(
                        action_id=action.id,
                        action_type=action.type,
                        url=action.url,
                        success=True,
                        status_code=status_code,
                        body=body,
                        attempt=attempt,
                        elapsed_ms=elapsed,
                    )
                if not policy.is_retryable_status(status_code):
                    terminal = WebhookTerminalFailure(
                        f"HTTP {status_code} from {action.url}", status_code, attempt
                    )
                    return self._terminal(action, start, terminal, body, log_extra)
                failure = WebhookTransientFailure(f"HTTP {status_code}", status_code)

            logger.warning(
                f"Webhook attempt {attempt}/{policy.max_attempts} failed: {failure.message}",
                extra={**log_extra, "status_code": status_code, "attempt": attempt},
            )
            if not policy.should_retry(attempt):
                break
            self.clock.sleep(policy.delay_ms(attempt) / 1000)

        terminal = WebhookTerminalFailure(
            f"Webhook execution failed after {attempt} attempts: {failure.message}",
            failure.status_code,
            attempt,
        )
        return self._terminal(action, start, terminal, body, log_extra)

    def build_headers(self, action: WebhookAction, context: ActionContext) -> dict[str, str]:
        """Default headers with the caller's headers merged over them."""
        return {
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
            "X-Rulewire-Event": context.event or "unknown",
            "X-Rulewire-Rule": context.rule_id or "unknown",
            **action.headers,
        }

    def build_payload(self, data: Mapping[str, Any], action: WebhookAction) -> dict[str, Any]:
        """Request body: timestamp, (transformed) data and an optional metadata block."""
        payload: dict[str, Any] = {
            "timestamp": self.clock.now().isoformat(),
            "data": data,
        }

        if action.transform:
            try:
                payload["data"] = transform_data(data, action.transform)
            except Exception as e:
                # Send the untransformed record rather than nothing
                logger.error(f"Data transformation failed: {e}", extra={"url": action.url})

        if action.include_metadata:
            payload["metadata"] = {
                "source": "rulewire",
                "version": __version__,
                "action_id": action.id or "unknown",
            }
        return payload

    def validate_action(self, action: Mapping[str, Any]) -> list[str]:
        """See :func:`validate_action`."""
        return validate_action(action)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if close is not None:
            close()

    @staticmethod
    def _coerce(action: WebhookAction | Mapping[str, Any]) -> Any:
        if isinstance(action, Mapping):
            action_type = action.get("type")
            if action_type not in ACTION_TYPES:
                raise UnsupportedActionTypeError(action_type)
            return ACTION_TYPES[action_type].model_validate(action)
        return action

    def _elapsed_ms(self, start: float) -> float:
        return round((self.clock.monotonic() - start) * 1000, 3)

    def _terminal(
        self,
        action: WebhookAction,
        start: float,
        failure: WebhookTerminalFailure,
        body: Any,
        log_extra: dict[str, Any],
    ) -> ActionResult:
        elapsed = self._elapsed_ms(start)
        logger.error(
            f"Webhook failed: {failure.message}",
            extra={
                **log_extra,
                "status_code": failure.status_code,
                "attempt": failure.attempts,
                "duration_ms": elapsed,
            },
        )
        return ActionResult(
            action_id=action.id,
            action_type=action.type,
            url=action.url,
            success=False,
            status_code=failure.status_code,
            body=body,
            attempt=failure.attempts,
            elapsed_ms=elapsed,
            error=failure.message,
            error_code=failure.code,
        )

    def _failed(
        self, action: Any, start: float, error: str, error_code: str
    ) -> ActionResult:
        if isinstance(action, Mapping):
            action_id, action_type, url = action.get("id"), action.get("type"), action.get("url")
        else:
            action_id = getattr(action, "id", None)
            action_type = getattr(action, "type", None)
            url = getattr(action, "url", None)
        logger.error(f"Action execution failed: {error}", extra={"url": url})
        return ActionResult(
            action_id=action_id,
            action_type=str(action_type) if action_type is not None else None,
            url=url,
            success=False,
            elapsed_ms=self._elapsed_ms(start),
            error=error,
            error_code=error_code,
        )


def transform_data(data: Mapping[str, Any], transform: Mapping[str, str]) -> dict[str, Any]:
    """Remap ``data`` into ``{output_key: value_at_dot_path}``."""
    return {key: get_path(data, path) for key, path in transform.items()}


def validate_action(action: Any) -> list[str]:
    """Check an action definition and return human-readable problems.

    Pure and non-throwing; an empty list means the action is valid.
    """
    if not isinstance(action, Mapping):
        return ["Action must be an object"]

    errors = []
    action_type = action.get("type")
    if not action_type:
        errors.append("Action type is required")
    elif action_type not in ACTION_TYPES:
        errors.append(f"Unsupported action type: {action_type}")

    if action_type == "webhook":
        url = action.get("url")
        if not url:
            errors.append("Webhook URL is required")
        elif not _is_valid_url(url):
            errors.append("Invalid webhook URL")

        method = action.get("method")
        if method is not None and (
            not isinstance(method, str) or method.upper() not in SUPPORTED_METHODS
        ):
            errors.append("Invalid HTTP method")

        timeout = action.get("timeout")
        if timeout is not None and (not _is_number(timeout) or not 1000 <= timeout <= 30000):
            errors.append("Timeout must be a number between 1000 and 30000 ms")

        retries = action.get("retries")
        if retries is not None and (not _is_number(retries) or not 0 <= retries <= 10):
            errors.append("Retries must be a number between 0 and 10")

    return errors


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _parse_body(text: str | None) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text[:MAX_BODY_CHARS]
