"""Scheduled rule execution manager."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any

from apscheduler.job import Job
from apscheduler.schedulers.background import BackgroundScheduler

from rulewire.actions.clock import Clock
from rulewire.actions.executor import ActionExecutor
from rulewire.conditions.evaluator import evaluate_detailed
from rulewire.config.settings import Settings, get_settings
from rulewire.errors import InvalidCronExpressionError, RuleNotFoundError
from rulewire.models import ActionContext, ActionResult, Rule
from rulewire.scheduler.cron import SCHEDULE_TIMEZONE, parse_cron, preview_cron
from rulewire.store.base import LogSink, RuleStore, safe_record

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """Live binding of a rule id to an APScheduler job."""

    rule_id: str
    rule_name: str
    schedule: str
    job: Job


class RuleScheduler:
    """Owns one cron job per scheduled rule and fires the rule pipeline on each tick.

    The job table is guarded by a single lock so reloads and unschedules can
    run while jobs fire. Rules are re-fetched from the store on every fire.
    """

    JOB_PREFIX = "rule_"

    def __init__(
        self,
        store: RuleStore,
        log_sink: LogSink,
        executor: ActionExecutor,
        settings: Settings | None = None,
        clock: Clock | None = None,
        scheduler: BackgroundScheduler | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.log_sink = log_sink
        self.executor = executor
        self.clock = clock or executor.clock
        self.scheduler = scheduler or BackgroundScheduler(timezone=SCHEDULE_TIMEZONE)
        self._backend_shut_down = False
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = threading.RLock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Load every active scheduled rule and register its job.

        No-op when already running or when cron scheduling is disabled. A rule
        with an invalid cron expression is skipped; the others still load.
        """
        with self._lock:
            if self._running:
                logger.debug("Scheduler already running")
                return
            if not self.settings.cron_enabled:
                logger.info("Cron scheduling is disabled")
                return

            rules = self.store.get_scheduled_rules()
            self._running = True
            scheduled = sum(1 for rule in rules if self.schedule_rule(rule))

        logger.info(
            f"Scheduler started with {scheduled} scheduled rule(s)",
            extra={"job_count": scheduled},
        )

    def stop(self) -> None:
        """Remove every job. The APScheduler thread keeps running for later starts."""
        with self._lock:
            for rule_id in list(self._jobs):
                self._remove_job(rule_id)
            self._running = False
        logger.info("Scheduler stopped")

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting fires and optionally wait for in-flight executions.

        A later ``start`` or ``schedule_rule`` runs on a new APScheduler
        instance, since a shut down one never fires again.
        """
        with self._lock:
            self.stop()
            backend = self.scheduler
            if not backend.running:
                return
            self._backend_shut_down = True
        # In-flight fires may take the lock, so wait outside it
        backend.shutdown(wait=wait)
        logger.info("Scheduler shutdown")

    def _ensure_backend(self) -> None:
        if self._backend_shut_down:
            self.scheduler = BackgroundScheduler(timezone=SCHEDULE_TIMEZONE)
            self._backend_shut_down = False
            logger.debug("Created new APScheduler instance after shutdown")
        if not self.scheduler.running:
            self.scheduler.start()

    def reload(self) -> None:
        """Stop everything and start again from the current store contents."""
        logger.info("Reloading scheduled rules")
        with self._lock:
            self.stop()
            self.start()

    def schedule_rule(self, rule: Rule) -> bool:
        """Register (or replace) the job for ``rule``.

        Returns False when the rule has no schedule or its cron expression is
        invalid; the failure is logged, not raised.
        """
        if not rule.schedule:
            logger.warning(
                f"Rule {rule.id} has no schedule",
                extra={"rule_id": rule.id, "rule_name": rule.name},
            )
            return False

        try:
            trigger = parse_cron(rule.schedule)
        except InvalidCronExpressionError as e:
            logger.error(
                f"Failed to schedule rule {rule.id} ({rule.name}): {e.message}",
                extra={"rule_id": rule.id, "rule_name": rule.name, "schedule": rule.schedule},
            )
            return False

        with self._lock:
            self._remove_job(rule.id)
            self._ensure_backend()
            job = self.scheduler.add_job(
                self._fire,
                trigger=trigger,
                id=self._job_id(rule.id),
                args=[rule.id],
                name=rule.name,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
                misfire_grace_time=self.settings.scheduler_misfire_grace_seconds,
            )
            self._jobs[rule.id] = ScheduledJob(
                rule_id=rule.id, rule_name=rule.name, schedule=rule.schedule, job=job
            )

        logger.info(
            f"Scheduled rule {rule.id} ({rule.name}) with '{rule.schedule}'",
            extra={"rule_id": rule.id, "rule_name": rule.name, "schedule": rule.schedule},
        )
        return True

    def unschedule_rule(self, rule_id: str) -> bool:
        """Remove the job for ``rule_id``. Returns False if there was none."""
        with self._lock:
            removed = self._remove_job(rule_id)
        if removed:
            logger.info(f"Unscheduled rule {rule_id}", extra={"rule_id": rule_id})
        return removed

    def update_scheduled_rule(self, rule: Rule) -> bool:
        """Reschedule an active rule with a schedule, otherwise remove its job."""
        if rule.is_scheduled:
            return self.schedule_rule(rule)
        self.unschedule_rule(rule.id)
        return False

    def trigger_now(self, rule_id: str) -> list[ActionResult]:
        """Run a rule's scheduled path immediately, outside its cron cadence.

        Raises:
            RuleNotFoundError: no rule with this id
        """
        rule = self.store.get_rule_by_id(rule_id)
        return self.execute_scheduled_rule(rule)

    def execute_scheduled_rule(self, rule: Rule) -> list[ActionResult]:
        """Evaluate ``rule`` against synthesized input and run its actions on match.

        Writes exactly one execution record per call. Errors never escape, so
        the job stays scheduled and fires again next cycle.
        """
        start = self.clock.monotonic()
        input_data: dict[str, Any] = {}
        matched = False
        log_extra = {"rule_id": rule.id, "rule_name": rule.name, "trigger": "scheduled"}
        try:
            logger.info(f"Executing scheduled rule {rule.id} ({rule.name})", extra=log_extra)
            input_data = self.generate_scheduled_input(rule)
            outcome = evaluate_detailed(rule.condition, input_data)
            matched = outcome.matched

            results = []
            if matched:
                results = self.executor.run(
                    rule.actions,
                    input_data,
                    ActionContext.for_rule(rule, event="scheduled", trigger="scheduled"),
                )

            duration = self._elapsed_ms(start)
            safe_record(self.log_sink, rule.id, matched, input_data, duration, outcome.error)
        except Exception as e:
            duration = self._elapsed_ms(start)
            logger.error(
                f"Scheduled rule {rule.id} execution failed after {duration}ms: {e}",
                extra={**log_extra, "duration_ms": duration},
            )
            safe_record(self.log_sink, rule.id, matched, input_data, duration, str(e))
            return []

        if matched:
            succeeded = sum(1 for result in results if result.success)
            logger.info(
                f"Scheduled rule {rule.id} execution completed: "
                f"{succeeded}/{len(results)} action(s) succeeded",
                extra={**log_extra, "duration_ms": duration},
            )
        else:
            logger.info(
                f"Scheduled rule {rule.id} evaluation completed (no match)",
                extra={**log_extra, "duration_ms": duration},
            )
        return results

    def generate_scheduled_input(self, rule: Rule) -> dict[str, Any]:
        """Input for a scheduled fire; the rule's static input is merged on top."""
        data = {
            "timestamp": self.clock.now().isoformat(),
            "trigger": "scheduled",
            "rule_id": rule.id,
            "rule_name": rule.name,
        }
        if rule.scheduled_input:
            data.update(rule.scheduled_input)
        return data

    def get_jobs_status(self) -> list[dict[str, Any]]:
        """One entry per registered job."""
        with self._lock:
            entries = list(self._jobs.values())

        status = []
        for entry in entries:
            next_fire_time = getattr(entry.job, "next_run_time", None)
            status.append(
                {
                    "rule_id": entry.rule_id,
                    "rule_name": entry.rule_name,
                    "schedule": entry.schedule,
                    "running": self.scheduler.running and next_fire_time is not None,
                    "next_fire_time": next_fire_time.isoformat() if next_fire_time else None,
                }
            )
        return status

    def test_cron_expression(self, expression: str, count: int = 5) -> dict[str, Any]:
        """Validate ``expression`` and preview its next fire times."""
        return preview_cron(expression, count=count)

    def _fire(self, rule_id: str) -> None:
        """APScheduler entry point: fetch the current rule and execute it."""
        try:
            rule = self.store.get_rule_by_id(rule_id)
        except RuleNotFoundError:
            logger.warning(f"Scheduled rule {rule_id} no longer exists, unscheduling")
            self.unschedule_rule(rule_id)
            return
        except Exception as e:
            logger.error(
                f"Failed to load scheduled rule {rule_id}: {e}", extra={"rule_id": rule_id}
            )
            return

        if not rule.is_active:
            logger.info(
                f"Scheduled rule {rule_id} is inactive, skipping", extra={"rule_id": rule_id}
            )
            return
        self.execute_scheduled_rule(rule)

    def _remove_job(self, rule_id: str) -> bool:
        """Remove a job; caller holds the lock."""
        entry = self._jobs.pop(rule_id, None)
        if entry is None:
            return False
        if self.scheduler.get_job(entry.job.id):
            self.scheduler.remove_job(entry.job.id)
        return True

    def _job_id(self, rule_id: str) -> str:
        return f"{self.JOB_PREFIX}{rule_id}"

    def _elapsed_ms(self, start: float) -> float:
        return round((self.clock.monotonic() - start) * 1000, 3)
