"""
Convergence engine.

Walks a resource collection in declaration order and drives each resource
to its declared state through the provider resolved for it:

1. Every resource is resolved to a provider before anything is touched, so
   an unknown variant or action aborts the run with no mutation.
2. Resources whose action is ``nothing`` are skipped.
3. Always-apply actions (restart, run a command, wait for a service) are
   applied without loading current state.
4. Other actions load current state, compute a diff and apply only when the
   diff has changes.
5. A changed resource fires its immediate notifications at once and queues
   its delayed ones; the queue is processed after the last resource.

The first error aborts the run. The error carries the identity of the
resource that raised it.
"""

from __future__ import annotations

import dataclasses
import time
from typing import Dict, Optional, Set, Tuple

import structlog

from idprov.core.errors import ApplyError, ConfigurationError, IdprovError
from idprov.engine.notifications import NotificationQueue
from idprov.engine.results import ResourceOutcome, ResourceStatus, RunReport
from idprov.providers.base import NOTHING, PlanChange, ResourceProvider
from idprov.providers.context import ProviderContext
from idprov.providers.registry import ProviderRegistry, provider_registry
from idprov.resources.base import Resource, ResourceKey, Timing
from idprov.resources.collection import ResourceCollection

logger = structlog.get_logger()


class ConvergenceEngine:
    """Converges declared resources against the machine and remote services."""

    def __init__(
        self,
        registry: Optional[ProviderRegistry] = None,
        context: Optional[ProviderContext] = None,
        *,
        platform: Optional[str] = None,
        dry_run: bool = False,
    ) -> None:
        self.registry = registry or provider_registry
        self.context = context or ProviderContext()
        self.platform = platform
        self.dry_run = dry_run

    # === Resolution ===

    def resolve(self, collection: ResourceCollection) -> Dict[ResourceKey, ResourceProvider]:
        """
        Instantiate a provider for every declared resource.

        Raises:
            ConfigurationError: unknown provider variant, unsupported action,
                or a notification aimed at an undeclared resource or at an
                action its target does not support.
        """
        collection.validate_notifications()
        providers: Dict[ResourceKey, ResourceProvider] = {}
        for resource in collection:
            try:
                spec = self.registry.resolve(resource.type, resource.provider, platform=self.platform)
                provider = spec.factory(self.context)
                provider.check_action(resource)
            except IdprovError as err:
                raise _with_resource(err, resource.key)
            logger.debug("provider_resolved", resource=str(resource), provider=spec.name)
            providers[resource.key] = provider

        for resource in collection:
            for edge in resource.notifies:
                target = collection.lookup(edge.target)
                try:
                    providers[edge.target].check_action(dataclasses.replace(target, action=edge.action))
                except IdprovError as err:
                    raise _with_resource(err, resource.key)
        return providers

    # === Run ===

    def converge(self, collection: ResourceCollection) -> RunReport:
        """Converge every resource once, then fire delayed notifications."""
        started = time.monotonic()
        providers = self.resolve(collection)
        run = _Run(self, collection, providers)

        logger.info("convergence_started", resources=len(collection), dry_run=self.dry_run)
        for resource in collection:
            run.converge(resource, resource.action)

        for target, action in run.queue.drain():
            logger.info("notification_fired", target=str(target), action=action, timing=str(Timing.DELAYED))
            run.converge(collection.lookup(target), action, triggered_by="delayed notification")

        run.report.duration_seconds = time.monotonic() - started
        logger.info(
            "convergence_finished",
            updated=run.report.updated_count,
            executed=run.report.executed_count,
            duration_seconds=round(run.report.duration_seconds, 3),
            dry_run=self.dry_run,
        )
        return run.report


class _Run:
    """State of one convergence run."""

    def __init__(
        self,
        engine: ConvergenceEngine,
        collection: ResourceCollection,
        providers: Dict[ResourceKey, ResourceProvider],
    ) -> None:
        self.engine = engine
        self.collection = collection
        self.providers = providers
        self.queue = NotificationQueue()
        self.report = RunReport(dry_run=engine.dry_run)
        self._active: Set[Tuple[ResourceKey, str]] = set()

    def converge(self, resource: Resource, action: str, triggered_by: Optional[str] = None) -> ResourceOutcome:
        if action != resource.action:
            resource = dataclasses.replace(resource, action=action)

        if action == NOTHING:
            outcome = ResourceOutcome(resource.key, action, ResourceStatus.SKIPPED, triggered_by=triggered_by)
            self.report.record(outcome)
            logger.debug("resource_skipped", resource=str(resource))
            return outcome

        # Frames stay active while immediate notifications run.
        frame = (resource.key, action)
        if frame in self._active:
            err = ConfigurationError(f"Immediate notifications form a cycle at {resource}", {"action": action})
            raise _with_resource(err, resource.key)
        self._active.add(frame)
        try:
            outcome = self._converge_one(resource, triggered_by)
            self.report.record(outcome)
            if outcome.changed:
                self._notify(resource, outcome)
        finally:
            self._active.discard(frame)
        return outcome

    def _converge_one(self, resource: Resource, triggered_by: Optional[str]) -> ResourceOutcome:
        provider = self.providers[resource.key]
        started = time.monotonic()
        try:
            status, changes = self._plan_and_apply(provider, resource)
        except IdprovError as exc:
            raise self._failed(resource, exc)
        except Exception as exc:
            raise self._failed(resource, exc) from exc

        outcome = ResourceOutcome(
            key=resource.key,
            action=resource.action,
            status=status,
            changes=changes,
            duration_seconds=time.monotonic() - started,
            triggered_by=triggered_by,
        )
        event = "resource_up_to_date" if status == ResourceStatus.UP_TO_DATE else f"resource_{status}"
        logger.info(event, resource=str(resource), action=resource.action, changes=len(changes))
        return outcome

    @staticmethod
    def _failed(resource: Resource, exc: Exception) -> IdprovError:
        err = _with_resource(exc, resource.key)
        logger.error(
            "resource_failed",
            resource=str(resource),
            action=resource.action,
            error_type=type(err).__name__,
            message=err.message,
        )
        return err

    def _plan_and_apply(
        self, provider: ResourceProvider, resource: Resource
    ) -> Tuple[ResourceStatus, list[PlanChange]]:
        if provider.always_applies(resource.action):
            if self.engine.dry_run:
                return ResourceStatus.WOULD_UPDATE, provider.compute_diff(resource, None).changes
            provider.apply(resource)
            return ResourceStatus.EXECUTED, []

        plan = provider.plan(resource)
        if not plan.has_changes:
            return ResourceStatus.UP_TO_DATE, []
        if self.engine.dry_run:
            return ResourceStatus.WOULD_UPDATE, plan.changes
        provider.apply(resource)
        return ResourceStatus.UPDATED, plan.changes

    def _notify(self, resource: Resource, outcome: ResourceOutcome) -> None:
        for edge in resource.notifies:
            label = f"{edge.action} {edge.target} ({edge.timing})"
            if self.engine.dry_run:
                outcome.notified.append(f"would notify {label}")
                logger.info(
                    "notification_would_fire", source=str(resource), target=str(edge.target), action=edge.action
                )
                continue
            outcome.notified.append(label)
            if edge.timing == Timing.IMMEDIATE:
                logger.info(
                    "notification_fired",
                    source=str(resource),
                    target=str(edge.target),
                    action=edge.action,
                    timing=str(edge.timing),
                )
                self.converge(self.collection.lookup(edge.target), edge.action, triggered_by=str(resource))
            else:
                self.queue.add(edge.target, edge.action, source=str(resource))


def _with_resource(exc: Exception, key: ResourceKey) -> IdprovError:
    """Attach resource identity to an error, wrapping foreign exceptions."""
    err = exc if isinstance(exc, IdprovError) else ApplyError(f"{type(exc).__name__}: {exc}")
    if err.resource is None:
        err.resource = key
        err.details.setdefault("resource", str(key))
    return err
