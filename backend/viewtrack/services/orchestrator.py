"""
RefreshOrchestrator walks organizations -> projects -> active accounts.

Organizations and projects run one after another; a project's accounts run
in concurrent batches of ``batch_size`` and every account of a batch settles
before the next batch starts. An account failure becomes a FailureRecord and
never reaches its siblings.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence

from viewtrack.errors import AccountBusyError, ScopeNotFoundError
from viewtrack.models import CaptureSource, Organization, Project, TrackedAccount
from viewtrack.schemas import FailureRecord, RunStats, RunSummary
from viewtrack.services.account_lease import AccountLease
from viewtrack.services.account_refresh import AccountRefresher, AccountRefreshResult
from viewtrack.services.notify import OrganizationRunStats, RefreshNotifier
from viewtrack.services.tracking_store import TrackingStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass(frozen=True)
class RunTrigger:
    manual: bool = False
    organization_id: int | None = None
    project_id: int | None = None

    @property
    def capture(self) -> CaptureSource:
        return CaptureSource.for_run(self.manual)

    @property
    def label(self) -> str:
        return "manual" if self.manual else "scheduled"


@dataclass
class AccountOutcome:
    account: TrackedAccount
    result: AccountRefreshResult | None = None
    error: str | None = None


@dataclass
class RunScope:
    organization: Organization
    projects: list[Project]


class RefreshOrchestrator:
    def __init__(
        self,
        store: TrackingStore,
        refresher: AccountRefresher,
        *,
        notifier: RefreshNotifier | None = None,
        lease: AccountLease | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self._store = store
        self._refresher = refresher
        self._notifier = notifier
        self._lease = lease or AccountLease()
        self._batch_size = max(1, batch_size)

    async def resolve_scope(self, trigger: RunTrigger) -> list[RunScope]:
        """Raises ScopeNotFoundError before any account is touched."""
        if trigger.organization_id is None:
            organizations = await self._store.list_organizations()
        else:
            organization = await self._store.get_organization(trigger.organization_id)
            if organization is None:
                raise ScopeNotFoundError("org", trigger.organization_id)
            organizations = [organization]

        scopes: list[RunScope] = []
        for organization in organizations:
            if trigger.project_id is not None:
                project = await self._store.get_project(organization.id, trigger.project_id)
                if project is None:
                    raise ScopeNotFoundError("project", trigger.project_id)
                projects = [project]
            else:
                projects = await self._store.list_projects(organization.id)
            scopes.append(RunScope(organization=organization, projects=projects))
        return scopes

    async def run(self, trigger: RunTrigger, scopes: list[RunScope] | None = None) -> RunSummary:
        started = time.monotonic()
        if scopes is None:
            scopes = await self.resolve_scope(trigger)
        logger.info(f"[refresh] {trigger.label} run started: {len(scopes)} organizations")

        stats = RunStats(total_organizations=len(scopes))
        failures: list[FailureRecord] = []
        org_stats: list[OrganizationRunStats] = []

        for scope in scopes:
            org = scope.organization
            per_org = OrganizationRunStats(organization_id=org.id, name=org.name, owner_email=org.owner_email)
            org_stats.append(per_org)
            for project in scope.projects:
                accounts = await self._store.list_active_accounts(org.id, project.id)
                if not accounts:
                    continue
                logger.info(f"[refresh] org {org.id} project {project.id}: {len(accounts)} active accounts")
                for outcome in await self._process_accounts(accounts, trigger):
                    stats.total_accounts_processed += 1
                    per_org.accounts += 1
                    if outcome.error is not None:
                        stats.failed_accounts += 1
                        per_org.failed += 1
                        failures.append(
                            FailureRecord(
                                org=str(org.id),
                                project=str(project.id),
                                account=f"{outcome.account.platform}:{outcome.account.username}",
                                error=outcome.error,
                            )
                        )
                        continue
                    result = outcome.result
                    stats.total_videos_added += result.added
                    stats.total_videos_updated += result.updated
                    stats.total_videos_skipped_quota += result.skipped_quota
                    per_org.added += result.added
                    per_org.updated += result.updated

        stats.total_videos_refreshed = stats.total_videos_added + stats.total_videos_updated
        summary = RunSummary(
            success=True,
            trigger=trigger.label,
            duration=f"{time.monotonic() - started:.2f}s",
            timestamp=datetime.now(timezone.utc).isoformat(),
            stats=stats,
            failures=failures,
        )
        logger.info(
            f"[refresh] {trigger.label} run finished in {summary.duration}: "
            f"accounts={stats.total_accounts_processed} added={stats.total_videos_added} "
            f"updated={stats.total_videos_updated} failed={stats.failed_accounts}"
        )
        await self._notify(org_stats, summary, trigger)
        return summary

    async def _process_accounts(self, accounts: Sequence[TrackedAccount], trigger: RunTrigger) -> list[AccountOutcome]:
        outcomes: list[AccountOutcome] = []
        for start in range(0, len(accounts), self._batch_size):
            batch = accounts[start : start + self._batch_size]
            settled = await asyncio.gather(
                *(self._process_account(account, trigger) for account in batch),
                return_exceptions=True,
            )
            for account, item in zip(batch, settled):
                if isinstance(item, BaseException):
                    # cancellation or an error raised outside the per-account guard
                    outcomes.append(AccountOutcome(account=account, error=repr(item)))
                else:
                    outcomes.append(item)
        return outcomes

    async def _process_account(self, account: TrackedAccount, trigger: RunTrigger) -> AccountOutcome:
        try:
            async with self._lease.hold(account.id):
                result = await self._refresher.refresh(account, trigger.capture)
                await self._store.stamp_account(
                    account.id,
                    datetime.now(timezone.utc),
                    is_verified=result.discovery.is_verified,
                    is_blue_verified=result.discovery.is_blue_verified,
                )
        except AccountBusyError as exc:
            logger.warning(f"[refresh] {account.platform} @{account.username}: {exc}")
            return AccountOutcome(account=account, error=str(exc))
        except Exception as exc:
            logger.exception(f"[refresh] {account.platform} @{account.username} (id={account.id}) failed")
            return AccountOutcome(account=account, error=str(exc) or exc.__class__.__name__)
        return AccountOutcome(account=account, result=result)

    async def _notify(self, org_stats: list[OrganizationRunStats], summary: RunSummary, trigger: RunTrigger) -> None:
        if self._notifier is None:
            return
        for stats in org_stats:
            await self._notifier.send_refresh_summary(stats, manual=trigger.manual)
        if summary.failures:
            await self._notifier.notify_warn(
                f"Video refresh: {len(summary.failures)} accounts failed",
                "\n".join(f"{f.org}/{f.project} {f.account}: {f.error}" for f in summary.failures[:10]),
            )
