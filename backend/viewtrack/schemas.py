from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RefreshRequest(CamelModel):
    manual: bool = False
    organization_id: int | None = None
    project_id: int | None = None

    @model_validator(mode="after")
    def project_needs_organization(self) -> "RefreshRequest":
        if self.project_id is not None and self.organization_id is None:
            raise ValueError("projectId requires organizationId")
        return self


class FailureRecord(BaseModel):
    org: str
    project: str
    account: str
    error: str


class RunStats(CamelModel):
    total_organizations: int = 0
    total_accounts_processed: int = 0
    total_videos_refreshed: int = 0
    total_videos_added: int = 0
    total_videos_updated: int = 0
    total_videos_skipped_quota: int = 0
    failed_accounts: int = 0


class RunSummary(CamelModel):
    success: bool = True
    trigger: str
    duration: str
    timestamp: str
    stats: RunStats = Field(default_factory=RunStats)
    failures: list[FailureRecord] = Field(default_factory=list)


class ErrorEnvelope(CamelModel):
    success: bool = False
    error: str
    error_type: str
