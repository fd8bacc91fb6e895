"""Data models for code review metadata."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChangeStatus(str, Enum):
    """Lifecycle state of a reviewed change."""

    NEW = "new"
    MERGED = "merged"
    ABANDONED = "abandoned"


class Account(BaseModel):
    """A user account known to the review system."""

    model_config = ConfigDict(frozen=True)

    account_id: int = Field(..., description="Numeric account identifier")
    full_name: Optional[str] = Field(None, description="Display name")
    email: Optional[str] = Field(None, description="Preferred email address")


class Approval(BaseModel):
    """A vote cast on one label of a reviewed revision."""

    model_config = ConfigDict(frozen=True)

    label: str = Field(..., description="Label name, e.g. Code-Review")
    value: int = Field(..., description="Signed vote value")
    account: Account = Field(..., description="Account that cast the vote")
    granted: datetime = Field(..., description="When the vote was cast")
    is_submit: bool = Field(False, description="Whether this approval records the submit")


class ReviewRecord(BaseModel):
    """Review metadata for one concrete revision of a change."""

    model_config = ConfigDict(frozen=True)

    change_id: int = Field(..., description="Numeric change identifier")
    project: str = Field(..., description="Project (repository) name")
    branch: str = Field(..., description="Destination branch of the change")
    revision: str = Field(..., description="Commit SHA of the reviewed revision")
    status: ChangeStatus = Field(ChangeStatus.NEW, description="Change status")
    approvals: List[Approval] = Field(
        default_factory=list, description="Approvals in the order returned by the store"
    )
    review_url: Optional[str] = Field(None, description="Explicit URL of the review page")
    comments_total: int = Field(0, description="Total number of published comments")
    comments_unresolved: int = Field(0, description="Number of unresolved comment threads")

    @property
    def submit_approval(self) -> Optional[Approval]:
        """Return the approval recording the submit, if any."""
        submit = None
        for approval in self.approvals:
            if approval.value != 0 and approval.is_submit:
                submit = approval
        return submit

    @property
    def is_merged(self) -> bool:
        return self.status == ChangeStatus.MERGED


def short_branch_name(branch: str) -> str:
    """Strip the ``refs/heads/`` prefix from a branch name, if present."""
    prefix = "refs/heads/"
    if branch.startswith(prefix):
        return branch[len(prefix):]
    return branch
