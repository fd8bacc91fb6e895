"""Ref update events consumed by the listener."""

from pydantic import BaseModel, Field

ZERO_ID = "0" * 40


class RefUpdateEvent(BaseModel):
    """A single reference update pushed to a repository."""

    project: str = Field(..., description="Project (repository) name")
    ref_name: str = Field(..., description="Full name of the updated ref")
    old_id: str = Field(ZERO_ID, description="Previous tip, zero id for a new ref")
    new_id: str = Field(ZERO_ID, description="New tip, zero id for a deleted ref")

    @property
    def is_branch(self) -> bool:
        return self.ref_name.startswith("refs/heads/")

    @property
    def is_delete(self) -> bool:
        return self.new_id == ZERO_ID

    def __str__(self) -> str:
        return f"{self.project}:{self.ref_name} {self.old_id[:7]}..{self.new_id[:7]}"
