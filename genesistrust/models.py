from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .hashing import is_commit_hash


class CommitEntryModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hash: str
    object: str
    trusted: Literal["true", "false"]

    @field_validator("hash")
    @classmethod
    def _full_hash(cls, v: str) -> str:
        if not is_commit_hash(v):
            raise ValueError("must be a full lower-case commit hash")
        return v


class TrustDocumentModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    keys: Dict[str, str] = Field(default_factory=dict)
    commits: List[CommitEntryModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_hashes(self) -> "TrustDocumentModel":
        seen = set()
        for commit in self.commits:
            if commit.hash in seen:
                raise ValueError(f"commit {commit.hash} listed twice")
            seen.add(commit.hash)
        return self
