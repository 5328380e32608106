"""Records persisted by the result store and returned by the API."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

# Build states shared by crate builds and custom toolchain builds.
BuildStatus = Literal["in_progress", "success", "failure"]

NonEmptyStr = Annotated[str, Field(min_length=1)]


class BuildResultKey(BaseModel):
    """Identifying triple of a build result; used for lookups only."""

    toolchain: NonEmptyStr
    crate_name: NonEmptyStr
    crate_vers: NonEmptyStr


class BuildResult(BaseModel):
    """Latest outcome of building one crate version with one toolchain."""

    toolchain: NonEmptyStr
    crate_name: NonEmptyStr
    crate_vers: NonEmptyStr
    status: BuildStatus
    # Task that produced this status.
    task_id: NonEmptyStr

    @property
    def key(self) -> BuildResultKey:
        return BuildResultKey(
            toolchain=self.toolchain,
            crate_name=self.crate_name,
            crate_vers=self.crate_vers,
        )

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


class CustomToolchain(BaseModel):
    """Build state of an ad hoc compiler build."""

    toolchain: NonEmptyStr
    status: BuildStatus
    task_id: NonEmptyStr


class CrateVersion(BaseModel):
    name: NonEmptyStr
    version: NonEmptyStr


class CrateRank(BaseModel):
    """Build priority of a crate; lower ranks build first."""

    name: NonEmptyStr
    rank: int = Field(ge=0)


class DepEdge(BaseModel):
    """``name`` depends on ``dep``."""

    name: NonEmptyStr
    dep: NonEmptyStr
