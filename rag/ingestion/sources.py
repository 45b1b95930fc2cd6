"""Source entities that feed the knowledge store during a full re-index."""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class SourceEntity:
    id: str
    title: str
    body: str


class SourceEntityProvider(Protocol):
    """Read access to a tenant's requirements and bugs, owned by the entity service."""

    async def list_requirements(self, tenant_id: str) -> list[SourceEntity]: ...

    async def list_bugs(self, tenant_id: str) -> list[SourceEntity]: ...


class StaticSourceProvider:
    """SourceEntityProvider over fixed lists, keyed by tenant."""

    def __init__(
        self,
        requirements: dict[str, list[SourceEntity]] | None = None,
        bugs: dict[str, list[SourceEntity]] | None = None,
    ):
        self.requirements = requirements or {}
        self.bugs = bugs or {}

    async def list_requirements(self, tenant_id: str) -> list[SourceEntity]:
        return list(self.requirements.get(tenant_id, []))

    async def list_bugs(self, tenant_id: str) -> list[SourceEntity]:
        return list(self.bugs.get(tenant_id, []))
