from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

from compliance.models.license import RiskBucket

NOASSERTION = "NOASSERTION"


class PackageRecord(BaseModel):
    """
    One dependency of the analyzed project.

    ``declared_license`` keeps whatever shape the manifest used (string, list
    of alternatives, ``{"type": ..}`` / ``{"name": ..}`` object). It is
    collapsed into ``normalized_license`` once, by the BOM builder.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True
    )

    name: str = Field(..., description="Package name (scoped names keep their @scope/ prefix)")
    version: str = Field(..., description="Exact version or the manifest's range string")
    declared_license: Optional[Any] = Field(None, description="License as found in the manifest")
    normalized_license: str = Field(NOASSERTION, description="Canonical SPDX-like identifier")
    risk_bucket: RiskBucket = Field(RiskBucket.UNKNOWN, description="License risk category")
    repository_url: Optional[str] = Field(None, description="Source repository link")
    description: Optional[str] = None
    resolution_strategy: str = Field(..., description="Strategy that produced this record")
    ecosystem: str = Field("npm", description="Package ecosystem (OSV naming)")
    purl: Optional[str] = Field(None, description="Package URL")
    download_location: Optional[str] = Field(None, description="Resolved tarball or index URL")
    scope: str = Field("prod", description="prod, dev, optional or transitive")
    requested_range: Optional[str] = Field(
        None, description="Manifest range when the version was pinned from the install cache"
    )
    source_file: Optional[str] = Field(None, description="Manifest the record came from")

    @computed_field
    @property
    def id(self) -> str:
        return f"{self.name}@{self.version}"


class EnrichmentStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cache_directory: Optional[str] = None
    skipped: bool = False
    reason: Optional[str] = None
    before_enrichment: int = 0
    after_enrichment: int = 0
    packages_added: int = 0
    packages_updated: int = 0


class StrategyAttempt(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    strategy: str
    status: str = Field(..., description="succeeded, empty, not_found or error")
    packages: int = 0
    error: Optional[str] = None


class ProjectInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    version: Optional[str] = None
    license: str = NOASSERTION
    declared_license: Optional[Any] = None


class BillOfMaterials(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    document_id: str
    document_namespace: str
    generated_at: str
    project: ProjectInfo
    strategy: str = Field(..., description="Strategy whose packages form the body")
    strategy_chain: List[str] = Field(default_factory=list)
    strategy_attempts: List[StrategyAttempt] = Field(default_factory=list)
    packages: List[PackageRecord] = Field(default_factory=list)
    enrichment_stats: EnrichmentStats = Field(default_factory=EnrichmentStats)
    generation_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
