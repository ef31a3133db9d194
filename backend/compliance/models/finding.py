from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"


class UpdateType(str, Enum):
    MAJOR = "MAJOR"
    MINOR = "MINOR"
    PATCH = "PATCH"


class ReportModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True
    )

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class VulnerabilityFinding(ReportModel):
    package: str = Field(..., description="Affected package name")
    version: str = Field(..., description="Queried version")
    identifier: str = Field(..., description="CVE alias when known, else the OSV id")
    severity: Severity = Field(Severity.UNKNOWN, description="Normalized severity")
    source: str = "osv"
    osv_id: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    fixed_version: Optional[str] = None


class LicenseConflict(ReportModel):
    package: str
    dependency_license: str
    risk_bucket: str
    severity: Severity


class CompatibilityVerdict(ReportModel):
    project_license: str
    project_risk_bucket: str
    conflicts: List[LicenseConflict] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    can_distribute: bool = True
    compliance_status: str = "COMPLIANT"


class StalenessRecord(ReportModel):
    package: str
    current: str
    wanted: str
    latest: str
    update_type: UpdateType
    breaking: bool
    ecosystem: str = "npm"


class RiskBreakdown(ReportModel):
    license: int = 0
    security: int = 0
    supply_chain: int = 0


class RiskAssessment(ReportModel):
    overall_score: int = Field(0, ge=0, le=100)
    level: str = "LOW"
    breakdown: RiskBreakdown = Field(default_factory=RiskBreakdown)
