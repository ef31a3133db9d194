from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "Dependency Compliance Analyzer"
    LOG_LEVEL: str = "INFO"

    # OSV vulnerability database (batch endpoint)
    OSV_API_URL: str = "https://api.osv.dev/v1/querybatch"
    OSV_BATCH_SIZE: int = 50
    OSV_TIMEOUT_SECONDS: float = 10.0

    # Registry lookups for staleness and supply-chain signals
    DEPS_DEV_API_URL: str = "https://api.deps.dev/v3"
    NPM_REGISTRY_URL: str = "https://registry.npmjs.org"
    PYPI_API_URL: str = "https://pypi.org/pypi"
    REGISTRY_TIMEOUT_SECONDS: float = 15.0
    REGISTRY_BATCH_SIZE: int = 10
    STALENESS_CHECK_ENABLED: bool = True
    SUPPLY_CHAIN_LOOKUP_ENABLED: bool = True

    # Manifest discovery
    SCAN_SKIP_DIRS: List[str] = [
        "node_modules",
        ".git",
        "venv",
        ".venv",
        "site-packages",
        "vendor",
        "__pycache__",
        "dist",
        "build",
    ]
    SCAN_MAX_DEPTH: int = 8

    # SBOM document
    DOCUMENT_NAMESPACE_BASE: str = "https://spdx.org/spdxdocs"
    SBOM_CREATOR: str = "Tool: dependency-compliance"

    # License policy override (JSON file); built-in policy when unset
    LICENSE_POLICY_FILE: Optional[str] = None

    # Overall risk blend
    SECURITY_WEIGHT: float = 0.6
    LICENSE_WEIGHT: float = 0.4

    class Config:
        case_sensitive = True
        env_file = ".env"


settings = Settings()
