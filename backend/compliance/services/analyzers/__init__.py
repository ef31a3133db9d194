from .base import AnalysisContext, Analyzer
from .license import LicenseAnalyzer
from .osv import OSVAnalyzer
from .outdated import OutdatedAnalyzer
from .supply_chain import SupplyChainAnalyzer
