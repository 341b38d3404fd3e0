# ABOUTME: Exposes the performance insights engines and their shared schema types.
# ABOUTME: Re-exports the service facade, default config, and record loaders for convenience.

from .config import DEFAULT_CONFIG, InsightsConfigError, PerformanceInsightsConfig, load_config
from .data_pipeline import RecordFormatError, load_students, parse_student_record
from .risk_assessment import RiskAssessmentEngine
from .trend_analysis import TrendAnalysisEngine
from .interventions import InterventionEngine
from .alerts import AlertSystem
from .cohort_analysis import CohortAnalysisEngine
from .service import PerformanceInsightsService
from .schemas import RiskAssessment, StudentPerformanceData, TeacherAlert

__all__ = [
    "DEFAULT_CONFIG",
    "InsightsConfigError",
    "PerformanceInsightsConfig",
    "load_config",
    "RecordFormatError",
    "load_students",
    "parse_student_record",
    "RiskAssessmentEngine",
    "TrendAnalysisEngine",
    "InterventionEngine",
    "AlertSystem",
    "CohortAnalysisEngine",
    "PerformanceInsightsService",
    "RiskAssessment",
    "StudentPerformanceData",
    "TeacherAlert",
]
