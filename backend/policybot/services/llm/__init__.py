"""
Bounded LLM Services

These services use the LLM for specific, constrained tasks:
- Opt-in detection (single boolean)
- Vehicle fact extraction (schema-constrained tri-state output)
- Clarifying questions and recommendation styling (free text, no decisions)

Policy eligibility is never decided by the LLM.
"""
from policybot.services.llm.oracle import (
    InferenceOracle,
    LLMOracle,
    OracleError,
    OracleUnavailable,
    OracleMalformedResponse,
    OptInVerdict,
    FactAnalysis,
)
from policybot.services.llm.opt_in_service import OptInGate
from policybot.services.llm.fact_service import FactExtractor, FactReport, is_sufficient
from policybot.services.llm.question_service import QuestionPlanner
from policybot.services.llm.render_service import RecommendationRenderer
from policybot.services.llm.suggestion_service import SuggestionService

__all__ = [
    "InferenceOracle",
    "LLMOracle",
    "OracleError",
    "OracleUnavailable",
    "OracleMalformedResponse",
    "OptInVerdict",
    "FactAnalysis",
    "OptInGate",
    "FactExtractor",
    "FactReport",
    "is_sufficient",
    "QuestionPlanner",
    "RecommendationRenderer",
    "SuggestionService",
]
