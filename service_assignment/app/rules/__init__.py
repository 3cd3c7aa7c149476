from .evaluator import RuleEvaluation, evaluate
from .processor import BusinessRuleProcessor, ClaimProcessingResult, ProcessingOutcome
from .specificity import AppliedRuleResult, CandidateUser, EligibleUser, most_specific_rank, resolve

__all__ = [
    "AppliedRuleResult",
    "BusinessRuleProcessor",
    "CandidateUser",
    "ClaimProcessingResult",
    "EligibleUser",
    "ProcessingOutcome",
    "RuleEvaluation",
    "evaluate",
    "most_specific_rank",
    "resolve",
]
