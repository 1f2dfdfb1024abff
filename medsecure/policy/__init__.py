from .conditions import evaluate_conditions, failed_rules
from .local import LocalPolicyEvaluator, Verdict

__all__ = ["LocalPolicyEvaluator", "Verdict", "evaluate_conditions", "failed_rules"]
