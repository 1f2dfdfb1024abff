from .policy_client import PolicyClient, ProvisionReport

__all__ = ["PolicyClient", "ProvisionReport"]
