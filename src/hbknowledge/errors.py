"""Typed errors for the rule lifecycle engine."""


class HBKnowledgeError(Exception):
    """Base class for all hbknowledge errors."""


class RuleStoreError(HBKnowledgeError):
    """The rule store was used in a way it cannot honour."""


class StoreRejected(RuleStoreError):
    """A rule or entry set violates a store invariant. The store is unchanged."""

    def __init__(self, rule_id: str, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Rule '{rule_id}' rejected: {reason}")


class InvalidTransition(RuleStoreError):
    """A review-status change that the lifecycle does not allow."""

    def __init__(self, rule_id: str, current: str, requested: str):
        self.rule_id = rule_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Rule '{rule_id}' cannot move from {current} to {requested}"
        )


class UnknownRule(RuleStoreError):
    """No dynamic rule exists with the given id."""

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Dynamic rule not found: {rule_id}")


class SynthesisRejected(HBKnowledgeError):
    """A deprecation record could not be turned into a rule.

    Returned as a value by the rule generator, never raised out of it.
    """

    def __init__(self, token: str, reason: str):
        self.token = token
        self.reason = reason
        super().__init__(f"Cannot synthesize rule for '{token}': {reason}")
