"""
Decision points of an import run.

Whenever the importer meets a situation an operator may want to settle
(an existing entry differs, a reference cannot be resolved, nodes are left
without a parent) it asks a Decider. The PolicyDecider answers from fixed
policies and is used for headless runs and tests; the ConsoleDecider prompts
on the terminal.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class DecisionPoint(Enum):
    CONTINUE_IMPORT = "continue-import"
    OVERWRITE_EXISTING = "overwrite-existing"
    IMPORT_NEW = "import-new"
    MISSING_OWNER = "missing-owner"
    MISSING_RELATION = "missing-relation"
    MISSING_EMBED = "missing-embed"
    MISSING_FILE = "missing-file"
    ORPHANED_NODES = "orphaned-nodes"
    SYNC_FAILURE = "sync-failure"


class Decision(Enum):
    CONTINUE = "continue"
    ABORT = "abort"
    CREATE = "create"
    SKIP = "skip"
    OVERWRITE = "overwrite"
    REMOVE = "remove"
    REPARENT = "reparent"


# Allowed answers per decision point; the first is the affirmative answer, the second the negative one
ALLOWED_DECISIONS: Dict[DecisionPoint, Tuple[Decision, ...]] = {
    DecisionPoint.CONTINUE_IMPORT: (Decision.CONTINUE, Decision.ABORT),
    DecisionPoint.OVERWRITE_EXISTING: (Decision.OVERWRITE, Decision.SKIP, Decision.ABORT),
    DecisionPoint.IMPORT_NEW: (Decision.CREATE, Decision.SKIP, Decision.ABORT),
    DecisionPoint.MISSING_OWNER: (Decision.REMOVE, Decision.ABORT),
    DecisionPoint.MISSING_RELATION: (Decision.REMOVE, Decision.ABORT),
    DecisionPoint.MISSING_EMBED: (Decision.REMOVE, Decision.ABORT),
    DecisionPoint.MISSING_FILE: (Decision.REMOVE, Decision.ABORT),
    DecisionPoint.ORPHANED_NODES: (Decision.REPARENT, Decision.ABORT),
    DecisionPoint.SYNC_FAILURE: (Decision.SKIP, Decision.ABORT),
}

DEFAULT_POLICIES: Dict[DecisionPoint, Decision] = {
    DecisionPoint.CONTINUE_IMPORT: Decision.CONTINUE,
    DecisionPoint.OVERWRITE_EXISTING: Decision.SKIP,
    DecisionPoint.IMPORT_NEW: Decision.CREATE,
    DecisionPoint.MISSING_OWNER: Decision.REMOVE,
    DecisionPoint.MISSING_RELATION: Decision.REMOVE,
    DecisionPoint.MISSING_EMBED: Decision.REMOVE,
    DecisionPoint.MISSING_FILE: Decision.REMOVE,
    DecisionPoint.ORPHANED_NODES: Decision.ABORT,
    DecisionPoint.SYNC_FAILURE: Decision.ABORT,
}


def parse_policies(policies: Optional[Dict[str, str]]) -> Dict[DecisionPoint, Decision]:
    """
    Merge configured policies over the defaults.

    Args:
        policies: Map of decision point name to decision name

    Returns:
        A policy for every decision point

    Raises:
        ConfigurationError: Unknown decision point, unknown decision, or a
            decision not allowed at that point
    """
    merged = dict(DEFAULT_POLICIES)
    for point_name, decision_name in (policies or {}).items():
        try:
            point = DecisionPoint(point_name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown decision point '{point_name}'. "
                f"Valid points: {[p.value for p in DecisionPoint]}"
            )
        try:
            decision = Decision(decision_name)
        except ValueError:
            raise ConfigurationError(
                f"Unknown decision '{decision_name}' for '{point_name}'. "
                f"Valid decisions: {[d.value for d in Decision]}"
            )
        allowed = ALLOWED_DECISIONS[point]
        if decision not in allowed:
            raise ConfigurationError(
                f"Decision '{decision_name}' is not allowed for '{point_name}'. "
                f"Allowed: {[d.value for d in allowed]}"
            )
        merged[point] = decision

    missing = [point.value for point in DecisionPoint if point not in merged]
    if missing:
        raise ConfigurationError(f"No policy for decision points: {missing}")
    return merged


class Decider(ABC):
    """Answers decision points raised during an import."""

    @abstractmethod
    def decide(
        self,
        point: DecisionPoint,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Decision:
        """
        Settle a decision point.

        Args:
            point: The decision point
            message: Human-readable description naming the record concerned
            context: Identifiers of the records involved

        Returns:
            One of ALLOWED_DECISIONS[point]
        """


class PolicyDecider(Decider):
    """Non-interactive decider answering from fixed policies."""

    def __init__(self, policies: Optional[Dict[str, str]] = None):
        self.policies = parse_policies(policies)

    def decide(
        self,
        point: DecisionPoint,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Decision:
        decision = self.policies[point]
        logger.debug(f"{message} -> {decision.value} (policy)")
        return decision


class ConsoleDecider(Decider):
    """Interactive decider prompting on the terminal."""

    ALIASES = {'y': 0, 'yes': 0, 'n': 1, 'no': 1}

    def __init__(
        self,
        input_func: Callable[[str], str] = input,
        output_func: Callable[[str], None] = print,
        policies: Optional[Dict[str, str]] = None
    ):
        """
        Initialize console decider.

        Args:
            input_func: Reads one answer, defaults to input()
            output_func: Writes a line, defaults to print()
            policies: Answers used when the operator just presses enter
        """
        self.input_func = input_func
        self.output_func = output_func
        self.defaults = parse_policies(policies)

    def _parse_answer(self, answer: str, choices: Tuple[Decision, ...]) -> Optional[Decision]:
        answer = answer.strip().lower()
        if answer in self.ALIASES:
            return choices[self.ALIASES[answer]]
        for choice in choices:
            if answer == choice.value:
                return choice
        matches = [choice for choice in choices if choice.value.startswith(answer)]
        if answer and len(matches) == 1:
            return matches[0]
        return None

    def decide(
        self,
        point: DecisionPoint,
        message: str,
        context: Optional[Dict[str, Any]] = None
    ) -> Decision:
        choices = ALLOWED_DECISIONS[point]
        default = self.defaults[point]
        options = '/'.join(
            choice.value.upper() if choice == default else choice.value for choice in choices
        )
        prompt = f"{message} [{options}]: "

        while True:
            answer = self.input_func(prompt)
            if not answer.strip():
                return default
            decision = self._parse_answer(answer, choices)
            if decision is not None:
                logger.debug(f"{point.value}: operator chose {decision.value}")
                return decision
            self.output_func(f"Invalid answer '{answer.strip()}', choose one of: {', '.join(c.value for c in choices)}")


def create_decider(interactive: bool = False, policies: Optional[Dict[str, str]] = None) -> Decider:
    """Create the decider for an import run."""
    if interactive:
        return ConsoleDecider(policies=policies)
    return PolicyDecider(policies)


__all__ = [
    'DecisionPoint',
    'Decision',
    'ALLOWED_DECISIONS',
    'DEFAULT_POLICIES',
    'parse_policies',
    'Decider',
    'PolicyDecider',
    'ConsoleDecider',
    'create_decider',
]
