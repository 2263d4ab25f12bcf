"""Rules engine for evaluating compliance rules against facility evidence.

This module provides the RulesEngine class that runs the active rule
library against a facility's entity populations and emits exactly one
RuleResult per rule.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from fieldsafe.compliance.conditions import ConditionEvaluator
from fieldsafe.compliance.rules import LibraryEntry, RuleLibrary
from fieldsafe.compliance.types import (
    ComplianceRule,
    InvalidRule,
    RuleResult,
    RuleRunSummary,
    Verdict,
)
from fieldsafe.core.logging import get_logger
from fieldsafe.evidence.types import EntityType, EvidenceRecord

if TYPE_CHECKING:
    from fieldsafe.store.accessor import EntityAccessor

logger = get_logger(__name__)

MAX_NOTES = 10


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RulesEngine:
    """Engine for evaluating declarative compliance rules.

    Each entity population is fetched once per run, so every rule in a
    run sees the same snapshot of the facility's evidence.

    Usage:
        engine = RulesEngine(accessor, library)
        results = await engine.run(facility_id=12)
        summary = summarize_results(results)
    """

    def __init__(
        self,
        accessor: "EntityAccessor",
        library: RuleLibrary | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the rules engine.

        Args:
            accessor: Record store accessor for this run
            library: Rule library. If None, rules are loaded from the store
                on first run.
            clock: Source of the evaluation timestamp
        """
        self._accessor = accessor
        self._library = library
        self._clock = clock

    async def get_library(self) -> RuleLibrary:
        """Get the rule library, loading it from the store if needed."""
        if self._library is None:
            rows = await self._accessor.fetch_rule_rows()
            self._library = RuleLibrary.from_records(rows)
            logger.debug(
                "rule_library_loaded",
                rules=len(self._library),
                invalid=len(self._library.invalid_rules),
            )
        return self._library

    async def run(
        self,
        facility_id: int,
        *,
        module_code: str | None = None,
        assessment_id: UUID | None = None,
        simulation_id: int | None = None,
    ) -> list[RuleResult]:
        """Evaluate all active rules for a facility.

        Args:
            facility_id: Facility to evaluate
            module_code: Only evaluate rules scoped to this module
            assessment_id: Assessment the results belong to
            simulation_id: Simulation whose responses audit rules read
                (default: the facility's latest)

        Returns:
            One RuleResult per active rule, in library order

        Raises:
            RecordStoreError: If the store cannot serve a population
        """
        library = await self.get_library()
        evaluated_at = self._clock()
        evaluator = ConditionEvaluator(today=evaluated_at.date())
        populations: dict[EntityType, list[EvidenceRecord]] = {}

        results: list[RuleResult] = []
        for entry in library.active_rules(module_code):
            if isinstance(entry, InvalidRule):
                verdict, details = Verdict.NOT_APPLICABLE, {
                    "rule_name": entry.name,
                    "error": "invalid rule definition",
                    "validation_errors": list(entry.errors),
                }
            else:
                entity_type = entry.condition.entity_type
                if entity_type not in populations:
                    populations[entity_type] = await self._accessor.fetch_entities(
                        facility_id, entity_type, simulation_id=simulation_id
                    )
                verdict, details = self._evaluate_rule(
                    entry, populations[entity_type], evaluator
                )

            results.append(
                RuleResult(
                    rule_code=entry.rule_code,
                    facility_id=facility_id,
                    assessment_id=assessment_id,
                    verdict=verdict,
                    details=details,
                    evaluated_at=evaluated_at,
                )
            )
            logger.debug(
                "compliance_rule_evaluated",
                rule_code=entry.rule_code,
                facility_id=facility_id,
                verdict=verdict.value,
            )

        summary = summarize_results(results)
        logger.info(
            "rules_engine_completed",
            facility_id=facility_id,
            module_code=module_code,
            passed=summary.passed,
            failed=summary.failed,
            not_applicable=summary.not_applicable,
            total=summary.total,
        )
        return results

    def evaluate_rule(
        self,
        rule: LibraryEntry,
        population: Sequence[EvidenceRecord],
        evaluated_at: datetime | None = None,
    ) -> tuple[Verdict, dict]:
        """Evaluate one rule against an explicit population.

        Args:
            rule: Rule (or invalid entry) to evaluate
            population: Unfiltered entity rows
            evaluated_at: Evaluation timestamp (default: clock)

        Returns:
            Tuple of (verdict, details)
        """
        if isinstance(rule, InvalidRule):
            return Verdict.NOT_APPLICABLE, {
                "error": "invalid rule definition",
                "validation_errors": list(rule.errors),
            }
        evaluator = ConditionEvaluator(today=(evaluated_at or self._clock()).date())
        return self._evaluate_rule(rule, population, evaluator)

    def _evaluate_rule(
        self,
        rule: ComplianceRule,
        population: Sequence[EvidenceRecord],
        evaluator: ConditionEvaluator,
    ) -> tuple[Verdict, dict]:
        condition = rule.condition
        matching = [row for row in population if evaluator.matches_filter(condition, row)]
        details: dict = {
            "rule_name": rule.name,
            "entity_type": condition.entity_type.value,
            "field": condition.field,
            "operator": condition.operator,
            "excluded": len(population) - len(matching),
        }

        if not matching:
            details["evaluated"] = 0
            if condition.require_presence:
                details["message"] = f"No {condition.entity_type.value} records present"
                return Verdict.FAIL, details
            details["message"] = f"No matching {condition.entity_type.value} records"
            return Verdict.NOT_APPLICABLE, details

        passed = failed = not_applicable = 0
        failing: list[str] = []
        notes: list[str] = []
        for row in matching:
            outcome = evaluator.evaluate(condition, row)
            if outcome.verdict == Verdict.PASS:
                passed += 1
            elif outcome.verdict == Verdict.FAIL:
                failed += 1
                failing.append(row.label)
            else:
                not_applicable += 1
            if outcome.note and len(notes) < MAX_NOTES:
                notes.append(f"{row.label}: {outcome.note}")

        details.update(
            evaluated=len(matching),
            passed=passed,
            failed=failed,
            not_applicable=not_applicable,
            failing=failing,
            notes=notes,
        )

        if failed:
            details["message"] = f"{failed} of {len(matching)} records failed"
            return Verdict.FAIL, details
        if passed:
            details["message"] = f"All {passed} evaluated records passed"
            return Verdict.PASS, details
        details["message"] = "No record could be evaluated"
        return Verdict.NOT_APPLICABLE, details


def summarize_results(results: Iterable[RuleResult]) -> RuleRunSummary:
    """Count verdicts of a rules engine run."""
    summary = RuleRunSummary()
    for result in results:
        if result.verdict == Verdict.PASS:
            summary.passed += 1
        elif result.verdict == Verdict.FAIL:
            summary.failed += 1
        else:
            summary.not_applicable += 1
    return summary
