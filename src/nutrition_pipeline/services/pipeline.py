"""Day-plan pipeline orchestration.

A run moves through a fixed sequence of stages. Each completed stage is
recorded in the trace with its elapsed time. A typed ``PipelineError`` aborts
the remaining stages; anything else is wrapped as
``PIPELINE_EXECUTION_FAILED``. Per-item failures never abort a run: they
degrade to zero-macro results tagged with an error code.
"""

import asyncio
import inspect
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace

from nutrition_pipeline.app_logging import LogSink, TracedLogger
from nutrition_pipeline.config import PipelineConfig
from nutrition_pipeline.domain.alerts import AlertLevel, AlertType
from nutrition_pipeline.domain.errors import (
    PipelineError,
    PlanValidationError,
    ResponseBlockedError,
    SchemaError,
    StructuralError,
    TransformError,
)
from nutrition_pipeline.domain.invariants import InvariantId, Severity, Violation
from nutrition_pipeline.domain.items import Item, Meal
from nutrition_pipeline.domain.nutrition import (
    MacroResult,
    MacroTargets,
    MacroTotals,
    NutritionRecord,
    finite_or_zero,
)
from nutrition_pipeline.domain.plans import (
    DayPlan,
    ExcludedMeal,
    PipelineResult,
    PipelineTrace,
    PlanItem,
    PlanMeal,
    PlanValidation,
    violation_dict,
)
from nutrition_pipeline.domain.validation import Correction, SchemaKind
from nutrition_pipeline.services.alerts import AlertService
from nutrition_pipeline.services.cache import MacroCache
from nutrition_pipeline.services.ingredients import (
    extract_unique_ingredients,
    normalize_key,
)
from nutrition_pipeline.services.invariants import InvariantEngine
from nutrition_pipeline.services.nutrition import NutritionLookup
from nutrition_pipeline.services.reconciliation import (
    ReconciliationResult,
    reconcile_day,
    reconcile_meal,
)
from nutrition_pipeline.services.state_resolver import StateResolver, hint_disagrees
from nutrition_pipeline.services.transforms import (
    distribute_absorbed_oil,
    ml_to_grams,
    normalize_to_grams_or_ml,
    to_as_sold_grams,
)
from nutrition_pipeline.services.validation import validate

_logger = logging.getLogger(__name__)

RetryCallback = Callable[[], object | Awaitable[object]]

STAGES = (
    "entry_guard",
    "structure_guard",
    "llm_validation",
    "state_normalization",
    "ingredient_extraction",
    "nutrition_fetch",
    "macro_computation",
    "meal_reconciliation",
    "day_reconciliation",
    "sanitization",
    "response_block_check",
    "plan_validation",
    "emit",
)


@dataclass(frozen=True)
class ProgressHooks:
    """Optional callbacks for callers streaming intermediate state."""

    ingredient_found: Callable[[str, NutritionRecord], None] | None = None
    ingredient_failed: Callable[[str, str], None] | None = None
    ingredient_flagged: Callable[[str, MacroResult], None] | None = None
    invariant_warning: Callable[[Violation], None] | None = None
    validation_warning: Callable[[str], None] | None = None


@dataclass(frozen=True)
class PipelineRequest:
    """Input for one pipeline run."""

    raw_meals: object
    targets: MacroTargets | None = None
    retry_callback: RetryCallback | None = None
    config: PipelineConfig | None = None
    progress: ProgressHooks = field(default_factory=ProgressHooks)
    trace_id: str | None = None


def compute_item_macros(
    item: Item,
    record: NutritionRecord | None,
    engine: InvariantEngine,
) -> MacroResult:
    """Compute an item's macros from its per-100g record.

    Always returns a result with finite numbers. Conversion failures, a
    missing record and non-finite intermediates all become zero-macro results
    tagged with an error code.
    """
    try:
        normalized = normalize_to_grams_or_ml(item)
        as_sold = to_as_sold_grams(item, normalized.value)
    except TransformError as exc:
        return MacroResult.zero(exc.code)
    grams_as_sold = as_sold.grams_as_sold
    if normalized.unit == "ml":
        grams_as_sold = ml_to_grams(item.key, grams_as_sold)
    if finite_or_zero(grams_as_sold) <= 0:
        return MacroResult.zero("GRAMS_AS_SOLD_INVALID")
    if record is None:
        return MacroResult.zero("NUTRITION_NOT_FOUND", grams_as_sold)

    scale = grams_as_sold / 100
    values = [
        record.calories * scale,
        record.protein * scale,
        record.fat * scale,
        record.carbs * scale,
    ]
    if any(finite_or_zero(value) != value for value in values):
        return MacroResult.zero("GRAMS_AS_SOLD_INVALID", grams_as_sold)
    kcal, protein, fat, carbs = values

    severity = Severity.VALID
    deviation = None
    if engine.config.enable_consistency_gate:
        check = engine.check_macro_consistency(kcal, protein, fat, carbs)
        severity = check.severity
        deviation = round(check.deviation_pct, 2)
    if severity is Severity.CRITICAL and engine.config.reject_critical_items:
        return replace(
            MacroResult.zero("MACRO_INCONSISTENT", grams_as_sold, flagged=True),
            source=record.source,
            deviation_pct=deviation,
            severity=severity.value,
        )
    return MacroResult(
        kcal=kcal,
        protein=protein,
        fat=fat,
        carbs=carbs,
        grams_as_sold=grams_as_sold,
        flagged=severity is not Severity.VALID,
        source=record.source,
        deviation_pct=deviation,
        severity=severity.value,
        error=as_sold.error,
    )


@dataclass
class PipelineService:
    """Turns a raw generated meals array into a validated day plan."""

    nutrition_lookup: NutritionLookup
    alert_service: AlertService = field(default_factory=AlertService)
    config: PipelineConfig = field(default_factory=PipelineConfig)
    log_sinks: list[LogSink] = field(default_factory=list)
    state_resolver: StateResolver = field(default_factory=StateResolver)

    async def execute(self, request: PipelineRequest) -> PipelineResult:
        trace_id = request.trace_id or uuid.uuid4().hex
        run = _PipelineRun(
            service=self,
            request=request,
            config=request.config or self.config,
            trace=PipelineTrace(trace_id=trace_id),
            log=TracedLogger(trace_id, _logger, list(self.log_sinks)),
        )
        try:
            return await run.execute()
        except Exception as exc:
            error = PipelineError.from_exception(exc, trace_id, run.stage)
            run.log.error(
                "Pipeline failed", code=error.code, stage=error.stage, error=str(error)
            )
            self.alert_service.emit(
                AlertLevel.CRITICAL,
                AlertType.PIPELINE_FAILURE,
                {"code": error.code, "stage": error.stage, "message": error.message},
                trace_id,
            )
            if error is exc:
                raise
            raise error from exc


@dataclass
class _PipelineRun:
    """Mutable state of a single run. Never shared between runs."""

    service: PipelineService
    request: PipelineRequest
    config: PipelineConfig
    trace: PipelineTrace
    log: TracedLogger
    stage: str | None = None
    meals: list[Meal] = field(default_factory=list)
    meal_indices: list[int] = field(default_factory=list)
    excluded: list[ExcludedMeal] = field(default_factory=list)
    excluded_types: dict[int, str] = field(default_factory=dict)
    corrections: list[Correction] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)
    records: dict[str, NutritionRecord | None] = field(default_factory=dict)
    macro_cache: MacroCache = field(default_factory=MacroCache)
    engine: InvariantEngine = field(init=False)

    def __post_init__(self) -> None:
        self.engine = InvariantEngine(self.config)

    @property
    def trace_id(self) -> str:
        return self.trace.trace_id

    async def execute(self) -> PipelineResult:
        raw_meals = self.request.raw_meals
        self.log.info("Pipeline started", config=_config_summary(self.config))
        with self._stage("entry_guard"):
            self._entry_guard(raw_meals)
        with self._stage("structure_guard"):
            candidates = self._structure_guard(raw_meals)
        with self._stage("llm_validation"):
            corrected = await self._validate_with_retry(candidates)
            self.meals = [Meal.from_payload(meal) for meal in corrected]
        with self._stage("state_normalization"):
            self._normalize_states()
        with self._stage("ingredient_extraction"):
            self.keys = extract_unique_ingredients(self.meals)
            self.trace.nutrition_stats["unique_ingredients"] = len(self.keys)
        with self._stage("nutrition_fetch"):
            await self._fetch_nutrition()
        with self._stage("macro_computation"):
            self._observe_macros()
        with self._stage("meal_reconciliation"):
            self._reconcile_meals()
        with self._stage("day_reconciliation"):
            self._reconcile_day()
        with self._stage("sanitization"):
            plan = self._sanitize()
        with self._stage("response_block_check"):
            self._check_response_block(plan)
        with self._stage("plan_validation"):
            validation = self._validate_plan(plan)
        with self._stage("emit"):
            result = PipelineResult(
                trace_id=self.trace_id,
                plan=plan,
                validation=validation,
                trace=self.trace,
                corrections=list(self.corrections),
                excluded_meals=list(self.excluded),
                violations=list(self.violations),
            )
            self.log.info(
                "Pipeline finished",
                day_totals=plan.to_dict()["dayTotals"],
                excluded_meals=len(self.excluded),
            )
        return result

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        self.stage = name
        started = time.perf_counter()
        yield
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.trace.record_stage(name, elapsed_ms)
        self.log.debug("Stage complete", stage=name, elapsed_ms=round(elapsed_ms, 3))

    # Guards and validation

    def _entry_guard(self, raw_meals: object) -> None:
        if not isinstance(raw_meals, list) or not raw_meals:
            raise StructuralError(
                "Meals input must be a non-empty array",
                trace_id=self.trace_id,
                stage=self.stage,
                context={"receivedType": type(raw_meals).__name__},
            )

    def _structure_guard(self, raw_meals: list[object]) -> list[object]:
        self.excluded = []
        self.excluded_types = {}
        self.meal_indices = []
        candidates = []
        for index, meal in enumerate(raw_meals):
            reason = _structure_problem(meal)
            if reason is None:
                candidates.append(meal)
                self.meal_indices.append(index)
                continue
            name = _meal_name(meal, index)
            self.excluded.append(ExcludedMeal(index=index, name=name, reason=reason))
            if isinstance(meal, dict) and isinstance(meal.get("type"), str):
                self.excluded_types[index] = meal["type"]
            self.log.warning("Meal excluded", meal=name, reason=reason)
        if not candidates:
            raise StructuralError(
                "No meal has a non-empty items array",
                trace_id=self.trace_id,
                stage=self.stage,
                context={"excluded": [meal.name for meal in self.excluded]},
            )
        return candidates

    async def _validate_with_retry(self, candidates: list[object]) -> list[object]:
        callback = self.request.retry_callback
        attempts = 1
        accumulated: list[str] = []
        while True:
            result = validate(candidates, SchemaKind.MEALS_ARRAY)
            self.corrections = list(result.corrections)
            self.trace.sanitization_stats["corrections"] = len(result.corrections)
            if result.valid:
                if attempts > 1:
                    self.log.info("Regenerated output passed", attempts=attempts)
                return list(result.corrected_output)

            accumulated.extend(result.errors)
            for error in result.errors:
                self._notify(self.request.progress.validation_warning, error)
            self.log.warning(
                "Generated output failed validation",
                attempt=attempts,
                errors=result.errors,
            )
            if callback is None or attempts > self.config.max_validation_retries:
                self.service.alert_service.emit(
                    AlertLevel.CRITICAL,
                    AlertType.LLM_VALIDATION_FAILED,
                    {"attempts": attempts, "errors": result.errors},
                    self.trace_id,
                )
                raise SchemaError(
                    f"Generated meals invalid after {attempts} attempt(s)",
                    errors=accumulated,
                    attempts=attempts,
                    trace_id=self.trace_id,
                    stage=self.stage,
                )
            attempts += 1
            regenerated = callback()
            if inspect.isawaitable(regenerated):
                regenerated = await regenerated
            self._entry_guard(regenerated)
            candidates = self._structure_guard(regenerated)

    # State and nutrition

    def _normalize_states(self) -> None:
        resolver = self.service.state_resolver
        sources: dict[str, int] = {}
        normalized = []
        for meal in self.meals:
            items = []
            for item in meal.items:
                resolved = resolver.apply(item)
                source = resolved.resolution.source if resolved.resolution else "none"
                sources[source] = sources.get(source, 0) + 1
                if hint_disagrees(resolved):
                    self.service.alert_service.emit(
                        AlertLevel.WARNING,
                        AlertType.STATE_DISAGREEMENT,
                        {
                            "itemKey": item.key,
                            "stateHint": item.state_hint,
                            "resolvedState": resolved.resolution.state,
                        },
                        self.trace_id,
                    )
                items.append(resolved)
            normalized.append(replace(meal, items=tuple(items)))
        self.meals = normalized
        for source, count in sources.items():
            self.trace.invariant_stats[f"state_{source}"] = count

    async def _fetch_nutrition(self) -> None:
        lookups = await asyncio.gather(*(self._lookup(key) for key in self.keys))
        self.records = dict(zip(self.keys, lookups, strict=True))
        stats = self.trace.nutrition_stats
        for record in lookups:
            self.trace.bump(stats, record.source if record else "missing")
        found = sum(1 for record in lookups if record is not None)
        stats["found"] = found
        fallback = stats.get("fallback", 0)
        rate = fallback / len(self.keys) * 100 if self.keys else 0.0
        stats["fallback_rate_pct"] = round(rate, 2)
        payload = {"fallbackRatePct": round(rate, 2), "lookups": len(self.keys)}
        if rate > self.config.fallback_critical_rate_pct:
            self.service.alert_service.emit(
                AlertLevel.CRITICAL,
                AlertType.HIGH_FALLBACK_RATE,
                payload,
                self.trace_id,
            )
        elif rate > self.config.fallback_warning_rate_pct:
            self.service.alert_service.emit(
                AlertLevel.WARNING,
                AlertType.ELEVATED_FALLBACK_RATE,
                payload,
                self.trace_id,
            )

    async def _lookup(self, key: str) -> NutritionRecord | None:
        try:
            record = await self.service.nutrition_lookup.lookup(key)
        except Exception as exc:
            self.log.warning("Nutrition lookup failed", key=key, error=str(exc))
            self.trace.bump(self.trace.nutrition_stats, "failed")
            self._notify(self.request.progress.ingredient_failed, key, str(exc))
            return None
        if record is None:
            self._notify(self.request.progress.ingredient_failed, key, "not_found")
        else:
            self._notify(self.request.progress.ingredient_found, key, record)
        return record

    # Macros

    def _macros_for(self, item: Item) -> MacroResult:
        cached = self.macro_cache.get(item)
        if cached is not None:
            return cached
        record = self.records.get(normalize_key(item.key))
        result = compute_item_macros(item, record, self.engine)
        self.macro_cache.put(item, result)
        return result

    def _observe_macros(self) -> None:
        stats = self.trace.invariant_stats
        for meal in self.meals:
            for item in meal.items:
                macros = self._macros_for(item)
                if macros.error:
                    self.trace.bump(stats, f"error_{macros.error.lower()}")
                if macros.error == "YIELD_UNMAPPED":
                    self.service.alert_service.emit(
                        AlertLevel.CRITICAL,
                        AlertType.YIELD_UNMAPPED,
                        {"itemKey": item.key, "quantityValue": item.quantity_value},
                        self.trace_id,
                    )
                elif macros.error == "QUANTITY_INVALID":
                    self.service.alert_service.emit(
                        AlertLevel.WARNING,
                        AlertType.QUANTITY_INVALID,
                        {"itemKey": item.key, "quantityValue": item.quantity_value},
                        self.trace_id,
                    )
                if macros.flagged:
                    self._flag_item(item, macros)

    def _flag_item(self, item: Item, macros: MacroResult) -> None:
        severity = Severity(macros.severity)
        self.trace.bump(self.trace.invariant_stats, f"consistency_{severity.value}")
        violation = Violation(
            invariant_id=InvariantId.MACRO_CALORIE_CONSISTENCY,
            message=(
                f"Calories for '{item.key}' deviate {macros.deviation_pct}% "
                "from macro estimate"
            ),
            severity=severity,
            context={
                "itemKey": item.key,
                "deviationPct": macros.deviation_pct,
                "rejected": macros.error == "MACRO_INCONSISTENT",
            },
        )
        self._record_violation(violation)
        self.service.alert_service.emit(
            AlertLevel.CRITICAL
            if severity is Severity.CRITICAL
            else AlertLevel.WARNING,
            AlertType.MACRO_INCONSISTENCY,
            dict(violation.context),
            self.trace_id,
        )
        self._notify(self.request.progress.ingredient_flagged, item.key, macros)

    # Reconciliation

    def _reconcile_meals(self) -> None:
        targets = self.request.targets
        if targets is None:
            self.log.debug("No targets, meal reconciliation skipped")
            return
        per_meal = targets.per_meal(len(self.meals))
        reconciled = []
        for meal in self.meals:
            result = reconcile_meal(meal, per_meal, self._macros_for, self.config)
            self._record_reconciliation(result, "meal", meal.name)
            reconciled.append(result.meal or meal)
        self.meals = reconciled

    def _reconcile_day(self) -> None:
        targets = self.request.targets
        if targets is None:
            self.log.debug("No targets, day reconciliation skipped")
            return
        result = reconcile_day(self.meals, targets, self._macros_for, self.config)
        self._record_reconciliation(result, "day", None)
        if result.meals is not None:
            self.meals = list(result.meals)

    def _record_reconciliation(
        self, result: ReconciliationResult, scope: str, meal_name: str | None
    ) -> None:
        entry = result.to_dict(scope)
        if meal_name is not None:
            entry["meal"] = meal_name
        self.trace.reconciliation.append(entry)
        if result.violation is None:
            return
        self._record_violation(result.violation)
        self.service.alert_service.emit(
            AlertLevel.WARNING,
            AlertType.RECONCILIATION_OUT_OF_BOUNDS,
            {"scope": scope, "meal": meal_name, **result.violation.context},
            self.trace_id,
        )

    # Sanitization and final checks

    def _sanitize(self) -> DayPlan:
        stats = self.trace.sanitization_stats
        computed: dict[int, PlanMeal] = {}
        for index, meal in zip(self.meal_indices, self.meals, strict=True):
            macros = [self._macros_for(item) for item in meal.items]
            absorbed = distribute_absorbed_oil(
                meal.items, [result.grams_as_sold for result in macros]
            )
            plan_items = []
            totals = MacroTotals()
            for item, result, oil in zip(meal.items, macros, absorbed, strict=True):
                clean = _finite_macros(replace(result, absorbed_oil_g=oil))
                if clean != replace(result, absorbed_oil_g=oil):
                    self.trace.bump(stats, "non_finite_replaced")
                plan_items.append(PlanItem(item=item, macros=clean))
                totals = totals.add(clean)
            computed[index] = PlanMeal(
                type=meal.type,
                name=meal.name,
                items=tuple(plan_items),
                totals=totals.rounded(),
            )
        for excluded in self.excluded:
            computed[excluded.index] = PlanMeal(
                type=self.excluded_types.get(excluded.index, ""),
                name=excluded.name,
                items=(),
                totals=MacroTotals(),
                excluded=True,
                exclusion_reason=excluded.reason,
            )
        meals = tuple(computed[index] for index in sorted(computed))
        day_totals = MacroTotals()
        for meal in meals:
            for plan_item in meal.items:
                day_totals = day_totals.add(plan_item.macros)
        stats["items"] = sum(len(meal.items) for meal in meals)
        stats["macro_cache_hits"] = self.macro_cache.hits
        return DayPlan(
            meals=meals, day_totals=day_totals.rounded(), targets=self.request.targets
        )

    def _check_response_block(self, plan: DayPlan) -> None:
        items = [plan_item for meal in plan.meals for plan_item in meal.items]
        flagged = sum(1 for plan_item in items if plan_item.macros.flagged)
        rate = flagged / len(items) * 100 if items else 0.0
        stats = self.trace.invariant_stats
        stats["flagged_items"] = flagged
        stats["total_items"] = len(items)
        threshold = self.config.response_block_threshold_pct
        if rate <= threshold:
            return
        violation = Violation(
            invariant_id=InvariantId.RESPONSE_FLAGGED_RATE,
            message=(
                f"{flagged} of {len(items)} items flagged ({rate:.1f}%), "
                f"above {threshold:g}%"
            ),
            severity=Severity.CRITICAL,
            context={
                "flaggedItems": flagged,
                "totalItems": len(items),
                "flaggedRatePct": round(rate, 2),
                "thresholdPct": threshold,
            },
        )
        self.service.alert_service.emit(
            AlertLevel.CRITICAL,
            AlertType.RESPONSE_BLOCKED,
            dict(violation.context),
            self.trace_id,
        )
        raise ResponseBlockedError(violation, trace_id=self.trace_id, stage=self.stage)

    def _validate_plan(self, plan: DayPlan) -> PlanValidation:
        meals = [meal for meal in plan.meals if not meal.excluded]
        plan_macros = {
            entry.item: entry.macros for meal in meals for entry in meal.items
        }
        violations = self.engine.check_day_plan(
            [(meal.name, [entry.item for entry in meal.items]) for meal in meals],
            plan.day_totals,
            plan.targets,
            item_macros=plan_macros.get,
        )
        for violation in violations:
            self.trace.bump(self.trace.invariant_stats, str(violation.invariant_id))

        warnings = [item for item in violations if item.severity is Severity.WARNING]
        criticals = [item for item in violations if item.severity is Severity.CRITICAL]
        for violation in warnings:
            self._notify(self.request.progress.validation_warning, violation.message)
        self.violations.extend(violations)
        if criticals:
            self.service.alert_service.emit(
                AlertLevel.CRITICAL,
                AlertType.VALIDATION_CRITICAL,
                {"criticals": [violation_dict(item) for item in criticals]},
                self.trace_id,
            )
            if self.config.block_on_critical_validation:
                raise PlanValidationError(
                    f"Plan validation found {len(criticals)} critical issue(s)",
                    trace_id=self.trace_id,
                    stage=self.stage,
                    context={"criticals": [violation_dict(item) for item in criticals]},
                )
        return PlanValidation(
            valid=not criticals, warnings=warnings, criticals=criticals
        )

    # Helpers

    def _record_violation(self, violation: Violation) -> None:
        self.violations.append(violation)
        self.trace.bump(self.trace.invariant_stats, str(violation.invariant_id))
        if violation.severity is Severity.WARNING:
            self._notify(self.request.progress.invariant_warning, violation)

    def _notify(self, hook: Callable[..., None] | None, *args: object) -> None:
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            _logger.exception("Progress hook %s failed", hook)


def _structure_problem(meal: object) -> str | None:
    if not isinstance(meal, dict):
        return "meal is not an object"
    items = meal.get("items")
    if not isinstance(items, list):
        return "items is not an array"
    if not items:
        return "items is empty"
    return None


def _meal_name(meal: object, index: int) -> str:
    if isinstance(meal, dict) and isinstance(meal.get("name"), str) and meal["name"]:
        return meal["name"]
    return f"Meal #{index + 1}"


def _finite_macros(macros: MacroResult) -> MacroResult:
    return replace(
        macros,
        kcal=finite_or_zero(macros.kcal),
        protein=finite_or_zero(macros.protein),
        fat=finite_or_zero(macros.fat),
        carbs=finite_or_zero(macros.carbs),
        grams_as_sold=finite_or_zero(macros.grams_as_sold),
        absorbed_oil_g=finite_or_zero(macros.absorbed_oil_g),
        deviation_pct=(
            None
            if macros.deviation_pct is None
            else finite_or_zero(macros.deviation_pct)
        ),
    )


def _config_summary(config: PipelineConfig) -> dict[str, object]:
    return {item.name: getattr(config, item.name) for item in fields(config)}
