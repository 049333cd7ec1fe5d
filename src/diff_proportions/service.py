from __future__ import annotations

from pathlib import Path
from typing import Any

from diff_proportions.config import load_config
from diff_proportions.engine import ProportionEngine
from diff_proportions.logger import append_log_event
from diff_proportions.models import ConvergenceResult, ProportionSettings, ScenarioRun, StepRecord
from diff_proportions.utils import now_local_iso


def build_engine(settings: ProportionSettings) -> ProportionEngine:
    if all(item.current_value is None for item in settings.items):
        return ProportionEngine(
            settings.target_sum,
            settings.increment,
            [item.target_share for item in settings.items],
        )

    pairs = [
        (item.current_value if item.current_value is not None else 0, item.target_share)
        for item in settings.items
    ]
    return ProportionEngine.from_item_pairs(settings.target_sum, settings.increment, pairs)


def process_scenario(config_path: Path, log_to_stdout: bool = False, log_path: Path | None = None) -> ScenarioRun:
    source_label = str(config_path)
    if log_to_stdout:
        log_path = None
    try:
        runtime_config = load_config(config_path)
        if not log_to_stdout:
            log_path = log_path or runtime_config.app.log_path
        engine = build_engine(runtime_config.proportion)
        result = run_convergence(engine, log_path=log_path, source_label=source_label)
        return ScenarioRun(config=runtime_config, result=result)
    except Exception as exc:
        append_log_event(
            log_path,
            {
                "timestamp": now_local_iso(),
                "event_name": "convergence_run_failed",
                "source_label": source_label,
                "status": "failed",
                "error_message": str(exc),
            },
        )
        raise


def run_convergence(
    engine: ProportionEngine,
    log_path: Path | None = None,
    source_label: str = "inline",
) -> ConvergenceResult:
    steps = [snapshot(engine, step_number=0, incremented_key=None)]
    while engine.can_increment():
        key = engine.step()
        record = snapshot(engine, step_number=len(steps), incremented_key=key)
        steps.append(record)
        append_log_event(log_path, _build_step_event(record, source_label))

    if len(steps) == 1:
        status = "noop"
        message = "Current sum is already within one increment of the target sum."
    else:
        status = "converged"
        message = f"Reached current sum {engine.current_sum()} in {len(steps) - 1} steps."

    result = ConvergenceResult(
        status=status,
        message=message,
        target_sum=engine.target_sum,
        final_sum=engine.current_sum(),
        steps=tuple(steps),
    )
    append_log_event(log_path, _build_summary_event(result, source_label))
    return result


def snapshot(engine: ProportionEngine, step_number: int, incremented_key: int | None) -> StepRecord:
    items = engine.items
    return StepRecord(
        step_number=step_number,
        incremented_key=incremented_key,
        current_values=tuple(item.current_value for item in items.values()),
        current_shares=tuple(item.current_share for item in items.values()),
        current_sum=engine.current_sum(),
        diff_std_dev=engine.diff_std_dev(),
        next_item_key=engine.next_item_to_increment(),
    )


def _build_step_event(record: StepRecord, source_label: str) -> dict[str, Any]:
    return {
        "timestamp": now_local_iso(),
        "event_name": "convergence_step",
        "source_label": source_label,
        "step_number": record.step_number,
        "incremented_key": record.incremented_key,
        "current_values": list(record.current_values),
        "current_sum": record.current_sum,
        "diff_std_dev": record.diff_std_dev,
        "next_item_key": record.next_item_key,
    }


def _build_summary_event(result: ConvergenceResult, source_label: str) -> dict[str, Any]:
    return {
        "timestamp": now_local_iso(),
        "event_name": "convergence_completed",
        "source_label": source_label,
        "status": result.status,
        "message": result.message,
        "step_count": result.step_count,
        "target_sum": result.target_sum,
        "final_sum": result.final_sum,
        "final_values": list(result.steps[-1].current_values),
    }
