import json
from decimal import Decimal
from pathlib import Path

import pytest

import diff_proportions.service as service
from diff_proportions.config import ConfigError
from diff_proportions.engine import InvalidTargetSum, ProportionEngine
from diff_proportions.models import ItemSettings, ProportionSettings
from diff_proportions.service import build_engine, process_scenario, run_convergence


def _write_worked_scenario(tmp_path: Path, log_path: Path) -> Path:
    path = tmp_path / "proportion.yml"
    path.write_text(
        f"""
version: 1
proportion:
  target_sum: 54
  increment: 1
  items:
    - current_value: 7
      target_value: 18
    - current_value: 3
      target_value: 12
    - current_value: 13
      target_value: 24
app:
  log_path: "{log_path}"
""".strip(),
        encoding="utf-8",
    )
    return path


def _read_events(path: Path) -> list[dict]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def _stdout_events(output: str) -> list[dict]:
    decoder = json.JSONDecoder()
    events = []
    index = 0
    text = output.strip()
    while index < len(text):
        event, index = decoder.raw_decode(text, index)
        events.append(event)
        while index < len(text) and text[index].isspace():
            index += 1
    return events


def test_build_engine_uses_cold_start_without_current_values() -> None:
    settings = ProportionSettings(
        target_sum=Decimal("10"),
        increment=Decimal("1"),
        items=[ItemSettings(target_share=Decimal("40")), ItemSettings(target_share=Decimal("60"))],
    )

    engine = build_engine(settings)

    assert engine.current_sum() == 0
    assert engine.items[1].target_share == Decimal("40")
    assert engine.items[2].target_value == Decimal("6")


def test_build_engine_uses_warm_start_and_defaults_missing_values_to_zero() -> None:
    settings = ProportionSettings(
        target_sum=Decimal("10"),
        increment=Decimal("1"),
        items=[
            ItemSettings(target_share=Decimal("40"), current_value=Decimal("3")),
            ItemSettings(target_share=Decimal("60")),
        ],
    )

    engine = build_engine(settings)

    assert [item.current_value for item in engine.items.values()] == [3, 0]
    assert engine.items[1].current_share == 100


def test_run_convergence_records_every_step(tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    engine = ProportionEngine(2, 1, [50, 50])

    result = run_convergence(engine, log_path=log_path)

    assert result.status == "converged"
    assert result.step_count == 2
    assert result.final_sum == 2
    assert [record.incremented_key for record in result.steps] == [None, 1, 2]
    assert [record.next_item_key for record in result.steps] == [1, 2, None]
    assert result.steps[1].current_values == (Decimal(1), Decimal(0))
    assert result.steps[2].current_shares == (Decimal(50), Decimal(50))
    assert result.steps[2].diff_std_dev == 0

    events = _read_events(log_path)
    assert [event["event_name"] for event in events] == [
        "convergence_step",
        "convergence_step",
        "convergence_completed",
    ]
    assert events[0]["incremented_key"] == 1
    assert events[-1]["status"] == "converged"
    assert events[-1]["final_sum"] == "2"
    assert events[-1]["final_values"] == ["1", "1"]


def test_run_convergence_is_noop_for_terminal_engine(tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    engine = ProportionEngine.from_item_pairs(10, 1, [(5, 50), (5, 50)])

    result = run_convergence(engine, log_path=log_path)

    assert result.status == "noop"
    assert result.step_count == 0
    assert result.steps[0].next_item_key is None
    events = _read_events(log_path)
    assert len(events) == 1
    assert events[0]["event_name"] == "convergence_completed"
    assert events[0]["status"] == "noop"


def test_run_convergence_prints_every_event_when_no_log_path(capsys) -> None:
    run_convergence(ProportionEngine(2, 1, [50, 50]), log_path=None)

    events = _stdout_events(capsys.readouterr().out)
    assert [event["event_name"] for event in events] == [
        "convergence_step",
        "convergence_step",
        "convergence_completed",
    ]
    assert [event["step_number"] for event in events[:2]] == [1, 2]
    assert events[-1]["step_count"] == 2


def test_process_scenario_runs_worked_example(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "run.log"
    config_path = _write_worked_scenario(tmp_path, log_path)

    run = process_scenario(config_path)
    result = run.result

    assert result.status == "converged"
    assert result.step_count == 31
    assert result.final_sum == 54
    assert result.steps[0].current_values == (7, 3, 13)
    assert result.steps[0].next_item_key == 2

    events = _read_events(log_path)
    assert len(events) == 32
    assert events[-1]["source_label"] == str(config_path)
    assert events[-1]["step_count"] == 31


def test_process_scenario_explicit_log_path_overrides_config(tmp_path: Path) -> None:
    config_log = tmp_path / "config.log"
    override = tmp_path / "override.log"
    config_path = _write_worked_scenario(tmp_path, config_log)

    process_scenario(config_path, log_path=override)

    assert override.exists()
    assert not config_log.exists()


def test_process_scenario_logs_failure_and_reraises(tmp_path: Path, monkeypatch) -> None:
    log_path = tmp_path / "run.log"
    config_path = _write_worked_scenario(tmp_path, log_path)

    def _raise(_settings):
        raise InvalidTargetSum("Target sum must be greater than zero, got 0.")

    monkeypatch.setattr(service, "build_engine", _raise)

    with pytest.raises(InvalidTargetSum):
        process_scenario(config_path)

    events = _read_events(log_path)
    assert events[-1]["event_name"] == "convergence_run_failed"
    assert events[-1]["status"] == "failed"
    assert "greater than zero" in events[-1]["error_message"]


def test_process_scenario_returns_loaded_config(tmp_path: Path) -> None:
    config_path = _write_worked_scenario(tmp_path, tmp_path / "run.log")

    run = process_scenario(config_path)

    assert run.config.proportion.target_sum == 54
    assert run.config.app.share_digits == 2


def test_process_scenario_logs_config_errors_to_stdout(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "proportion.yml"
    config_path.write_text("version: 2\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Unsupported version '2'"):
        process_scenario(config_path, log_to_stdout=True)

    events = _stdout_events(capsys.readouterr().out)
    assert len(events) == 1
    assert events[0]["event_name"] == "convergence_run_failed"
    assert events[0]["source_label"] == str(config_path)
