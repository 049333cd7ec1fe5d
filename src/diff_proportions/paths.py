from __future__ import annotations

from pathlib import Path


def resolve_scenario_path(cli_value: Path | None, cwd: Path) -> Path:
    if cli_value is not None:
        return cli_value

    yml = cwd / "proportion.yml"
    yaml = cwd / "proportion.yaml"
    if yml.exists():
        return yml
    if yaml.exists():
        return yaml
    return yml
