from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from core.default_config import default_config_copy


def load_config(base_path: str | Path, *, custom_name: str = "custom.yml") -> dict[str, Any]:
    """
    Load configuration with the following precedence:
    1. Built-in defaults.
    2. BIDREPORT_CONFIG_JSON (inline JSON) or BIDREPORT_CONFIG_PATH (file).
    3. Optional base config file (config.yml/config.json) when present.
    4. Optional custom overrides (custom.yml/custom.json) next to the base file.
    """
    config = default_config_copy()

    env_json = os.environ.get("BIDREPORT_CONFIG_JSON")
    env_path = os.environ.get("BIDREPORT_CONFIG_PATH")
    if env_json:
        config = _deep_merge(config, json.loads(env_json))
    elif env_path:
        path = Path(env_path)
        if not path.exists():
            raise FileNotFoundError(f"Environment config path '{env_path}' not found.")
        config = _deep_merge(config, _load_structured_file(path))

    base_file = _find_file(Path(base_path))
    base_dir = None
    if base_file:
        config = _deep_merge(config, _load_structured_file(base_file))
        base_dir = base_file.parent

    custom_dirs = [base_dir] if base_dir else []
    custom_dirs.append(Path.cwd())
    custom_file = _find_file(Path(custom_name), extra_dirs=custom_dirs)
    if custom_file:
        config = _deep_merge(config, _load_structured_file(custom_file))

    # Account ids are strings; a bare YAML item such as ``- 1024`` parses as int.
    analytics = config.get("analytics")
    if isinstance(analytics, dict) and isinstance(analytics.get("excluded_account_ids"), list):
        analytics["excluded_account_ids"] = [str(item) for item in analytics["excluded_account_ids"]]
    return config


def _find_file(path: Path, *, extra_dirs: Iterable[Path] = ()) -> Optional[Path]:
    candidates: list[Path] = [path, *_alternate_paths(path)]
    for directory in extra_dirs:
        candidates.append(directory / path.name)
        candidates.extend(_alternate_paths(directory / path.name))

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate
    return None


def _alternate_paths(path: Path) -> list[Path]:
    suffix = path.suffix.lower()
    base = path.with_suffix("")
    if suffix == ".json":
        return [base.with_suffix(".yml"), base.with_suffix(".yaml")]
    if suffix in {".yml", ".yaml"}:
        return [base.with_suffix(".json")]
    return []


def _deep_merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> dict[str, Any]:
    merged = deepcopy(dict(base))
    for key, value in overrides.items():
        if isinstance(merged.get(key), Mapping) and isinstance(value, Mapping):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


def _load_structured_file(path: Path) -> Mapping[str, Any]:
    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as fp:
        if suffix in {".yml", ".yaml"}:
            data = _parse_yaml(fp.read())
        elif suffix == ".json":
            data = json.load(fp)
        else:
            raise ValueError(f"Unsupported config format: {path}")
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping.")
    return data


def dump_config(path: Path, data: Mapping[str, Any]) -> None:
    suffix = path.suffix.lower()
    path.parent.mkdir(parents=True, exist_ok=True)
    if suffix in {".yml", ".yaml"}:
        lines = _yaml_lines(data, indent=0)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    elif suffix == ".json":
        with path.open("w", encoding="utf-8") as fp:
            json.dump(data, fp, ensure_ascii=False, indent=2)
    else:
        raise ValueError(f"Unsupported config format: {path}")


def _parse_yaml(text: str) -> dict[str, Any]:
    """Parse the nested-mapping / scalar-list subset of YAML used by config files."""
    root: dict[str, Any] = {}
    # (indent, container, parent container, key in parent)
    stack: list[tuple[int, Any, Any, Optional[str]]] = [(-1, root, None, None)]
    for raw_line in text.splitlines():
        line = _strip_comment(raw_line).rstrip()
        stripped = line.lstrip()
        if not stripped:
            continue
        indent = len(line) - len(stripped)
        while indent <= stack[-1][0]:
            stack.pop()
        _, container, parent, key_in_parent = stack[-1]

        if stripped.startswith("- ") or stripped == "-":
            if isinstance(container, dict):
                if container or parent is None:
                    raise ValueError(f"Unexpected list item: {raw_line!r}")
                container = []
                parent[key_in_parent] = container
                stack[-1] = (stack[-1][0], container, parent, key_in_parent)
            container.append(_parse_scalar(stripped[1:].strip()))
            continue

        if ":" not in stripped or not isinstance(container, dict):
            raise ValueError(f"Unsupported YAML line: {raw_line!r}")
        key, value_text = (part.strip() for part in stripped.split(":", 1))
        if value_text:
            container[key] = _parse_scalar(value_text)
        else:
            child: dict[str, Any] = {}
            container[key] = child
            stack.append((indent, child, container, key))
    return root


def _strip_comment(line: str) -> str:
    """Drop a trailing ``#`` comment; a ``#`` inside quotes or glued to a word is kept."""
    quote: Optional[str] = None
    for index, char in enumerate(line):
        previous = line[index - 1] if index else " "
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'" and (previous.isspace() or previous in "[{,"):
            quote = char
        elif char == "#" and previous.isspace():
            return line[:index]
    return line


def _parse_scalar(value: str) -> Any:
    if not value:
        return ""
    if value[0] in "\"'" and value[-1] == value[0]:
        return value[1:-1]
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in {"null", "~"}:
        return None
    if value[0] in "[{":
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    try:
        return float(value) if "." in value else int(value)
    except ValueError:
        return value


def _yaml_lines(value: Any, indent: int) -> list[str]:
    lines: list[str] = []
    prefix = " " * indent
    if isinstance(value, Mapping):
        for key, item in value.items():
            if isinstance(item, Mapping) and item:
                lines.append(f"{prefix}{key}:")
                lines.extend(_yaml_lines(item, indent + 2))
            else:
                lines.append(f"{prefix}{key}: {_format_scalar(item)}")
    return lines


def _format_scalar(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    text = str(value)
    if not text or any(ch in text for ch in ":#{}[]") or text.strip() != text or " " in text:
        return json.dumps(text, ensure_ascii=False)
    return text
