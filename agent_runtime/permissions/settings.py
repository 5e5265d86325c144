"""
Settings files supplying static permission rules.

Sources:
- user:    <home>/settings.json (default home: ~/.agent-runtime)
- project: <cwd>/.agent-runtime/settings.json
- local:   <cwd>/.agent-runtime/settings.local.json

Each file may contain ``{"permissions": {"allow": [...], "deny": [...]}}``.
"""

import json
from pathlib import Path
from typing import Literal, Optional

from agent_runtime.config import DEFAULT_HOME_DIRNAME
from agent_runtime.permissions.manager import PermissionRule
from agent_runtime.utils.logger import get_logger

log = get_logger(__name__)

SettingSource = Literal["user", "project", "local"]


class SettingsManager:
    def __init__(self, cwd: str | Path, home_dir: Optional[str | Path] = None) -> None:
        self.cwd = Path(cwd)
        self.home_dir = Path(home_dir) if home_dir else Path.home() / DEFAULT_HOME_DIRNAME

    def source_path(self, source: SettingSource) -> Path:
        if source == "user":
            return self.home_dir / "settings.json"
        if source == "project":
            return self.cwd / DEFAULT_HOME_DIRNAME / "settings.json"
        if source == "local":
            return self.cwd / DEFAULT_HOME_DIRNAME / "settings.local.json"
        raise ValueError(f"Unknown settings source: {source}")

    def _read_json(self, path: Path) -> Optional[dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            log.debug(f"Ignoring unreadable settings file {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def load_rules(
        self, sources: list[SettingSource]
    ) -> tuple[list[PermissionRule], list[PermissionRule]]:
        """Return ``(allow_rules, deny_rules)`` merged across ``sources`` in order."""
        allow: list[PermissionRule] = []
        deny: list[PermissionRule] = []

        for source in sources:
            data = self._read_json(self.source_path(source))
            permissions = (data or {}).get("permissions")
            if not isinstance(permissions, dict):
                continue

            for key, bucket in (("allow", allow), ("deny", deny)):
                rules = permissions.get(key)
                if isinstance(rules, list):
                    bucket.extend(PermissionRule.parse(r) for r in rules if isinstance(r, str))

        if allow or deny:
            log.debug(f"Loaded {len(allow)} allow / {len(deny)} deny rules from {sources}")
        return allow, deny
