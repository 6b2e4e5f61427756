"""Alert rule storage and validation."""
import math
import uuid
import logging
import yaml
from enum import Enum
from dataclasses import replace
from pathlib import Path

from models.alerts import AlertRule, utcnow
from models.errors import InvalidRule, NotFound

logger = logging.getLogger("cfalerts.alerts.rules")

IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}


def validate_rule(rule):
    """Raise InvalidRule if the rule breaks an invariant."""
    if not isinstance(rule.name, str) or not rule.name.strip():
        raise InvalidRule("Rule name must not be empty", field="name")
    if isinstance(rule.value, bool) or not isinstance(rule.value, (int, float)):
        raise InvalidRule("Rule value must be a number", field="value")
    if not math.isfinite(rule.value) or rule.value < 0:
        raise InvalidRule(f"Rule value must be a non-negative number, got {rule.value}", field="value")
    if rule.condition.windowed:
        window = rule.time_window_minutes
        if isinstance(window, bool) or not isinstance(window, int) or window < 1:
            raise InvalidRule(
                f"time_window_minutes must be an integer >= 1 for {rule.condition.value} rules",
                field="time_window_minutes",
            )
    if rule.cooldown_minutes is not None and rule.cooldown_minutes < 0:
        raise InvalidRule("cooldown_minutes must be >= 0", field="cooldown_minutes")


class RulesManager:
    """CRUD store for alert rules, persisted in the alert_rules table."""

    def __init__(self, db, clock=utcnow):
        self.db = db
        self.clock = clock

    def create(self, rule):
        """Validate and persist a new rule. Returns the assigned id."""
        if isinstance(rule, dict):
            rule = AlertRule.from_dict(rule)
        rule = replace(rule, name=rule.name.strip() if isinstance(rule.name, str) else rule.name)
        validate_rule(rule)

        now = self.clock()
        rule = replace(rule, id=f"rule_{uuid.uuid4().hex[:12]}", created_at=now, updated_at=now)
        self.db.insert_rule(rule)
        logger.info(f"Created rule {rule.id} ({rule.name})")
        return rule.id

    def update(self, rule_id, changes=None, **fields):
        """Apply a partial update (dict and/or keyword fields). Returns the stored rule."""
        changes = {**(changes or {}), **fields}
        existing = self.get(rule_id)
        blocked = IMMUTABLE_FIELDS & changes.keys()
        if blocked:
            raise InvalidRule(f"Cannot change {', '.join(sorted(blocked))}", field=sorted(blocked)[0])

        merged = existing.to_dict()
        merged.update({k: v.value if isinstance(v, Enum) else v for k, v in changes.items()})
        unknown = set(merged) - set(existing.to_dict())
        if unknown:
            raise InvalidRule(f"Unknown rule field(s): {', '.join(sorted(unknown))}")

        updated = AlertRule.from_dict(merged)
        updated = replace(updated, name=updated.name.strip(), created_at=existing.created_at,
                          updated_at=self.clock())
        validate_rule(updated)

        if not self.db.update_rule(updated):
            raise NotFound("rule", rule_id)
        logger.info(f"Updated rule {rule_id}: {', '.join(sorted(changes))}")
        return updated

    def delete(self, rule_id):
        """Delete a rule. Missing ids are ignored."""
        if self.db.delete_rule(rule_id):
            logger.info(f"Deleted rule {rule_id}")
        else:
            logger.debug(f"Delete of unknown rule {rule_id} ignored")

    def get(self, rule_id):
        row = self.db.get_rule(rule_id)
        if row is None:
            raise NotFound("rule", rule_id)
        return AlertRule.from_dict(row)

    def list(self, enabled_only=False):
        return [AlertRule.from_dict(r) for r in self.db.list_rules(enabled_only=enabled_only)]

    def get_enabled_rules(self):
        return self.list(enabled_only=True)

    def import_yaml(self, path):
        """Create rules from a YAML file with a top-level `rules:` list.

        Invalid entries are logged and skipped. Returns the created ids.
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Alert rules file not found: {path}")
            return []
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        created = []
        for i, raw in enumerate(data.get("rules", [])):
            raw = {k: v for k, v in raw.items() if k not in IMMUTABLE_FIELDS}
            try:
                created.append(self.create(raw))
            except InvalidRule as e:
                logger.warning(f"Skipping rule #{i + 1} ({raw.get('name', '?')}) in {path}: {e}")
        logger.info(f"Imported {len(created)} rule(s) from {path}")
        return created
