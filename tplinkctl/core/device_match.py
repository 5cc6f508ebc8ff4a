"""Model-to-capability matching logic."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from tplinkctl.core.capabilities import BUNDLES, UNKNOWN, CapabilitySet
from tplinkctl.core.model import ModelRule, SysInfo


def _pattern_match(model: str, rule: ModelRule) -> bool:
    return rule.pattern.lower() in model.lower()


def match_rule(model: str, rules: Sequence[ModelRule]) -> ModelRule | None:
    """Return the first rule, in table order, whose pattern occurs in ``model``."""
    for rule in rules:
        if _pattern_match(model, rule):
            return rule
    return None


def identify(sysinfo: Mapping[str, Any] | SysInfo, rules: Sequence[ModelRule]) -> CapabilitySet:
    model = sysinfo.model if isinstance(sysinfo, SysInfo) else sysinfo.get("model")
    if not isinstance(model, str) or not model:
        return UNKNOWN
    rule = match_rule(model, rules)
    if rule is None:
        return UNKNOWN
    return BUNDLES[rule.device_class]
