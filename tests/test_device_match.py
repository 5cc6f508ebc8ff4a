from tplinkctl.core.capabilities import BUNDLES, UNKNOWN
from tplinkctl.core.device_match import identify, match_rule
from tplinkctl.core.model import ModelRule, SysInfo


def _rules(*pairs: tuple[str, str]) -> tuple[ModelRule, ...]:
    return tuple(ModelRule(pattern=pattern, device_class=device_class) for pattern, device_class in pairs)


def test_first_listed_pattern_wins() -> None:
    rules = _rules(("HS110", "plug_emeter"), ("HS1", "plug"))
    assert identify({"model": "HS110(UK)"}, rules) is BUNDLES["plug_emeter"]

    reversed_rules = tuple(reversed(rules))
    assert identify({"model": "HS110(UK)"}, reversed_rules) is BUNDLES["plug"]


def test_match_is_case_insensitive_substring() -> None:
    rules = _rules(("kl130", "bulb_color"))
    rule = match_rule("KL130B(US)", rules)
    assert rule is not None
    assert rule.device_class == "bulb_color"


def test_no_match_returns_unknown() -> None:
    rules = _rules(("HS100", "plug"))
    capabilities = identify({"model": "EP40(US)"}, rules)
    assert capabilities is UNKNOWN
    assert dict(capabilities.operations) == {}


def test_missing_model_returns_unknown() -> None:
    assert identify({"alias": "Mystery"}, _rules(("HS100", "plug"))) is UNKNOWN


def test_accepts_decoded_sysinfo() -> None:
    sysinfo = SysInfo(model="HS300(US)", alias="Strip", device_id="ABC")
    assert identify(sysinfo, _rules(("HS300", "strip_emeter"))).name == "strip_emeter"
