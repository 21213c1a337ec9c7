"""
Tests for stealth profile composition.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-RS-N-01 | None | Equivalence – normal | All toggles off | Default |
| TC-RS-N-02 | False | Equivalence – normal | All toggles off | Flag off |
| TC-RS-N-03 | True | Equivalence – normal | All toggles on | Flag on |
| TC-RS-N-04 | all=True, root_domain_preload=False | Equivalence – normal | All but preload on | Explicit wins |
| TC-RS-N-05 | webdriver=True, plugins=True | Equivalence – normal | Only those on | Partial |
| TC-RS-N-06 | all=False, webdriver=True | Equivalence – normal | Only webdriver on | all=False |
| TC-RS-N-07 | Resolved profile | Equivalence – idempotent | Same profile | Idempotence |
| TC-RS-N-08 | Mapping input | Equivalence – normal | Same as options | Dict form |
| TC-RS-A-01 | Mapping with unknown key | Abnormal – unknown | Key ignored, no raise | Never raises |
| TC-RS-A-02 | Mapping with non-bool value | Abnormal – malformed | All off, no raise | Never raises |
| TC-PO-N-01 | No options, no flag | Equivalence – normal | False | Bare flag |
| TC-PO-N-02 | --stealth only | Equivalence – normal | True | Bare flag |
| TC-PO-N-03 | camel/lower/kebab keys | Equivalence – normal | Same field | Aliases |
| TC-PO-N-04 | --stealth with key=off | Equivalence – normal | all=True + override | Composition |
| TC-PO-A-01 | Missing '=' | Abnormal – format | InvalidConfigurationError | Format |
| TC-PO-A-02 | Unknown key | Abnormal – unknown | InvalidConfigurationError | Key |
| TC-PO-A-03 | Value 'maybe' | Abnormal – value | InvalidConfigurationError | Value |
| TC-IS-N-01 | All toggles off | Equivalence – normal | No init script | None |
| TC-IS-N-02 | webdriver only | Equivalence – normal | Script with webdriver=true | Flags JSON |
| TC-IS-B-01 | Non-DOM toggles only | Boundary – DOM set empty | No init script | headers/args |
| TC-LA-N-01 | launch_args on/off | Equivalence – normal | Args list / empty | Launch args |
"""

import json

import pytest

pytestmark = pytest.mark.unit

from src.crawler.stealth import (
    DOM_TOGGLES,
    STEALTH_LAUNCH_ARGS,
    STEALTH_TOGGLES,
    StealthOptions,
    StealthProfile,
    build_init_script,
    get_stealth_args,
    parse_stealth_options,
    resolve_stealth,
)
from src.utils.errors import InvalidConfigurationError, SpydrErrorCode


class TestResolveStealth:
    """Tests for resolve_stealth()."""

    @pytest.mark.parametrize("value", [None, False])
    def test_off(self, value):
        """None and False disable every toggle (TC-RS-N-01, TC-RS-N-02)."""
        profile = resolve_stealth(value)

        assert profile.enabled is False
        assert profile.enabled_features() == []

    def test_true_enables_everything(self):
        """True enables every toggle (TC-RS-N-03)."""
        profile = resolve_stealth(True)

        assert profile.all is True
        assert profile.enabled_features() == list(STEALTH_TOGGLES)

    def test_explicit_field_overrides_all(self):
        """An explicit field beats all=True (TC-RS-N-04)."""
        profile = resolve_stealth(StealthOptions(all=True, root_domain_preload=False))

        assert profile.root_domain_preload is False
        assert profile.all is False
        assert profile.enabled_features() == [
            name for name in STEALTH_TOGGLES if name != "root_domain_preload"
        ]

    def test_partial_options(self):
        """Without all, only explicitly set fields are on (TC-RS-N-05)."""
        profile = resolve_stealth(StealthOptions(webdriver=True, plugins=True))

        assert profile.enabled_features() == ["webdriver", "plugins"]
        assert profile.launch_args is False
        assert profile.headers_realistic is False

    def test_all_false_with_field(self):
        """all=False behaves like unset all (TC-RS-N-06)."""
        profile = resolve_stealth(StealthOptions(all=False, webdriver=True))

        assert profile.enabled_features() == ["webdriver"]

    def test_idempotent(self):
        """Resolving a resolved profile returns it unchanged (TC-RS-N-07)."""
        profile = resolve_stealth(StealthOptions(all=True, chrome=False))

        assert resolve_stealth(profile) == profile
        assert resolve_stealth(resolve_stealth(profile)) is profile

    def test_mapping(self):
        """Mappings are read as StealthOptions (TC-RS-N-08)."""
        from_dict = resolve_stealth({"all": True, "launch_args": False})
        from_options = resolve_stealth(StealthOptions(all=True, launch_args=False))

        assert from_dict == from_options

    def test_unknown_mapping_key_ignored(self):
        """Unknown keys are dropped instead of raising (TC-RS-A-01)."""
        profile = resolve_stealth({"webdriver": True, "canvas_noise": True})

        assert profile.enabled_features() == ["webdriver"]

    def test_malformed_mapping_disables(self):
        """A value that is not a bool falls back to all off (TC-RS-A-02)."""
        profile = resolve_stealth({"webdriver": "definitely"})

        assert profile == StealthProfile()


class TestParseStealthOptions:
    """Tests for parse_stealth_options()."""

    def test_no_options_no_flag(self):
        """No options and no flag yields False (TC-PO-N-01)."""
        assert parse_stealth_options([]) is False

    def test_flag_only(self):
        """A bare --stealth yields True (TC-PO-N-02)."""
        assert parse_stealth_options([], stealth_flag=True) is True

    @pytest.mark.parametrize(
        "key",
        ["headersRealistic", "headersrealistic", "headers-realistic", "headers_realistic"],
    )
    def test_key_aliases(self, key: str):
        """camelCase, lowercase and kebab-case keys map to one field (TC-PO-N-03)."""
        options = parse_stealth_options([f"{key}=on"])

        assert isinstance(options, StealthOptions)
        assert options.headers_realistic is True
        assert options.all is None

    def test_flag_with_override(self):
        """--stealth plus key=off keeps all and overrides the key (TC-PO-N-04)."""
        options = parse_stealth_options(["rootDomainPreload=off"], stealth_flag=True)

        assert isinstance(options, StealthOptions)
        assert options.all is True
        assert options.root_domain_preload is False

        profile = resolve_stealth(options)
        assert profile.root_domain_preload is False
        assert profile.webdriver is True

    @pytest.mark.parametrize("value,expected", [("ON", True), ("true", True), ("0", False)])
    def test_value_spellings(self, value: str, expected: bool):
        options = parse_stealth_options([f"webdriver={value}"])
        assert options.webdriver is expected

    def test_missing_separator(self):
        """A pair without '=' is rejected (TC-PO-A-01)."""
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_stealth_options(["webdriver"])

        assert exc_info.value.code == SpydrErrorCode.INVALID_CONFIGURATION
        assert "key=value" in exc_info.value.message

    def test_unknown_key(self):
        """Unknown keys are rejected (TC-PO-A-02)."""
        with pytest.raises(InvalidConfigurationError, match="Unknown stealth option"):
            parse_stealth_options(["canvasNoise=on"])

    def test_invalid_value(self):
        """Values other than on/off spellings are rejected (TC-PO-A-03)."""
        with pytest.raises(InvalidConfigurationError) as exc_info:
            parse_stealth_options(["webdriver=maybe"])

        assert exc_info.value.details == {"option": "webdriver", "value": "maybe"}


class TestToggleEffects:
    """Tests for init script and launch argument generation."""

    def test_no_init_script_when_off(self):
        """No DOM toggles means no init script (TC-IS-N-01)."""
        assert build_init_script(StealthProfile()) is None

    def test_init_script_flags(self):
        """The script invokes the patch function with the DOM flags (TC-IS-N-02)."""
        script = build_init_script(StealthProfile(webdriver=True))

        assert script is not None
        assert "navigator, 'webdriver'" in script
        flags = {name: name == "webdriver" for name in DOM_TOGGLES}
        assert script.endswith(f"({json.dumps(flags)});")

    def test_non_dom_toggles_need_no_script(self):
        """Header and launch toggles alone do not add a script (TC-IS-B-01)."""
        profile = StealthProfile(headers_realistic=True, launch_args=True, context_options=True)

        assert profile.needs_init_script is False
        assert build_init_script(profile) is None

    def test_launch_args(self):
        """launch_args controls the stealth launch arguments (TC-LA-N-01)."""
        assert get_stealth_args(StealthProfile()) == []

        args = get_stealth_args(StealthProfile(launch_args=True))
        assert args == list(STEALTH_LAUNCH_ARGS)
        assert "--disable-blink-features=AutomationControlled" in args
