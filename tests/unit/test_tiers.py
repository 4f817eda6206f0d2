"""Unit tests for tier calculation and ladder validation."""

from unittest.mock import patch

import pytest

from loyalty_sync.domain.tiers import (
    DEFAULT_TIERS,
    NEW_MEMBER_TIER,
    TierDefinition,
    calculate_customer_tier,
    detect_tier_upgrade,
    tiers_from_config,
    validate_tier_ladder,
)


def _ladder_dicts():
    return [
        {"name": "Regular", "minRewards": 0, "maxRewards": 2, "color": "#111111", "icon": "☕"},
        {"name": "Fan", "minRewards": 3, "maxRewards": 9, "color": "#222222", "icon": "⭐"},
        {"name": "Legend", "minRewards": 10, "maxRewards": None, "color": "#333333", "icon": "👑"},
    ]


@pytest.mark.parametrize(
    "rewards, expected_name",
    [
        (0, "New Member"),
        (1, "Bronze Member"),
        (2, "Bronze Member"),
        (3, "Silver Member"),
        (5, "Silver Member"),
        (6, "Gold Member"),
        (250, "Gold Member"),
    ],
)
def test_default_ladder(rewards, expected_name):
    status = calculate_customer_tier(rewards)

    assert status is not None
    assert status.current_tier.name == expected_name
    assert status.rewards_claimed == rewards


def test_new_member_points_at_first_tier():
    status = calculate_customer_tier(0)

    assert status.current_tier == NEW_MEMBER_TIER
    assert status.is_top_tier is False
    assert status.next_tier.name == "Bronze Member"
    assert status.rewards_to_next_tier == 1


def test_progress_towards_next_tier():
    status = calculate_customer_tier(4)

    assert status.next_tier.name == "Gold Member"
    assert status.rewards_to_next_tier == 2
    assert status.is_top_tier is False


def test_top_tier_has_no_next():
    status = calculate_customer_tier(7)

    assert status.is_top_tier is True
    assert status.next_tier is None
    assert status.rewards_to_next_tier is None


def test_negative_rewards_has_no_tier():
    assert calculate_customer_tier(-1) is None


def test_custom_ladder_starting_at_zero():
    ladder = tiers_from_config(_ladder_dicts())

    assert calculate_customer_tier(0, ladder).current_tier.name == "Regular"
    assert calculate_customer_tier(9, ladder).current_tier.name == "Fan"
    assert calculate_customer_tier(10, ladder).current_tier.name == "Legend"


def test_ladder_with_gap_yields_none():
    ladder = [
        TierDefinition("A", 1, 2, "#000000", "a"),
        TierDefinition("B", 5, None, "#000000", "b"),
    ]

    assert calculate_customer_tier(3, ladder) is None


def test_unmatched_rewards_log_structured_events():
    ladder = [
        TierDefinition("A", 1, 2, "#000000", "a"),
        TierDefinition("B", 5, None, "#000000", "b"),
    ]

    with patch("loyalty_sync.domain.tiers.logger") as logger:
        calculate_customer_tier(-1)
        calculate_customer_tier(3, ladder)

    assert logger.warning.call_args_list[0].args == ("tier_negative_rewards",)
    assert logger.warning.call_args_list[0].kwargs == {"rewards_claimed": -1}
    assert logger.warning.call_args_list[1].args == ("tier_not_matched",)
    assert logger.warning.call_args_list[1].kwargs == {"rewards_claimed": 3, "ladder": ["A", "B"]}


def test_tier_is_monotonic_in_rewards():
    """Test that more rewards never lands in a lower tier."""
    order = [NEW_MEMBER_TIER.name] + [t.name for t in DEFAULT_TIERS]
    previous = 0
    for rewards in range(0, 50):
        rank = order.index(calculate_customer_tier(rewards).current_tier.name)
        assert rank >= previous
        previous = rank


def test_tiers_from_config_accepts_snake_case():
    tiers = tiers_from_config(
        [{"name": "X", "min_rewards": 1, "max_rewards": None, "color": "#ABCDEF", "icon": "x"}]
    )

    assert tiers[0].min_rewards == 1
    assert tiers[0].max_rewards is None


def test_tiers_from_config_empty_is_none():
    assert tiers_from_config(None) is None
    assert tiers_from_config([]) is None


def test_tier_definition_dict_round_trip():
    tier = DEFAULT_TIERS[1]

    assert TierDefinition.from_dict(tier.to_dict()) == tier


def test_detect_tier_upgrade():
    before = calculate_customer_tier(2)
    after = calculate_customer_tier(3)

    upgrade = detect_tier_upgrade(before, after)

    assert upgrade.old_tier == "Bronze Member"
    assert upgrade.new_tier == "Silver Member"


def test_detect_tier_upgrade_same_tier_or_unknown():
    assert detect_tier_upgrade(calculate_customer_tier(3), calculate_customer_tier(4)) is None
    assert detect_tier_upgrade(None, calculate_customer_tier(4)) is None
    assert detect_tier_upgrade(calculate_customer_tier(4), None) is None


def test_validate_accepts_good_ladder():
    result = validate_tier_ladder(_ladder_dicts())

    assert result.is_valid, result.errors
    assert result.warnings == []


def test_validate_default_ladder_as_dicts():
    result = validate_tier_ladder([t.to_dict() for t in DEFAULT_TIERS])

    assert result.is_valid, result.errors


@pytest.mark.parametrize("count", [1, 6])
def test_validate_tier_count(count):
    tiers = [
        {"name": f"T{i}", "minRewards": i + 1, "maxRewards": i + 1, "color": "#000000", "icon": "x"}
        for i in range(count)
    ]

    result = validate_tier_ladder(tiers)

    assert not result.is_valid
    assert "between 2 and 5" in result.errors[0]


def test_validate_rejects_non_list():
    assert not validate_tier_ladder("gold").is_valid


@pytest.mark.parametrize(
    "index, field, value, message",
    [
        (0, "name", "", "name is required"),
        (0, "minRewards", 2, "first tier must start at 0 or 1"),
        (1, "minRewards", 0, "at least 1"),
        (2, "minRewards", 3, "greater than the previous tier"),
        (1, "maxRewards", 1, "maxRewards must be >= minRewards"),
        (1, "maxRewards", None, "only the last tier"),
        (2, "maxRewards", 20, "last tier must have unlimited"),
        (0, "color", "red", "hex color"),
        (0, "icon", "", "icon is required"),
        (0, "rewardBoost", 1.5, "rewardBoost"),
        (0, "minRewards", "1", "must be an integer"),
    ],
)
def test_validate_rules(index, field, value, message):
    tiers = _ladder_dicts()
    tiers[index][field] = value

    result = validate_tier_ladder(tiers)

    assert not result.is_valid
    assert any(message in error for error in result.errors), result.errors


def test_validate_warns_on_gap():
    tiers = _ladder_dicts()
    tiers[1]["minRewards"] = 5

    result = validate_tier_ladder(tiers)

    assert result.is_valid
    assert any("gap" in w for w in result.warnings)
