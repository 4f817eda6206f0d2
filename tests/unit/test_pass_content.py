"""Unit tests for barcode selection and shared pass text."""

import pytest

from fakes import make_offer
from loyalty_sync.domain.offer import BarcodeFormat
from loyalty_sync.domain.progress import add_stamp, new_progress
from loyalty_sync.domain.tiers import calculate_customer_tier
from loyalty_sync.wallets import pass_content
from loyalty_sync.wallets.barcode import PDF417_MAX_PAYLOAD_LENGTH, select_barcode_format


@pytest.mark.parametrize(
    "preference, payload_length, expected",
    [
        (None, 40, BarcodeFormat.QR_CODE),
        (BarcodeFormat.QR_CODE, 40, BarcodeFormat.QR_CODE),
        (BarcodeFormat.PDF417, 40, BarcodeFormat.PDF417),
        (BarcodeFormat.PDF417, PDF417_MAX_PAYLOAD_LENGTH, BarcodeFormat.PDF417),
        (BarcodeFormat.PDF417, PDF417_MAX_PAYLOAD_LENGTH + 1, BarcodeFormat.QR_CODE),
    ],
)
def test_select_barcode_format(preference, payload_length, expected):
    assert select_barcode_format("x" * payload_length, preference) == expected


@pytest.mark.parametrize(
    "current, maximum, expected",
    [
        (0, 3, "☆☆☆"),
        (2, 5, "⭐⭐☆☆☆"),
        (5, 5, "⭐⭐⭐⭐⭐"),
        (7, 12, "7/12"),
    ],
)
def test_render_stamp_glyphs(current, maximum, expected):
    assert pass_content.render_stamp_glyphs(current, maximum) == expected


def test_progress_text_counts_remaining():
    progress = add_stamp(new_progress("c", "o", "b", 5), count=4).progress

    assert pass_content.progress_text(progress).endswith("1 more stamp to your reward")


def test_progress_text_when_completed():
    progress = add_stamp(new_progress("c", "o", "b", 2), count=2).progress

    assert "Reward ready" in pass_content.progress_text(progress)
    assert "reward is ready" in pass_content.notification_text(progress, make_offer())


def test_tier_text_includes_next_tier():
    text = pass_content.tier_text(calculate_customer_tier(4))

    assert text == "🥈 Silver Member · 2 to Gold Member"
    assert pass_content.tier_text(calculate_customer_tier(9)) == "🥇 Gold Member"
    assert pass_content.tier_text(None) is None


def test_reward_text_falls_back_to_title():
    assert pass_content.reward_text(make_offer(description=None)) == "Free Coffee"
