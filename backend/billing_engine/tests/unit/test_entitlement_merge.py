"""
Unit tests for per-service entitlement merging.

Tests cover:
- Drive selection (business beats individual, largest allocation wins)
- Mail / meet maxima and first-enabled VPN
- First-seen tiebreaks and order independence
- Manual overrides on boolean services
"""

from itertools import permutations

import pytest

from billing_engine.constants import Service
from billing_engine.entitlements.merge import (
    apply_overrides,
    entitlement_from_tier,
    merge_features,
    select_drive,
)
from billing_engine.entitlements.models import FeatureSource
from billing_engine.errors import ErrorKind, TierNotFoundError

GIB = 1024 * 1024 * 1024


class TestDriveSelection:
    """Tests for drive record selection."""

    def test_largest_individual_allocation_wins(self, build_tier):
        small = build_tier("small", max_space_bytes=GIB)
        large = build_tier("large", max_space_bytes=2 * GIB)

        drive = select_drive([small, large])

        assert drive.source_tier_id == "large"
        assert drive.features["maxSpaceBytes"] == 2 * GIB

    def test_business_tier_beats_larger_individual_tier(self, build_tier):
        individual = build_tier("individual", max_space_bytes=10 * GIB)
        business = build_tier("business", business=True, max_space_bytes_per_seat=GIB)

        drive = select_drive([individual, business])

        assert drive.source_tier_id == "business"
        assert drive.features["workspaces"]["enabled"] is True

    def test_business_tiers_compared_by_per_seat_allocation(self, build_tier):
        small = build_tier("b-small", business=True, max_space_bytes_per_seat=GIB, max_space_bytes=50 * GIB)
        large = build_tier("b-large", business=True, max_space_bytes_per_seat=3 * GIB)

        assert select_drive([small, large]).source_tier_id == "b-large"

    def test_tie_keeps_first_seen_tier(self, build_tier):
        first = build_tier("first", max_space_bytes=GIB)
        second = build_tier("second", max_space_bytes=GIB)

        assert select_drive([first, second]).source_tier_id == "first"
        assert select_drive([second, first]).source_tier_id == "second"

    def test_empty_tier_list_raises_not_found(self):
        with pytest.raises(TierNotFoundError) as exc_info:
            select_drive([])

        assert exc_info.value.kind is ErrorKind.NOT_FOUND


class TestMergeFeatures:
    """Tests for the full per-service merge."""

    def test_mail_and_meet_take_maximum_enabled_values(self, build_tier):
        a = build_tier("a", max_space_bytes=GIB, addresses_per_user=2, pax_per_call=50)
        b = build_tier("b", max_space_bytes=GIB, addresses_per_user=5, pax_per_call=10)

        merged = merge_features([a, b])

        assert merged.get(Service.MAIL).features["addressesPerUser"] == 5
        assert merged.get(Service.MAIL).source_tier_id == "b"
        assert merged.get(Service.MEET).features["paxPerCall"] == 50
        assert merged.get(Service.MEET).source_tier_id == "a"

    def test_vpn_comes_from_first_enabled_tier(self, build_tier):
        no_vpn = build_tier("no-vpn", max_space_bytes=GIB)
        vpn_a = build_tier("vpn-a", max_space_bytes=GIB, vpn_feature_id="feature-a")
        vpn_b = build_tier("vpn-b", max_space_bytes=GIB, vpn_feature_id="feature-b")

        merged = merge_features([no_vpn, vpn_a, vpn_b])

        assert merged.get(Service.VPN).features["featureId"] == "feature-a"

    def test_services_no_tier_enables_are_disabled(self, build_tier):
        merged = merge_features([build_tier("plain", max_space_bytes=GIB)])

        mail = merged.get(Service.MAIL)
        assert mail.enabled is False
        assert mail.source is FeatureSource.NONE
        assert mail.features["addressesPerUser"] == 0

    def test_boolean_services_from_first_enabled_tier(self, build_tier):
        a = build_tier("a", max_space_bytes=GIB, backups=True)
        b = build_tier("b", max_space_bytes=GIB, antivirus=True, backups=True)

        merged = merge_features([a, b])

        assert merged.get(Service.BACKUPS).source_tier_id == "a"
        assert merged.get(Service.ANTIVIRUS).source_tier_id == "b"
        assert merged.get(Service.CLEANER).enabled is False

    def test_merge_is_order_independent_without_ties(self, build_tier):
        tiers = [
            build_tier("t1", max_space_bytes=GIB, addresses_per_user=1, pax_per_call=30),
            build_tier("t2", max_space_bytes=3 * GIB, addresses_per_user=7, pax_per_call=5),
            build_tier("t3", max_space_bytes=2 * GIB, addresses_per_user=3, pax_per_call=100),
        ]

        results = [merge_features(list(order)).to_dict() for order in permutations(tiers)]

        assert all(result == results[0] for result in results)
        assert results[0]["drive"]["sourceTierId"] == "t2"
        assert results[0]["mail"]["sourceTierId"] == "t2"
        assert results[0]["meet"]["sourceTierId"] == "t3"

    def test_empty_tier_list_raises_not_found(self):
        with pytest.raises(TierNotFoundError):
            merge_features([])


class TestOverrides:
    """Tests for manual overrides on top of merged tiers."""

    def test_override_fills_service_no_tier_supplies(self, build_tier):
        merged = merge_features(
            [build_tier("plain", max_space_bytes=GIB)],
            overrides={"antivirus": {"enabled": True}},
        )

        antivirus = merged.get(Service.ANTIVIRUS)
        assert antivirus.enabled is True
        assert antivirus.source is FeatureSource.OVERRIDE
        assert antivirus.source_tier_id is None

    def test_tier_supplied_service_keeps_tier_source(self, build_tier):
        merged = merge_features(
            [build_tier("av", max_space_bytes=GIB, antivirus=True)],
            overrides={"antivirus": {"enabled": True}},
        )

        assert merged.get(Service.ANTIVIRUS).source is FeatureSource.TIER
        assert merged.get(Service.ANTIVIRUS).source_tier_id == "av"

    def test_disabled_override_does_not_revoke(self, build_tier):
        merged = merge_features(
            [build_tier("bk", max_space_bytes=GIB, backups=True)],
            overrides={"backups": {"enabled": False}},
        )

        assert merged.get(Service.BACKUPS).enabled is True

    def test_overrides_never_touch_drive(self, build_tier):
        merged = merge_features(
            [build_tier("plain", max_space_bytes=GIB)],
            overrides={"drive": {"enabled": True, "maxSpaceBytes": 100 * GIB}},
        )

        assert merged.max_space_bytes == GIB

    def test_empty_overrides_return_same_entitlement(self, build_tier):
        entitlement = merge_features([build_tier("plain", max_space_bytes=GIB)])

        assert apply_overrides(entitlement, {}) is entitlement
        assert apply_overrides(entitlement, None) is entitlement


class TestEntitlementFromTier:

    def test_every_service_sourced_from_the_tier(self, build_tier):
        tier = build_tier("life", max_space_bytes=5 * GIB, vpn_feature_id="vpn-1", cleaner=True)

        entitlement = entitlement_from_tier(tier)

        assert entitlement.source_tier_id(Service.DRIVE) == "life"
        assert entitlement.max_space_bytes == 5 * GIB
        assert entitlement.get(Service.VPN).features["featureId"] == "vpn-1"
        assert entitlement.get(Service.CLEANER).source_tier_id == "life"
