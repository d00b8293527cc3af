"""
Merge planner (preview).

Verifies:
- counts exclude rows that would collide with primary-side rows
- discarded rows, field conflicts and ownership differences surface as warnings
- same-id preview is blocked, missing ids raise NotFound
- preview never writes
"""

from __future__ import annotations

import pytest

from services.listings.duplicates.errors import EntityNotFoundError
from services.listings.duplicates.planner import MergePlanner
from services.listings.duplicates.types import EntityKind, WarningCode
from services.listings.tests.helpers.factories import (
    make_event,
    make_favorite,
    make_id,
    make_promoter,
    make_vendor,
    make_venue,
)
from services.listings.tests.helpers.fake_repository import make_repository

pytestmark = pytest.mark.asyncio


def _codes(preview):
    return [w.code for w in preview.warnings]


class TestPreviewCounts:
    async def test_vendor_overlap_counts_and_warning(self, vendor_scenario):
        s = vendor_scenario
        preview = await MergePlanner(s["repo"]).preview(
            EntityKind.VENDORS, s["primary"]["id"], s["duplicate"]["id"]
        )

        assert preview.relationships_to_transfer.to_dict() == {"eventVendors": 2, "favorites": 0}
        assert preview.can_merge is True
        discarded = [w for w in preview.warnings if w.code is WarningCode.RELATIONSHIPS_DISCARDED]
        assert len(discarded) == 1
        assert discarded[0].relationship == "eventVendors"
        assert discarded[0].count == 1
        assert "1 eventVendors row(s) will be discarded" in discarded[0].message

    async def test_entities_annotated_with_totals(self, vendor_scenario):
        s = vendor_scenario
        preview = await MergePlanner(s["repo"]).preview(
            EntityKind.VENDORS, s["primary"]["id"], s["duplicate"]["id"]
        )
        assert preview.primary["_count"] == {"eventVendors": 2, "favorites": 0}
        assert preview.duplicate["_count"] == {"eventVendors": 3, "favorites": 0}

    async def test_favorites_overlap(self, event_favorites_scenario):
        s = event_favorites_scenario
        preview = await MergePlanner(s["repo"]).preview(
            EntityKind.EVENTS, s["primary"]["id"], s["duplicate"]["id"]
        )
        assert preview.relationships_to_transfer.to_dict() == {"eventVendors": 0, "favorites": 1}
        assert WarningCode.RELATIONSHIPS_DISCARDED in _codes(preview)

    async def test_venue_events_all_movable(self):
        primary, duplicate = make_venue(), make_venue(name="The Fairgrounds")
        events = [make_event(venue_id=duplicate["id"], name=f"Show {i}") for i in range(3)]
        repo = make_repository(venues=[primary, duplicate], events=events)

        preview = await MergePlanner(repo).preview(EntityKind.VENUES, primary["id"], duplicate["id"])

        assert preview.relationships_to_transfer.events == 3
        assert preview.warnings == []

    async def test_favorites_scoped_by_kind(self):
        """A VENUE favorite with a colliding id does not count toward a vendor merge."""
        primary, duplicate = make_vendor(), make_vendor()
        user = make_id()
        repo = make_repository(
            vendors=[primary, duplicate],
            user_favorites=[
                make_favorite(user, "VENDOR", duplicate["id"]),
                make_favorite(user, "VENUE", duplicate["id"]),
            ],
        )
        preview = await MergePlanner(repo).preview(EntityKind.VENDORS, primary["id"], duplicate["id"])
        assert preview.relationships_to_transfer.favorites == 1


class TestPreviewWarnings:
    async def test_field_conflict_is_informational(self):
        primary = make_venue(description="County fairgrounds")
        duplicate = make_venue(name="The Fairgrounds", description="Home of the county fair")
        repo = make_repository(venues=[primary, duplicate])

        preview = await MergePlanner(repo).preview(EntityKind.VENUES, primary["id"], duplicate["id"])

        conflicts = [w for w in preview.warnings if w.code is WarningCode.FIELD_CONFLICT]
        assert [w.field for w in conflicts] == ["description"]
        assert conflicts[0].primary_value == "County fairgrounds"
        assert preview.can_merge is True

    async def test_fill_from_empty_primary_is_not_a_conflict(self):
        primary = make_venue(website=None)
        duplicate = make_venue(name="The Fairgrounds", website="https://fair.example.com")
        repo = make_repository(venues=[primary, duplicate])

        preview = await MergePlanner(repo).preview(EntityKind.VENUES, primary["id"], duplicate["id"])

        assert WarningCode.FIELD_CONFLICT not in _codes(preview)

    @pytest.mark.parametrize(
        "factory,kind",
        [(make_vendor, EntityKind.VENDORS), (make_promoter, EntityKind.PROMOTERS)],
    )
    async def test_different_user_accounts(self, factory, kind):
        primary, duplicate = factory(userId=make_id()), factory(userId=make_id())
        repo = make_repository(**{kind.value: [primary, duplicate]})

        preview = await MergePlanner(repo).preview(kind, primary["id"], duplicate["id"])

        assert WarningCode.DIFFERENT_USER_ACCOUNTS in _codes(preview)
        assert preview.can_merge is True

    async def test_one_unclaimed_account_is_not_flagged(self):
        primary, duplicate = make_vendor(userId=make_id()), make_vendor(userId=None)
        repo = make_repository(vendors=[primary, duplicate])
        preview = await MergePlanner(repo).preview(EntityKind.VENDORS, primary["id"], duplicate["id"])
        assert WarningCode.DIFFERENT_USER_ACCOUNTS not in _codes(preview)

    async def test_events_with_different_venues(self):
        promoter = make_promoter()
        venue_a = make_venue(name="Fairgrounds")
        venue_b = make_venue(name="Riverside Hall")
        primary = make_event(promoter_id=promoter["id"], venue_id=venue_a["id"])
        duplicate = make_event(promoter_id=promoter["id"], venue_id=venue_b["id"])
        repo = make_repository(
            promoters=[promoter], venues=[venue_a, venue_b], events=[primary, duplicate],
        )

        preview = await MergePlanner(repo).preview(EntityKind.EVENTS, primary["id"], duplicate["id"])

        assert _codes(preview) == [WarningCode.DIFFERENT_VENUE]
        warning = preview.warnings[0]
        assert warning.message == 'Events have different venues: "Fairgrounds" vs "Riverside Hall"'

    async def test_events_with_different_promoters(self):
        promoter_a = make_promoter(companyName="Keystone Craft Shows")
        promoter_b = make_promoter(companyName="Susquehanna Markets")
        primary = make_event(promoter_id=promoter_a["id"])
        duplicate = make_event(promoter_id=promoter_b["id"])
        repo = make_repository(promoters=[promoter_a, promoter_b], events=[primary, duplicate])

        preview = await MergePlanner(repo).preview(EntityKind.EVENTS, primary["id"], duplicate["id"])

        assert WarningCode.DIFFERENT_PROMOTER in _codes(preview)
        assert preview.to_dict()["warnings"][0]["code"] == "different_promoter"


class TestPreviewStructural:
    async def test_same_entity_blocks(self):
        venue = make_venue()
        repo = make_repository(venues=[venue])

        preview = await MergePlanner(repo).preview(EntityKind.VENUES, venue["id"], venue["id"])

        assert preview.can_merge is False
        assert _codes(preview) == [WarningCode.SAME_ENTITY]
        assert preview.relationships_to_transfer.to_dict() == {"events": 0, "favorites": 0}

    async def test_missing_primary(self):
        duplicate = make_venue()
        repo = make_repository(venues=[duplicate])
        with pytest.raises(EntityNotFoundError):
            await MergePlanner(repo).preview(EntityKind.VENUES, make_id(), duplicate["id"])

    async def test_missing_duplicate(self):
        primary = make_venue()
        repo = make_repository(venues=[primary])
        with pytest.raises(EntityNotFoundError) as exc_info:
            await MergePlanner(repo).preview(EntityKind.VENUES, primary["id"], "gone")
        assert exc_info.value.entity_id == "gone"

    async def test_cross_kind_id_not_found(self):
        """A vendor id does not resolve as a venue."""
        venue, vendor = make_venue(), make_vendor()
        repo = make_repository(venues=[venue], vendors=[vendor])
        with pytest.raises(EntityNotFoundError):
            await MergePlanner(repo).preview(EntityKind.VENUES, venue["id"], vendor["id"])

    async def test_preview_never_writes(self, vendor_scenario):
        s = vendor_scenario
        before = s["repo"].snapshot()
        planner = MergePlanner(s["repo"])

        first = await planner.preview(EntityKind.VENDORS, s["primary"]["id"], s["duplicate"]["id"])
        second = await planner.preview(EntityKind.VENDORS, s["primary"]["id"], s["duplicate"]["id"])

        assert s["repo"].writes == []
        assert s["repo"].snapshot() == before
        assert first.to_dict() == second.to_dict()
