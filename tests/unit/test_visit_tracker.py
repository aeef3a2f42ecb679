"""Tests for visit tracking."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from triddle.models.visit import DeviceType, Visit
from triddle.services.visit_tracker import VisitTracker, classify_browser, classify_device, classify_os
from triddle.utils.exceptions import ConflictError
from triddle.utils.request import RequestContext

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_UA = CHROME_UA + " Edg/120.0.2210.91"
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
ANDROID_TABLET_UA = "Mozilla/5.0 (Linux; Android 13; Tablet) AppleWebKit/537.36 Chrome/119.0 Safari/537.36"
FIREFOX_LINUX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
MAC_SAFARI_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Safari/605.1.15"
)


class TestClassification:
    """Tests for user agent classification."""

    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (IPHONE_UA, DeviceType.MOBILE),
            (ANDROID_TABLET_UA, DeviceType.TABLET),
            (CHROME_UA, DeviceType.DESKTOP),
            (None, DeviceType.UNKNOWN),
            ("", DeviceType.UNKNOWN),
        ],
    )
    def test_classify_device(self, user_agent, expected):
        """Mobile wins over tablet; anything else with an agent is desktop."""
        assert classify_device(user_agent) == expected

    def test_mobile_tablet_agent_is_mobile(self):
        """An agent mentioning both is classified mobile."""
        assert classify_device("Some Tablet Mobile Browser") == DeviceType.MOBILE

    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (CHROME_UA, "chrome"),
            (EDGE_UA, "edge"),
            (IPHONE_UA, "safari"),
            (FIREFOX_LINUX_UA, "firefox"),
            ("curl/8.4.0", "unknown"),
            (None, "unknown"),
        ],
    )
    def test_classify_browser(self, user_agent, expected):
        """Test browser family detection."""
        assert classify_browser(user_agent) == expected

    @pytest.mark.parametrize(
        "user_agent,expected",
        [
            (CHROME_UA, "windows"),
            (IPHONE_UA, "ios"),
            (ANDROID_TABLET_UA, "android"),
            (FIREFOX_LINUX_UA, "linux"),
            (MAC_SAFARI_UA, "macos"),
            (None, "unknown"),
        ],
    )
    def test_classify_os(self, user_agent, expected):
        """Test operating system detection."""
        assert classify_os(user_agent) == expected


class TestVisitTracker:
    """Tests for VisitTracker against the mocked table."""

    def test_creates_visit_with_generated_id(self, repos):
        """A submission without a visit ID starts a new visit."""
        tracker = VisitTracker(repos["visits"])

        visit = tracker.get_or_create_visit(
            "form-1",
            None,
            RequestContext(user_agent=IPHONE_UA, ip_address="10.0.0.1", referrer="https://news.example.com"),
        )

        assert visit.visit_id
        assert visit.metadata.device == DeviceType.MOBILE
        assert visit.metadata.browser == "safari"
        assert visit.metadata.operating_system == "ios"
        assert visit.metadata.referrer == "https://news.example.com"

        stored = repos["visits"].get_by_visit_id("form-1", visit.visit_id)
        assert stored is not None
        assert stored.metadata.ip_address == "10.0.0.1"

    def test_uses_client_visit_id(self, repos):
        """A client-supplied visit ID is kept."""
        tracker = VisitTracker(repos["visits"])

        visit = tracker.get_or_create_visit("form-1", "client-visit", RequestContext())

        assert visit.visit_id == "client-visit"
        assert visit.metadata.referrer == ""
        assert visit.metadata.device == DeviceType.UNKNOWN

    def test_existing_visit_returned_unchanged(self, repos):
        """Later submissions do not re-record request metadata."""
        tracker = VisitTracker(repos["visits"])
        first = tracker.get_or_create_visit("form-1", "v1", RequestContext(user_agent=CHROME_UA))

        again = tracker.get_or_create_visit("form-1", "v1", RequestContext(user_agent=IPHONE_UA))

        assert again.visit_id == first.visit_id
        assert again.metadata.device == DeviceType.DESKTOP
        assert len(repos["visits"].list_by_form("form-1")) == 1

    def test_same_visit_id_on_other_form_is_separate(self, repos):
        """Visits are scoped to a form."""
        tracker = VisitTracker(repos["visits"])
        tracker.get_or_create_visit("form-1", "v1", RequestContext())
        tracker.get_or_create_visit("form-2", "v1", RequestContext())

        assert len(repos["visits"].list_by_form("form-1")) == 1
        assert len(repos["visits"].list_by_form("form-2")) == 1

    def test_create_race_returns_winner(self):
        """When another request creates the visit first, its visit is used."""
        winner = Visit(form_id="form-1", visit_id="v1")
        visits = MagicMock()
        visits.get_by_visit_id.side_effect = [None, winner]
        visits.create_visit.side_effect = ConflictError()

        visit = VisitTracker(visits).get_or_create_visit("form-1", "v1", RequestContext())

        assert visit is winner

    def test_mark_completed(self, repos):
        """Completion is persisted and the open response claim released."""
        tracker = VisitTracker(repos["visits"])
        visit = tracker.get_or_create_visit("form-1", "v1", RequestContext())
        repos["visits"].claim_open_response("form-1", "v1", "resp-1")
        visit.open_response_id = "resp-1"

        assert tracker.mark_completed(visit, "resp-1") is True

        stored = repos["visits"].get_by_visit_id("form-1", "v1")
        assert stored.completed is True
        assert stored.response_id == "resp-1"
        assert stored.open_response_id is None
        assert stored.metadata.ended_at is not None
        assert visit.completed is True
        assert visit.open_response_id is None

    def test_mark_completed_keeps_newer_claim(self, repos):
        """Completing an old response does not release another response's claim."""
        tracker = VisitTracker(repos["visits"])
        visit = tracker.get_or_create_visit("form-1", "v1", RequestContext())
        repos["visits"].claim_open_response("form-1", "v1", "resp-2")

        tracker.mark_completed(visit, "resp-1")

        stored = repos["visits"].get_by_visit_id("form-1", "v1")
        assert stored.open_response_id == "resp-2"

    def test_mark_completed_is_best_effort(self):
        """Store failures are logged, not raised."""
        visits = MagicMock()
        visits.mark_completed.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "UpdateItem",
        )
        visit = Visit(form_id="form-1", visit_id="v1")

        assert VisitTracker(visits).mark_completed(visit, "resp-1") is False
        assert visit.completed is False
