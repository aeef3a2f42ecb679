"""Visit tracking for public forms.

A visit is created on first contact with a published form and marked
completed when its response is. Device, browser and OS are classified from
the user agent once, at creation.
"""

import uuid

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from triddle.models.base import utc_now
from triddle.models.visit import DeviceType, Visit, VisitMetadata
from triddle.repositories.visit import VisitRepository
from triddle.utils.exceptions import ConflictError
from triddle.utils.request import RequestContext

logger = structlog.get_logger()

# First match wins; Chromium-based browsers also advertise "chrome" and
# "safari", and Chrome advertises "safari".
_BROWSER_MARKERS = (
    ("edg", "edge"),
    ("opr", "opera"),
    ("opera", "opera"),
    ("chrome", "chrome"),
    ("crios", "chrome"),
    ("firefox", "firefox"),
    ("fxios", "firefox"),
    ("safari", "safari"),
)

# Android and iOS agents also mention "linux" and "mac os x" respectively.
_OS_MARKERS = (
    ("windows", "windows"),
    ("android", "android"),
    ("iphone", "ios"),
    ("ipad", "ios"),
    ("mac os", "macos"),
    ("macintosh", "macos"),
    ("linux", "linux"),
)


def classify_device(user_agent: str | None) -> DeviceType:
    """Three-way device match on the user agent.

    "mobile" wins over "tablet"; anything else with a user agent is desktop.
    """
    if not user_agent:
        return DeviceType.UNKNOWN
    ua = user_agent.lower()
    if "mobile" in ua:
        return DeviceType.MOBILE
    if "tablet" in ua:
        return DeviceType.TABLET
    return DeviceType.DESKTOP


def _match(user_agent: str | None, markers: tuple[tuple[str, str], ...]) -> str:
    if not user_agent:
        return "unknown"
    ua = user_agent.lower()
    for marker, name in markers:
        if marker in ua:
            return name
    return "unknown"


def classify_browser(user_agent: str | None) -> str:
    """Browser family from the user agent, or ``unknown``."""
    return _match(user_agent, _BROWSER_MARKERS)


def classify_os(user_agent: str | None) -> str:
    """Operating system family from the user agent, or ``unknown``."""
    return _match(user_agent, _OS_MARKERS)


class VisitTracker:
    """Creates and completes visits."""

    def __init__(self, visits: VisitRepository) -> None:
        self.visits = visits

    def get_or_create_visit(
        self,
        form_id: str,
        visit_id: str | None,
        request_context: RequestContext,
    ) -> Visit:
        """Return the form's visit with ``visit_id``, creating it if needed.

        An existing visit is returned unchanged. A new one gets a generated
        ID when none was supplied.

        Args:
            form_id: The form being visited.
            visit_id: Client-supplied visit ID, if any.
            request_context: Client metadata to record on a new visit.

        Returns:
            The existing or newly created visit.
        """
        if visit_id:
            existing = self.visits.get_by_visit_id(form_id, visit_id)
            if existing:
                return existing

        user_agent = request_context.user_agent
        visit = Visit(
            form_id=form_id,
            visit_id=visit_id or str(uuid.uuid4()),
            metadata=VisitMetadata(
                user_agent=user_agent,
                ip_address=request_context.ip_address,
                referrer=request_context.referrer or "",
                device=classify_device(user_agent),
                browser=classify_browser(user_agent),
                operating_system=classify_os(user_agent),
            ),
        )

        try:
            self.visits.create_visit(visit)
        except ConflictError:
            # A concurrent request created the same visit first
            winner = self.visits.get_by_visit_id(form_id, visit.visit_id)
            if winner is None:
                raise
            return winner

        logger.info(
            "Visit started",
            form_id=form_id,
            visit_id=visit.visit_id,
            device=visit.metadata.device,
        )
        return visit

    def mark_completed(self, visit: Visit, response_id: str) -> bool:
        """Mark a visit completed. Best-effort: failures are logged, not raised.

        Returns:
            True if the visit was updated.
        """
        try:
            self.visits.mark_completed(visit.form_id, visit.visit_id, response_id)
        except (ClientError, BotoCoreError) as e:
            logger.warning(
                "Failed to mark visit completed",
                form_id=visit.form_id,
                visit_id=visit.visit_id,
                error=str(e),
            )
            return False

        visit.completed = True
        visit.metadata.ended_at = utc_now()
        visit.response_id = response_id
        if visit.open_response_id == response_id:
            visit.open_response_id = None
        logger.info("Visit completed", form_id=visit.form_id, visit_id=visit.visit_id)
        return True
