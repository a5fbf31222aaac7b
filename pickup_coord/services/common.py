"""Objects shared by every service module."""

from pickup_coord.config import settings
from pickup_coord.domain.rules import Policy

policy = Policy.from_settings(settings)

# View paths the rendering layer caches; invalidated after mutations.
REQUEST_VIEWS = ("/pickup-requests", "/my")
TRIP_VIEWS = ("/trips", "/my")
INVITATION_VIEWS = ("/invitations", "/trips", "/pickup-requests", "/my")
ADMIN_VIEWS = ("/admin",)
