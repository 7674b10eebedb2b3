"""
Service wiring.

Builds every service once per process with its collaborators injected.
The application factory stores the container on ``app.extensions["gcg"]``;
tests build their own with in-memory gateways.

Usage:
    services = current_app.extensions["gcg"]
    services.builder.build(shell, kkas, user_id)
"""

from __future__ import annotations

from gcg_platform.services.access_control import AccessControl
from gcg_platform.services.aoi_service import DEFAULT_DUE_DAYS, DEFAULT_THRESHOLD, AoiService
from gcg_platform.services.assessment_service import AssessmentService
from gcg_platform.services.hierarchy_builder import HierarchyBuilder
from gcg_platform.services.notification import NotificationService
from gcg_platform.services.pic_service import PicService
from gcg_platform.services.response_service import ResponseService
from gcg_platform.services.scoring import ScoreAggregator


class ServiceContainer:
    """Holds the session, gateways and the services built on them."""

    def __init__(self, session, *, identity, evidence, dictionary, sender, config=None) -> None:
        config = config or {}
        self.session = session
        self.identity = identity
        self.evidence = evidence
        self.dictionary = dictionary
        self.sender = sender

        self.notifications = NotificationService(session, identity, sender)
        self.access = AccessControl(session, identity, evidence)
        self.scoring = ScoreAggregator(session, self.access)
        self.builder = HierarchyBuilder(session, identity, dictionary, self.notifications)
        self.responses = ResponseService(session, self.access)
        self.pics = PicService(session, identity, self.access, self.notifications)
        self.aois = AoiService(
            session, self.scoring, self.access, self.notifications,
            threshold=float(config.get("AOI_SCORE_THRESHOLD", DEFAULT_THRESHOLD)),
            due_days=int(config.get("AOI_DUE_DAYS", DEFAULT_DUE_DAYS)),
        )
        self.assessments = AssessmentService(session, self.access, self.notifications)
