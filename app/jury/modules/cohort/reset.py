from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from app.jury.audit import record_event

if TYPE_CHECKING:
    from app.jury.models import User

logger = logging.getLogger(__name__)

CONFIRMATION_PHRASE = "RESET"
PRESERVED_JUROR_DOMAIN = "@test.com"


def reset_cohort_data(s: Session, confirmation: str, user: "User") -> dict[str, int]:
    """
    Wipe all cohort data so a new cohort can start.

    Children are deleted before parents. Test jurors (emails ending in @test.com)
    survive so the team can keep their logins between cohorts.
    Returns deleted row counts per table.
    """
    from app.jury.modules.assignments.models import Assignment, PitchRequest
    from app.jury.modules.cohort.service import reset_rounds
    from app.jury.modules.communications.models import EmailCommunication, EmailDeliveryEvent
    from app.jury.modules.evaluations.models import Evaluation
    from app.jury.modules.jurors.models import Juror
    from app.jury.modules.lifecycle.models import CommunicationAttempt, LifecycleParticipant, ParticipantWorkflow
    from app.jury.modules.startups.models import Startup

    if (confirmation or "").strip() != CONFIRMATION_PHRASE:
        raise ValueError(f'Type "{CONFIRMATION_PHRASE}" to confirm the cohort reset.')

    counts: dict[str, int] = {}
    order = (
        ("evaluations", Evaluation),
        ("pitch_requests", PitchRequest),
        ("assignments", Assignment),
        ("communication_attempts", CommunicationAttempt),
        ("email_delivery_events", EmailDeliveryEvent),
        ("email_communications", EmailCommunication),
        ("participant_workflows", ParticipantWorkflow),
        ("lifecycle_participants", LifecycleParticipant),
        ("startups", Startup),
    )
    for table, model in order:
        counts[table] = s.query(model).delete(synchronize_session=False)

    counts["jurors"] = (
        s.query(Juror)
        .filter(~Juror.email.ilike(f"%{PRESERVED_JUROR_DOMAIN}"))
        .delete(synchronize_session=False)
    )
    reset_rounds(s)

    record_event(
        s,
        actor=user,
        action="cohort.reset",
        entity_type="Cohort",
        metadata={"deleted": counts},
    )
    logger.warning("Cohort reset by %s: %s", user.email, counts)
    return counts
