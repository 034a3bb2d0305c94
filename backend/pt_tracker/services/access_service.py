"""Who may read or submit activity logs for which patient.

Authentication itself is an external collaborator; these checks only look at
the already-resolved caller (id + role) and the patient's therapist link.
"""
import logging

from sqlalchemy.orm import Session

from pt_tracker.config import settings
from pt_tracker.models.user import User, UserRole

logger = logging.getLogger(__name__)


class SubmissionForbidden(Exception):
    """The caller may not submit a record for the requested patient."""


def can_view_patient(db: Session, caller: User, patient_id: str) -> bool:
    """Patients see their own logs, therapists their patients', admins everyone's."""
    if caller.role == UserRole.admin or caller.id == patient_id:
        return True
    if caller.role == UserRole.therapist:
        patient = db.query(User).filter(User.id == patient_id).first()
        return patient is not None and patient.therapist_id == caller.id
    return False


def resolve_submitting_patient(db: Session, caller: User, requested_patient_id: str | None) -> str:
    """Return the patient id a record will be stored under.

    Submitting for yourself requires the patient role. Submitting for someone
    else is refused unless ALLOW_DELEGATED_SUBMISSION is on, and even then only
    an admin, or a therapist for one of their own patients, may do it.
    """
    if requested_patient_id is None or requested_patient_id == caller.id:
        if caller.role != UserRole.patient:
            raise SubmissionForbidden("Only patients can log activity for themselves")
        return caller.id

    if not settings.ALLOW_DELEGATED_SUBMISSION:
        raise SubmissionForbidden("Submitting activity on behalf of another patient is not permitted")

    patient = db.query(User).filter(User.id == requested_patient_id).first()
    if patient is None or patient.role != UserRole.patient:
        raise SubmissionForbidden(f"Unknown patient {requested_patient_id}")
    if caller.role == UserRole.admin:
        return patient.id
    if caller.role == UserRole.therapist and patient.therapist_id == caller.id:
        return patient.id

    logger.warning("User %s (%s) refused delegated submission for %s", caller.id, caller.role.value, patient.id)
    raise SubmissionForbidden("Patient does not belong to this therapist")
