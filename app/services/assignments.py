from typing import List

from app.schemas.assignment import AssignmentView
from app.services.store import SUBJECTS, TUTOR_SUBJECTS, DataStore, Embed, Order


def load_assignments(store: DataStore, tutor_id: str) -> List[AssignmentView]:
    """Subjects a tutor is assigned to, with their rates and subject names."""
    rows = store.select(
        TUTOR_SUBJECTS,
        {"tutor_id": tutor_id},
        order=[Order("assigned_at")],
        embed=[Embed("subject", SUBJECTS, "subject_id", "name")],
    )
    views = []
    for row in rows:
        subject = row.pop("subject", None) or {}
        views.append(AssignmentView(**row, subject_name=subject.get("name")))
    return sorted(views, key=lambda v: (v.subject_name or "").lower())
