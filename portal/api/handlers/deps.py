from __future__ import annotations

from dataclasses import dataclass

from portal.api.schemas import ActorPayload, PersonRefPayload, SponsorContactsPayload
from portal.domain.models import Actor, PersonRef, SponsorContacts
from portal.domain.normalization import person_from_value
from portal.domain.use_cases.deps import WorkflowDeps


@dataclass(frozen=True)
class ApiDeps:
    workflow: WorkflowDeps


def actor_from_payload(payload: ActorPayload | None) -> Actor | None:
    if payload is None:
        return None
    return Actor(name=payload.name, email=payload.email.lower() if payload.email else None, user_id=payload.user_id)


def sponsor_contacts_from_payload(payload: SponsorContactsPayload) -> SponsorContacts:
    return SponsorContacts(
        business_sponsor=_person(payload.business_sponsor),
        business_delegate=_person(payload.business_delegate),
        technology_sponsor=_person(payload.technology_sponsor),
        finance_sponsor=_person(payload.finance_sponsor),
        benefits_sponsor=_person(payload.benefits_sponsor),
    )


def _person(payload: PersonRefPayload | None) -> PersonRef | None:
    if payload is None:
        return None
    return person_from_value(
        {
            "id": payload.id,
            "displayName": payload.display_name,
            "email": payload.email,
            "jobTitle": payload.job_title,
            "photo": payload.photo,
        }
    )
