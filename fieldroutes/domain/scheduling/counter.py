"""Occurrence counter for "ends after N occurrences" schedules"""

import logging

from sqlalchemy.orm import Session

from ...models import Contact

logger = logging.getLogger(__name__)


class OccurrenceCounter:
    """
    Only the settlement transition calls increment(). The UPDATE is a single
    `SET occurrences_completed = occurrences_completed + 1` so two workers settling
    different stops of the same recurrence never lose an increment.
    """

    @staticmethod
    def increment(db: Session, contact_id: int, user_id: int) -> None:
        updated = (
            db.query(Contact)
            .filter(Contact.id == contact_id, Contact.user_id == user_id)
            .update(
                {Contact.occurrences_completed: Contact.occurrences_completed + 1},
                synchronize_session=False,
            )
        )
        if updated:
            logger.info(f"🔢 Occurrence counted for contact {contact_id}")
        else:
            logger.warning(f"⚠️ Contact {contact_id} not found while counting an occurrence")

    @staticmethod
    def current(db: Session, contact_id: int, user_id: int) -> int:
        value = (
            db.query(Contact.occurrences_completed)
            .filter(Contact.id == contact_id, Contact.user_id == user_id)
            .scalar()
        )
        return value or 0

    @staticmethod
    def start_generation(contact: Contact) -> None:
        """Reset the count for a (re)configured schedule; waypoints from older generations no longer count"""
        contact.recurrence_generation = (contact.recurrence_generation or 0) + 1
        contact.occurrences_completed = 0
