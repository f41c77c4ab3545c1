from typing import List, Tuple, TYPE_CHECKING
from tortoise import fields, models

if TYPE_CHECKING:
    from outbox_service.events.domain_event import DomainEvent


class AuditableEntity(models.Model):
    """
    Abstract base for tables carrying an audit trail.
    The fields are stamped by the UnitOfWork on commit, never by business code.
    """
    created_by = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(null=True)
    modified_by = fields.CharField(max_length=64, null=True)
    modified_at = fields.DatetimeField(null=True)

    class Meta:
        abstract = True

    def set_created_info(self, username: str, timestamp):
        if not username or not username.strip():
            raise ValueError("Audit username must not be blank.")
        self.created_by = username
        self.created_at = timestamp

    def set_updated_info(self, username: str, timestamp):
        if not username or not username.strip():
            raise ValueError("Audit username must not be blank.")
        self.modified_by = username
        self.modified_at = timestamp


class AggregateRoot:
    """
    Opt-in capability for entities that raise domain events.

    The pending list lives on the instance only; it is never persisted.
    Tortoise builds instances loaded from the database without calling
    __init__, so the list is created lazily.
    """

    def _pending_events(self) -> List["DomainEvent"]:
        events = self.__dict__.get("_domain_events")
        if events is None:
            events = self.__dict__["_domain_events"] = []
        return events

    @property
    def domain_events(self) -> Tuple["DomainEvent", ...]:
        return tuple(self._pending_events())

    def add_domain_event(self, event: "DomainEvent"):
        self._pending_events().append(event)

    def remove_domain_event(self, event: "DomainEvent"):
        events = self._pending_events()
        if event in events:
            events.remove(event)

    def clear_domain_events(self):
        self._pending_events().clear()
