from tortoise import fields, models
import uuid


class OutboxMessage(models.Model):
    """
    The Outbox table stores integration events atomically with the business transaction.
    A row is done once processed_on is set; it is never deleted here.
    """
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    type = fields.CharField(max_length=255) # Integration event name, consumers pick a deserializer by it
    content = fields.TextField() # Serialized event body, opaque to the outbox
    occurred_on = fields.DatetimeField() # When the business fact happened, not when it was published
    processed_on = fields.DatetimeField(null=True)
    error = fields.TextField(null=True) # Last failure only
    retry_count = fields.IntField(default=0)

    class Meta:
        table = "outbox_messages"
        indexes = [
            ("processed_on",),
            ("occurred_on",),
            ("processed_on", "occurred_on"),  # Composite: oldest unprocessed first
        ]

    def __str__(self):
        return f"OutboxMessage({self.id}, {self.type})"
