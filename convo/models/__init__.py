from convo.models.records import (  # noqa: F401
    Category,
    Chat,
    Conversation,
    Message,
    Profile,
    User,
    new_record_id,
)
