"""Primary key generation shared by ORM models."""

import uuid

from codementor.constants import ID_HEX_LENGTH


def new_id() -> str:
    return uuid.uuid4().hex[:ID_HEX_LENGTH]
