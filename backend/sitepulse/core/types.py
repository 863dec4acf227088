"""Column types shared by PostgreSQL and the SQLite test database"""
import uuid

from sqlalchemy import TypeDecorator, String


def generate_uuid() -> str:
    return str(uuid.uuid4())


class GUID(TypeDecorator):
    """
    UUIDs stored as VARCHAR(36) on every backend.

    Ids always come back as strings, so ids read from the store compare equal
    to ids carried in tokens and realtime payloads.
    """
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else str(value)
