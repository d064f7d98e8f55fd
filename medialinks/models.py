"""
SQLAlchemy ORM models for database tables.

Every resource (users, tokens, media) is stored as a JSON document in a
single table, addressed by collection name and key.
For Pydantic request/response schemas, see schemas.py.
"""

from sqlalchemy import JSON, Column, String

from medialinks.storage import Base


class Record(Base):
    """
    SQLAlchemy model for one stored JSON record.

    Table: records
    Primary Key: (collection, key)
    """
    __tablename__ = "records"

    collection = Column(String, primary_key=True)
    key = Column(String, primary_key=True)
    data = Column(JSON, nullable=False)
    created_at = Column(String, nullable=False)  # Server time ISO-8601
    updated_at = Column(String, nullable=False)  # Server time ISO-8601
