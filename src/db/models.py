from sqlalchemy import (
    MetaData,
    Column,
    String,
    Index,
    JSON,
    DateTime,
)
from sqlalchemy.orm import declarative_base

# Define naming conventions for constraints and indexes
# https://alembic.sqlalchemy.org/en/latest/naming.html
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)
Base = declarative_base(metadata=metadata)


class ProfileRecord(Base):
    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    group_number = Column(String(64), nullable=True)  # added in revision 0002
    created_at = Column(DateTime(timezone=True), nullable=False)
    achievements = Column(JSON, nullable=False)
    top_three = Column(JSON, nullable=False)
    common_denominators = Column(JSON, nullable=False)
    performance_pattern = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_profiles_created_at_desc", created_at.desc()),
    )


profiles_table = ProfileRecord.__table__
