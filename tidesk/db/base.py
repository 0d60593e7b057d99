from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import MetaData


convention = {
    "ix": "ix__%(column_0_label)s",
    "uq": "uq__%(table_name)s__%(column_0_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}

# Largest value an INTEGER column can bind
MAX_STORED_INTEGER = 2**63 - 1


class Base(DeclarativeBase):
    """Declarative base with naming convention."""

    metadata = MetaData(naming_convention=convention)
