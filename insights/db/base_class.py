from typing import Any, ClassVar

from sqlalchemy.orm import DeclarativeBase, declared_attr


class Base(DeclarativeBase):
    # Relationships serialized along with the row when a snapshot is requested
    __snapshot_relations__: ClassVar[tuple[str, ...]] = ()

    @declared_attr.directive
    def __tablename__(cls) -> str:  # type: ignore
        return cls.__name__.lower()

    def as_dict(self) -> dict[str, Any]:
        return {c.key: getattr(self, c.key) for c in self.__table__.columns}

    def snapshot(self, columns: list[str] | None = None) -> dict[str, Any]:
        """Plain-dict copy of the row, nested relationships included."""
        row = self.as_dict()
        if columns is not None:
            row = {key: value for key, value in row.items() if key in columns}
        for name in self.__snapshot_relations__:
            if columns is not None and name not in columns:
                continue
            related = getattr(self, name)
            if related is None:
                row[name] = None
            elif isinstance(related, list):
                row[name] = [item.snapshot() for item in related]
            else:
                row[name] = related.snapshot()
        return row
