"""Daily rollup model."""
from sqlalchemy import Column, Date, Integer, String, Enum, CheckConstraint, Index
from inpwatch.database import Base
from inpwatch.constants import DeviceClass


class RollupRow(Base):
    """Daily latency aggregate per (day, page path, selector, device class)."""
    __tablename__ = "inp_rollups"

    day = Column(Date, primary_key=True)
    page_path = Column(String(255), primary_key=True)  # page_url without query string
    target_selector = Column(String(255), primary_key=True)
    device_class = Column(
        Enum(*DeviceClass.ALL, name="inp_device_class", native_enum=False),
        primary_key=True,
    )
    p50 = Column(Integer, nullable=False)
    p75 = Column(Integer, nullable=False)
    p95 = Column(Integer, nullable=False)
    count = Column(Integer, nullable=False)
    worst = Column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_inp_rollups_day", "day"),
        Index("idx_inp_rollups_selector", "target_selector"),
        CheckConstraint("count >= 1", name="ck_inp_rollups_count"),
    )

    def as_dict(self) -> dict:
        """Column values keyed by column name."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}
