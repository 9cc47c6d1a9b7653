from sqlalchemy import Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from influx_transfer.schemas import DIMENSION_COLUMNS


class Base(DeclarativeBase):
    pass


class AggregatedMeasurement(Base):
    __tablename__ = "aggregated_data"
    # Repeated runs stay idempotent only while this constraint exists.
    __table_args__ = (UniqueConstraint(*DIMENSION_COLUMNS, name="uq_aggregated_dimensions"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company: Mapped[str] = mapped_column(String(255))
    project: Mapped[str] = mapped_column(String(255))
    cohort: Mapped[str] = mapped_column(String(255))
    user: Mapped[str] = mapped_column(String(255))
    stage: Mapped[str] = mapped_column(String(255))
    version_tag: Mapped[str] = mapped_column(String(255))
    value: Mapped[float] = mapped_column(Float(precision=53))
