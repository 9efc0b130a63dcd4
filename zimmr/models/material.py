"""
ZIMMR Backend — Material Model
===============================

What:  Catalogue of billable materials (tiles, grout, adhesive, ...).
How:   `craftsman_id` NULL marks a shared catalogue entry visible to every
       craftsman; otherwise the material is private to its owner.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import TIMESTAMP, Boolean, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from zimmr.database import Base


class Material(Base):
    __tablename__ = "materials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    craftsman_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("craftsmen.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0"), server_default=text("0")
    )
    unit_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="sqm", server_default=text("'sqm'")
    )
    category: Mapped[str] = mapped_column(
        String(100), nullable=False, default="Tiling", server_default=text("'Tiling'")
    )
    in_stock: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_materials_category_name", "category", "name"),
    )

    def __repr__(self) -> str:
        return f"<Material(id={self.id}, name='{self.name}', category='{self.category}')>"
