"""SQLAlchemy models for the product catalog."""

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planwise_engine.common.models import Base, TimestampMixin, generate_uuid


class ProductModel(Base, TimestampMixin):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="active")
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)


class FeatureModel(Base, TimestampMixin):
    __tablename__ = "features"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    value_type: Mapped[str] = mapped_column(String(20), nullable=False)
    default_value: Mapped[str] = mapped_column(Text, nullable=False)
    group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)


class ProductFeatureModel(Base, TimestampMixin):
    """Membership of a feature in a product."""
    __tablename__ = "product_features"
    __table_args__ = (
        UniqueConstraint("product_id", "feature_id", name="uq_product_feature"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feature_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("features.id", ondelete="CASCADE"), nullable=False, index=True
    )


class PlanModel(Base, TimestampMixin):
    __tablename__ = "plans"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    product_key: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="active")
    on_expire_transition_to_billing_cycle_key: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)

    feature_values: Mapped[list["PlanFeatureValueModel"]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )
    billing_cycles: Mapped[list["BillingCycleModel"]] = relationship(
        back_populates="plan", cascade="all, delete-orphan"
    )


class PlanFeatureValueModel(Base, TimestampMixin):
    __tablename__ = "plan_feature_values"
    __table_args__ = (
        UniqueConstraint("plan_id", "feature_id", name="uq_plan_feature_value"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    feature_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("features.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[str] = mapped_column(Text, nullable=False)

    plan: Mapped["PlanModel"] = relationship(back_populates="feature_values")


class BillingCycleModel(Base, TimestampMixin):
    __tablename__ = "billing_cycles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    plan_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("plans.id", ondelete="CASCADE"), nullable=False, index=True
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_value: Mapped[int] = mapped_column(Integer, default=1)
    duration_unit: Mapped[str] = mapped_column(String(20), default="months")
    status: Mapped[str] = mapped_column(String(20), default="active")

    plan: Mapped["PlanModel"] = relationship(back_populates="billing_cycles")


class CustomerModel(Base, TimestampMixin):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    key: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), default="active")
    metadata_: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
