"""Tenant owned property management tables.

Every table except ``agencies`` carries ``agency_id`` and is covered by row
level security (see ``app.tenancy.row_security.TENANT_TABLES``).
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


class Agency(Base):
    """An isolated customer organisation. Created through the system path only."""

    __tablename__ = "agencies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.now)


class Landlord(Base):
    __tablename__ = "landlords"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)

    properties = relationship("Property", back_populates="landlord")


class Property(Base):
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    landlord_id = Column(Integer, ForeignKey("landlords.id"), nullable=True, index=True)
    address_line1 = Column(String, nullable=False)
    address_line2 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    postcode = Column(String, nullable=True)
    location = Column(String, nullable=True)

    landlord = relationship("Landlord", back_populates="properties")
    bedrooms = relationship("Bedroom", back_populates="property", cascade="all, delete-orphan")


class Bedroom(Base):
    __tablename__ = "bedrooms"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    bedroom_name = Column(String, nullable=False)
    price_pppw = Column(Numeric(10, 2), nullable=True)  # base rent per person per week
    display_order = Column(Integer, nullable=False, default=0)

    property = relationship("Property", back_populates="bedrooms")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    email = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default="tenant")


class Tenancy(Base):
    """A let of either individual rooms or a whole house."""

    __tablename__ = "tenancies"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    tenancy_type = Column(String, nullable=False, default="rooms")  # 'rooms' or 'whole_house'
    status = Column(String, nullable=False, default="pending")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_rolling_monthly = Column(Boolean, nullable=False, default=False)

    members = relationship("TenancyMember", back_populates="tenancy", cascade="all, delete-orphan")


class TenancyMember(Base):
    __tablename__ = "tenancy_members"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    tenancy_id = Column(Integer, ForeignKey("tenancies.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    bedroom_id = Column(Integer, ForeignKey("bedrooms.id"), nullable=True, index=True)
    first_name = Column(String, nullable=False)
    surname = Column(String, nullable=False)
    rent_pppw = Column(Numeric(10, 2), nullable=True)

    tenancy = relationship("Tenancy", back_populates="members")


class PaymentSchedule(Base):
    __tablename__ = "payment_schedules"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    tenancy_id = Column(Integer, ForeignKey("tenancies.id"), nullable=False, index=True)
    tenancy_member_id = Column(Integer, ForeignKey("tenancy_members.id"), nullable=False, index=True)
    due_date = Column(Date, nullable=False)
    amount_due = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, paid, partial, overdue
    description = Column(Text, nullable=True)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    payment_schedule_id = Column(Integer, ForeignKey("payment_schedules.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    payment_date = Column(Date, nullable=False)
