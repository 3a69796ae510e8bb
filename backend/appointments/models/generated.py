from sqlalchemy import Column, Float, ForeignKey, Index, Integer, Text, UniqueConstraint, text

from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()
metadata = Base.metadata

ACTIVE_BOOKING_CONDITION = text("status IN ('pending', 'confirmed')")


class ProviderProfiles(Base):
    __tablename__ = 'provider_profiles'

    business_name = Column(Text, nullable=False)
    timezone = Column(Text, nullable=False, server_default=text("'Europe/Belgrade'"))
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    description = Column(Text)
    availability_settings = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    services = relationship('Services', back_populates='provider')
    bookings = relationship('Bookings', back_populates='provider')
    integrations = relationship('ProviderIntegrations', back_populates='provider_ref')


class Services(Base):
    __tablename__ = 'services'

    provider_id = Column(ForeignKey('provider_profiles.id', ondelete='CASCADE'), nullable=False)
    name = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)
    is_active = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    description = Column(Text)

    provider = relationship('ProviderProfiles', back_populates='services')
    bookings = relationship('Bookings', back_populates='service')


class Bookings(Base):
    __tablename__ = 'bookings'
    __table_args__ = (
        Index('ix_bookings_provider_start', 'provider_id', 'date_start'),
        Index('ix_bookings_client_start', 'client_id', 'date_start'),
        # Backstop for concurrent commits of the same slot
        Index(
            'uq_bookings_provider_start_active', 'provider_id', 'date_start',
            unique=True,
            sqlite_where=ACTIVE_BOOKING_CONDITION,
            postgresql_where=ACTIVE_BOOKING_CONDITION,
        ),
    )

    provider_id = Column(ForeignKey('provider_profiles.id', ondelete='CASCADE'), nullable=False)
    service_id = Column(ForeignKey('services.id'), nullable=False)
    client_id = Column(Integer, nullable=False)
    date_start = Column(Text, nullable=False)  # UTC "YYYY-MM-DD HH:MM:SS"
    date_end = Column(Text, nullable=False)
    status = Column(Text, nullable=False, server_default=text("'confirmed'"))
    sync_status = Column(Text, nullable=False, server_default=text("'pending'"))
    created_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, nullable=False, server_default=text('CURRENT_TIMESTAMP'))
    id = Column(Integer, primary_key=True)
    notes = Column(Text)
    external_event_id = Column(Text)

    provider = relationship('ProviderProfiles', back_populates='bookings')
    service = relationship('Services', back_populates='bookings')


class ProviderIntegrations(Base):
    __tablename__ = 'provider_integrations'
    __table_args__ = (
        UniqueConstraint('provider_id', 'provider'),
    )

    provider_id = Column(ForeignKey('provider_profiles.id', ondelete='CASCADE'), nullable=False)
    provider = Column(Text, nullable=False, server_default=text("'google_calendar'"))
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    calendar_id = Column(Text, nullable=False, server_default=text("'primary'"))
    sync_enabled = Column(Integer, nullable=False, server_default=text('1'))
    id = Column(Integer, primary_key=True)
    account_email = Column(Text)
    token_expires_at = Column(Text)
    last_sync_at = Column(Text)
    created_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))
    updated_at = Column(Text, server_default=text('CURRENT_TIMESTAMP'))

    provider_ref = relationship('ProviderProfiles', back_populates='integrations')
