from dataclasses import dataclass
from datetime import timedelta

from sqlmodel import Session

from .application.services.conversion_guard import ConversionGuard
from .application.services.expiry_reaper import ExpiryReaper
from .application.services.offer_cascade import OfferCascade
from .application.services.waitlist_service import WaitlistService
from .application.services.withdrawal import WithdrawalHandler
from .config import Settings, settings as default_settings
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.persistence.sqlalchemy.repositories import (
    SqlAppointmentsGateway,
    SqlNotifier,
    SqlSlotCapacity,
    SqlWaitlistRepository,
)


@dataclass
class WaitlistServices:
    waitlist: WaitlistService
    cascade: OfferCascade
    conversion: ConversionGuard
    withdrawal: WithdrawalHandler
    reaper: ExpiryReaper


def build_services(session: Session, settings: Settings = default_settings) -> WaitlistServices:
    """Wire the waitlist use cases onto one database session."""
    repo = SqlWaitlistRepository(session)
    appointments = SqlAppointmentsGateway(session)
    capacity = SqlSlotCapacity(session)
    notifier = SqlNotifier(session)
    audit = StdAuditLogger()

    cascade = OfferCascade(
        repo=repo,
        notifier=notifier,
        audit=audit,
        offer_window=timedelta(minutes=settings.OFFER_WINDOW_MINUTES),
        max_attempts=settings.CASCADE_MAX_ATTEMPTS,
    )
    return WaitlistServices(
        waitlist=WaitlistService(
            repo=repo,
            appointments=appointments,
            notifier=notifier,
            audit=audit,
            join_horizon=timedelta(hours=settings.JOIN_HORIZON_HOURS),
        ),
        cascade=cascade,
        conversion=ConversionGuard(
            repo=repo,
            appointments=appointments,
            capacity=capacity,
            cascade=cascade,
            notifier=notifier,
            audit=audit,
        ),
        withdrawal=WithdrawalHandler(
            repo=repo,
            cascade=cascade,
            audit=audit,
            cascade_on_notified=settings.CASCADE_ON_NOTIFIED_WITHDRAWAL,
        ),
        reaper=ExpiryReaper(repo=repo, cascade=cascade, audit=audit),
    )
