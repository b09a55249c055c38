# enrollment/api/deps.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from enrollment.core.config import settings
from enrollment.db.session import get_db
from enrollment.schemas.token import TokenPayload
from enrollment.services.identity import Subject
from enrollment.services.notifications import Notifier, get_notifier
from enrollment.services.offering_service import OfferingService
from enrollment.services.payment import PaymentProvider, get_payment_provider
from enrollment.services.registration_service import RegistrationService
from enrollment.services.waitlist_service import WaitlistService

# The `tokenUrl` doesn't have to be a real endpoint in this service,
# it's just for the OpenAPI documentation.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token")


def get_current_user(token: str = Depends(oauth2_scheme)) -> TokenPayload:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except (JWTError, ValueError):
        # Catches any error from jose or Pydantic validation
        raise credentials_exception

    return token_data


def get_subject(current_user: TokenPayload = Depends(get_current_user)) -> Subject:
    return Subject(id=current_user.sub, role=current_user.role, email=current_user.email)


def require_admin(subject: Subject = Depends(get_subject)) -> Subject:
    if not subject.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return subject


def get_registration_service(
    db: Session = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    notifier: Notifier = Depends(get_notifier),
) -> RegistrationService:
    return RegistrationService(db, payment_provider=payment_provider, notifier=notifier)


def get_waitlist_service(
    db: Session = Depends(get_db),
    payment_provider: PaymentProvider = Depends(get_payment_provider),
    notifier: Notifier = Depends(get_notifier),
) -> WaitlistService:
    return WaitlistService(db, notifier=notifier, payment_provider=payment_provider)


def get_offering_service(
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> OfferingService:
    return OfferingService(db, notifier=notifier)
