import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .domain.scheduling.visibility import Actor, Role
from .models import Profile
from .security_utils import log_security_event, mask_sensitive_data, verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_profile(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Get current staff profile from a Bearer JWT whose ``sub`` is the profile id"""

    if not credentials:
        logger.error("❌ No credentials provided")
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials

    # Basic token format validation before processing
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received: {mask_sensitive_data(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    subject = payload.get("sub")
    try:
        profile_id = int(subject)
    except (TypeError, ValueError):
        logger.error(f"❌ Token missing usable 'sub' claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims") from None

    profile = db.query(Profile).filter(Profile.id == profile_id).first()
    if not profile:
        logger.warning(f"⚠️ Token for unknown profile {profile_id}")
        raise HTTPException(status_code=401, detail="Unknown user")

    if not profile.is_active:
        log_security_event("inactive_profile_login", user_id=str(profile.id))
        raise HTTPException(status_code=403, detail="Account is deactivated")

    return profile


async def get_current_actor(profile: Profile = Depends(get_current_profile)) -> Actor:
    """Immutable authorization context passed into every engine call"""
    if profile.role not in {role.value for role in Role}:
        logger.error(f"❌ Profile {profile.id} has unknown role {profile.role!r}")
        raise HTTPException(status_code=403, detail="Unknown role")
    return Actor.from_profile(profile)
