"""
API routers.

/auth/*                          — login and code exchange (config tier)
/org/me, /org/organisations/*    — org management (config + backend + user tiers)
/internal/org/organisations/*    — group management (config + backend tier)
/domain/users, /domain/logs      — domain-wide listings (config + backend tier)
"""

from fastapi import APIRouter

from . import auth, domain, groups, internal, me, organisations, teams

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(me.router, prefix="/org", tags=["Org context"])
router.include_router(organisations.router, prefix="/org/organisations", tags=["Organisations"])
router.include_router(teams.router, prefix="/org/organisations/{org_id}/teams", tags=["Teams"])
router.include_router(groups.router, prefix="/org/organisations/{org_id}/groups", tags=["Groups"])
router.include_router(internal.router, prefix="/internal/org/organisations", tags=["Internal"])
router.include_router(domain.router, prefix="/domain", tags=["Domain"])
