"""
Onboarding Router — first-run wizard.

The client keeps the wizard state and posts it with every call; each endpoint
returns the next state. Save endpoints report failures in `error` (HTTP 200)
so the client can show the message and retry from where it stopped.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from onboarding import service, wizard
from onboarding.wizard import OnboardingState

router = APIRouter(prefix="/api/v1/onboarding", tags=["onboarding"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class OnboardingStateResponse(OnboardingState):
    step_key: str = "welcome"
    progress: int = 0


class IndexedRequest(BaseModel):
    state: OnboardingState
    index: int


def _respond(state: OnboardingState) -> OnboardingStateResponse:
    return OnboardingStateResponse(
        **state.model_dump(),
        step_key=wizard.current_step_key(state),
        progress=wizard.progress(state),
    )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.post("/start", response_model=OnboardingStateResponse)
async def start_onboarding(user: dict = Depends(get_current_user)):
    """A fresh wizard state."""
    return _respond(wizard.reset())


@router.post("/next", response_model=OnboardingStateResponse)
async def next_step(state: OnboardingState, user: dict = Depends(get_current_user)):
    return _respond(wizard.next_step(state))


@router.post("/prev", response_model=OnboardingStateResponse)
async def prev_step(state: OnboardingState, user: dict = Depends(get_current_user)):
    return _respond(wizard.prev_step(state))


@router.post("/skip", response_model=OnboardingStateResponse)
async def skip_step(state: OnboardingState, user: dict = Depends(get_current_user)):
    return _respond(wizard.skip_step(state))


@router.post("/categories/remove", response_model=OnboardingStateResponse)
async def remove_category(request: IndexedRequest, user: dict = Depends(get_current_user)):
    return _respond(wizard.remove_category(request.state, request.index))


@router.post("/products/remove", response_model=OnboardingStateResponse)
async def remove_product(request: IndexedRequest, user: dict = Depends(get_current_user)):
    return _respond(wizard.remove_product(request.state, request.index))


@router.post("/organization", response_model=OnboardingStateResponse)
async def save_organization(
    state: OnboardingState,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create the organization named in the state; the user becomes owner."""
    return _respond(await service.save_organization(db, state, user))


@router.post("/categories", response_model=OnboardingStateResponse)
async def save_categories(
    state: OnboardingState,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create every category of the state that has no id yet."""
    return _respond(await service.save_categories(db, state, user))


@router.post("/products", response_model=OnboardingStateResponse)
async def save_products(
    state: OnboardingState,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create every product of the state that has no id yet, with its initial stock entry."""
    return _respond(await service.save_products(db, state, user))


@router.post("/technician", response_model=OnboardingStateResponse)
async def save_technician(
    state: OnboardingState,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return _respond(await service.save_technician(db, state, user))
