"""
Onboarding Wizard — state and pure transitions.

The wizard walks a new user through creating their organization, a first set
of categories and products, and a first technician. The state is owned by the
client and sent back with every call; each transition returns a new state and
never mutates its input.

Steps (by index):
  0 welcome, 1 organization, 2 categories, 3 products,
  4 first-technician, 5 stock-tutorial, 6 completion
"""

import re
import unicodedata
from uuid import UUID

from pydantic import BaseModel, Field

from inventory.metrics import round_half_up

ONBOARDING_STEPS = [
    "welcome",
    "organization",
    "categories",
    "products",
    "first-technician",
    "stock-tutorial",
    "completion",
]

SECTORS = ("peinture", "revetement", "batiment", "automobile", "industrie", "autre")


# ─── State ──────────────────────────────────────────────────────────────────


class OrganizationData(BaseModel):
    name: str = ""
    sectors: list[str] = Field(default_factory=list)


class CategoryData(BaseModel):
    id: UUID | None = None
    name: str
    parent_id: UUID | None = None


class ProductData(BaseModel):
    id: UUID | None = None
    name: str
    sku: str = ""
    category_id: UUID | None = None
    stock_min: int = 5
    stock_max: int = 100
    stock_initial: int = 0
    price: float = 0


class TechnicianData(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    city: str = ""


class OnboardingData(BaseModel):
    organization: OrganizationData = Field(default_factory=OrganizationData)
    categories: list[CategoryData] = Field(default_factory=list)
    products: list[ProductData] = Field(default_factory=list)
    technician: TechnicianData = Field(default_factory=TechnicianData)
    created_organization_id: UUID | None = None
    created_category_ids: list[UUID | None] = Field(default_factory=list)
    created_product_ids: list[UUID | None] = Field(default_factory=list)
    created_technician_id: UUID | None = None


class OnboardingState(BaseModel):
    current_step: int = 0
    data: OnboardingData = Field(default_factory=OnboardingData)
    completed_steps: list[str] = Field(default_factory=list)
    error: str | None = None


def _copy(state: OnboardingState) -> OnboardingState:
    return state.model_copy(deep=True)


def _set_at(ids: list, index: int, value) -> None:
    while len(ids) <= index:
        ids.append(None)
    ids[index] = value


def _drop_at(items: list, index: int) -> list:
    return [item for i, item in enumerate(items) if i != index]


# ─── Transitions ────────────────────────────────────────────────────────────


def update_organization(state: OnboardingState, **changes) -> OnboardingState:
    new = _copy(state)
    new.data.organization = new.data.organization.model_copy(update=changes)
    return new


def add_category(state: OnboardingState, category: CategoryData) -> OnboardingState:
    new = _copy(state)
    new.data.categories.append(category.model_copy())
    return new


def remove_category(state: OnboardingState, index: int) -> OnboardingState:
    """Remove a category and the created id at the same position."""
    new = _copy(state)
    new.data.categories = _drop_at(new.data.categories, index)
    new.data.created_category_ids = _drop_at(new.data.created_category_ids, index)
    return new


def update_category(state: OnboardingState, index: int, **changes) -> OnboardingState:
    new = _copy(state)
    if 0 <= index < len(new.data.categories):
        new.data.categories[index] = new.data.categories[index].model_copy(update=changes)
    return new


def set_category_id(state: OnboardingState, index: int, category_id: UUID) -> OnboardingState:
    new = _copy(state)
    _set_at(new.data.created_category_ids, index, category_id)
    if 0 <= index < len(new.data.categories):
        new.data.categories[index].id = category_id
    return new


def add_product(state: OnboardingState, product: ProductData) -> OnboardingState:
    new = _copy(state)
    new.data.products.append(product.model_copy())
    return new


def remove_product(state: OnboardingState, index: int) -> OnboardingState:
    new = _copy(state)
    new.data.products = _drop_at(new.data.products, index)
    new.data.created_product_ids = _drop_at(new.data.created_product_ids, index)
    return new


def update_product(state: OnboardingState, index: int, **changes) -> OnboardingState:
    new = _copy(state)
    if 0 <= index < len(new.data.products):
        new.data.products[index] = new.data.products[index].model_copy(update=changes)
    return new


def set_product_id(state: OnboardingState, index: int, product_id: UUID) -> OnboardingState:
    new = _copy(state)
    _set_at(new.data.created_product_ids, index, product_id)
    if 0 <= index < len(new.data.products):
        new.data.products[index].id = product_id
    return new


def update_technician(state: OnboardingState, **changes) -> OnboardingState:
    new = _copy(state)
    new.data.technician = new.data.technician.model_copy(update=changes)
    return new


def set_created_organization_id(state: OnboardingState, organization_id: UUID) -> OnboardingState:
    new = _copy(state)
    new.data.created_organization_id = organization_id
    return new


def set_created_technician_id(state: OnboardingState, technician_id: UUID) -> OnboardingState:
    new = _copy(state)
    new.data.created_technician_id = technician_id
    return new


def mark_step_completed(state: OnboardingState, step: str) -> OnboardingState:
    new = _copy(state)
    if step not in new.completed_steps:
        new.completed_steps.append(step)
    return new


def next_step(state: OnboardingState) -> OnboardingState:
    new = _copy(state)
    new.current_step = min(state.current_step + 1, len(ONBOARDING_STEPS) - 1)
    return new


def prev_step(state: OnboardingState) -> OnboardingState:
    new = _copy(state)
    new.current_step = max(0, state.current_step - 1)
    return new


def skip_step(state: OnboardingState) -> OnboardingState:
    """Mark the current step completed and move on."""
    return next_step(mark_step_completed(state, current_step_key(state)))


def set_error(state: OnboardingState, error: str | None) -> OnboardingState:
    new = _copy(state)
    new.error = error
    return new


def reset() -> OnboardingState:
    return OnboardingState()


def current_step_key(state: OnboardingState) -> str:
    return ONBOARDING_STEPS[state.current_step]


def progress(state: OnboardingState) -> int:
    return int(round_half_up(state.current_step / (len(ONBOARDING_STEPS) - 1) * 100))


def generate_slug(name: str) -> str:
    """Lowercase, accents stripped, runs of other characters collapsed to '-', 50 chars max."""
    decomposed = unicodedata.normalize("NFD", name.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")[:50]
