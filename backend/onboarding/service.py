"""
Onboarding save operations.

Each save walks the wizard's pending items one at a time and persists them
through the catalog services. There is no enclosing transaction: on the first
failure the loop stops, ids already assigned stay in the state, the error is
stored on the state and the wizard does not advance.
"""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, StockroomError
from db.session import set_tenant
from inventory import catalog
from onboarding import wizard
from onboarding.wizard import OnboardingState
from tenancy.organizations import create_organization, get_membership

logger = structlog.get_logger()

ORGANIZATION_NOT_FOUND = "Organisation non trouvée"


async def _check_organization(db: AsyncSession, state: OnboardingState, user_id: str) -> str | None:
    """
    Return an error message unless the state's organization belongs to the user.
    On success the session is scoped to that organization.
    """
    organization_id = state.data.created_organization_id
    if organization_id is None:
        return ORGANIZATION_NOT_FOUND
    try:
        await get_membership(db, user_id, organization_id)
    except NotFoundError:
        return ORGANIZATION_NOT_FOUND
    await set_tenant(db, organization_id)
    return None


async def save_organization(db: AsyncSession, state: OnboardingState, user: dict) -> OnboardingState:
    name = state.data.organization.name.strip()
    if len(name) < 2 or not state.data.organization.sectors:
        return wizard.set_error(state, "Veuillez remplir tous les champs")

    try:
        membership = await create_organization(db, user["sub"], user.get("email"), name, wizard.generate_slug(name))
    except StockroomError as exc:
        logger.warning("onboarding.organization_failed", error=exc.message)
        return wizard.set_error(state, exc.message)

    state = wizard.update_organization(state, name=name)
    state = wizard.set_created_organization_id(state, membership.organization_id)
    state = wizard.mark_step_completed(state, "organization")
    return wizard.set_error(wizard.next_step(state), None)


async def save_categories(db: AsyncSession, state: OnboardingState, user: dict) -> OnboardingState:
    if not state.data.categories:
        return wizard.set_error(state, "Ajoutez au moins une catégorie")
    error = await _check_organization(db, state, user["sub"])
    if error:
        return wizard.set_error(state, error)

    organization_id = state.data.created_organization_id
    for index, category in enumerate(state.data.categories):
        if category.id is not None:
            continue
        try:
            created = await catalog.create_category(db, organization_id, category.name, category.parent_id)
        except StockroomError as exc:
            logger.warning("onboarding.category_failed", index=index, error=exc.message)
            return wizard.set_error(state, exc.message)
        state = wizard.set_category_id(state, index, created.category_id)

    logger.info("onboarding.categories_saved", count=len(state.data.categories))
    state = wizard.mark_step_completed(state, "categories")
    return wizard.set_error(wizard.next_step(state), None)


async def save_products(db: AsyncSession, state: OnboardingState, user: dict) -> OnboardingState:
    if not state.data.products:
        return wizard.set_error(state, "Ajoutez au moins un produit")
    error = await _check_organization(db, state, user["sub"])
    if error:
        return wizard.set_error(state, error)

    organization_id = state.data.created_organization_id
    for index, product in enumerate(state.data.products):
        if product.id is not None:
            continue
        try:
            created = await catalog.create_product(
                db,
                organization_id,
                name=product.name,
                sku=product.sku,
                category_id=product.category_id,
                stock_min=product.stock_min,
                stock_max=product.stock_max,
                stock_current=product.stock_initial,
                price=product.price,
                record_initial_entry=True,
            )
        except StockroomError as exc:
            logger.warning("onboarding.product_failed", index=index, error=exc.message)
            return wizard.set_error(state, exc.message)
        state = wizard.set_product_id(state, index, created.product_id)

    logger.info("onboarding.products_saved", count=len(state.data.products))
    state = wizard.mark_step_completed(state, "products")
    return wizard.set_error(wizard.next_step(state), None)


async def save_technician(db: AsyncSession, state: OnboardingState, user: dict) -> OnboardingState:
    technician = state.data.technician
    if not technician.first_name.strip() or not technician.last_name.strip():
        return wizard.set_error(state, "Veuillez entrer le nom du technicien")
    error = await _check_organization(db, state, user["sub"])
    if error:
        return wizard.set_error(state, error)

    try:
        created = await catalog.create_technician(
            db,
            state.data.created_organization_id,
            first_name=technician.first_name,
            last_name=technician.last_name,
            email=technician.email,
            city=technician.city,
        )
    except StockroomError as exc:
        logger.warning("onboarding.technician_failed", error=exc.message)
        return wizard.set_error(state, exc.message)

    state = wizard.set_created_technician_id(state, created.technician_id)
    state = wizard.mark_step_completed(state, "first-technician")
    return wizard.set_error(wizard.next_step(state), None)
