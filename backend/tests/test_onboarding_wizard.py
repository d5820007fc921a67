"""
Tests for onboarding wizard transitions.
"""

import uuid

from onboarding import wizard
from onboarding.wizard import CategoryData, OnboardingState, ProductData


class TestNavigation:
    def test_initial_state(self):
        state = wizard.reset()
        assert state.current_step == 0
        assert wizard.current_step_key(state) == "welcome"
        assert wizard.progress(state) == 0
        assert state.completed_steps == []
        assert state.error is None

    def test_next_and_prev_are_clamped(self):
        state = wizard.prev_step(wizard.reset())
        assert state.current_step == 0

        last = OnboardingState(current_step=6)
        assert wizard.next_step(last).current_step == 6
        assert wizard.progress(last) == 100

    def test_progress_mid_way(self):
        assert wizard.progress(OnboardingState(current_step=3)) == 50
        assert wizard.progress(OnboardingState(current_step=1)) == 17

    def test_skip_marks_current_step_completed(self):
        state = OnboardingState(current_step=4)
        skipped = wizard.skip_step(state)
        assert skipped.current_step == 5
        assert skipped.completed_steps == ["first-technician"]

    def test_mark_step_completed_is_idempotent(self):
        state = wizard.mark_step_completed(wizard.reset(), "welcome")
        state = wizard.mark_step_completed(state, "welcome")
        assert state.completed_steps == ["welcome"]

    def test_transitions_do_not_mutate_input(self):
        state = wizard.reset()
        wizard.next_step(state)
        wizard.add_category(state, CategoryData(name="Peintures"))
        assert state.current_step == 0
        assert state.data.categories == []


class TestCategoriesAndProducts:
    def test_remove_category_drops_created_id_at_same_index(self):
        first, second = uuid.uuid4(), uuid.uuid4()
        state = wizard.add_category(wizard.reset(), CategoryData(name="Peintures"))
        state = wizard.add_category(state, CategoryData(name="Outillage"))
        state = wizard.set_category_id(state, 0, first)
        state = wizard.set_category_id(state, 1, second)

        state = wizard.remove_category(state, 0)

        assert [c.name for c in state.data.categories] == ["Outillage"]
        assert state.data.created_category_ids == [second]

    def test_set_category_id_pads_created_ids(self):
        created = uuid.uuid4()
        state = wizard.add_category(wizard.reset(), CategoryData(name="A"))
        state = wizard.add_category(state, CategoryData(name="B"))
        state = wizard.set_category_id(state, 1, created)
        assert state.data.created_category_ids == [None, created]
        assert state.data.categories[1].id == created

    def test_update_product(self):
        state = wizard.add_product(wizard.reset(), ProductData(name="Blanc"))
        state = wizard.update_product(state, 0, stock_initial=20, price=49.9)
        product = state.data.products[0]
        assert (product.stock_initial, product.price, product.stock_min) == (20, 49.9, 5)

    def test_update_out_of_range_is_ignored(self):
        state = wizard.add_product(wizard.reset(), ProductData(name="Blanc"))
        assert wizard.update_product(state, 3, name="X").data.products[0].name == "Blanc"

    def test_remove_product(self):
        state = wizard.add_product(wizard.reset(), ProductData(name="Blanc"))
        state = wizard.add_product(state, ProductData(name="Rouleau"))
        state = wizard.remove_product(state, 1)
        assert [p.name for p in state.data.products] == ["Blanc"]


class TestSlug:
    def test_accents_and_separators(self):
        assert wizard.generate_slug("Peintures Dupont & Fils") == "peintures-dupont-fils"
        assert wizard.generate_slug("Façades de l'Été") == "facades-de-l-ete"

    def test_trimmed_and_truncated(self):
        assert wizard.generate_slug("  --Déco!--  ") == "deco"
        assert len(wizard.generate_slug("x" * 80)) == 50
