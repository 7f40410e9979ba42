"""Tests for meal customization rules."""

import pytest

from marmita_checkout.checkout.customization import (
    Accepted,
    Activated,
    FoodOption,
    KeptDefault,
    Rejected,
    RejectionReason,
    SubstitutionGroup,
    Uninitialized,
    activate,
    compose_notes,
    customize_notes,
    format_annotation,
    load_substitution_groups,
    parse_annotation,
    validate,
)
from marmita_checkout.errors import InputError


@pytest.fixture
def arroz():
    return SubstitutionGroup(10, "Arroz branco", (FoodOption(11, "Arroz integral"), FoodOption(12, "Quinoa")))


@pytest.fixture
def feijao():
    return SubstitutionGroup(20, "Feijão", (FoodOption(21, "Lentilha"),))


class TestLoadSubstitutionGroups:
    """Test cases for grouping raw link rows."""

    def test_groups_by_default_food(self):
        rows = [
            {"is_active": True, "default_food": {"id": 10, "name": "Arroz branco"},
             "alternative_food": {"id": 11, "name": "Arroz integral"}},
            {"is_active": True, "default_food": {"id": 20, "name": "Feijão"},
             "alternative_food": {"id": 21, "name": "Lentilha"}},
            {"is_active": True, "default_food": {"id": 10, "name": "Arroz branco"},
             "alternative_food": {"id": 12, "name": "Quinoa"}},
            {"is_active": False, "default_food": {"id": 30, "name": "Batata"},
             "alternative_food": {"id": 31, "name": "Mandioca"}},
        ]

        groups = load_substitution_groups(rows)

        assert [g.group_id for g in groups] == [10, 20]
        assert [o.food_id for o in groups[0].alternatives] == [11, 12]

    def test_product_without_food_changes(self):
        rows = [{"is_active": True, "default_food": {"id": 10, "name": "Arroz"}}]
        assert load_substitution_groups(rows, allows_food_changes=False) == []

    def test_default_only_row(self):
        groups = load_substitution_groups(
            [{"is_active": True, "default_food": {"id": 10, "name": "Arroz"}}]
        )
        assert groups == [SubstitutionGroup(10, "Arroz", ())]


class TestValidate:
    """Test cases for the customization gate."""

    def test_uninitialized_is_rejected(self, arroz):
        result = validate(Uninitialized(), [arroz])
        assert result == Rejected(RejectionReason.NO_DECISION)
        assert not result.ok

    def test_kept_default_has_empty_annotation(self, arroz, feijao):
        assert validate(KeptDefault(), [arroz, feijao]) == Accepted("")

    def test_activate_presets_defaults(self, arroz, feijao):
        assert activate([arroz, feijao]) == Activated({10: 10, 20: 20})

    def test_single_group_unchanged_is_rejected(self, arroz):
        result = validate(activate([arroz]), [arroz])
        assert result.reason is RejectionReason.NO_CHANGE_MADE

    def test_single_group_changed_is_accepted(self, arroz):
        state = activate([arroz]).select(10, 11)
        result = validate(state, [arroz])

        assert result.ok
        assert result.annotation == "Substitutions: Arroz branco: Arroz integral"

    def test_two_groups_one_change_suffices(self, arroz, feijao):
        state = activate([arroz, feijao]).select(20, 21)
        result = validate(state, [arroz, feijao])

        assert result.annotation == "Substitutions: Arroz branco: Arroz branco, Feijão: Lentilha"

    def test_two_groups_unchanged_is_rejected(self, arroz, feijao):
        result = validate(activate([arroz, feijao]), [arroz, feijao])
        assert result.reason is RejectionReason.NO_CHANGE_MADE

    def test_missing_selection_is_incomplete(self, arroz, feijao):
        result = validate(Activated({10: 11}), [arroz, feijao])
        assert result.reason is RejectionReason.INCOMPLETE_SELECTIONS

    def test_unknown_food_is_invalid(self, arroz):
        result = validate(Activated({10: 99}), [arroz])
        assert result.reason is RejectionReason.INVALID_SELECTION

    def test_rejection_converts_to_input_error(self):
        error = Rejected(RejectionReason.NO_CHANGE_MADE).to_error()
        assert isinstance(error, InputError)
        assert error.code == "NoChangeMade"


class TestNotes:
    """Test cases for notes composition."""

    def test_compose_notes(self):
        assert compose_notes("sem cebola", "Substitutions: A: B") == "sem cebola | Substitutions: A: B"
        assert compose_notes("  ", "") is None
        assert compose_notes(None, "Substitutions: A: B") == "Substitutions: A: B"

    def test_parse_annotation(self, arroz, feijao):
        annotation = format_annotation([arroz, feijao], {10: 12, 20: 20})
        notes = compose_notes("bem passado", annotation)

        assert parse_annotation(notes) == [("Arroz branco", "Quinoa"), ("Feijão", "Feijão")]
        assert parse_annotation("sem cebola") == []
        assert parse_annotation(None) == []

    def test_names_with_separators_round_trip(self):
        groups = [
            SubstitutionGroup(1, "Arroz, feijão", (FoodOption(2, "Molho: tomate | pesto"),)),
            SubstitutionGroup(3, "Salada\\verde", (FoodOption(4, "Legumes"),)),
        ]
        annotation = format_annotation(groups, {1: 2, 3: 3})
        notes = compose_notes("sem cebola | Substitutions: nada", annotation)

        assert parse_annotation(notes) == [
            ("Arroz, feijão", "Molho: tomate | pesto"),
            ("Salada\\verde", "Salada\\verde"),
        ]

    def test_plain_names_are_not_escaped(self, arroz):
        assert format_annotation([arroz], {10: 11}) == "Substitutions: Arroz branco: Arroz integral"

    def test_customize_notes_without_groups_skips_gate(self):
        assert customize_notes(Uninitialized(), [], "sem sal") == "sem sal"

    def test_customize_notes_raises_on_rejection(self, arroz):
        with pytest.raises(InputError) as exc_info:
            customize_notes(Uninitialized(), [arroz])
        assert exc_info.value.code == "NoDecision"

    def test_customize_notes_keep_default(self, arroz):
        assert customize_notes(KeptDefault(), [arroz], "sem sal") == "sem sal"

    def test_customize_notes_with_substitution(self, arroz):
        notes = customize_notes(activate([arroz]).select(10, 11), [arroz], "sem sal")
        assert notes == "sem sal | Substitutions: Arroz branco: Arroz integral"
