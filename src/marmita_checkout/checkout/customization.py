"""Food substitution rules for customizable meals.

A customizable product exposes substitution groups: a default food plus
the alternatives the kitchen accepts in its place. Before such a product
goes into the cart the customer must either keep every default or
activate substitutions and actually change something. The accepted
choice becomes a text annotation appended to the line's notes, which in
turn feeds the line identity so that two different customizations never
share a cart row.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from ..errors import InputError
from ..utils.logging import get_logger

logger = get_logger(__name__)

ANNOTATION_PREFIX = "Substitutions: "
NOTES_SEPARATOR = " | "


@dataclass(frozen=True)
class FoodOption:
    food_id: int
    food_name: str


@dataclass(frozen=True)
class SubstitutionGroup:
    default_food_id: int
    default_food_name: str
    alternatives: Tuple[FoodOption, ...] = ()

    @property
    def group_id(self) -> int:
        return self.default_food_id

    @property
    def name(self) -> str:
        return self.default_food_name

    def food_name(self, food_id: int) -> Optional[str]:
        if food_id == self.default_food_id:
            return self.default_food_name
        for option in self.alternatives:
            if option.food_id == food_id:
                return option.food_name
        return None


def load_substitution_groups(
    rows: Iterable[Mapping[str, Any]], allows_food_changes: bool = True
) -> List[SubstitutionGroup]:
    """Group raw product/food link rows by their default food.

    Inactive rows are skipped. A row without ``alternative_food`` only
    declares the default. Group order follows first appearance.
    """
    if not allows_food_changes:
        return []

    defaults: Dict[int, str] = {}
    alternatives: Dict[int, List[FoodOption]] = {}
    for row in rows:
        if not row.get("is_active", False):
            continue
        default_food = row.get("default_food") or {}
        if "id" not in default_food:
            continue
        default_id = int(default_food["id"])
        if default_id not in defaults:
            defaults[default_id] = default_food.get("name", "")
            alternatives[default_id] = []

        alternative = row.get("alternative_food")
        if alternative and "id" in alternative:
            option = FoodOption(int(alternative["id"]), alternative.get("name", ""))
            if option.food_id != default_id and option not in alternatives[default_id]:
                alternatives[default_id].append(option)

    return [
        SubstitutionGroup(default_id, name, tuple(alternatives[default_id]))
        for default_id, name in defaults.items()
    ]


# Customization state: exactly one of these three variants.


@dataclass(frozen=True)
class Uninitialized:
    """The customer has not chosen between substituting and keeping defaults."""


@dataclass(frozen=True)
class KeptDefault:
    """The customer explicitly kept every default food."""


@dataclass(frozen=True)
class Activated:
    """Substitutions enabled; ``selections`` maps group id to chosen food id."""

    selections: Mapping[int, int] = field(default_factory=dict)

    def select(self, group_id: int, food_id: int) -> "Activated":
        selections = dict(self.selections)
        selections[group_id] = food_id
        return Activated(selections)


CustomizationState = Union[Uninitialized, Activated, KeptDefault]


def activate(groups: Iterable[SubstitutionGroup]) -> Activated:
    """Enter substitution mode with every group preset to its default."""
    return Activated({group.group_id: group.default_food_id for group in groups})


class RejectionReason(Enum):
    NO_DECISION = "NoDecision"
    INCOMPLETE_SELECTIONS = "IncompleteSelections"
    INVALID_SELECTION = "InvalidSelection"
    NO_CHANGE_MADE = "NoChangeMade"


_REJECTION_MESSAGES = {
    RejectionReason.NO_DECISION: "Choose whether to customize this meal or keep the default foods",
    RejectionReason.INCOMPLETE_SELECTIONS: "Please select an option for every food",
    RejectionReason.INVALID_SELECTION: "One of the selected foods is not offered for this meal",
    RejectionReason.NO_CHANGE_MADE: (
        "To customize, change at least one food or choose 'Keep default'"
    ),
}


@dataclass(frozen=True)
class Accepted:
    annotation: str = ""

    ok = True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason

    ok = False

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self.reason]

    def to_error(self) -> InputError:
        return InputError(self.message, code=self.reason.value)


ValidationResult = Union[Accepted, Rejected]


def validate(state: CustomizationState, groups: List[SubstitutionGroup]) -> ValidationResult:
    if isinstance(state, KeptDefault):
        return Accepted("")
    if isinstance(state, Uninitialized):
        return Rejected(RejectionReason.NO_DECISION)

    selections = state.selections
    if any(group.group_id not in selections for group in groups):
        return Rejected(RejectionReason.INCOMPLETE_SELECTIONS)
    if any(group.food_name(selections[group.group_id]) is None for group in groups):
        return Rejected(RejectionReason.INVALID_SELECTION)

    changed = [g for g in groups if selections[g.group_id] != g.default_food_id]
    # One group: that group must change. Two or more: any one change suffices.
    if groups and not changed:
        return Rejected(RejectionReason.NO_CHANGE_MADE)

    return Accepted(format_annotation(groups, selections))


# Escaped inside food names so annotations parse back unambiguously
_SPECIAL_CHARS = "\\,:|"


def _escape(name: str) -> str:
    return "".join("\\" + char if char in _SPECIAL_CHARS else char for char in name)


def _unescape(text: str) -> str:
    chars = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            i += 1
        chars.append(text[i])
        i += 1
    return "".join(chars)


def _split_unescaped(text: str, sep: str, maxsplit: int = -1) -> List[str]:
    parts: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            current.append(text[i:i + 2])
            i += 2
        elif maxsplit != len(parts) and text.startswith(sep, i):
            parts.append("".join(current))
            current = []
            i += len(sep)
        else:
            current.append(text[i])
            i += 1
    parts.append("".join(current))
    return parts


def format_annotation(groups: List[SubstitutionGroup], selections: Mapping[int, int]) -> str:
    """List every group as ``<default>: <chosen>`` in group order.

    Backslash-escapes ``\\``, ``,``, ``:`` and ``|`` inside food names.
    """
    if not groups:
        return ""
    parts = [
        f"{_escape(group.name)}: {_escape(group.food_name(selections[group.group_id]))}"
        for group in groups
    ]
    return ANNOTATION_PREFIX + ", ".join(parts)


def parse_annotation(notes: Optional[str]) -> List[Tuple[str, str]]:
    """Recover ``(default name, chosen name)`` pairs from line notes.

    The annotation is always the last part of the notes, so free text
    before it may contain anything.
    """
    if not notes:
        return []
    marker = NOTES_SEPARATOR + ANNOTATION_PREFIX
    index = notes.rfind(marker)
    if index >= 0:
        body = notes[index + len(marker):]
    elif notes.startswith(ANNOTATION_PREFIX):
        body = notes[len(ANNOTATION_PREFIX):]
    else:
        return []

    pairs = []
    for entry in _split_unescaped(body, ", "):
        fields = _split_unescaped(entry, ": ", maxsplit=1)
        if len(fields) == 2:
            pairs.append((_unescape(fields[0]), _unescape(fields[1])))
    return pairs


def compose_notes(free_text: Optional[str], annotation: str = "") -> Optional[str]:
    """Join the customer's note and the substitution annotation."""
    parts = [p.strip() for p in (free_text or "", annotation) if p and p.strip()]
    return NOTES_SEPARATOR.join(parts) or None


def customize_notes(
    state: CustomizationState,
    groups: List[SubstitutionGroup],
    free_text: Optional[str] = None,
) -> Optional[str]:
    """Validate the customization and return the notes for the cart line.

    Products without substitution groups skip the decision gate.

    Raises:
        InputError: when the customization is rejected
    """
    if not groups:
        return compose_notes(free_text)

    result = validate(state, groups)
    if isinstance(result, Rejected):
        logger.info(f"Customization rejected: {result.reason.value}")
        raise result.to_error()
    return compose_notes(free_text, result.annotation)
