"""Bill workflow state machine.

States and events are plain frozen dataclasses; ``transition`` is a pure
function from (state, event) to the next state and raises InvalidTransition
for anything the workflow does not allow.

    Idle -> Staging -> Extracting -> Reviewing(draft) -> Saving -> Saved
    Saved / Reviewing(any) -> AmountPicker -> CreatingIntent
        -> PayingExternally -> PaymentCaptured -> Reviewing(payments)
    Reset from anywhere -> Idle
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from app.schemas.medical_bill import PaymentIntentResponse


class Tab(str, Enum):
    DRAFT = "draft"
    DOCUMENTS = "documents"
    PAYMENTS = "payments"


class InvalidTransition(Exception):
    def __init__(self, state: "State", event: "Event"):
        super().__init__(f"{type(event).__name__} is not allowed in {state}")
        self.state = state
        self.event = event


# --- States ---
@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Staging:
    pass


@dataclass(frozen=True)
class Extracting:
    pass


@dataclass(frozen=True)
class Reviewing:
    tab: Tab = Tab.DRAFT


@dataclass(frozen=True)
class Saving:
    pass


@dataclass(frozen=True)
class Saved:
    pass


@dataclass(frozen=True)
class AmountPicker:
    suggested: Decimal


@dataclass(frozen=True)
class CreatingIntent:
    amount: Decimal
    suggested: Decimal


@dataclass(frozen=True)
class PayingExternally:
    intent: PaymentIntentResponse
    suggested: Decimal


@dataclass(frozen=True)
class PaymentCaptured:
    intent: PaymentIntentResponse


State = Union[
    Idle, Staging, Extracting, Reviewing, Saving, Saved,
    AmountPicker, CreatingIntent, PayingExternally, PaymentCaptured,
]


# --- Events ---
@dataclass(frozen=True)
class OpenNew:
    pass


@dataclass(frozen=True)
class OpenExisting:
    pass


@dataclass(frozen=True)
class StageStarted:
    pass


@dataclass(frozen=True)
class ExtractRequested:
    staged_count: int


@dataclass(frozen=True)
class ExtractSucceeded:
    pass


@dataclass(frozen=True)
class ExtractFailed:
    pass


@dataclass(frozen=True)
class SaveRequested:
    pass


@dataclass(frozen=True)
class SaveSucceeded:
    pass


@dataclass(frozen=True)
class SaveFailed:
    pass


@dataclass(frozen=True)
class TabSelected:
    tab: Tab


@dataclass(frozen=True)
class PayRequested:
    suggested: Decimal


@dataclass(frozen=True)
class IntentRequested:
    amount: Decimal


@dataclass(frozen=True)
class IntentCreated:
    intent: PaymentIntentResponse


@dataclass(frozen=True)
class IntentFailed:
    pass


@dataclass(frozen=True)
class PaymentSucceeded:
    pass


@dataclass(frozen=True)
class PaymentRecorded:
    pass


@dataclass(frozen=True)
class PaymentCancelled:
    pass


@dataclass(frozen=True)
class Reset:
    pass


Event = Union[
    OpenNew, OpenExisting, StageStarted, ExtractRequested, ExtractSucceeded, ExtractFailed,
    SaveRequested, SaveSucceeded, SaveFailed, TabSelected, PayRequested, IntentRequested,
    IntentCreated, IntentFailed, PaymentSucceeded, PaymentRecorded, PaymentCancelled, Reset,
]

DRAFT_REVIEW = Reviewing(Tab.DRAFT)


def transition(state: State, event: Event) -> State:
    if isinstance(event, Reset):
        return Idle()

    if isinstance(state, Idle):
        if isinstance(event, OpenNew):
            return Staging()
        if isinstance(event, OpenExisting):
            return DRAFT_REVIEW

    elif isinstance(state, Staging):
        if isinstance(event, StageStarted):
            return state
        if isinstance(event, ExtractRequested) and event.staged_count >= 1:
            return Extracting()
        if isinstance(event, SaveRequested):
            return Saving()

    elif isinstance(state, Extracting):
        if isinstance(event, ExtractSucceeded):
            return DRAFT_REVIEW
        if isinstance(event, ExtractFailed):
            return Staging()

    elif isinstance(state, Saving):
        if isinstance(event, SaveSucceeded):
            return Saved()
        if isinstance(event, SaveFailed):
            return DRAFT_REVIEW

    elif isinstance(state, (Reviewing, Saved)):
        draft_open = state == DRAFT_REVIEW
        if isinstance(event, StageStarted) and draft_open:
            return Staging()
        if isinstance(event, SaveRequested) and draft_open:
            return Saving()
        if isinstance(event, TabSelected):
            return Reviewing(event.tab)
        if isinstance(event, PayRequested):
            return AmountPicker(event.suggested)

    elif isinstance(state, AmountPicker):
        if isinstance(event, IntentRequested):
            return CreatingIntent(amount=event.amount, suggested=state.suggested)
        if isinstance(event, PaymentCancelled):
            return Reviewing(Tab.PAYMENTS)

    elif isinstance(state, CreatingIntent):
        if isinstance(event, IntentCreated):
            return PayingExternally(intent=event.intent, suggested=state.suggested)
        if isinstance(event, IntentFailed):
            return AmountPicker(state.suggested)

    elif isinstance(state, PayingExternally):
        if isinstance(event, PaymentSucceeded):
            return PaymentCaptured(state.intent)
        if isinstance(event, PaymentCancelled):
            return AmountPicker(state.suggested)

    elif isinstance(state, PaymentCaptured):
        if isinstance(event, PaymentRecorded):
            return Reviewing(Tab.PAYMENTS)

    raise InvalidTransition(state, event)
