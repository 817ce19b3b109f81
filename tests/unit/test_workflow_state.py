"""Unit tests for the bill workflow state machine."""

from decimal import Decimal

import pytest

from app.schemas.medical_bill import PaymentIntentResponse
from app.workflow import state as st

INTENT = PaymentIntentResponse(client_secret="pi_1_secret", payment_intent_id="pi_1", amount=Decimal("50"))


def test_open_new_starts_staging():
    assert st.transition(st.Idle(), st.OpenNew()) == st.Staging()


def test_open_existing_reviews_draft():
    assert st.transition(st.Idle(), st.OpenExisting()) == st.Reviewing(st.Tab.DRAFT)


def test_extract_requires_a_staged_document():
    with pytest.raises(st.InvalidTransition):
        st.transition(st.Staging(), st.ExtractRequested(staged_count=0))
    assert st.transition(st.Staging(), st.ExtractRequested(staged_count=2)) == st.Extracting()


def test_extraction_outcomes():
    assert st.transition(st.Extracting(), st.ExtractSucceeded()) == st.Reviewing(st.Tab.DRAFT)
    assert st.transition(st.Extracting(), st.ExtractFailed()) == st.Staging()


def test_staging_is_reentrant_from_draft_review():
    assert st.transition(st.Reviewing(st.Tab.DRAFT), st.StageStarted()) == st.Staging()
    assert st.transition(st.Staging(), st.StageStarted()) == st.Staging()


def test_cannot_stage_from_payments_tab():
    with pytest.raises(st.InvalidTransition):
        st.transition(st.Reviewing(st.Tab.PAYMENTS), st.StageStarted())


def test_save_outcomes():
    assert st.transition(st.Reviewing(st.Tab.DRAFT), st.SaveRequested()) == st.Saving()
    assert st.transition(st.Staging(), st.SaveRequested()) == st.Saving()
    assert st.transition(st.Saving(), st.SaveSucceeded()) == st.Saved()
    assert st.transition(st.Saving(), st.SaveFailed()) == st.Reviewing(st.Tab.DRAFT)


def test_tabs_after_save():
    assert st.transition(st.Saved(), st.TabSelected(st.Tab.DOCUMENTS)) == st.Reviewing(st.Tab.DOCUMENTS)
    assert st.transition(
        st.Reviewing(st.Tab.DOCUMENTS), st.TabSelected(st.Tab.PAYMENTS)
    ) == st.Reviewing(st.Tab.PAYMENTS)


def test_payment_sub_flow():
    picker = st.transition(st.Saved(), st.PayRequested(Decimal("200")))
    assert picker == st.AmountPicker(Decimal("200"))

    creating = st.transition(picker, st.IntentRequested(Decimal("150")))
    assert creating == st.CreatingIntent(amount=Decimal("150"), suggested=Decimal("200"))

    paying = st.transition(creating, st.IntentCreated(INTENT))
    assert isinstance(paying, st.PayingExternally)

    captured = st.transition(paying, st.PaymentSucceeded())
    assert captured == st.PaymentCaptured(INTENT)

    assert st.transition(captured, st.PaymentRecorded()) == st.Reviewing(st.Tab.PAYMENTS)


def test_intent_failure_returns_to_picker():
    creating = st.CreatingIntent(amount=Decimal("0"), suggested=Decimal("200"))
    assert st.transition(creating, st.IntentFailed()) == st.AmountPicker(Decimal("200"))


def test_payment_capture_always_ends_on_payments_tab():
    # Even when payment started from the documents tab
    picker = st.transition(st.Reviewing(st.Tab.DOCUMENTS), st.PayRequested(Decimal("10")))
    state = st.transition(picker, st.IntentRequested(Decimal("10")))
    state = st.transition(state, st.IntentCreated(INTENT))
    state = st.transition(state, st.PaymentSucceeded())
    assert st.transition(state, st.PaymentRecorded()) == st.Reviewing(st.Tab.PAYMENTS)


@pytest.mark.parametrize(
    "state",
    [
        st.Idle(),
        st.Staging(),
        st.Extracting(),
        st.Saving(),
        st.Reviewing(st.Tab.PAYMENTS),
        st.AmountPicker(Decimal("1")),
        st.PayingExternally(intent=INTENT, suggested=Decimal("1")),
        st.PaymentCaptured(INTENT),
    ],
)
def test_reset_from_anywhere(state):
    assert st.transition(state, st.Reset()) == st.Idle()


def test_illegal_moves_raise():
    with pytest.raises(st.InvalidTransition):
        st.transition(st.Idle(), st.IntentRequested(Decimal("10")))
    with pytest.raises(st.InvalidTransition):
        st.transition(st.Extracting(), st.SaveRequested())
    with pytest.raises(st.InvalidTransition):
        st.transition(st.Reviewing(st.Tab.PAYMENTS), st.SaveRequested())
