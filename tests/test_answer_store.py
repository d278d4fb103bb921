import json

import pytest

from timed_exam_cbt.models.exam_model import SavedAnswer
from timed_exam_cbt.services.answer_store import AnswerStore, decode_selection, encode_selection
from timed_exam_cbt.services.errors import ExamStateError, UnknownQuestionError


def test_single_selection_is_sent_as_bare_string():
    assert encode_selection(["c"]) == "c"
    assert decode_selection("c") == ["c"]


def test_multi_selection_is_sent_as_json_list():
    encoded = encode_selection(["a:true", "b:false"])
    assert json.loads(encoded) == ["a:true", "b:false"]
    assert decode_selection(encoded) == ["a:true", "b:false"]


def test_single_selection_that_looks_like_a_list_stays_single():
    encoded = encode_selection(['["x"]'])
    assert decode_selection(encoded) == ['["x"]']


@pytest.mark.parametrize("raw", ["[not json", "{\"a\": 1}", "42", "null", ""])
def test_decode_never_raises_and_falls_back_to_single(raw):
    assert decode_selection(raw) == [raw]


def test_set_replaces_previous_answer():
    store = AnswerStore([7])
    store.set(7, ["b"])
    store.set(7, ["a"])

    assert len(store) == 1
    assert store.get(7).selected_options == ["a"]


def test_empty_selection_marks_skip_but_keeps_key():
    store = AnswerStore([1, 3])
    store.set(1, [])

    assert 1 in store
    assert store.get(1).is_skipped is True
    assert store.answered_count == 0
    assert store.has_answers is False
    assert store.sync_payload() == []


def test_unknown_question_is_rejected():
    store = AnswerStore([1])
    with pytest.raises(UnknownQuestionError):
        store.set(99, ["a"])
    assert 99 not in store


def test_sync_payload_contains_full_non_skipped_set():
    store = AnswerStore([1, 3, 7])
    store.set(1, ["c"])
    store.set(3, ["a:true", "b:false"])
    store.set(7, [])

    payload = {a.question_id: a.selected_option for a in store.sync_payload()}
    assert payload == {1: "c", 3: json.dumps(["a:true", "b:false"])}


def test_restore_skips_unknown_and_empty_answers():
    store = AnswerStore([1, 3])
    restored = store.restore(
        [
            SavedAnswer(question_id=1, selected_option="c"),
            SavedAnswer(question_id=3, selected_option='["a:true", "b:false"]'),
            SavedAnswer(question_id=99, selected_option="a"),
            SavedAnswer(question_id=1, selected_option="[]"),
        ]
    )

    assert restored == 2
    assert store.get(1).selected_options == ["c"]
    assert store.get(3).selected_options == ["a:true", "b:false"]
    assert 99 not in store


def test_frozen_store_rejects_changes():
    store = AnswerStore([1])
    store.set(1, ["a"])
    store.freeze()

    with pytest.raises(ExamStateError):
        store.set(1, ["b"])
    assert store.get(1).selected_options == ["a"]


def test_malformed_saved_values_are_skipped_without_failing():
    saved = [
        SavedAnswer.model_validate({"question_id": 1, "selected_option": "b"}),
        SavedAnswer.model_validate({"question_id": 3, "selected_option": None}),
        SavedAnswer.model_validate({"question_id": 7, "selected_option": {"a": True}}),
        SavedAnswer.model_validate({"question_id": 9, "selected_option": "   "}),
    ]
    store = AnswerStore([1, 3, 7, 9])

    assert store.restore(saved) == 1
    assert store.get(1).selected_options == ["b"]
    assert 3 not in store
    assert 7 not in store
    assert 9 not in store


def test_non_string_saved_values_are_coerced():
    as_list = SavedAnswer.model_validate({"question_id": 3, "selected_option": ["a:true", "b:false"]})
    as_number = SavedAnswer.model_validate({"question_id": 1, "selected_option": 2})

    store = AnswerStore([1, 3])
    assert store.restore([as_list, as_number]) == 2
    assert store.get(3).selected_options == ["a:true", "b:false"]
    assert store.get(1).selected_options == ["2"]
