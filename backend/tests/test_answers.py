import pytest

from surveypulse.errors import SubmissionError
from surveypulse.services.answers import answer_pairs, build_record, normalize_answers


def test_build_record_with_answers_mapping():
    rec = build_record({"companyId": "c1", "surveyId": 5, "answers": {"ai-1": 8}})
    assert rec == {
        "companyId": "c1",
        "surveyId": "5",
        "respondentId": None,
        "answers": {"ai-1": 8},
    }


def test_build_record_normalizes_legacy_pair():
    rec = build_record({"companyId": "c1", "surveyId": "s1", "question": "ee-3", "response": "7",
                        "respondentId": "r9"})
    assert rec["answers"] == {"ee-3": "7"}
    assert rec["respondentId"] == "r9"


@pytest.mark.parametrize("payload", [
    {"surveyId": "s1", "answers": {"ai-1": 1}},
    {"companyId": "c1", "answers": {"ai-1": 1}},
    {"companyId": "c1", "surveyId": "s1"},
    {"companyId": "", "surveyId": "s1", "answers": {"ai-1": 1}},
    {"companyId": "c1", "surveyId": "s1", "answers": ["ai-1", 1]},
    {"companyId": "c1", "surveyId": "s1", "question": "ai-1"},
])
def test_build_record_rejects_missing_fields(payload):
    with pytest.raises(SubmissionError, match="companyId, surveyId and answers required"):
        build_record(payload)


def test_empty_answers_mapping_is_accepted():
    assert build_record({"companyId": "c", "surveyId": "s", "answers": {}})["answers"] == {}


def test_answers_mapping_wins_over_legacy_pair():
    assert normalize_answers({"ai-1": 2}, "ai-9", 5) == {"ai-1": 2}


def test_answer_pairs_reads_both_stored_shapes():
    assert list(answer_pairs({"answers": {"a": 1, "b": 2}})) == [("a", 1), ("b", 2)]
    assert list(answer_pairs({"question": "leadership-1", "response": 3})) == [("leadership-1", 3)]
    assert list(answer_pairs({"companyId": "c"})) == []


def test_respondent_id_is_stored_as_text():
    base = {"companyId": "c1", "surveyId": "s1", "answers": {"ai-1": 1}}
    assert build_record(dict(base, respondentId=7))["respondentId"] == "7"
    assert build_record(dict(base, respondentId=""))["respondentId"] is None
    assert build_record(base)["respondentId"] is None
