import pytest

from pipeline.predicate import compile_predicate
from utils.exceptions import PredicateSyntaxError

QUESTION = {
	"question_text": "What is 2+2?",
	"options": ["3", "4", "5"],
	"correct_answer": "4",
	"difficulty": "easy",
	"points": 2,
	"meta": {"source": "exam.pdf", "pages": [1, 2]},
}


@pytest.mark.parametrize("condition,expected", [
	("item.question_text && item.correct_answer && item.options && item.options.length > 0", True),
	("item.points >= 2 and item.difficulty == 'easy'", True),
	("item.points > 2 || item.difficulty === \"hard\"", False),
	("!(item.options.length == 0)", True),
	("not item.missing", True),
	("item.meta.source == 'exam.pdf'", True),
	("item.meta.pages[1] == 2", True),
	("item['difficulty'] != 'hard'", True),
	("contains(item.options, '4')", True),
	("contains(lower(item.question_text), 'what')", True),
	("len(item.options) == 3", True),
	("item.points > -1", True),
	("item.missing == null", True),
	("true", True),
])
def test_conditions(condition, expected):
	assert compile_predicate(condition)(QUESTION) is expected


def test_date_comparison():
	recent = compile_predicate('date(item.date) > date("2020-01-01")')
	assert recent({"date": "2024-01-15"}) is True
	assert recent({"date": "2019-06-01T10:00:00Z"}) is False
	# Unparseable or missing dates cannot be ordered
	assert recent({"date": "last spring"}) is False
	assert recent({}) is False


def test_incomparable_values_are_false():
	assert compile_predicate("item.title > 3")({"title": "abc"}) is False
	assert compile_predicate("item.missing < 3")({}) is False


def test_missing_fields_are_falsy_not_errors():
	predicate = compile_predicate("item.options && item.options.length > 0")
	assert predicate({}) is False
	assert predicate({"options": []}) is False
	assert predicate("not even a dict") is False


@pytest.mark.parametrize("condition", [
	"",
	"item.a ==",
	"(item.a == 1",
	"__import__('os').system('true')",
	"item.a = 1",
	"item.a == 1 item.b",
	"open('x')",
	"item.a ; 1",
])
def test_rejects_invalid_or_unsafe_conditions(condition):
	with pytest.raises(PredicateSyntaxError):
		compile_predicate(condition)
