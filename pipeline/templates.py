"""Built-in pipeline configurations users can start from."""
import copy
from typing import Any, Dict

from utils.exceptions import ProcessingError

PIPELINE_TEMPLATES: Dict[str, Dict[str, Any]] = {
	"exam": {
		"name": "Exam Question Extractor Pipeline",
		"description": "Extract exam questions, answers, topics, tags, and difficulty from uploaded documents",
		"config": {
			"operators": [
				{
					"id": "op1",
					"name": "extract_questions",
					"type": "map",
					"config": {
						"prompt": (
							"Extract all exam questions from this document. For each question, identify: the question text, "
							"all possible answer options (A, B, C, D, etc.), the correct answer, the topic/subject area, "
							'relevant tags (e.g., "multiple-choice", "calculation", "theory"), and the difficulty level '
							"(easy, medium, hard, expert). Format as structured data."
						),
						"model": "gpt-4o-mini",
						"output_schema": {
							"questions": "array",
							"question_text": "string",
							"options": "array",
							"correct_answer": "string",
							"topic": "string",
							"tags": "array",
							"difficulty": "string",
							"points": "number",
							"explanation": "string",
						},
					},
				},
				{
					"id": "op2",
					"name": "expand_questions",
					"type": "unnest",
					"config": {"unnest_key": "questions"},
				},
				{
					"id": "op3",
					"name": "filter_valid",
					"type": "filter",
					"config": {
						"filter_condition": "item.question_text && item.correct_answer && item.options && item.options.length > 0",
					},
				},
				{
					"id": "op4",
					"name": "group_by_difficulty",
					"type": "reduce",
					"config": {
						"reduce_key": "difficulty",
						"fold_prompt": "Group all questions by difficulty level and provide statistics on question count per difficulty",
						"model": "gpt-4o-mini",
					},
				},
			]
		},
	},
	"general": {
		"name": "Example Document Processing Pipeline",
		"description": "Extract key information from documents and summarize",
		"config": {
			"operators": [
				{
					"id": "op1",
					"name": "extract_info",
					"type": "map",
					"config": {
						"prompt": "Extract the following information from the document: title, author, date, and main topics.",
						"model": "gpt-4o-mini",
						"output_schema": {
							"title": "string",
							"author": "string",
							"date": "string",
							"main_topics": "array",
						},
					},
				},
				{
					"id": "op2",
					"name": "filter_recent",
					"type": "filter",
					"config": {"filter_condition": 'date(item.date) > date("2020-01-01")'},
				},
				{
					"id": "op3",
					"name": "summarize",
					"type": "reduce",
					"config": {
						"reduce_key": "main_topics",
						"fold_prompt": "Summarize all documents about this topic",
						"model": "gpt-4o-mini",
					},
				},
			]
		},
	},
}

SAMPLE_INPUTS: Dict[str, list] = {
	"exam": [{
		"content": "Question 1: What is 2+2?\nA) 3\nB) 4\nC) 5\nD) 6\n\nQuestion 2: What is the capital of France?\nA) London\nB) Paris\nC) Rome\nD) Madrid",
		"metadata": {"source": "sample_exam.pdf"},
	}],
	"general": [{
		"content": "Sample document content for processing. This document contains important information about various topics including technology, science, and education.",
		"metadata": {"title": "Sample Document", "date": "2024-01-15"},
	}],
}


def get_pipeline_template(kind: str) -> Dict[str, Any]:
	if kind not in PIPELINE_TEMPLATES:
		raise ProcessingError(f"Unknown pipeline template: {kind}. Available: {', '.join(PIPELINE_TEMPLATES)}")
	return copy.deepcopy(PIPELINE_TEMPLATES[kind])
