from __future__ import annotations

import copy

import pytest

from jobagent.errors import ConfigurationError
from jobagent.llm.prompts import (
    AVAILABILITY_PING_PROMPT,
    build_cover_letter_prompt,
    build_posting_analysis_prompt,
    build_resume_html_prompt,
    compact_posting,
    get_prompt,
)
from jobagent.types import TaskType

RESUME = {"position": "Python developer", "skills": [{"name": "Python"}, {"name": "asyncio"}]}


def test_cover_letter_prompt_is_deterministic(posting: dict) -> None:
    first = build_cover_letter_prompt(resume=RESUME, posting=posting)
    second = build_cover_letter_prompt(resume=copy.deepcopy(RESUME), posting=copy.deepcopy(posting))
    assert first == second
    assert "Backend Developer" in first
    assert "asyncio" in first


def test_prompt_builders_do_not_mutate_inputs(posting: dict) -> None:
    resume = copy.deepcopy(RESUME)
    original_posting = copy.deepcopy(posting)
    analysis = {"toxicityScore": 2, "redFlags": []}

    build_cover_letter_prompt(resume=resume, posting=posting, analysis=analysis)
    build_posting_analysis_prompt(posting=posting, resume=resume)

    assert resume == RESUME
    assert posting == original_posting
    assert analysis == {"toxicityScore": 2, "redFlags": []}


def test_cover_letter_prompt_includes_analysis_block_only_when_given(posting: dict) -> None:
    without = build_cover_letter_prompt(resume=RESUME, posting=posting)
    with_hint = build_cover_letter_prompt(resume=RESUME, posting=posting, analysis={"redFlags": ["overtime"]})
    assert "POSTING REVIEW" not in without
    assert "POSTING REVIEW" in with_hint
    assert "overtime" in with_hint


def test_compact_posting_strips_html_and_limits_description(posting: dict) -> None:
    compact = compact_posting(posting, description_limit=10)
    assert compact["employer"] == "Acme"
    assert compact["description"] == "We build p"
    assert "<" not in compact["description"]


def test_resume_html_prompt_truncates_markup() -> None:
    prompt = build_resume_html_prompt(html="<div>" + "x" * 100 + "</div>", max_chars=20)
    assert "<div>" + "x" * 15 in prompt
    assert "x" * 16 not in prompt


def test_posting_analysis_prompt_lists_every_field(posting: dict) -> None:
    prompt = build_posting_analysis_prompt(posting=posting)
    for key in ("toxicityScore", "recommendation", "redFlags", "positives", "summary"):
        assert key in prompt
    assert "CANDIDATE RESUME" not in prompt


def test_every_generation_task_has_a_prompt() -> None:
    for task_type in TaskType:
        if task_type is TaskType.EMBEDDING:
            continue
        prompt = get_prompt(task_type)
        assert callable(prompt.build_user_prompt)
    assert get_prompt(TaskType.AVAILABILITY_CHECK).build_user_prompt() == AVAILABILITY_PING_PROMPT


@pytest.mark.parametrize("task_type", [TaskType.EMBEDDING, "NOT_A_TASK"])
def test_unregistered_task_type_raises(task_type) -> None:
    with pytest.raises(ConfigurationError):
        get_prompt(task_type)
