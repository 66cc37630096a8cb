from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from jobagent.errors import ConfigurationError
from jobagent.types import TaskType

AVAILABILITY_PING_PROMPT = 'API availability check. Reply "OK".'

COVER_LETTER_SYSTEM_PROMPT = """
You write short cover letters. Write like a real person: natural but professional.
Avoid templates and formalities. Focus on concrete technologies and experience.
""".strip()

RESUME_HTML_SYSTEM_PROMPT = """
You are an expert at analysing resumes. Extract only facts present in the HTML, add nothing of your own.
Answer with JSON only.
""".strip()

RESUME_TEXT_SYSTEM_PROMPT = """
You are an expert at analysing resumes. Extract only facts present in the text, add nothing of your own.
Answer with JSON only.
""".strip()

POSTING_ANALYSIS_SYSTEM_PROMPT = """
You are a career consultant who reviews job postings for toxicity and red flags on behalf of a job seeker.
Be specific and quote the posting where possible. Answer with JSON only.
""".strip()

AVAILABILITY_SYSTEM_PROMPT = "Answer with a single word."

RESUME_SCHEMA = """
{
  "personalInfo": {"fullName": "string", "email": "string", "phone": "string", "location": "string"},
  "position": "desired position",
  "about": "short self description",
  "experience": [{"company": "string", "position": "string", "period": "string", "description": "string"}],
  "education": [{"institution": "string", "degree": "string", "period": "string"}],
  "skills": [{"name": "string", "level": "string or null", "verified": "boolean"}],
  "languages": [{"language": "string", "level": "string"}],
  "courses": [{"name": "string", "institution": "string", "period": "string", "description": "string"}],
  "tests": [{"name": "string", "score": "string", "period": "string", "description": "string"}],
  "certificates": [{"name": "string", "issuer": "string", "period": "string", "description": "string"}],
  "additionalInfo": {"projects": ["string"], "other": "string"}
}
""".strip()

RESUME_ANALYSIS_HTML_PROMPT = """
Analyse the HTML of a resume page from a job board and extract structured information as JSON.

IMPORTANT: find and include ALL resume sections: work experience, skills, education, about,
professional development/courses, tests and exams, certificates.

Return a JSON object with this structure:
{schema}

Resume HTML:
{html}
""".strip()

RESUME_ANALYSIS_TEXT_PROMPT = """
Analyse the text of a resume from a job board and extract structured information as JSON.

IMPORTANT: find and include ALL resume sections:
- work experience (companies, positions, periods, descriptions)
- skills (technologies, programming languages, tools)
- education (institutions, specialities, years)
- about (short description of the candidate)
- professional development/courses
- tests and exams
- certificates
If a section is missing, leave its array empty [].

Return a JSON object with this structure:
{schema}

Resume text:
{text}
""".strip()

COVER_LETTER_PROMPT = """
Write a short cover letter based on the resume and the job posting.

RESUME:
{resume_json}

JOB POSTING:
{posting_json}
{analysis_block}
Rules:
- Write in the language of the job posting
- Two paragraphs at most
- Write like a real person, naturally and without formalities
- Mention concrete technologies and projects from the resume
- Show that you read the posting: mention the position title but NOT the company name
- Connect your experience to the requirements of the posting
- Write in the first person
- End naturally, without a formal sign-off
- Do NOT invent details

Answer: the letter text only.
""".strip()

ANALYSIS_HINT_BLOCK = """
POSTING REVIEW (use it to stress what fits and stay clear of the red flags):
{analysis_json}
"""

POSTING_ANALYSIS_PROMPT = """
Review the job posting below for toxicity, red flags and overall attractiveness for the candidate.

Return strict JSON with keys:
- toxicityScore: integer 1..10 (10 is extremely toxic)
- recommendation: one of [apply, caution, avoid]
- redFlags: string[]
- positives: string[]
- summary: string (two or three sentences)
- salaryAdequacy: one of [adequate, low, high, not_specified]
- experienceMatch: one of [junior_friendly, requires_experience, unrealistic]

JOB POSTING:
{posting_json}
{resume_block}
""".strip()

RESUME_HINT_BLOCK = """
CANDIDATE RESUME (judge salary and experience fit against it):
{resume_json}
"""

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")

POSTING_FIELDS = (
    "id",
    "name",
    "area",
    "salary",
    "experience",
    "employment",
    "schedule",
    "key_skills",
    "professional_roles",
    "published_at",
)


def render_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, sort_keys=True, default=str)


def strip_html(value: str) -> str:
    return _SPACE_RE.sub(" ", _TAG_RE.sub(" ", value)).strip()


def compact_posting(posting: dict[str, Any], *, description_limit: int = 20000) -> dict[str, Any]:
    """Return a new dict with the posting fields a prompt needs."""
    compact = {key: posting[key] for key in POSTING_FIELDS if posting.get(key) is not None}
    employer = posting.get("employer")
    if isinstance(employer, dict) and employer.get("name"):
        compact["employer"] = employer["name"]
    elif isinstance(employer, str):
        compact["employer"] = employer

    description = posting.get("description")
    if isinstance(description, str) and description.strip():
        compact["description"] = strip_html(description)[:description_limit]
    return compact


def build_cover_letter_prompt(
    *,
    resume: dict[str, Any],
    posting: dict[str, Any],
    analysis: dict[str, Any] | None = None,
    description_limit: int = 20000,
) -> str:
    analysis_block = ""
    if analysis:
        analysis_block = ANALYSIS_HINT_BLOCK.format(analysis_json=render_json(analysis))
    return COVER_LETTER_PROMPT.format(
        resume_json=render_json(resume),
        posting_json=render_json(compact_posting(posting, description_limit=description_limit)),
        analysis_block=analysis_block,
    )


def build_resume_html_prompt(*, html: str, max_chars: int = 50000) -> str:
    return RESUME_ANALYSIS_HTML_PROMPT.format(schema=RESUME_SCHEMA, html=html[:max_chars])


def build_resume_text_prompt(*, text: str) -> str:
    return RESUME_ANALYSIS_TEXT_PROMPT.format(schema=RESUME_SCHEMA, text=text)


def build_posting_analysis_prompt(
    *,
    posting: dict[str, Any],
    resume: dict[str, Any] | None = None,
    description_limit: int = 20000,
) -> str:
    resume_block = ""
    if resume:
        resume_block = RESUME_HINT_BLOCK.format(resume_json=render_json(resume))
    return POSTING_ANALYSIS_PROMPT.format(
        posting_json=render_json(compact_posting(posting, description_limit=description_limit)),
        resume_block=resume_block,
    ).strip()


def build_availability_prompt() -> str:
    return AVAILABILITY_PING_PROMPT


@dataclass(frozen=True, slots=True)
class PromptSpec:
    system_prompt: str
    build_user_prompt: Callable[..., str]


PROMPT_REGISTRY: dict[TaskType, PromptSpec] = {
    TaskType.COVER_LETTER: PromptSpec(COVER_LETTER_SYSTEM_PROMPT, build_cover_letter_prompt),
    TaskType.RESUME_ANALYSIS_HTML: PromptSpec(RESUME_HTML_SYSTEM_PROMPT, build_resume_html_prompt),
    TaskType.RESUME_ANALYSIS_TEXT: PromptSpec(RESUME_TEXT_SYSTEM_PROMPT, build_resume_text_prompt),
    TaskType.POSTING_ANALYSIS: PromptSpec(POSTING_ANALYSIS_SYSTEM_PROMPT, build_posting_analysis_prompt),
    TaskType.AVAILABILITY_CHECK: PromptSpec(AVAILABILITY_SYSTEM_PROMPT, build_availability_prompt),
}


def get_prompt(task_type: TaskType | str) -> PromptSpec:
    try:
        return PROMPT_REGISTRY[TaskType(task_type)]
    except (ValueError, KeyError):
        raise ConfigurationError(f'No prompt registered for task type "{task_type}"') from None
