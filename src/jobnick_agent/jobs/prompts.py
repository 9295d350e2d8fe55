"""Prompt builders for the two screening stages."""

from typing import Optional

from jobnick_agent.core.models import ListingRecord, UserPreferences, UserProfile

SNIPPET_MAX_CHARS = 300

RESULT_FORMAT = (
    'Return JSON: {"shouldApply": boolean, "confidence": number(0-1), '
    '"reasoning": string, "score": number(0-100)}.'
)


def build_prescreen_prompt(record: ListingRecord, preferences: UserPreferences) -> str:
    """Fast screen on the card fields only."""
    snippet = (record.short_description or "")[:SNIPPET_MAX_CHARS]
    return f"""You are a recruiter. Do a fast, surface-level fit screen based ONLY on title, company, location and the brief description.
{RESULT_FORMAT}

CANDIDATE PREFERENCES:
- Desired Titles: {preferences.job_titles or 'Any'}
- Keywords: {preferences.keywords or 'Any'}
- Exclude: {preferences.exclude_keywords or 'None'}
- Locations: {preferences.location_preference or 'Any'}

JOB CARD:
- Title: {record.title}
- Company: {record.employer}
- Location: {record.location}
- Snippet: {snippet}
"""


def build_deep_prompt(
    record: ListingRecord,
    resume_text: str,
    profile: Optional[UserProfile],
    preferences: UserPreferences,
    resume_max_chars: int = 6000,
    description_max_chars: int = 8000,
) -> str:
    """Full evaluation against the resume and the complete description."""
    profile = profile or UserProfile()
    description = record.description_text[:description_max_chars]
    extras = []
    if record.requirements:
        extras.append(f"REQUIREMENTS:\n{record.requirements}")
    if record.compensation:
        extras.append(f"COMPENSATION: {record.compensation}")
    extra_block = ("\n\n" + "\n\n".join(extras)) if extras else ""

    return f"""You are a technical recruiter. Perform a deep fit evaluation using the FULL job description and the candidate resume.
{RESULT_FORMAT}

CANDIDATE PROFILE:
- Name: {profile.full_name or 'Unknown'}
- Current Company: {profile.current_company or 'Unknown'}
- Location: {profile.location or 'Unknown'}
- Experience level: {preferences.experience_level or 'Any'}
- Preferences: titles={preferences.job_titles or 'Any'}; keywords={preferences.keywords or 'Any'}; exclude={preferences.exclude_keywords or 'None'}; locations={preferences.location_preference or 'Any'}; company size={preferences.company_size or 'Any'}

RESUME (raw text):
{(resume_text or '')[:resume_max_chars]}

JOB: {record.title} at {record.employer} ({record.location})

JOB DESCRIPTION (full text):
{description}{extra_block}
"""


def build_answer_prompt(
    question: str,
    resume_text: str,
    profile: Optional[UserProfile] = None,
    resume_max_chars: int = 6000,
) -> str:
    """Answer to a free-text application form question, written from the resume."""
    profile = profile or UserProfile()
    return f"""You are a professional job application assistant.
QUESTION: "{question}"

CANDIDATE: {profile.full_name or 'Unknown'} ({profile.location or 'location not given'})

RESUME:
{(resume_text or '')[:resume_max_chars]}

Write a concise, professional answer (100-300 words). Use the question's language. Only the answer text.
"""
