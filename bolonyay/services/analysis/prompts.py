"""Prompt templates for the two analysis calls.

Per-turn replies ask for a warm, plain-language legal response in the
user's language. Filing analysis asks for three fixed headers
(CASE TYPE / CASE DETAILS / QUESTIONS) that the case analysis parser
keys on, so those headers must stay in English whatever the language.
"""

from __future__ import annotations

from bolonyay.models.domain import SupportedLanguage

TURN_SYSTEM_PROMPT = (
    "You are Nyay, a compassionate legal advisor helping Indian citizens "
    "access justice. Answer briefly, in simple language, and recommend "
    "consulting an advocate where appropriate."
)

FILING_SYSTEM_PROMPT = (
    "You are a legal case filing expert for the Indian legal system. You "
    "analyze conversations and prepare structured case filing questionnaires."
)

TURN_PROMPT_TEMPLATE = """\
A user just shared their legal concern with you in {language}.

USER'S CONCERN:
"{conversation}"

Acknowledge what they shared, identify the kind of legal matter in simple \
terms with relevant Indian law, give practical next steps, and ask two or \
three specific questions that would help you understand their case better.

Write naturally in {language}. Do not use formatting symbols such as \
asterisks, brackets, bullets or headings.\
"""

FILING_PROMPT_TEMPLATE = """\
A user has shared their legal concern and wants to file a formal case.

CONVERSATION SUMMARY:
{summary}

Identify the exact legal category (civil, criminal, family, consumer, \
labour, property or commercial, with a subcategory), summarise the core \
legal issue with the relevant Indian legal provisions, and prepare 8-12 \
specific questions covering personal details, the incident timeline, \
parties involved, evidence and documents, witnesses, financial impact, \
relief sought, urgency and jurisdiction.

RESPONSE FORMAT (use these exact English headers):

CASE TYPE: <category - subcategory>

CASE DETAILS:
<summary with relevant legal provisions>

QUESTIONS:
- <question 1>
- <question 2>

Write the case details and questions in {language}; keep every question \
short and easy to answer by voice.\
"""


def build_turn_prompt(conversation: str, language: str) -> tuple[str, str]:
    """Build system + user messages for a per-turn legal reply.

    Returns:
        Tuple of (system_prompt, user_prompt).
    """
    name = SupportedLanguage.resolve(language).display_name
    return TURN_SYSTEM_PROMPT, TURN_PROMPT_TEMPLATE.format(language=name, conversation=conversation)


def build_filing_prompt(summary: str, language: str) -> tuple[str, str]:
    """Build system + user messages for filing analysis."""
    name = SupportedLanguage.resolve(language).display_name
    return FILING_SYSTEM_PROMPT, FILING_PROMPT_TEMPLATE.format(language=name, summary=summary)
