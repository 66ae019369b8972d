"""Parse free-text filing analysis into a CaseDraft.

The model is asked for three headers but enforces no schema, and replies
arrive in any of five languages. Parsing is therefore a tolerant,
line-oriented scan keyed on markers:

    CASE TYPE:     remainder of the line is the case type
    CASE DETAILS:  following lines are joined into the details
    QUESTIONS:     following bullet/numbered or interrogative lines

A parse succeeds only with both a case type and at least one question;
anything less raises CaseParseError naming the missing element.
"""

from __future__ import annotations

import re
from enum import StrEnum

import structlog

from bolonyay.core.exceptions import CaseParseError
from bolonyay.models.domain import CaseDraft
from bolonyay.services.filing.keywords import InterrogativeKeywords

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

DEFAULT_MIN_QUESTION_LENGTH = 10

# Headers may sit anywhere in a line ("1. CASE TYPE: ...") and may be
# wrapped in markdown emphasis or heading characters.
_DECORATION = r"[\s*#_>`]*"
_CASE_TYPE_RE = re.compile(_DECORATION + r"case\s*type\s*:" + _DECORATION, re.IGNORECASE)
_CASE_DETAILS_RE = re.compile(_DECORATION + r"case\s*details\s*:" + _DECORATION, re.IGNORECASE)
_QUESTIONS_RE = re.compile(_DECORATION + r"questions\s*:" + _DECORATION, re.IGNORECASE)

_BULLET_RE = re.compile(r"^(?:[-•*–—▪●]|\(?\d{1,3}[.)])\s*")


class Section(StrEnum):
    NONE = "none"
    DETAILS = "details"
    QUESTIONS = "questions"


class CaseAnalysisParser:
    """Deterministic marker/keyword parser for filing analysis text."""

    def __init__(
        self,
        keywords: InterrogativeKeywords | None = None,
        *,
        min_question_length: int = DEFAULT_MIN_QUESTION_LENGTH,
    ) -> None:
        self._keywords = keywords or InterrogativeKeywords()
        self._min_question_length = min_question_length

    def parse(self, analysis: str) -> CaseDraft:
        """Parse analysis text. Raises CaseParseError on missing type or questions."""
        case_type = ""
        details: list[str] = []
        questions: list[str] = []
        section = Section.NONE

        for raw_line in analysis.splitlines():
            line = raw_line.strip()
            if not line:
                continue

            if match := _CASE_TYPE_RE.search(line):
                case_type = _strip_decoration(line[match.end() :])
                section = Section.NONE
            elif match := _CASE_DETAILS_RE.search(line):
                section = Section.DETAILS
                inline = _strip_decoration(line[match.end() :])
                if inline:
                    details.append(inline)
            elif _QUESTIONS_RE.search(line):
                section = Section.QUESTIONS
            elif section is Section.DETAILS:
                details.append(line)
            elif section is Section.QUESTIONS:
                question = self._question_from_line(line)
                if question is not None:
                    questions.append(question)

        if not case_type:
            logger.warning("filing_parse_failed", missing="case_type", questions=len(questions))
            raise CaseParseError(
                "Case analysis did not identify a case type",
                missing="case_type",
            )
        if not questions:
            logger.warning("filing_parse_failed", missing="questions", case_type=case_type)
            raise CaseParseError(
                "Case analysis did not contain any filing questions",
                missing="questions",
                details={"case_type": case_type},
            )

        logger.info("filing_parse_succeeded", case_type=case_type, questions=len(questions))
        return CaseDraft(
            case_type=case_type,
            case_details=" ".join(details),
            filing_questions=questions,
        )

    def _question_from_line(self, line: str) -> str | None:
        bullet = _BULLET_RE.match(line)
        if bullet is None and not self._keywords.contains_interrogative(line):
            return None
        text = line[bullet.end() :].strip() if bullet else line
        if len(text) <= self._min_question_length:
            return None
        return text


def _strip_decoration(text: str) -> str:
    return text.strip().strip("*_`\"'").strip()
