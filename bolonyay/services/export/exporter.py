"""Case document rendering.

The workflow hands a filed CaseRecord and its owner to a CaseExporter
and stores only the returned reference. TextCaseExporter renders a
plain-text filing summary into the configured export directory.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

from bolonyay.core.exceptions import ExportError
from bolonyay.models.domain import ExportArtifact, SupportedLanguage, utcnow

if TYPE_CHECKING:
    from bolonyay.core.config import Settings
    from bolonyay.models.domain import CaseRecord, User

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

_RULE = "=" * 60


@runtime_checkable
class CaseExporter(Protocol):
    async def render(self, case: CaseRecord, user: User | None) -> ExportArtifact: ...


class TextCaseExporter:
    """Writes ``BoloNyay_<case number>_<timestamp>.txt`` summaries."""

    def __init__(self, settings: Settings) -> None:
        self._directory = Path(settings.export_directory)

    async def render(self, case: CaseRecord, user: User | None) -> ExportArtifact:
        created_at = utcnow()
        filename = f"BoloNyay_{case.case_number}_{created_at:%Y%m%d_%H%M%S}.txt"
        path = self._directory / filename
        content = render_case_text(case, user)

        try:
            await asyncio.to_thread(_write, path, content)
        except OSError as exc:
            msg = f"Failed to write case document: {exc}"
            raise ExportError(msg, details={"case_number": case.case_number}) from exc

        logger.info("case_exported", case_number=case.case_number, path=str(path))
        return ExportArtifact(
            case_number=case.case_number,
            reference=str(path),
            media_type="text/plain",
            created_at=created_at,
        )


def render_case_text(case: CaseRecord, user: User | None) -> str:
    """Plain-text filing summary: header, parties, details, questionnaire."""
    language = SupportedLanguage.resolve(case.language).display_name
    lines = [
        _RULE,
        f"CASE NUMBER: {case.case_number}",
        f"CASE TYPE: {case.case_type}",
        f"STATUS: {case.status.value}",
        f"FILED ON: {case.created_at:%d %B %Y}",
        f"LANGUAGE: {language}",
        _RULE,
        "",
        f"PETITIONER: {user.name if user else 'Unknown'}",
    ]
    if user is not None and user.email:
        lines.append(f"EMAIL: {user.email}")

    lines += ["", "CASE DETAILS:", case.case_details or "(none provided)", "", "FILING QUESTIONS:"]
    for number, (question, answer) in enumerate(
        zip(case.filing_questions, case.user_responses, strict=False), start=1
    ):
        lines.append(f"{number}. {question}")
        lines.append(f"   Answer: {answer or '(unanswered)'}")

    lines += ["", case.conversation_summary, ""]
    return "\n".join(lines)


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
