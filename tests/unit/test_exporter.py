"""Tests for the plain-text case exporter."""

from pathlib import Path

import pytest

from bolonyay.core.config import Settings
from bolonyay.core.exceptions import ExportError
from bolonyay.services.export.exporter import TextCaseExporter, render_case_text
from tests.conftest import make_case_record, make_user


class TestRenderCaseText:
    def test_includes_header_parties_and_answers(self) -> None:
        text = render_case_text(make_case_record(), make_user())

        assert "CASE NUMBER: BN2024123456" in text
        assert "FILED ON: 01 May 2024" in text
        assert "LANGUAGE: Hindi" in text
        assert "PETITIONER: Asha Devi" in text
        assert "EMAIL: asha@example.in" in text
        assert "1. What is your full name?\n   Answer: Asha Devi" in text
        assert text.rstrip().endswith("User said: help")

    def test_unanswered_and_unknown_user(self) -> None:
        record = make_case_record(user_responses=["Asha Devi", ""], case_details="")

        text = render_case_text(record, None)

        assert "PETITIONER: Unknown" in text
        assert "(none provided)" in text
        assert "   Answer: (unanswered)" in text


class TestTextCaseExporter:
    async def test_render_writes_utf8_file(self, test_settings: Settings) -> None:
        record = make_case_record(case_type="पारिवारिक कानून")

        artifact = await TextCaseExporter(test_settings).render(record, make_user())

        path = Path(artifact.reference)
        assert path.parent == Path(test_settings.export_directory)
        assert path.name.startswith("BoloNyay_BN2024123456_")
        assert artifact.media_type == "text/plain"
        assert "CASE TYPE: पारिवारिक कानून" in path.read_text(encoding="utf-8")

    async def test_unwritable_directory_is_export_error(
        self, test_settings: Settings, tmp_path: Path
    ) -> None:
        blocker = tmp_path / "not-a-directory"
        blocker.write_text("x")
        settings = test_settings.model_copy(update={"export_directory": str(blocker)})

        with pytest.raises(ExportError):
            await TextCaseExporter(settings).render(make_case_record(), make_user())
