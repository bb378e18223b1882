"""Tests for the command-line CSV export/import tool."""

import asyncio

import pytest

import csv_tool
from dal.record_store import RecordStore
from models.survey_record import Attachment, SurveyRecord
from utils.database_init import AsyncDatabaseInitializer


@pytest.fixture
def db_env(tmp_path, monkeypatch):
    path = tmp_path / "cli-db"
    monkeypatch.setenv("DATABASE_DIR", str(path))
    return path


async def _seed(path, *records):
    async with RecordStore(AsyncDatabaseInitializer(path)) as store:
        for record in records:
            await store.put(record)


async def _get(path, key):
    async with RecordStore(AsyncDatabaseInitializer(path)) as store:
        return await store.get(key)


class TestCsvTool:
    def test_export(self, db_env, tmp_path):
        asyncio.run(_seed(db_env, SurveyRecord(id="NS-2024-001", species="Pine, Radiata")))
        out = tmp_path / "poles.csv"
        assert csv_tool.main(["export", str(out)]) == 0
        text = out.read_text(encoding="utf-8")
        assert text.startswith("id,species,height")
        assert 'NS-2024-001,"Pine, Radiata"' in text

    def test_export_legacy(self, db_env, tmp_path):
        out = tmp_path / "legacy.csv"
        assert csv_tool.main(["export", str(out), "--legacy"]) == 0
        assert out.read_text(encoding="utf-8").startswith("id,height,status,species,calcDiaPct")

    def test_import_keeps_photos(self, db_env, tmp_path, capsys):
        record = SurveyRecord(id="NS-2024-003", height=9.0)
        record.section("traditional").attachments.append(Attachment("data:image/jpeg;base64,AAAA"))
        asyncio.run(_seed(db_env, record))

        src = tmp_path / "in.csv"
        src.write_bytes("\ufeffid,height\r\nNS-2024-003,12\r\n,no code\r\n".encode("utf-8"))
        assert csv_tool.main(["import", str(src)]) == 0
        assert "Imported 1 records (1 without a code, 0 duplicates)" in capsys.readouterr().out

        stored = asyncio.run(_get(db_env, "NS-2024-003"))
        assert stored.height == 12.0
        assert stored.attachment_count("traditional") == 1

    def test_storage_error_exit_code(self, tmp_path, monkeypatch):
        bad = tmp_path / "file"
        bad.write_text("x")
        monkeypatch.setenv("DATABASE_DIR", str(bad))
        assert csv_tool.main(["export", str(tmp_path / "out.csv")]) == 1
