"""Tests for merge-preserving CSV import and export commands."""

import pytest

from controllers.csv_controller import export_csv, import_csv
from models.survey_record import Attachment, SurveyRecord
from services.csv_codec import CSVCodec


def _photo(n):
    return Attachment(data_url=f"data:image/jpeg;base64,{n:04d}", created_at="2024-01-01T00:00:00+00:00")


class TestImport:
    @pytest.mark.asyncio
    async def test_new_record_has_empty_collections(self, repo, store):
        summary = await import_csv(repo, CSVCodec(), "id,height\nNS-2024-002,10.5\n")
        assert summary.imported == 1
        stored = await store.get("NS-2024-002")
        assert stored.height == 10.5
        assert stored.attachment_count() == 0
        assert stored.last_modified

    @pytest.mark.asyncio
    async def test_existing_attachments_are_preserved(self, repo, store):
        record = await repo.load("NS-2024-003")
        record.species = "Pine"
        await repo.append_attachment(record, "traditional", _photo(1))
        await repo.append_attachment(record, "traditional", _photo(2))

        await import_csv(repo, CSVCodec(), "id,height,traditionalPhotoCount\nNS-2024-003,12.25,0\n")

        stored = await store.get("NS-2024-003")
        assert stored.height == 12.25
        assert stored.section("traditional").attachments == [_photo(1), _photo(2)]

    @pytest.mark.asyncio
    async def test_rows_without_identifier_are_skipped(self, repo, store):
        summary = await import_csv(repo, CSVCodec(), "id,species\n,Pine\n  ,Oak\nNS-2024-004,Gum\n")
        assert summary.skipped == 2
        assert summary.ids == ["NS-2024-004"]
        assert [r.id for r in await store.list_all()] == ["NS-2024-004"]

    @pytest.mark.asyncio
    async def test_duplicate_identifiers_last_row_wins(self, repo, store):
        text = "id,species\nNS-2024-005,Pine\nNS-2024-006,Oak\nns-2024-005,Gum\n"
        summary = await import_csv(repo, CSVCodec(), text)
        assert summary.duplicates == 1
        assert summary.imported == 2
        assert summary.ids == ["NS-2024-006", "NS-2024-005"]
        assert (await store.get("NS-2024-005")).species == "Gum"

    @pytest.mark.asyncio
    async def test_supplied_timestamp_is_kept(self, repo, store):
        await import_csv(repo, CSVCodec(), "id,updatedAt\nNS-2024-007,2022-02-02T02:02:02Z\nNS-2024-008,\n")
        assert (await store.get("NS-2024-007")).last_modified == "2022-02-02T02:02:02Z"
        assert (await store.get("NS-2024-008")).last_modified > "2022-02-02T02:02:02Z"

    @pytest.mark.asyncio
    async def test_malformed_numbers_do_not_fail_import(self, repo, store):
        summary = await import_csv(repo, CSVCodec(), "id,height,lat\nNS-2024-009,tall,-33.5\n")
        assert summary.imported == 1
        stored = await store.get("NS-2024-009")
        assert stored.height is None
        assert stored.lat == -33.5


class TestExport:
    @pytest.mark.asyncio
    async def test_export_then_import_round_trip(self, repo, store):
        record = SurveyRecord(id="NS-2024-010", species="Pine", height=8.0, notes="a, b")
        record.section("acoustic").notes = 'tone "dull"'
        await repo.save(record)
        await repo.append_attachment(record, "acoustic", _photo(1))

        text = await export_csv(repo, CSVCodec())
        assert "base64" not in text

        changed = await repo.load("NS-2024-010")
        changed.species = "changed"
        await repo.save(changed)
        await import_csv(repo, CSVCodec(), text)

        stored = await store.get("NS-2024-010")
        assert stored.species == "Pine"
        assert stored.notes == "a, b"
        assert stored.section("acoustic").notes == 'tone "dull"'
        assert stored.attachment_count("acoustic") == 1

    @pytest.mark.asyncio
    async def test_export_sorted_by_identifier(self, repo):
        for key in ("NS-2024-003", "NS-2024-001", "NS-2024-002"):
            await repo.save(SurveyRecord(id=key))
        lines = (await export_csv(repo, CSVCodec())).split("\n")
        assert [line.split(",")[0] for line in lines[1:]] == ["NS-2024-001", "NS-2024-002", "NS-2024-003"]
