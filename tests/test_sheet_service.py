"""Unit tests for makerchecker.services.sheet_service (Sheet Registry)."""

import re

import pytest

from makerchecker.core.exceptions import ConflictError, NotFoundError, ValidationError
from makerchecker.models.sheet import Sheet
from makerchecker.services import sheet_service


class TestCreateSheet:
    def test_first_sheet_is_version_one_and_pending(self):
        sheet = sheet_service.create_sheet("P1", "product", "alice")
        assert sheet.version == 1
        assert sheet.status == "PENDING"
        assert sheet.created_by == "alice"
        assert re.fullmatch(r"SHEET-[0-9A-F]{8}", sheet.sheet_id)

    def test_versions_increase_per_process_and_type(self):
        s1 = sheet_service.create_sheet("P1", "product", "alice")
        s2 = sheet_service.create_sheet("P1", "product", "alice")
        other_type = sheet_service.create_sheet("P1", "plan", "alice")
        other_process = sheet_service.create_sheet("P2", "product", "alice")

        assert (s1.version, s2.version) == (1, 2)
        assert other_type.version == 1
        assert other_process.version == 1
        assert s1.sheet_id != s2.sheet_id

    def test_expected_version_mismatch_is_conflict(self):
        sheet_service.create_sheet("P1", "item", "alice")
        with pytest.raises(ConflictError):
            sheet_service.create_sheet("P1", "item", "bob", expected_version=0)
        assert len(sheet_service.list_sheets("P1", "item")) == 1

    def test_expected_version_match(self):
        s1 = sheet_service.create_sheet("P1", "item", "alice", expected_version=0)
        s2 = sheet_service.create_sheet("P1", "item", "bob", expected_version=s1.version)
        assert s2.version == 2

    @pytest.mark.parametrize("pid, creator", [("", "alice"), ("  ", "alice"), (None, "alice"), ("P1", "")])
    def test_blank_identifiers_rejected(self, pid, creator):
        with pytest.raises(ValidationError):
            sheet_service.create_sheet(pid, "product", creator)

    def test_unknown_entity_type_rejected(self):
        with pytest.raises(ValidationError):
            sheet_service.create_sheet("P1", "policy", "alice")


class TestLookup:
    def test_find_latest_returns_highest_version(self):
        sheet_service.create_sheet("P1", "plan", "alice")
        latest = sheet_service.create_sheet("P1", "plan", "alice")
        assert sheet_service.find_latest("P1", "plan").sheet_id == latest.sheet_id

    def test_find_latest_none_when_absent(self):
        assert sheet_service.find_latest("P404", "plan") is None

    def test_get_unknown_sheet_raises(self):
        with pytest.raises(NotFoundError):
            sheet_service.get_by_sheet_id("SHEET-DEADBEEF")

    def test_find_by_sheet_id(self):
        sheet = sheet_service.create_sheet("P1", "plan", "alice")
        assert isinstance(sheet_service.find_by_sheet_id(sheet.sheet_id), Sheet)
        assert sheet_service.find_by_sheet_id("SHEET-00000000") is None

    def test_list_sheets_is_a_generation_ledger(self):
        sheet_service.create_sheet("P2", "product", "alice")
        sheet_service.create_sheet("P1", "product", "alice")
        sheet_service.create_sheet("P1", "product", "alice")
        sheet_service.create_sheet("P1", "item", "alice")

        ledger = [(s.process_instance_id, s.entity_type, s.version) for s in sheet_service.list_sheets()]
        assert ledger == [
            ("P1", "item", 1),
            ("P1", "product", 1),
            ("P1", "product", 2),
            ("P2", "product", 1),
        ]
        assert len(sheet_service.list_sheets(process_instance_id="P1", entity_type="products")) == 2


class TestApproveSheet:
    def test_approve_sets_approver_and_timestamp(self):
        sheet = sheet_service.create_sheet("P1", "product", "alice")
        approved = sheet_service.approve_sheet(sheet.sheet_id, "carol", "looks good")
        assert approved.status == "APPROVED"
        assert approved.approved_by == "carol"
        assert approved.approved_at is not None
        assert approved.comments == "looks good"

    def test_none_comments_keep_existing(self):
        sheet = sheet_service.create_sheet("P1", "product", "alice")
        sheet_service.approve_sheet(sheet.sheet_id, "carol", "first pass")
        again = sheet_service.approve_sheet(sheet.sheet_id, "dave")
        assert again.comments == "first pass"
        assert again.approved_by == "dave"

    def test_blank_approver_rejected(self):
        sheet = sheet_service.create_sheet("P1", "product", "alice")
        with pytest.raises(ValidationError):
            sheet_service.approve_sheet(sheet.sheet_id, " ")

    def test_unknown_sheet(self):
        with pytest.raises(NotFoundError):
            sheet_service.approve_sheet("SHEET-DEADBEEF", "carol")
