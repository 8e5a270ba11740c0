"""Tests for the editing session."""

import asyncio

import pytest

from ..application.services.session import EditingSession, collect_image_files
from ..domain.entities.asset import AssetStatus
from ..domain.value_objects.geometry import Point, Rect
from ..domain.value_objects.options import OutputResolution, SkyReplacement
from ..exceptions import GeometrySyncError, InvalidStateError, ValidationError
from ..viewport.controller import ViewportMode
from .fakes import FakeImageService, FakeSleep, png_bytes, png_source


@pytest.fixture
def service():
    return FakeImageService()


@pytest.fixture
def session(service):
    session = EditingSession(service, sleep=FakeSleep())
    session.viewport.resize_container(Rect(0, 0, 400, 300))
    return session


def draw_dot(session):
    session.viewport.set_masking(True)
    session.viewport.pointer_down(Point(200, 150))
    session.viewport.pointer_up()


class TestAssets:
    """Test asset management through the session."""

    def test_add_displays_first_new_asset(self, session):
        ids = session.add_assets([png_source("a.png"), png_source("b.png")])
        assert session.viewport.asset_id == ids[0]
        assert session.selected.id == ids[0]

    def test_select_switches_viewport(self, session):
        ids = session.add_assets([png_source("a.png"), png_source("b.png")])
        draw_dot(session)
        assert session.viewport.has_mask

        session.select_asset(ids[1])
        assert session.viewport.asset_id == ids[1]
        assert not session.viewport.has_mask

    def test_delete_displayed_falls_back(self, session):
        ids = session.add_assets([png_source("a.png"), png_source("b.png")])
        session.select_asset(ids[1])
        session.delete_asset(ids[1])
        assert session.viewport.asset_id == ids[0]
        assert [a.id for a in session.assets] == [ids[0]]

    def test_delete_last_clears_viewport(self, session):
        [asset_id] = session.add_assets([png_source("a.png")])
        session.delete_asset(asset_id)
        assert session.viewport.asset_id is None
        assert session.viewport.frame().base is None

    def test_add_files(self, session, tmp_path):
        path = tmp_path / "room.png"
        path.write_bytes(png_bytes(64, 32))
        [asset_id] = session.add_files([path])
        asset = session.registry.get(asset_id)
        assert asset.name == "room.png"
        assert asset.source.mime_type == "image/png"
        assert asset.natural_size == (64, 32)


class TestSettings:
    """Test option snapshots."""

    def test_update_creates_new_snapshot(self, session):
        before = session.settings
        session.update_options(resolution=OutputResolution.RES_4K)
        assert before.options.resolution is OutputResolution.RES_2K
        assert session.settings.options.resolution is OutputResolution.RES_4K

    def test_invalid_update_rejected(self, session):
        before = session.settings
        with pytest.raises(ValidationError):
            session.update_options(sky_replacement=SkyReplacement.CUSTOM)
        assert session.settings is before

    def test_update_settings(self, session):
        session.update_settings(project_context="Loft", extra_prompt="warm light")
        assert session.settings.project_context == "Loft"
        assert session.settings.extra_prompt == "warm light"


class TestProcessing:
    """Test batch and masked edits through the session."""

    def test_batch_updates_viewport(self, session, service):
        [asset_id] = session.add_assets([png_source("a.png")])
        result = asyncio.run(session.start_batch())

        assert result.successful == 1
        assert not session.is_processing
        asset = session.registry.get(asset_id)
        assert asset.status is AssetStatus.COMPLETED
        assert session.viewport.frame().base == asset.result.data

    def test_batch_uses_current_options(self, session, service):
        session.add_assets([png_source("a.png")])
        session.update_options(resolution=OutputResolution.RES_4K)
        asyncio.run(session.start_batch())
        assert service.requests[0].resolution is OutputResolution.RES_4K

    def test_submit_current_mask(self, session, service):
        [asset_id] = session.add_assets([png_source("a.png", 40, 30)])
        draw_dot(session)

        asset = asyncio.run(session.submit_current_mask("  a lemon tree  "))

        request = service.requests[0]
        assert request.is_masked
        assert request.replacement_text == "a lemon tree"
        assert asset.status is AssetStatus.COMPLETED
        assert not session.viewport.has_mask
        assert session.viewport.mode is ViewportMode.MASKING

    def test_refused_submit_keeps_strokes(self, session, service):
        [asset_id] = session.add_assets([png_source("a.png", 40, 30)])
        session.registry.transition(asset_id, AssetStatus.PROCESSING)
        draw_dot(session)

        with pytest.raises(InvalidStateError):
            asyncio.run(session.submit_current_mask("a lemon tree"))

        assert session.viewport.has_mask
        assert service.requests == []

    def test_strokes_cleared_once_accepted(self, session, service):
        session.add_assets([png_source("a.png", 40, 30)])
        draw_dot(session)
        seen = []
        service.on_call = lambda request: seen.append(session.viewport.has_mask)

        asyncio.run(session.submit_current_mask())

        assert seen == [False]

    def test_submit_without_strokes(self, session):
        session.add_assets([png_source("a.png")])
        session.viewport.set_masking(True)
        with pytest.raises(InvalidStateError):
            asyncio.run(session.submit_current_mask())

    def test_submit_with_nothing_displayed(self, session):
        with pytest.raises(InvalidStateError):
            asyncio.run(session.submit_current_mask())

    def test_mask_size_mismatch_discarded(self, session, service):
        [asset_id] = session.add_assets([png_source("a.png", 40, 30)])
        with pytest.raises(GeometrySyncError):
            asyncio.run(session.submit_masked_edit(asset_id, png_bytes(20, 20)))
        assert service.requests == []
        assert session.registry.get(asset_id).status is AssetStatus.PENDING

    def test_unreadable_mask(self, session):
        [asset_id] = session.add_assets([png_source("a.png")])
        with pytest.raises(ValidationError):
            asyncio.run(session.submit_masked_edit(asset_id, b"not a png"))


class TestExport:
    """Test writing results to disk."""

    def test_export_names(self, session, tmp_path):
        session.add_assets([png_source("a.png"), png_source("b.jpg")])
        asyncio.run(session.start_batch())

        written = session.export_results(tmp_path / "out")
        assert [p.name for p in written] == ["a-processed.png", "b-processed.png"]
        assert all(p.read_bytes().startswith(b"\x89PNG") for p in written)

    def test_only_completed_exported(self, session, service, tmp_path):
        session.add_assets([png_source("a.png")])
        assert session.export_results(tmp_path) == []

    def test_duplicate_stems(self, session, tmp_path):
        session.add_assets([png_source("a.png"), png_source("a.jpg")])
        asyncio.run(session.start_batch())
        written = session.export_results(tmp_path)
        assert len({p.name for p in written}) == 2


class TestCollectImageFiles:
    """Test input discovery."""

    def test_folder(self, tmp_path):
        for name in ("b.jpg", "a.png", "notes.txt"):
            (tmp_path / name).write_bytes(b"x")
        assert [p.name for p in collect_image_files(tmp_path)] == ["a.png", "b.jpg"]

    def test_single_file(self, tmp_path):
        path = tmp_path / "a.PNG"
        path.write_bytes(b"x")
        assert collect_image_files(path) == [path]

    def test_missing(self, tmp_path):
        with pytest.raises(ValidationError):
            collect_image_files(tmp_path / "nope")

    def test_no_images(self, tmp_path):
        (tmp_path / "notes.txt").write_bytes(b"x")
        with pytest.raises(ValidationError):
            collect_image_files(tmp_path)
