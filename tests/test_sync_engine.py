"""Tests for the sync engine."""

import json
import os
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest

from projsync.api import ProjectClient
from projsync.exceptions import (
    ProjsyncAPIError,
    ProjsyncNetworkError,
    ProjsyncNotFoundError,
    SyncError,
    SyncOperation,
)
from projsync.models import ProjectInfo
from projsync.output import OutputFormatter
from projsync.sync import SyncEngine, SyncPhase
from projsync.sync.rules import IGNORE_FILE_NAME, REF_PATHS_FILE_NAME

OLD_MS = 1_000_000_000_000
CUTOFF_MS = 1_500_000_000_000
NEW_MS = 2_000_000_000_000


def _uploaded_paths(client):
    return [c.args[1].relative_path for c in client.upload_file.call_args_list]


def _manifest(client):
    project_id, request = client.complete_upload.call_args.args
    return request.to_dict()


class TestSyncEngine:
    """Test SyncEngine functionality."""

    @pytest.fixture
    def mock_client(self):
        """Create a mock project client.

        The remote file list is unavailable by default so reconciliation
        stays out of the way.
        """
        client = Mock(spec=ProjectClient)
        client.upload_file.return_value = ("200 OK", 200)
        client.complete_upload.return_value = ("202 Accepted", 202)
        client.get_project_file_list.side_effect = ProjsyncNotFoundError("nope", 404)
        return client

    @pytest.fixture
    def mock_output(self):
        """Create a mock output formatter."""
        output = Mock(spec=OutputFormatter)
        output.quiet = True
        output.json_output = False
        return output

    @pytest.fixture
    def engine(self, mock_client, mock_output):
        return SyncEngine(mock_client, mock_output)

    def test_create_sync_engine(self, mock_client, mock_output):
        engine = SyncEngine(mock_client, mock_output, max_workers=3)
        assert engine.client == mock_client
        assert engine.output == mock_output
        assert engine.max_workers == 3
        assert engine.phase is None

    def test_unmodified_and_modified_files(
        self, engine, mock_client, project_dir, make_file
    ):
        """Only files newer than the cutoff are uploaded."""
        make_file(project_dir / "a.txt", mtime_ms=OLD_MS)
        make_file(project_dir / "b.txt", mtime_ms=NEW_MS)

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert manifest["fileList"] == ["a.txt", "b.txt"]
        assert manifest["modifiedList"] == ["b.txt"]
        assert manifest["directoryList"] == []
        assert _uploaded_paths(mock_client) == ["b.txt"]
        assert [f.file_path for f in response.uploaded_files] == ["b.txt"]
        assert response.status == "202 Accepted"
        assert response.status_code == 202
        assert response.warnings == []
        assert engine.phase is SyncPhase.COMPLETE

    def test_ignored_directory(self, engine, mock_client, project_dir, make_file):
        (project_dir / IGNORE_FILE_NAME).write_text(
            json.dumps({"ignoredPaths": ["build"]})
        )
        make_file(project_dir / "build" / "out.bin", mtime_ms=NEW_MS)
        make_file(project_dir / "src" / "main.c", mtime_ms=NEW_MS)

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert "build" not in manifest["directoryList"]
        assert "build/out.bin" not in manifest["fileList"]
        assert manifest["directoryList"] == ["src"]
        assert "src/main.c" in manifest["fileList"]
        assert "build/out.bin" not in _uploaded_paths(mock_client)

    def test_legacy_ignore_rule(self, engine, mock_client, project_dir, make_file):
        (project_dir / IGNORE_FILE_NAME).write_text(
            json.dumps({"ignoredPaths": ["/build", "/*.log"]})
        )
        make_file(project_dir / "build" / "out.bin")
        make_file(project_dir / "debug.log")
        make_file(project_dir / "keep.txt")

        engine.sync_project(project_dir, "p1", 0)

        manifest = _manifest(mock_client)
        assert manifest["fileList"] == [IGNORE_FILE_NAME, "keep.txt"]
        assert manifest["directoryList"] == []

    def test_reference_file(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "shared" / "lib.js", "lib", mtime_ms=NEW_MS)
        refs = make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": "lib/lib.js"}]}),
            mtime_ms=OLD_MS,
        )
        assert refs.exists()

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert "lib/lib.js" in manifest["fileList"]
        assert manifest["modifiedList"] == ["lib/lib.js"]
        assert _uploaded_paths(mock_client) == ["lib/lib.js"]
        assert response.uploaded_files[0].file_path == "lib/lib.js"

    def test_reference_target_never_synced_from_project(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "shared" / "lib.js", "external", mtime_ms=OLD_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": "lib/lib.js"}]}),
            mtime_ms=OLD_MS,
        )
        # A physical file at the target location
        make_file(project_dir / "lib" / "lib.js", "physical", mtime_ms=NEW_MS)

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        # Listed once, and only via the reference
        assert manifest["fileList"].count("lib/lib.js") == 1
        assert manifest["modifiedList"] == []
        assert _uploaded_paths(mock_client) == []

    def test_reference_target_ignored_by_base_rules(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "lib.js", mtime_ms=NEW_MS)
        make_file(
            project_dir / IGNORE_FILE_NAME,
            json.dumps({"ignoredPaths": ["*.js"]}),
            mtime_ms=OLD_MS,
        )
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": "lib.js"}]}),
            mtime_ms=OLD_MS,
        )

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert "lib.js" not in _manifest(mock_client)["fileList"]

    def test_changed_reference_file_forces_reference_resync(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        old_source = make_file(tmp_path / "a.js", mtime_ms=OLD_MS)
        other_source = make_file(tmp_path / "b.js", mtime_ms=OLD_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps(
                {
                    "refPaths": [
                        {"from": str(old_source), "to": "a.js"},
                        {"from": str(other_source), "to": "b.js"},
                    ]
                }
            ),
            mtime_ms=NEW_MS,
        )
        make_file(project_dir / "local.txt", mtime_ms=OLD_MS)

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert manifest["modifiedList"] == [REF_PATHS_FILE_NAME, "a.js", "b.js"]
        assert _uploaded_paths(mock_client) == [REF_PATHS_FILE_NAME, "a.js", "b.js"]
        # Physical files still use the normal cutoff
        assert "local.txt" not in manifest["modifiedList"]

    def test_unchanged_reference_file_keeps_cutoff(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "a.js", mtime_ms=OLD_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": "a.js"}]}),
            mtime_ms=OLD_MS,
        )

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert _manifest(mock_client)["modifiedList"] == []

    def test_invalid_references_are_warnings(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        (tmp_path / "somedir").mkdir()
        good = make_file(tmp_path / "good.js", mtime_ms=NEW_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps(
                {
                    "refPaths": [
                        {"from": str(tmp_path / "missing.js"), "to": "m.js"},
                        {"from": str(tmp_path / "somedir"), "to": "d"},
                        {"from": str(good), "to": "good.js"},
                    ]
                }
            ),
            mtime_ms=OLD_MS,
        )

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert len(response.warnings) == 2
        assert "missing.js" in response.warnings[0]
        assert "somedir" in response.warnings[1]
        # The pass still completes with the valid reference
        mock_client.complete_upload.assert_called_once()
        assert "good.js" in _manifest(mock_client)["fileList"]
        assert engine.phase is SyncPhase.COMPLETE

    def test_reference_to_project_root_is_not_listed(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "lib.js", mtime_ms=NEW_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": ""}]}),
            mtime_ms=OLD_MS,
        )

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert manifest["fileList"] == [REF_PATHS_FILE_NAME]
        assert manifest["modifiedList"] == []
        assert _uploaded_paths(mock_client) == []
        assert len(response.warnings) == 1
        assert "project root" in response.warnings[0]

    def test_second_pass_with_same_cutoff_and_no_changes(
        self, mock_client, mock_output, project_dir, make_file
    ):
        make_file(project_dir / "a.txt", mtime_ms=OLD_MS)
        make_file(project_dir / "src" / "b.txt", mtime_ms=OLD_MS)

        first = SyncEngine(mock_client, mock_output).sync_project(
            project_dir, "p1", CUTOFF_MS
        )
        second = SyncEngine(mock_client, mock_output).sync_project(
            project_dir, "p1", CUTOFF_MS
        )

        assert first.uploaded_files == []
        assert second.uploaded_files == []
        assert _manifest(mock_client)["modifiedList"] == []

    def test_next_cutoff_is_pass_start_time(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "a.txt", mtime_ms=NEW_MS)

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        manifest = _manifest(mock_client)
        assert manifest["timeStamp"] == response.time_stamp
        assert CUTOFF_MS < response.time_stamp < NEW_MS

    def test_upload_failure_still_completes(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "c.txt", mtime_ms=NEW_MS)
        make_file(project_dir / "d.txt", mtime_ms=NEW_MS)

        def upload(project_id, message):
            if message.relative_path == "c.txt":
                raise ProjsyncNetworkError("connection reset")
            return ("200 OK", 200)

        mock_client.upload_file.side_effect = upload

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        outcomes = [f.to_dict() for f in response.uploaded_files]
        assert {"filePath": "c.txt", "status": "Failed", "statusCode": 0} in outcomes
        assert {"filePath": "d.txt", "status": "200 OK", "statusCode": 200} in outcomes
        mock_client.complete_upload.assert_called_once()
        assert _manifest(mock_client)["modifiedList"] == ["c.txt", "d.txt"]

    def test_parallel_uploads(self, mock_client, mock_output, project_dir, make_file):
        for i in range(6):
            make_file(project_dir / f"f{i}.txt", mtime_ms=NEW_MS)

        engine = SyncEngine(mock_client, mock_output, max_workers=3)
        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert [f.file_path for f in response.uploaded_files] == [
            f"f{i}.txt" for i in range(6)
        ]

    def test_completion_rejection_is_returned(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "a.txt", mtime_ms=NEW_MS)
        mock_client.complete_upload.return_value = ("500 Internal Server Error", 500)

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert response.status_code == 500
        assert not response.succeeded

    def test_completion_transport_error_is_fatal(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "a.txt", mtime_ms=NEW_MS)
        mock_client.complete_upload.side_effect = ProjsyncNetworkError("down")

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert exc_info.value.operation is SyncOperation.COMPLETE
        assert engine.phase is SyncPhase.ABORTED

    def test_complete_called_once_with_project_id(
        self, engine, mock_client, project_dir
    ):
        engine.sync_project(project_dir, "proj-42", 0)
        mock_client.complete_upload.assert_called_once()
        assert mock_client.complete_upload.call_args.args[0] == "proj-42"


class TestReconciliation:
    """Files the remote has never seen are uploaded regardless of mtime."""

    @pytest.fixture
    def mock_client(self):
        client = Mock(spec=ProjectClient)
        client.upload_file.return_value = ("200 OK", 200)
        client.complete_upload.return_value = ("202 Accepted", 202)
        return client

    @pytest.fixture
    def engine(self, mock_client):
        output = Mock(spec=OutputFormatter)
        output.quiet = True
        output.json_output = False
        return SyncEngine(mock_client, output)

    def test_new_files_are_uploaded(self, engine, mock_client, project_dir, make_file):
        make_file(project_dir / "known.txt", mtime_ms=OLD_MS)
        make_file(project_dir / "imported.txt", mtime_ms=OLD_MS)
        mock_client.get_project_file_list.return_value = ["known.txt"]

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert _uploaded_paths(mock_client) == ["imported.txt"]
        assert _manifest(mock_client)["modifiedList"] == ["imported.txt"]
        assert [f.file_path for f in response.uploaded_files] == ["imported.txt"]

    def test_modified_new_file_uploaded_once(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "fresh.txt", mtime_ms=NEW_MS)
        mock_client.get_project_file_list.return_value = []

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert _uploaded_paths(mock_client) == ["fresh.txt"]
        assert _manifest(mock_client)["modifiedList"] == ["fresh.txt"]

    def test_new_reference_file_uploaded_from_source(
        self, engine, mock_client, tmp_path, project_dir, make_file
    ):
        source = make_file(tmp_path / "lib.js", "shared", mtime_ms=OLD_MS)
        make_file(
            project_dir / REF_PATHS_FILE_NAME,
            json.dumps({"refPaths": [{"from": str(source), "to": "lib.js"}]}),
            mtime_ms=OLD_MS,
        )
        mock_client.get_project_file_list.return_value = [REF_PATHS_FILE_NAME]

        response = engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert _uploaded_paths(mock_client) == ["lib.js"]
        assert response.uploaded_files[0].status_code == 200

    def test_missing_remote_list_skips_reconciliation(
        self, engine, mock_client, project_dir, make_file
    ):
        make_file(project_dir / "a.txt", mtime_ms=OLD_MS)
        mock_client.get_project_file_list.side_effect = ProjsyncAPIError("boom", 500)

        engine.sync_project(project_dir, "p1", CUTOFF_MS)

        assert _uploaded_paths(mock_client) == []
        mock_client.complete_upload.assert_called_once()


class TestLocalPathValidation:
    """Tests for the missing-directory handling."""

    @pytest.fixture
    def mock_client(self):
        return Mock(spec=ProjectClient)

    @pytest.fixture
    def engine(self, mock_client):
        output = Mock(spec=OutputFormatter)
        output.quiet = True
        output.json_output = False
        return SyncEngine(mock_client, output)

    def test_missing_directory_notifies_remote(self, engine, mock_client, tmp_path):
        missing = tmp_path / "gone"
        mock_client.get_project.return_value = ProjectInfo(
            project_id="p1", location_on_disk=str(missing)
        )

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(str(missing), "p1", 0)

        assert exc_info.value.operation is SyncOperation.PROJECT_DIR_MISSING
        mock_client.notify_missing_local_dir.assert_called_once_with("p1")
        mock_client.complete_upload.assert_not_called()
        mock_client.upload_file.assert_not_called()
        assert engine.phase is SyncPhase.ABORTED

    def test_mismatched_path_does_not_notify(self, engine, mock_client, tmp_path):
        mock_client.get_project.return_value = ProjectInfo(
            project_id="p1", location_on_disk=str(tmp_path / "elsewhere")
        )

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(str(tmp_path / "gone"), "p1", 0)

        assert exc_info.value.operation is SyncOperation.PROJECT_PATH_MISMATCH
        mock_client.notify_missing_local_dir.assert_not_called()
        mock_client.complete_upload.assert_not_called()

    def test_notify_failure_is_still_missing_dir(self, engine, mock_client, tmp_path):
        missing = tmp_path / "gone"
        mock_client.get_project.return_value = ProjectInfo(
            project_id="p1", location_on_disk=str(missing)
        )
        mock_client.notify_missing_local_dir.side_effect = ProjsyncAPIError(
            "Server responded with status code 500", 500
        )

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(str(missing), "p1", 0)

        assert exc_info.value.operation is SyncOperation.PROJECT_DIR_MISSING
        assert isinstance(exc_info.value.cause, ProjsyncAPIError)

    def test_project_lookup_failure(self, engine, mock_client, tmp_path):
        mock_client.get_project.side_effect = ProjsyncNotFoundError("missing", 404)

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(str(tmp_path / "gone"), "p1", 0)

        assert exc_info.value.operation is SyncOperation.REQUEST

    def test_path_is_a_file(self, engine, mock_client, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")

        with pytest.raises(SyncError, match="not a directory") as exc_info:
            engine.sync_project(path, "p1", 0)

        assert exc_info.value.operation is SyncOperation.BAD_PATH
        mock_client.get_project.assert_not_called()

    def test_unreadable_tree_aborts_before_completion(
        self, engine, mock_client, project_dir, make_file, monkeypatch
    ):
        make_file(project_dir / "locked" / "a.txt", mtime_ms=NEW_MS)
        original_iterdir = Path.iterdir

        def fake_iterdir(self):
            if self.name == "locked":
                raise PermissionError("Permission denied")
            return original_iterdir(self)

        monkeypatch.setattr(Path, "iterdir", fake_iterdir)

        with pytest.raises(SyncError) as exc_info:
            engine.sync_project(project_dir, "p1", 0)

        assert exc_info.value.operation is SyncOperation.SYNC_WALK
        mock_client.upload_file.assert_not_called()
        mock_client.complete_upload.assert_not_called()


class TestUndecodableFileNames:
    """Sync passes against a real client over a mock transport."""

    @pytest.fixture
    def requests_seen(self):
        return []

    @pytest.fixture
    def client(self, requests_seen):
        def handler(request):
            body = json.loads(request.content) if request.content else None
            requests_seen.append((request.method, request.url.path, body))
            if request.url.path.endswith("/fileList"):
                return httpx.Response(404)
            return httpx.Response(200)

        client = ProjectClient(
            api_url="http://server.test",
            transport=httpx.MockTransport(handler),
            retry_delay=0,
            max_retries=0,
        )
        yield client
        client.close()

    def test_bad_file_name_does_not_abort_pass(
        self, client, requests_seen, project_dir, make_file
    ):
        make_file(project_dir / "ok.txt", mtime_ms=NEW_MS)
        raw = os.path.join(os.fsencode(project_dir), b"bad\xff.txt")
        try:
            with open(raw, "wb") as f:
                f.write(b"data")
        except OSError:
            pytest.skip("filesystem rejects non UTF-8 names")

        output = OutputFormatter(quiet=True)
        response = SyncEngine(client, output).sync_project(project_dir, "p1", 0)

        assert response.status_code == 200
        assert {f.file_path: f.status_code for f in response.uploaded_files} == {
            "bad\ufffd.txt": 200,
            "ok.txt": 200,
        }
        method, path, manifest = requests_seen[-1]
        assert (method, path) == ("POST", "/api/v1/projects/p1/upload/end")
        assert manifest["fileList"] == ["bad\ufffd.txt", "ok.txt"]
