"""Tests for workflow/service.py module.

Tests the create, cleanup and purge workflows with fake collaborators.
"""

import threading

import pytest

from snappy_cloud_image.imagebuilder.udf import BUILD_DIR_PREFIX, ImageBuildError
from snappy_cloud_image.imagestore.naming import build_identifier
from snappy_cloud_image.imagestore.service import (
    CreateError,
    DeleteError,
    ListError,
    OpenStackImageStore,
    VersionNotFoundError,
)
from snappy_cloud_image.sysimage.fetch import SystemImageError
from snappy_cloud_image.types import BuildRequest
from snappy_cloud_image.workflow.service import (
    KEEP_IMAGES,
    ActionUnknownError,
    Runner,
    VersionError,
    remove_artifact,
)


class FakeSource:
    """Version source returning a fixed version."""

    def __init__(self, version: int = 2, error: Exception | None = None) -> None:
        self.version = version
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    def get_latest_version(self, release, channel, arch):
        self.calls.append((release, channel, arch))
        if self.error:
            raise self.error
        return self.version


class FakeStore:
    """Image store recording calls."""

    def __init__(self) -> None:
        self.version = 1
        self.version_error: Exception | None = None
        self.versions: list[str] = []
        self.versions_error: Exception | None = None
        self.create_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.latest_calls: list[BuildRequest] = []
        self.versions_calls: list[BuildRequest] = []
        self.create_calls: list[tuple] = []
        self.delete_calls: list[tuple[str, ...]] = []
        self.purge_calls: list[BuildRequest] = []
        self.created_file_existed: bool | None = None

    def get_latest_version(self, request):
        self.latest_calls.append(request)
        if self.version_error:
            raise self.version_error
        return self.version

    def get_versions(self, request):
        self.versions_calls.append(request)
        if self.versions_error:
            raise self.versions_error
        return list(self.versions)

    def create(self, path, request, version):
        self.create_calls.append((path, request, version))
        self.created_file_existed = path.exists()
        if self.create_error:
            raise self.create_error

    def delete(self, *identifiers):
        self.delete_calls.append(identifiers)
        if self.delete_error:
            raise self.delete_error

    def purge(self, request):
        self.purge_calls.append(request)


class FakeBuilder:
    """Builder writing a dummy image into a directory."""

    def __init__(self, directory, error: Exception | None = None) -> None:
        self.directory = directory
        self.error = error
        self.calls: list[tuple[BuildRequest, int]] = []
        self.path = directory / "udf.img"

    def create(self, request, version):
        self.calls.append((request, version))
        if self.error:
            raise self.error
        self.path.write_bytes(b"qcow2")
        return self.path


class ListingRunner:
    """Command runner serving an image listing and recording deletions."""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        self.deleted: list[list[str]] = []

    def run(self, args, timeout=None):
        if args[1:3] == ["image", "list"]:
            return "\n".join(f"| {i:08d} | {name} |" for i, name in enumerate(self.names))
        if args[1:3] == ["image", "delete"]:
            self.deleted.append(list(args[3:]))
        return ""


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def builder(tmp_path):
    return FakeBuilder(tmp_path)


@pytest.fixture
def runner(source, store, builder):
    return Runner(source, store, builder)


@pytest.fixture
def legacy_request():
    return BuildRequest(
        release="15.04",
        os_channel="edge",
        kernel_channel="edge",
        gadget_channel="edge",
        arch="amd64",
    )


class TestExecute:
    """Tests for action dispatch."""

    def test_unknown_action(self, runner, source, store, builder, legacy_request):
        """Unknown actions fail without touching collaborators."""
        with pytest.raises(ActionUnknownError) as exc_info:
            runner.execute("non-create", legacy_request)

        assert exc_info.value.action == "non-create"
        assert exc_info.value.code == "unknown_action"
        assert source.calls == []
        assert store.latest_calls == []
        assert store.versions_calls == []
        assert store.purge_calls == []
        assert builder.calls == []

    def test_dispatch_create(self, runner, store, legacy_request):
        runner.execute("create", legacy_request)
        assert len(store.create_calls) == 1

    def test_dispatch_cleanup(self, runner, store, legacy_request):
        runner.execute("cleanup", legacy_request)
        assert len(store.versions_calls) == 1
        assert store.create_calls == []

    def test_dispatch_purge(self, runner, store, legacy_request):
        runner.execute("purge", legacy_request)
        assert store.purge_calls == [legacy_request]


class TestCreateLegacyRelease:
    """Tests for the create workflow on 15.04."""

    def test_end_to_end(self, runner, source, store, builder, legacy_request):
        """Builds and publishes the upstream revision."""
        source.version = 5
        store.version = 3

        runner.create(legacy_request)

        assert builder.calls == [(legacy_request, 5)]
        assert store.create_calls == [(builder.path, legacy_request, 5)]
        assert store.created_file_existed is True
        assert not builder.path.exists()

    def test_source_gets_dotted_release(self, runner, source):
        runner.create(BuildRequest(release="1504"))
        assert source.calls == [("15.04", "edge", "amd64")]

    def test_store_gets_compact_release(self, runner, store, legacy_request):
        runner.create(legacy_request)
        assert [r.release for r in store.latest_calls] == ["1504"]

    def test_uses_selected_channel(self, runner, source):
        request = BuildRequest(
            release="15.04", os_channel="alpha", kernel_channel="beta", gadget_channel="rc"
        )
        runner.create(request)
        assert source.calls == [("15.04", "alpha", "amd64")]

    @pytest.mark.parametrize(("si", "cloud"), [(99, 100), (100, 100), (0, 0)])
    def test_not_newer(self, runner, source, store, builder, legacy_request, si, cloud):
        """Never republishes an equal or older revision."""
        source.version = si
        store.version = cloud

        with pytest.raises(VersionError) as exc_info:
            runner.create(legacy_request)

        assert (exc_info.value.si_version, exc_info.value.cloud_version) == (si, cloud)
        assert exc_info.value.code == "version_error"
        assert builder.calls == []
        assert store.create_calls == []

    def test_published_version_across_digit_width(self, source, builder, legacy_request):
        """With 99 to 101 published, upstream 100 is not newer."""
        names = [build_identifier(legacy_request, v) for v in (99, 100, 101)]
        runner = Runner(source, OpenStackImageStore(ListingRunner(names)), builder)
        source.version = 100

        with pytest.raises(VersionError) as exc_info:
            runner.create(legacy_request)

        assert exc_info.value.cloud_version == 101
        assert builder.calls == []

    def test_nothing_published(self, runner, source, store, builder, legacy_request):
        """A missing published image counts as version 0."""
        source.version = 1
        store.version_error = VersionNotFoundError("1504", "edge", "amd64")

        runner.create(legacy_request)

        assert builder.calls == [(legacy_request, 1)]

    def test_source_error(self, runner, source, store, builder, legacy_request):
        source.error = SystemImageError("error getting si version", code="http_error")

        with pytest.raises(SystemImageError, match="error getting si version"):
            runner.create(legacy_request)

        assert len(store.latest_calls) == 1
        assert builder.calls == []

    def test_store_error(self, runner, source, store, builder, legacy_request):
        store.version_error = ListError("error getting latest cloud version")

        with pytest.raises(ListError, match="error getting latest cloud version"):
            runner.create(legacy_request)

        assert len(source.calls) == 1
        assert builder.calls == []

    def test_both_fail_reports_source_error(self, runner, source, store, legacy_request):
        source.error = SystemImageError("si down")
        store.version_error = ListError("glance down")

        with pytest.raises(SystemImageError):
            runner.create(legacy_request)

    def test_version_queries_run_concurrently(self, store, builder, legacy_request):
        """Both queries are in flight at the same time."""
        barrier = threading.Barrier(2, timeout=5)

        class BarrierSource(FakeSource):
            def get_latest_version(self, release, channel, arch):
                barrier.wait()
                return super().get_latest_version(release, channel, arch)

        class BarrierStore(FakeStore):
            def get_latest_version(self, request):
                barrier.wait()
                return super().get_latest_version(request)

        barrier_store = BarrierStore()
        runner = Runner(BarrierSource(version=7), barrier_store, builder)

        assert runner.fetch_versions(legacy_request) == (7, 1)


class TestCreateOtherReleases:
    """Tests for the create workflow on releases without revisions."""

    def test_does_not_query_versions(self, runner, source, store, builder):
        request = BuildRequest(release="rolling")

        runner.create(request)

        assert source.calls == []
        assert store.latest_calls == []
        assert builder.calls == [(request, 0)]
        assert store.create_calls == [(builder.path, request, 0)]

    def test_compact_numeric_release(self, runner, source, builder):
        runner.create(BuildRequest(release="1604"))
        assert source.calls == []
        assert builder.calls[0][1] == 0


class TestCreateFailures:
    """Tests for failures during build and upload."""

    def test_builder_error(self, source, store, tmp_path, legacy_request):
        builder = FakeBuilder(tmp_path, error=ImageBuildError("error creating image"))
        runner = Runner(source, store, builder)

        with pytest.raises(ImageBuildError, match="error creating image"):
            runner.create(legacy_request)

        assert store.create_calls == []

    def test_upload_error_removes_file(self, runner, store, builder, legacy_request):
        store.create_error = CreateError("error creating cloud image")

        with pytest.raises(CreateError, match="error creating cloud image"):
            runner.create(legacy_request)

        assert store.created_file_existed is True
        assert not builder.path.exists()


class TestCleanup:
    """Tests for the cleanup workflow."""

    def test_deletes_oldest(self, runner, store, legacy_request):
        store.versions = ["v5", "v4", "v3", "v2", "v1"]

        runner.cleanup(legacy_request)

        assert store.delete_calls == [("v2", "v1")]

    @pytest.mark.parametrize("count", [0, 1, 2, 3])
    def test_nothing_to_delete(self, runner, store, legacy_request, count):
        store.versions = [f"v{i}" for i in range(count, 0, -1)]

        runner.cleanup(legacy_request)

        assert store.delete_calls == []

    def test_one_over_threshold(self, runner, store, legacy_request):
        store.versions = ["v4", "v3", "v2", "v1"]
        runner.cleanup(legacy_request)
        assert store.delete_calls == [("v1",)]

    def test_threshold(self):
        assert KEEP_IMAGES == 3

    def test_keeps_newest_across_digit_width(self, source, builder, legacy_request):
        """Versions 100 to 102 are kept even though "99" sorts higher as text."""
        names = [build_identifier(legacy_request, v) for v in (98, 99, 100, 101, 102)]
        listing = ListingRunner(names)
        runner = Runner(source, OpenStackImageStore(listing), builder)

        runner.cleanup(legacy_request)

        assert listing.deleted == [
            [build_identifier(legacy_request, 99), build_identifier(legacy_request, 98)]
        ]

    def test_queries_compact_release(self, runner, store, legacy_request):
        runner.cleanup(legacy_request)
        assert [r.release for r in store.versions_calls] == ["1504"]

    def test_versions_error(self, runner, store, legacy_request):
        store.versions_error = ListError("error getting cloud versions")

        with pytest.raises(ListError):
            runner.cleanup(legacy_request)

        assert store.delete_calls == []

    def test_delete_error(self, runner, store, legacy_request):
        store.versions = ["v5", "v4", "v3", "v2", "v1"]
        store.delete_error = DeleteError("error deleting cloud images")

        with pytest.raises(DeleteError, match="error deleting cloud images"):
            runner.cleanup(legacy_request)

    def test_custom_keep(self, source, store, builder, legacy_request):
        store.versions = ["v3", "v2", "v1"]
        Runner(source, store, builder, keep=1).cleanup(legacy_request)
        assert store.delete_calls == [("v2", "v1")]


class TestPurge:
    """Tests for the purge workflow."""

    def test_delegates_to_store(self, runner, store, source, builder):
        request = BuildRequest(image_type="testing")

        runner.purge(request)

        assert store.purge_calls == [request]
        assert source.calls == []
        assert builder.calls == []


class TestRemoveArtifact:
    """Tests for remove_artifact function."""

    def test_removes_file(self, tmp_path):
        path = tmp_path / "udf.img"
        path.write_bytes(b"x")
        remove_artifact(path)
        assert not path.exists()

    def test_missing_file(self, tmp_path):
        remove_artifact(tmp_path / "missing.img")

    def test_removes_empty_build_dir(self, tmp_path):
        build_dir = tmp_path / f"{BUILD_DIR_PREFIX}abc123"
        build_dir.mkdir()
        path = build_dir / "udf.img"
        path.write_bytes(b"x")

        remove_artifact(path)

        assert not build_dir.exists()
        assert tmp_path.exists()

    def test_keeps_non_empty_build_dir(self, tmp_path):
        build_dir = tmp_path / f"{BUILD_DIR_PREFIX}abc123"
        build_dir.mkdir()
        (build_dir / "udf.raw").write_bytes(b"raw")
        path = build_dir / "udf.img"
        path.write_bytes(b"x")

        remove_artifact(path)

        assert not path.exists()
        assert build_dir.exists()

    def test_keeps_other_dirs(self, tmp_path):
        directory = tmp_path / "images"
        directory.mkdir()
        path = directory / "udf.img"
        path.write_bytes(b"x")

        remove_artifact(path)

        assert directory.exists()

    def test_failure_is_logged(self, tmp_path, caplog):
        directory = tmp_path / "not-a-file"
        directory.mkdir()

        remove_artifact(directory)

        assert directory.exists()
        assert "Failed to remove" in caplog.text
