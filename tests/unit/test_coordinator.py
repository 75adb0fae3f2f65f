"""Unit tests for the dual-write coordinator."""

from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def mock_registry():
    """Registry double whose add_chunks succeeds on both sides."""
    registry = MagicMock()
    registry.combined_name = "combined"
    registry.add_chunks = AsyncMock(return_value=True)
    return registry


@pytest.fixture
def chunks(make_chunks):
    return make_chunks(
        "intro.txt",
        [
            "Welcome to the product introduction document.",
            "This section explains how to install the product.",
        ],
    )


@pytest.mark.unit
class TestIndividualStoreName:
    """Test individual_store_name function."""

    @pytest.mark.parametrize(
        "document_id,expected",
        [
            ("intro.txt", "intro"),
            ("report.v2.pdf", "report.v2"),
            ("notes", "notes"),
            ("uploads/2024/intro.txt", "intro"),
            ("C:\\docs\\intro.txt", "intro"),
        ],
    )
    def test_strips_extension_and_directories(self, document_id, expected):
        from docchat.coordinator import individual_store_name

        assert individual_store_name(document_id) == expected

    def test_owner_prefix(self):
        from docchat.coordinator import individual_store_name

        assert individual_store_name("intro.txt", owner="alice") == "alice_intro"

    @pytest.mark.parametrize("document_id", ["", ".txt", "docs/.hidden"])
    def test_invalid_ids(self, document_id):
        from docchat.coordinator import individual_store_name

        with pytest.raises(ValueError):
            individual_store_name(document_id)


@pytest.mark.unit
class TestDualWriteCoordinator:
    """Test DualWriteCoordinator with a mocked registry."""

    async def test_writes_both_sides(self, mock_registry, chunks):
        """Test both stores receive the same chunks."""
        from docchat.coordinator import DualWriteCoordinator

        coordinator = DualWriteCoordinator(mock_registry)
        outcome = await coordinator.add_document("intro.txt", chunks)

        assert outcome.individual_store == "intro"
        assert outcome.combined_store == "combined"
        assert outcome.written_sides == ["individual", "combined"]
        assert outcome.failures == {}

        names = [call.args[0] for call in mock_registry.add_chunks.await_args_list]
        assert sorted(names) == ["combined", "intro"]
        written = [call.args[1] for call in mock_registry.add_chunks.await_args_list]
        assert written[0] == written[1]

    async def test_individual_created_flag(self, mock_registry, chunks):
        """Test outcome reports when the individual store was new."""
        from docchat.coordinator import DualWriteCoordinator

        async def add_chunks(name, chunks, timeout=None):
            return name == "combined"

        mock_registry.add_chunks = AsyncMock(side_effect=add_chunks)
        outcome = await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks)

        assert outcome.individual_created is True

    async def test_individual_failure_is_partial(self, mock_registry, chunks):
        """Test a failed individual write still succeeds via the combined store."""
        from docchat.coordinator import DualWriteCoordinator

        async def add_chunks(name, chunks, timeout=None):
            if name == "intro":
                raise OSError("disk full")
            return True

        mock_registry.add_chunks = AsyncMock(side_effect=add_chunks)
        outcome = await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks)

        assert outcome.succeeded is True
        assert outcome.written_sides == ["combined"]
        assert outcome.failures == {"individual": "disk full"}

    async def test_combined_failure_is_partial(self, mock_registry, chunks):
        from docchat.coordinator import DualWriteCoordinator

        async def add_chunks(name, chunks, timeout=None):
            if name == "combined":
                raise TimeoutError("slow")
            return False

        mock_registry.add_chunks = AsyncMock(side_effect=add_chunks)
        outcome = await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks)

        assert outcome.written_sides == ["individual"]
        assert "combined" in outcome.failures

    async def test_both_failures_raise_aggregate(self, mock_registry, chunks):
        """Test both sides failing raises with both causes."""
        from docchat.coordinator import DualWriteCoordinator
        from docchat.errors import AggregateWriteFailure

        async def add_chunks(name, chunks, timeout=None):
            raise OSError(f"{name} unavailable")

        mock_registry.add_chunks = AsyncMock(side_effect=add_chunks)

        with pytest.raises(AggregateWriteFailure) as exc_info:
            await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks)

        error = exc_info.value
        assert str(error.individual.cause) == "intro unavailable"
        assert str(error.combined.cause) == "combined unavailable"

    async def test_collision_with_combined_rejected(self, mock_registry, chunks):
        """Test a document whose store name is the combined name is rejected."""
        from docchat.coordinator import DualWriteCoordinator

        with pytest.raises(ValueError, match="collides"):
            await DualWriteCoordinator(mock_registry).add_document("combined.txt", chunks)
        mock_registry.add_chunks.assert_not_awaited()

    async def test_no_valid_chunks_rejected(self, mock_registry, make_chunks):
        """Test a document with only invalid chunks is rejected when cleaning."""
        from docchat.coordinator import DualWriteCoordinator

        with pytest.raises(ValueError, match="No valid chunks"):
            await DualWriteCoordinator(mock_registry, clean=True).add_document(
                "intro.txt", make_chunks("intro.txt", ["", "tiny"])
            )
        mock_registry.add_chunks.assert_not_awaited()

    async def test_chunks_indexed_as_given_by_default(self, mock_registry, make_chunks):
        """Test short and multi-line chunks pass through untouched."""
        from docchat.coordinator import DualWriteCoordinator

        chunks = make_chunks("intro.txt", ["Cats purr.", "Line one\n\n  line two"])
        await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks)

        for call in mock_registry.add_chunks.await_args_list:
            assert [c.content for c in call.args[1]] == ["Cats purr.", "Line one\n\n  line two"]

    async def test_clean_per_call(self, mock_registry, make_chunks):
        """Test cleaning can be requested for a single document."""
        from docchat.coordinator import DualWriteCoordinator

        chunks = make_chunks(
            "intro.txt", ["tiny", "This   chunk is\nlong enough to keep around."]
        )
        await DualWriteCoordinator(mock_registry).add_document("intro.txt", chunks, clean=True)

        written = mock_registry.add_chunks.await_args_list[0].args[1]
        assert [c.content for c in written] == ["This chunk is long enough to keep around."]

    async def test_empty_chunks_rejected(self, mock_registry):
        from docchat.coordinator import DualWriteCoordinator

        with pytest.raises(ValueError, match="No chunks provided"):
            await DualWriteCoordinator(mock_registry).add_document("intro.txt", [])
        mock_registry.add_chunks.assert_not_awaited()

    async def test_owner_namespaces_individual_store(self, mock_registry, chunks):
        from docchat.coordinator import DualWriteCoordinator

        outcome = await DualWriteCoordinator(mock_registry).add_document(
            "intro.txt", chunks, owner="alice"
        )

        assert outcome.individual_store == "alice_intro"
