from __future__ import annotations

from recordsync.domain.models import WriteIntent, WriteKind
from recordsync.sync.placeholder import PlaceholderGenerator, is_placeholder
from sync_fakes import FakeClock


def _intent(**kwargs):
    clock = FakeClock()
    return WriteIntent(
        action="add",
        payload={"name": "Насос", "type": "pump"},
        match_fields=("name", "type"),
        submitted_at=clock.now(),
        **kwargs,
    )


def test_placeholder_has_reserved_prefix_and_local_created_at():
    clock = FakeClock()
    generator = PlaceholderGenerator(clock)

    entity = generator.build(_intent())

    assert entity["id"] == f"temp-{int(clock.now().timestamp() * 1000)}"
    assert entity["name"] == "Насос"
    assert entity["createdAt"] == clock.now().isoformat()
    assert entity["isPlaceholder"] is True
    assert is_placeholder(entity) is True


def test_placeholder_ids_unique_at_same_instant():
    generator = PlaceholderGenerator(FakeClock())

    ids = {generator.build(_intent())["id"] for _ in range(3)}

    assert len(ids) == 3


def test_update_placeholder_references_real_entity():
    generator = PlaceholderGenerator(FakeClock())

    entity = generator.build(_intent(kind=WriteKind.UPDATE, entity_id="eq-7"))

    assert entity["placeholderFor"] == "eq-7"
    assert entity["id"].startswith("temp-")


def test_is_placeholder_on_ids():
    assert is_placeholder("temp-1705312800000") is True
    assert is_placeholder("eq-1") is False
    assert is_placeholder(None) is False
    assert is_placeholder({"entryId": "temp-1"}, id_field="entryId") is True
