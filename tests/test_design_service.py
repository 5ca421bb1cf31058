from decimal import Decimal

import pytest

from app.market.core.errors import DesignNotFound
from app.market.models.design import DesignCreate
from app.market.services import design_service


@pytest.mark.parametrize(
    "name, extension, expected",
    [
        ("My Cool Font.OTF", None, "my-cool-font.otf"),
        ("Logo (final)!.png", None, "logo-final.png"),
        ("mockup", "psd", "mockup.psd"),
        ("???.zip", None, "file.zip"),
    ],
)
def test_slugify_filename(name, extension, expected):
    assert design_service.slugify_filename(name, extension) == expected


def test_build_storage_path():
    assert design_service.build_storage_path(12, "UI Kit.fig") == "designs/12/ui-kit.fig"


async def test_create_design_and_append_files(factory, session_factory, storage):
    owner = await factory.user("owner")

    async with session_factory() as db:
        design = await design_service.create_design(
            db, owner, DesignCreate(name="Poster", price=Decimal("9.99"), currency="eur")
        )
        first = await design_service.add_file(db, storage, design.id, "front.png", b"1")
        second = await design_service.add_file(db, storage, design.id, "back.png", b"2")
        files = await design_service.list_files(db, design.id)

    assert design.currency == "EUR"
    assert not design.is_free
    assert (first.display_order, second.display_order) == (0, 1)
    assert [f.file_path for f in files] == [first.file_path, second.file_path]
    assert storage.objects[f"designs/{design.id}/back.png"] == b"2"


async def test_add_file_to_missing_design(session_factory, storage):
    async with session_factory() as db:
        with pytest.raises(DesignNotFound):
            await design_service.add_file(db, storage, 999, "x.zip", b"x")

    assert storage.objects == {}
