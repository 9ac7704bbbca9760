from conftest import create_cbz, scan_books
from stacks.search import ENTITY_BOOK, ENTITY_SERIES
from stacks.tasks import ALL_CAPABILITIES

COMICINFO = b"""<ComicInfo>
  <Title>Into the Void</Title>
  <Writer>Jane Doe</Writer>
  <Tags>space</Tags>
</ComicInfo>"""


def test_rebuild_index_and_search(services, library, library_dir):
    create_cbz(library_dir / "Voyagers" / "issue1.cbz", comicinfo=COMICINFO)
    create_cbz(library_dir / "Pirates" / "issue1.cbz")
    books = scan_books(services, library)
    voyager = next(b for b in books if "Voyagers" in b.path)
    services.book_metadata_lifecycle.refresh_metadata(voyager, ALL_CAPABILITIES)

    assert services.search_index_lifecycle.rebuild_index() == 4

    assert services.search_index_lifecycle.search("jane doe") == [voyager.id]
    assert services.search_index_lifecycle.search("VOID", ENTITY_BOOK) == [voyager.id]
    assert services.search_index_lifecycle.search("pirates", ENTITY_BOOK) == []
    assert len(services.search_index_lifecycle.search("pirates", ENTITY_SERIES)) == 1
    assert len(services.search_index_lifecycle.search("issue1")) == 2


def test_rebuild_replaces_previous_entries(services, library, library_dir):
    path = create_cbz(library_dir / "Voyagers" / "issue1.cbz")
    scan_books(services, library)
    services.search_index_lifecycle.rebuild_index()

    path.unlink()
    services.library_lifecycle.scan_root_folder(library)
    services.search_index_lifecycle.rebuild_index()

    assert services.search_index_lifecycle.search("issue1") == []
    assert services.search_index_lifecycle.search("voyagers") == []
