from datetime import date

from conftest import create_cbz, scan_books
from stacks.database import session_scope
from stacks.events import BookUpdated, SeriesUpdated
from stacks.repository import Repository
from stacks.tasks import ALL_CAPABILITIES, BookMetadataPatchCapability

ISSUE_ONE = b"""<ComicInfo>
  <Title>The Beginning</Title>
  <Number>1</Number>
  <Summary>It starts here.</Summary>
  <Publisher>Image</Publisher>
  <Writer>Ann Writer</Writer>
  <Tags>drama</Tags>
  <Year>2020</Year>
  <Month>5</Month>
  <StoryArc>Big Event</StoryArc>
</ComicInfo>"""

ISSUE_TWO = b"""<ComicInfo>
  <Title>The Middle</Title>
  <Number>2.5</Number>
  <Publisher>Image</Publisher>
  <Writer>Ann Writer</Writer>
  <Penciller>Bob Artist</Penciller>
  <Tags>drama, action</Tags>
  <Year>2019</Year>
</ComicInfo>"""


def _metadata(services, book_id):
    with session_scope(services.engine) as session:
        return Repository(session).get_book_metadata(book_id)


def _two_issues(services, library, library_dir):
    create_cbz(library_dir / "Saga" / "issue1.cbz", comicinfo=ISSUE_ONE)
    create_cbz(library_dir / "Saga" / "issue2.cbz", comicinfo=ISSUE_TWO)
    return scan_books(services, library)


def test_refresh_book_metadata_from_comicinfo(services, library, library_dir, received_events):
    book = _two_issues(services, library, library_dir)[0]

    services.book_metadata_lifecycle.refresh_metadata(book, ALL_CAPABILITIES)

    metadata = _metadata(services, book.id)
    assert metadata.title == "The Beginning"
    assert metadata.summary == "It starts here."
    assert metadata.publisher == "Image"
    assert metadata.authors == "Ann Writer"
    assert metadata.tags == "drama"
    assert metadata.release_date.date() == date(2020, 5, 1)
    assert any(isinstance(e, BookUpdated) and e.book.id == book.id for e in received_events)


def test_refresh_creates_read_lists_from_story_arcs(services, library, library_dir):
    book = _two_issues(services, library, library_dir)[0]

    services.book_metadata_lifecycle.refresh_metadata(book, ALL_CAPABILITIES)
    services.book_metadata_lifecycle.refresh_metadata(book, ALL_CAPABILITIES)

    with session_scope(services.engine) as session:
        repo = Repository(session)
        read_list = repo.get_read_list_by_name("Big Event")
        assert read_list is not None
        assert repo.find_read_list_book_ids(read_list.id) == [book.id]


def test_refresh_only_patches_allowed_fields(services, library, library_dir):
    book = _two_issues(services, library, library_dir)[1]

    services.book_metadata_lifecycle.refresh_metadata(book, {BookMetadataPatchCapability.NUMBER_SORT})

    metadata = _metadata(services, book.id)
    assert metadata.title == "issue2"
    assert metadata.number_sort == 2.5
    assert metadata.number == "2"
    assert metadata.authors == ""


def test_refresh_without_comicinfo_keeps_metadata(services, ready_book, received_events):
    services.book_metadata_lifecycle.refresh_metadata(ready_book, ALL_CAPABILITIES)

    assert _metadata(services, ready_book.id).title == "issue01"
    assert not any(isinstance(e, BookUpdated) for e in received_events)


def test_series_refresh_and_aggregation(services, library, library_dir, received_events):
    books = _two_issues(services, library, library_dir)
    for book in books:
        services.book_metadata_lifecycle.refresh_metadata(book, ALL_CAPABILITIES)
    with session_scope(services.engine) as session:
        series = Repository(session).get_series(books[0].series_id)

    services.series_metadata_lifecycle.refresh_metadata(series)
    services.series_metadata_lifecycle.aggregate_metadata(series)

    with session_scope(services.engine) as session:
        repo = Repository(session)
        metadata = repo.get_series_metadata(series.id)
        aggregation = repo.get_aggregation(series.id)
    assert metadata.title == "Saga"
    assert metadata.publisher == "Image"
    assert aggregation.authors == "Ann Writer,Bob Artist"
    assert aggregation.tags == "drama,action"
    assert aggregation.release_date.date() == date(2019, 1, 1)
    assert aggregation.summary == "It starts here."
    assert aggregation.summary_number == "1"
    assert sum(isinstance(e, SeriesUpdated) for e in received_events) >= 2
