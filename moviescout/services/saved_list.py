import asyncio
import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from moviescout.core.errors import CATALOG_ERRORS, SavedMovieNotFound
from moviescout.models.movie import EnrichedMovie
from moviescout.models.saved import SavedListEntry
from moviescout.services.detail_enricher import DetailEnricher

logger = logging.getLogger(__name__)

_ENTRIES = TypeAdapter(list[SavedListEntry])


class SavedListStore:
    """The saved-movies list, kept as one JSON document. Last write wins."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> list[SavedListEntry]:
        if not self.path.exists():
            return []
        try:
            return _ENTRIES.validate_json(self.path.read_bytes())
        except (ValidationError, ValueError):
            logger.warning("Saved list is unreadable, starting empty", extra={"path": str(self.path)})
            return []

    def _write(self, entries: list[SavedListEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_bytes(_ENTRIES.dump_json(entries, indent=2))
        tmp_path.replace(self.path)

    @staticmethod
    def _ordered(entries: list[SavedListEntry]) -> list[SavedListEntry]:
        # entries without an explicit position keep save order after the positioned ones
        return sorted(
            entries,
            key=lambda entry: (entry.position is None, entry.position or 0, entry.saved_at),
        )

    def entries(self) -> list[SavedListEntry]:
        return self._ordered(self._read())

    def contains(self, movie_id: int) -> bool:
        return any(entry.id == movie_id for entry in self._read())

    def add(self, movie: EnrichedMovie) -> SavedListEntry:
        entries = self.entries()
        for entry in entries:
            if entry.id == movie.id:
                return entry
        entry = SavedListEntry.from_movie(movie)
        entry.position = len(entries)
        entries.append(entry)
        self._write(entries)
        logger.info("Movie saved", extra={"movie_id": movie.id, "saved_count": len(entries)})
        return entry

    def remove(self, movie_id: int) -> None:
        entries = self.entries()
        remaining = [entry for entry in entries if entry.id != movie_id]
        if len(remaining) == len(entries):
            raise SavedMovieNotFound(movie_id)
        for position, entry in enumerate(remaining):
            entry.position = position
        self._write(remaining)
        logger.info("Movie removed from saved list", extra={"movie_id": movie_id, "saved_count": len(remaining)})

    def reorder(self, movie_ids: list[int]) -> list[SavedListEntry]:
        entries = self.entries()
        by_id = {entry.id: entry for entry in entries}
        missing = [movie_id for movie_id in movie_ids if movie_id not in by_id]
        if missing:
            raise SavedMovieNotFound(missing[0])

        requested = list(dict.fromkeys(movie_ids))
        listed = set(requested)
        ordered = [by_id[movie_id] for movie_id in requested]
        ordered += [entry for entry in entries if entry.id not in listed]
        for position, entry in enumerate(ordered):
            entry.position = position
        self._write(ordered)
        return ordered


def entry_as_movie(entry: SavedListEntry) -> EnrichedMovie:
    return EnrichedMovie(
        id=entry.id,
        title=entry.title,
        poster_path=entry.poster_path,
        vote_average=entry.vote_average,
        release_date=entry.release_date,
        genre_ids=entry.genre_ids,
        director=entry.director,
        enriched=False,
    )


async def hydrate_entries(entries: list[SavedListEntry], enricher: DetailEnricher) -> list[EnrichedMovie]:
    """Full details for saved entries, in list order; entries that fail keep their stored fields."""
    outcomes = await asyncio.gather(*[enricher.enrich(entry.id) for entry in entries], return_exceptions=True)
    movies: list[EnrichedMovie] = []
    for entry, outcome in zip(entries, outcomes):
        if isinstance(outcome, CATALOG_ERRORS):
            logger.warning("Saved movie could not be hydrated", extra={"movie_id": entry.id, "error_code": outcome.code})
            movies.append(entry_as_movie(entry))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            movies.append(outcome)
    return movies
