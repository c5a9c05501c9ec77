# ABOUTME: MetadataAggregator fans one query out to every provider concurrently and settles all calls.
# ABOUTME: Deduplicates results by ISBN or title, merges duplicates, and attaches a consensus score.

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace

from bibliomerge.metadata.confidence import ConfidenceFactors, calculate_aggregated_confidence
from bibliomerge.metadata.normalization import (
    clean_isbn,
    normalize_creator_name,
    normalize_isbn,
    normalize_title,
)
from bibliomerge.metadata.provider import (
    CreatorQuery,
    MetadataProvider,
    MultiCriteriaQuery,
    TitleQuery,
)
from bibliomerge.metadata.types import MetadataRecord

logger = logging.getLogger(__name__)

# Scalar fields filled from lower-ranked records when the primary lacks them.
_FILL_FIELDS = (
    "title",
    "description",
    "publisher",
    "publication_date",
    "publication_place",
    "language",
    "edition",
    "page_count",
    "series",
    "cover_image",
    "physical_dimensions",
)


class InsufficientProvidersError(Exception):
    """Raised when fewer providers succeeded than the configured quorum."""

    def __init__(self, succeeded: int, required: int, errors: dict[str, Exception]) -> None:
        self.succeeded = succeeded
        self.required = required
        self.errors = dict(errors)
        super().__init__(
            f"Only {succeeded} provider(s) responded successfully, minimum {required} required"
        )


class ProviderTimeoutError(Exception):
    """Raised in place of a provider result when its own operation timeout elapses."""


@dataclass(frozen=True)
class AggregatorOptions:
    """Aggregation settings. ``timeout`` is the global deadline in seconds."""

    timeout: float = 30.0
    min_providers: int = 1
    deduplicate_by_isbn: bool = True
    calculate_consensus: bool = True


@dataclass(frozen=True)
class Consensus:
    confidence: float
    agreement_score: float
    factors: ConfidenceFactors


@dataclass
class AggregatedResult:
    """Outcome of one fan-out.

    ``errors`` holds providers that raised or hit their own timeout;
    ``timed_out`` lists providers still running when the global deadline
    fired. The two never overlap.
    """

    results: list[MetadataRecord] = field(default_factory=list)
    provider_results: dict[str, list[MetadataRecord]] = field(default_factory=dict)
    timing: dict[str, float] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    timed_out: list[str] = field(default_factory=list)
    consensus: Consensus | None = None

    @property
    def successful_providers(self) -> list[str]:
        return list(self.provider_results)


class MetadataAggregator:
    """Queries every registered provider concurrently and combines the answers.

    Providers are an explicitly constructed collection owned by the caller;
    their order is the registration order used for deterministic tie-breaks.
    """

    def __init__(
        self,
        providers: Sequence[MetadataProvider],
        *,
        options: AggregatorOptions | None = None,
    ) -> None:
        if not providers:
            raise ValueError("MetadataAggregator requires at least one provider")
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Provider names must be unique, got {names}")
        self._providers = list(providers)
        self.options = options or AggregatorOptions()

    @property
    def providers(self) -> list[MetadataProvider]:
        return list(self._providers)

    async def search_by_isbn(self, isbn: str) -> AggregatedResult:
        return await self._fan_out(
            "isbn", lambda p, cancel: p.search_by_isbn(isbn, cancel=cancel)
        )

    async def search_by_title(self, query: TitleQuery | str) -> AggregatedResult:
        if isinstance(query, str):
            query = TitleQuery(title=query)
        return await self._fan_out(
            "title", lambda p, cancel: p.search_by_title(query, cancel=cancel)
        )

    async def search_by_creator(self, query: CreatorQuery | str) -> AggregatedResult:
        if isinstance(query, str):
            query = CreatorQuery(name=query)
        return await self._fan_out(
            "creator", lambda p, cancel: p.search_by_creator(query, cancel=cancel)
        )

    async def search_multi_criteria(self, query: MultiCriteriaQuery) -> AggregatedResult:
        return await self._fan_out(
            "multi-criteria", lambda p, cancel: p.search_multi_criteria(query, cancel=cancel)
        )

    async def _fan_out(
        self,
        kind: str,
        call: Callable[[MetadataProvider, asyncio.Event], Awaitable[list[MetadataRecord]]],
    ) -> AggregatedResult:
        cancel = asyncio.Event()
        outcome = AggregatedResult()

        async def run(provider: MetadataProvider) -> list[MetadataRecord]:
            started = time.monotonic()
            try:
                return await asyncio.wait_for(
                    call(provider, cancel), provider.timeout.operation_timeout
                )
            except TimeoutError as exc:
                raise ProviderTimeoutError(
                    f"{provider.name} did not answer within "
                    f"{provider.timeout.operation_timeout:g}s"
                ) from exc
            finally:
                outcome.timing[provider.name] = time.monotonic() - started

        tasks = {
            asyncio.create_task(run(provider), name=provider.name): provider
            for provider in self._providers
        }
        logger.debug("Querying %d provider(s) by %s", len(tasks), kind)
        done, pending = await asyncio.wait(tasks, timeout=self.options.timeout)

        if pending:
            cancel.set()
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        for task, provider in tasks.items():
            if task in pending:
                outcome.timed_out.append(provider.name)
                logger.warning(
                    "Provider %s still running at the %gs global timeout",
                    provider.name,
                    self.options.timeout,
                )
                continue
            exc = task.exception()
            if exc is not None:
                outcome.errors[provider.name] = exc
                logger.warning("Provider %s failed: %s", provider.name, exc)
                continue
            outcome.provider_results[provider.name] = [
                replace(record, provider=provider.name) for record in task.result()
            ]

        succeeded = len(outcome.provider_results)
        if succeeded < self.options.min_providers:
            failures = dict(outcome.errors)
            for name in outcome.timed_out:
                failures[name] = ProviderTimeoutError(f"{name} hit the global timeout")
            error = InsufficientProvidersError(succeeded, self.options.min_providers, failures)
            logger.error("%s", error)
            raise error

        provider_order = [p.name for p in self._providers]
        combined = [r for name in provider_order for r in outcome.provider_results.get(name, [])]
        if self.options.deduplicate_by_isbn:
            combined = deduplicate_records(combined, provider_order)
        outcome.results = combined

        if self.options.calculate_consensus and combined:
            outcome.consensus = calculate_consensus(combined)

        logger.info(
            "%s search: %d provider(s) answered, %d failed, %d timed out, %d result(s)",
            kind,
            succeeded,
            len(outcome.errors),
            len(outcome.timed_out),
            len(outcome.results),
        )
        return outcome


def calculate_consensus(records: Sequence[MetadataRecord]) -> Consensus:
    """Run the confidence engine over records with attribution fields stripped."""
    stripped = [replace(r, provider=None, provider_data={}, merged_from=()) for r in records]
    confidence, factors = calculate_aggregated_confidence(stripped)
    return Consensus(
        confidence=confidence,
        agreement_score=factors.factors.agreement_score,
        factors=factors,
    )


def _isbn_key(record: MetadataRecord) -> str | None:
    if not record.isbn:
        return None
    return normalize_isbn(record.isbn[0], True)


def deduplicate_records(
    records: Sequence[MetadataRecord], provider_order: Sequence[str] = ()
) -> list[MetadataRecord]:
    """Collapse records describing the same edition.

    Records group by the normalized form of their first ISBN. Records with no
    usable ISBN join the first earlier title group with the same normalized
    title; records with neither are kept as they are. Groups keep the order
    in which they were first seen.
    """
    groups: dict[str, list[MetadataRecord]] = {}
    title_keys: list[tuple[str, str]] = []
    loose: list[tuple[int, MetadataRecord]] = []
    order: list[str] = []

    for record in records:
        key = _isbn_key(record)
        if key is None:
            title = normalize_title(record.title) if record.title else ""
            if not title:
                loose.append((len(order), record))
                continue
            key = next((k for t, k in title_keys if t == title), None)
            if key is None:
                key = f"title:{title}"
                title_keys.append((title, key))
        if key not in groups:
            groups[key] = []
            order.append(key)
        groups[key].append(record)

    merged = [
        merge_records(groups[k], provider_order) if len(groups[k]) > 1 else groups[k][0]
        for k in order
    ]
    for offset, (position, record) in enumerate(loose):
        merged.insert(position + offset, record)
    if len(merged) < len(records):
        logger.debug("Deduplicated %d record(s) into %d", len(records), len(merged))
    return merged


def _constituents(records: Sequence[MetadataRecord]) -> list[MetadataRecord]:
    flat: list[MetadataRecord] = []
    for record in records:
        flat.extend(record.merged_from or (record,))
    return flat


def _rank(records: Sequence[MetadataRecord], provider_order: Sequence[str]) -> list[MetadataRecord]:
    positions = {name: i for i, name in enumerate(provider_order)}
    fallback = len(positions)

    def key(record: MetadataRecord) -> tuple[float, int, str, str]:
        name = record.provider or record.source
        return (-record.confidence, positions.get(name, fallback), name, record.id)

    return sorted(records, key=key)


def _union(values: Sequence[str], normalize: Callable[[str], str | None]) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        norm = normalize(value)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        out.append(value)
    return tuple(out)


def _is_unset(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def merge_records(
    records: Sequence[MetadataRecord], provider_order: Sequence[str] = ()
) -> MetadataRecord:
    """Merge records for the same edition into one.

    The highest-confidence record is the primary. ISBNs are unioned in
    normalized ISBN-13 form, or in cleaned form when none of them validate;
    authors and subjects are unioned after normalization. Every unset scalar
    on the primary (None or a blank string) is filled from the next ranked
    record that has it. Ties in confidence fall back to provider
    registration order, then provider name, then record id, so the result
    does not depend on input order. Merging already-merged records
    re-ranks their constituents, which keeps merging associative.
    """
    if not records:
        raise ValueError("merge_records requires at least one record")
    ranked = _rank(_constituents(records), provider_order)
    if len(ranked) == 1:
        return ranked[0]

    primary = ranked[0]
    updates: dict[str, object] = {}
    for name in _FILL_FIELDS:
        if not _is_unset(getattr(primary, name)):
            continue
        donor = next((r for r in ranked[1:] if not _is_unset(getattr(r, name))), None)
        if donor is not None:
            updates[name] = getattr(donor, name)

    raw_isbns = [i for r in ranked for i in r.isbn]
    isbns = [normalize_isbn(i, True) for i in raw_isbns]
    if not any(isbns):
        # None pass the checksum; keep the cleaned values rather than lose them.
        isbns = [clean_isbn(i) for i in raw_isbns]
    providers: list[str] = []
    for record in ranked:
        name = record.provider or record.source
        if name not in providers:
            providers.append(name)

    return replace(
        primary,
        isbn=tuple(dict.fromkeys(i for i in isbns if i)),
        authors=_union([a for r in ranked for a in r.authors], normalize_creator_name),
        subjects=_union([s for r in ranked for s in r.subjects], lambda s: s.strip().lower()),
        provider=", ".join(providers),
        merged_from=tuple(ranked),
        **updates,
    )
