"""Consumption sample merging and post aggregate folding."""
import itertools
from types import SimpleNamespace

import pytest
from sqlalchemy import select, func

from contentlynk.models.consumption import ConsumptionSample
from contentlynk.models.post import ContentKind
from contentlynk.services.consumption_service import (
    ConcurrentSampleUpdate, ConsumptionAggregator, SampleValues,
    fold_samples, merge_samples, normalize_sample,
)

THRESHOLD = 0.8


def _merge_all(samples):
    merged = normalize_sample(samples[0], THRESHOLD)
    for sample in samples[1:]:
        merged = merge_samples(merged, sample, THRESHOLD)
    return merged


class TestMergeSamples:
    def test_out_of_order_reports_keep_the_maximum(self):
        """0.3, then 0.9, then a late 0.5 leaves the session at 0.9, completed."""
        merged = _merge_all([
            SampleValues(scroll_depth=0.3, time_spent=10),
            SampleValues(scroll_depth=0.9, time_spent=40),
            SampleValues(scroll_depth=0.5, time_spent=20),
        ])
        assert merged.scroll_depth == 0.9
        assert merged.time_spent == 40
        assert merged.completed is True

    def test_order_independent(self):
        samples = [
            SampleValues(scroll_depth=0.3, time_spent=10),
            SampleValues(scroll_depth=0.9, watch_percentage=0.2, time_spent=40),
            SampleValues(listen_percentage=0.5, time_spent=20, completed=False),
        ]
        results = {_merge_all(list(order)) for order in itertools.permutations(samples)}
        assert len(results) == 1

    def test_completed_is_sticky(self):
        merged = merge_samples(
            SampleValues(scroll_depth=0.2, completed=True),
            SampleValues(scroll_depth=0.1),
            THRESHOLD,
        )
        assert merged.completed is True
        assert merged.scroll_depth == 0.2

    def test_threshold_marks_completed(self):
        assert normalize_sample(SampleValues(watch_percentage=0.8), THRESHOLD).completed
        assert not normalize_sample(SampleValues(watch_percentage=0.79), THRESHOLD).completed

    def test_nulls_do_not_overwrite(self):
        merged = merge_samples(
            SampleValues(scroll_depth=0.4),
            SampleValues(watch_percentage=0.3),
            THRESHOLD,
        )
        assert merged.scroll_depth == 0.4
        assert merged.watch_percentage == 0.3

    def test_out_of_range_is_clamped(self):
        sample = normalize_sample(
            SampleValues(scroll_depth=1.7, watch_percentage=-0.2, time_spent=-3),
            THRESHOLD,
        )
        assert sample.scroll_depth == 1.0
        assert sample.watch_percentage == 0.0
        assert sample.time_spent == 0.0


class TestFoldSamples:
    def test_empty(self):
        aggregates = fold_samples([])
        assert aggregates.average_scroll_depth is None
        assert aggregates.average_watch_percentage is None
        assert aggregates.total_completions == 0

    def test_means_skip_nulls(self):
        aggregates = fold_samples([
            SampleValues(scroll_depth=0.9, completed=True),
            SampleValues(scroll_depth=0.5),
            SampleValues(watch_percentage=0.4),
        ])
        assert aggregates.average_scroll_depth == pytest.approx(0.7)
        assert aggregates.average_watch_percentage == pytest.approx(0.4)
        assert aggregates.total_completions == 1
        assert aggregates.sample_count == 3


class TestConsumptionAggregator:
    async def test_same_session_refines_one_row(self, db_session, make_user, make_post):
        creator = await make_user()
        post = await make_post(creator, content_kind=ContentKind.ARTICLE.value)
        aggregator = ConsumptionAggregator(db_session, threshold=THRESHOLD)

        first = await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.3))
        second = await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.9))
        third = await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.5))

        assert first.created is True
        assert second.created is False
        assert third.created is False
        assert third.sample.id == first.sample.id
        assert third.sample.scroll_depth == 0.9
        assert third.sample.completed is True
        assert third.sample.version == 3

        count = await db_session.execute(
            select(func.count(ConsumptionSample.id)).where(ConsumptionSample.post_id == post.id)
        )
        assert count.scalar() == 1

        await db_session.refresh(post)
        assert post.average_scroll_depth == pytest.approx(0.9)
        assert post.total_completions == 1

    async def test_incremental_matches_batch(self, db_session, make_user, make_post):
        creator = await make_user()
        live = await make_post(creator)
        batch = await make_post(creator)

        reports = [
            ('a', SampleValues(scroll_depth=0.2)),
            ('b', SampleValues(scroll_depth=0.6, time_spent=30)),
            ('a', SampleValues(scroll_depth=0.95)),
            ('c', SampleValues(watch_percentage=0.4)),
            ('b', SampleValues(scroll_depth=0.1)),
        ]
        aggregator = ConsumptionAggregator(db_session, threshold=THRESHOLD)
        for session_id, sample in reports:
            await aggregator.record(live.id, session_id, sample)

        # Same final per-session state, written directly and folded once
        final = {}
        for session_id, sample in reports:
            if session_id in final:
                final[session_id] = merge_samples(final[session_id], sample, THRESHOLD)
            else:
                final[session_id] = normalize_sample(sample, THRESHOLD)
        for session_id, values in final.items():
            db_session.add(ConsumptionSample(
                post_id=batch.id,
                session_id=session_id,
                scroll_depth=values.scroll_depth,
                watch_percentage=values.watch_percentage,
                listen_percentage=values.listen_percentage,
                time_spent=values.time_spent,
                completed=values.completed,
            ))
        await db_session.flush()
        batch_aggregates = await aggregator.recompute(batch.id)
        live_aggregates = await aggregator.recompute(live.id)

        assert live_aggregates.average_scroll_depth == batch_aggregates.average_scroll_depth
        assert live_aggregates.average_watch_percentage == batch_aggregates.average_watch_percentage
        assert live_aggregates.total_completions == batch_aggregates.total_completions == 1

    async def test_sessions_are_independent(self, db_session, make_user, make_post):
        creator = await make_user()
        post = await make_post(creator)
        aggregator = ConsumptionAggregator(db_session, threshold=THRESHOLD)

        await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.9))
        await aggregator.record(post.id, 's2', SampleValues(scroll_depth=0.5), user_id=creator.id)

        await db_session.refresh(post)
        assert post.average_scroll_depth == pytest.approx(0.7)
        assert post.total_completions == 1

    async def test_gives_up_after_repeated_conflicts(
        self, db_session, make_user, make_post, monkeypatch,
    ):
        creator = await make_user()
        post = await make_post(creator)
        aggregator = ConsumptionAggregator(db_session, threshold=THRESHOLD, max_attempts=2)
        created = await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.3))

        stale = SimpleNamespace(
            id=created.sample.id,
            version=created.sample.version + 10,
            user_id=None,
            scroll_depth=0.3,
            watch_percentage=None,
            listen_percentage=None,
            time_spent=0.0,
            completed=False,
        )

        async def always_stale(post_id, session_id):
            return stale

        monkeypatch.setattr(aggregator, '_get_sample', always_stale)

        with pytest.raises(ConcurrentSampleUpdate):
            await aggregator.record(post.id, 's1', SampleValues(scroll_depth=0.6))
