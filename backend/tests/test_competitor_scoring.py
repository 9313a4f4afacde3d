"""Tests for competitor scoring and ranking."""

from datetime import timedelta

import pytest

from conftest import NOW, add_observation, add_pharmacy, add_product
from farmaprice.services.competitor_scoring import CompetitorScorer, aggressiveness_score


def test_baseline_without_data():
    """Test that a competitor without observations scores the baseline."""
    assert aggressiveness_score(None, None, 0) == 50.0


def test_cheaper_competitor_gains_points():
    """Test the price component for a competitor 20% below the market."""
    assert aggressiveness_score(8.0, 10.0, 0) == 56.0


def test_dearer_competitor_is_not_penalized():
    """Test that being above the market adds nothing."""
    assert aggressiveness_score(12.0, 10.0, 0) == 50.0
    assert aggressiveness_score(12.0, 10.0, 3) == 56.0


def test_score_is_clamped():
    """Test that the score never exceeds 100."""
    assert aggressiveness_score(1.0, 10.0, 30) == 100.0


def test_score_is_rounded_to_two_decimals():
    """Test the rounding of fractional price advantages."""
    assert aggressiveness_score(9.0, 11.0, 1) == 57.45


@pytest.mark.asyncio
async def test_update_scores_ranks_competitors(db):
    """Test scores and ranks for a cheap, active competitor versus a dear one."""
    product = await add_product(db, "Dipirona 500mg", own_price=10)
    own = await add_pharmacy(db, "user-1", "Minha Farmácia", own=True)
    cheap = await add_pharmacy(db, "user-1", "Farmácia A")
    dear = await add_pharmacy(db, "user-1", "Farmácia B")

    day1 = NOW - timedelta(days=2)
    day2 = NOW - timedelta(days=1)
    await add_observation(db, own, product, 10.0, day1)
    await add_observation(db, cheap, product, 8.0, day1)
    await add_observation(db, cheap, product, 8.0, day2)
    await add_observation(db, dear, product, 12.0, day1)
    await add_observation(db, dear, product, 12.0, day2)
    # Outside the window; would otherwise make B the cheapest
    await add_observation(db, dear, product, 1.0, NOW - timedelta(days=45))

    scored = await CompetitorScorer().update_scores(db, "user-1", now=NOW)

    assert scored == 2
    # Market average is 10: 50 + 6 price + 2 days * 2
    assert float(cheap.aggressiveness_score) == 60.0
    assert cheap.competitiveness_rank == 1
    assert float(dear.aggressiveness_score) == 54.0
    assert dear.competitiveness_rank == 2
    assert float(own.aggressiveness_score) == 0
    assert own.competitiveness_rank is None


@pytest.mark.asyncio
async def test_unavailable_observations_count_as_activity_only(db):
    """Test that out-of-stock rows add active days but no price."""
    product = await add_product(db, "Dipirona 500mg")
    competitor = await add_pharmacy(db, "user-1", "Farmácia A")
    await add_observation(db, competitor, product, 0.0, NOW - timedelta(days=1), available=False)
    await add_observation(db, competitor, product, 0.0, NOW - timedelta(days=3), available=False)

    await CompetitorScorer().update_scores(db, "user-1", now=NOW)

    assert float(competitor.aggressiveness_score) == 54.0


@pytest.mark.asyncio
async def test_ties_are_ranked_by_id(db):
    """Test that equal scores get distinct ranks in creation order."""
    first = await add_pharmacy(db, "user-1", "Farmácia A")
    second = await add_pharmacy(db, "user-1", "Farmácia B")

    await CompetitorScorer().update_scores(db, "user-1", now=NOW)

    assert float(first.aggressiveness_score) == float(second.aggressiveness_score) == 50.0
    assert (first.competitiveness_rank, second.competitiveness_rank) == (1, 2)


@pytest.mark.asyncio
async def test_other_users_are_untouched(db):
    """Test that scoring is scoped to one user."""
    mine = await add_pharmacy(db, "user-1", "Farmácia A")
    theirs = await add_pharmacy(db, "user-2", "Farmácia A")

    assert await CompetitorScorer().update_scores(db, "user-1", now=NOW) == 1
    assert mine.competitiveness_rank == 1
    assert theirs.competitiveness_rank is None


@pytest.mark.asyncio
async def test_no_competitors(db):
    """Test that a user without competitors scores nothing."""
    await add_pharmacy(db, "user-1", "Minha Farmácia", own=True)

    assert await CompetitorScorer().update_scores(db, "user-1", now=NOW) == 0
