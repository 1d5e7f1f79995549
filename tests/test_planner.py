import pytest

from threshold_tuner.planner import plan_parallelism


def _brute_force(concurrency, ratio):
    pairs = [(s, concurrency // s) for s in range(1, concurrency + 1) if concurrency % s == 0]
    return min(pairs, key=lambda p: abs(p[0] / p[1] - ratio))


@pytest.mark.parametrize("concurrency", range(1, 65))
@pytest.mark.parametrize("ratio", [0.25, 0.5, 1.0, 3.0])
def test_plan_uses_the_whole_budget_and_the_closest_ratio(concurrency, ratio):
    searches, batches = plan_parallelism(concurrency, ratio)

    assert searches * batches == concurrency
    assert searches >= 1 and batches >= 1
    assert (searches, batches) == _brute_force(concurrency, ratio)


def test_default_ratio():
    # 10 -> (2, 5): 2/5 = 0.4 is the closest divisor ratio to 0.5
    assert plan_parallelism(10) == (2, 5)
    assert plan_parallelism(8) == (2, 4)
    assert plan_parallelism(1) == (1, 1)


def test_prime_budget():
    assert plan_parallelism(7) == (1, 7)


def test_ties_prefer_fewer_searches():
    # 1/2 and 2/1 are both 0.75 away from 1.25
    assert plan_parallelism(2, 1.25) == (1, 2)


@pytest.mark.parametrize("concurrency", [0, -3])
def test_invalid_budget(concurrency):
    with pytest.raises(ValueError):
        plan_parallelism(concurrency)
