import pytest

from threshold_tuner.clients.types import ItsiObject
from threshold_tuner.errors import ConfigParseError
from threshold_tuner.models import Batch, KpiRef, TrainingConfig, kpi_filter_expression, parse_training_window_size


@pytest.mark.parametrize("value, expected", [("-7d", 7), ("-14d", 14), ("-60d", 60)])
def test_parse_training_window_size(value, expected):
    assert parse_training_window_size(value) == expected


@pytest.mark.parametrize("value", ["7d", "-7x", "-d", "--7d", "-7d ", "", None, 7])
def test_parse_training_window_size_rejects_malformed(value):
    with pytest.raises(ConfigParseError):
        parse_training_window_size(value)


def test_training_config_is_a_structural_key():
    a = TrainingConfig(1700000000, 7, "both")
    b = TrainingConfig(1700000000, 7, "both")

    assert a == b
    assert {a: 1}[b] == 1
    assert TrainingConfig(1700000000, 7, "upper") != a
    assert a.end_time == 1700000000 + 7 * 86400
    assert a.window == "-7d"
    assert str(a) == "2023-11-14 22:13:20/7d/both"


def test_kpi_refs_are_scoped_by_service_identity():
    svc_a = ItsiObject("service", "svc")
    svc_b = ItsiObject("service", "svc")

    assert KpiRef(svc_a, "k1") == KpiRef(svc_a, "k1")
    assert KpiRef(svc_a, "k1") != KpiRef(svc_b, "k1")


def _refs(svc, n, prefix="k"):
    return [KpiRef(svc, f"{prefix}{i}") for i in range(n)]


def test_batch_capacity_and_merge():
    svc1, svc2 = ItsiObject("service", "s1"), ItsiObject("service", "s2")
    shared = TrainingConfig(1, 7, "both")
    other = TrainingConfig(1, 14, "both")

    a = Batch({shared: _refs(svc1, 6)})
    b = Batch({shared: _refs(svc2, 4), other: _refs(svc2, 9, "o")})

    assert a.has_capacity_for(b)
    a.merge(b)

    assert len(a[shared]) == 10
    assert [k.kpi_id for k in a[shared]][-4:] == ["k0", "k1", "k2", "k3"]
    assert len(a[other]) == 9
    assert a.services() == [svc1, svc2]


def test_batch_capacity_is_checked_per_shared_search():
    svc = ItsiObject("service", "s1")
    shared = TrainingConfig(1, 7, "both")

    a = Batch({shared: _refs(svc, 8)})

    assert not a.has_capacity_for(Batch({shared: _refs(svc, 3)}))
    # a large list for a key the batch does not have yet is fine
    assert a.has_capacity_for(Batch({TrainingConfig(2, 7, "both"): _refs(svc, 15)}))


def test_kpi_filter_expression_quotes_every_pair():
    svc1, svc2 = ItsiObject("service", "s1"), ItsiObject("service", "s2")
    refs = [KpiRef(svc1, "k1"), KpiRef(svc1, "k2"), KpiRef(svc2, "k3")]

    assert kpi_filter_expression(refs) == (
        'AND ( (itsi_service_id="s1" AND itsi_kpi_id IN ("k1","k2")) OR '
        '(itsi_service_id="s2" AND itsi_kpi_id IN ("k3")) )'
    )
    assert kpi_filter_expression([]) == ""
